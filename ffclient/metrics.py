import threading

from prometheus_client import Counter, Histogram, start_http_server

VARIATIONS = Counter("ff_client_variations_total", "Flag variation lookups", ["flag", "result"])
STREAM_EVENTS = Counter("ff_client_stream_events_total", "Push notifications received", ["event"])
FETCHES = Counter("ff_client_fetches_total", "Evaluation fetches", ["kind", "status"])
FETCH_LATENCY = Histogram("ff_client_fetch_latency_seconds", "Evaluation fetch latency", ["kind"])

_server_lock = threading.Lock()
_server_port = None


def setup_metrics(port: int) -> bool:
    """Expose the collectors over HTTP; only the first call per process starts a server."""
    global _server_port
    with _server_lock:
        if _server_port is not None:
            return False
        start_http_server(port)
        _server_port = port
        return True
