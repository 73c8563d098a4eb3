"""Push-stream handling: the transport abstraction and the reconciler that
turns create/patch/delete notifications into cache updates.

Notifications carry no version, so ordering is not corrected here. A
``create`` is fetched after a delay while ``patch`` is fetched at once, and
two notifications for the same flag can have their fetches complete in
either order. The cache keeps whichever fetch completes last. This is a
known weak point of the protocol: it is eventually consistent, not
linearizable. Subscribers get CHANGED after the cache lock is released, so
when two fetches for one flag finish together the last CHANGED delivered
may not carry the value variation() returns.
"""
import logging
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, Optional, Tuple, Type

import requests
from pydantic import ValidationError

from ffclient.cache import EvaluationCache
from ffclient.events import Event, EventBus
from ffclient.exceptions import ParseError, StreamTransportError
from ffclient.metrics import STREAM_EVENTS
from ffclient.schemas import Evaluation, StreamEvent
from ffclient.tasks import TaskRunner

logger = logging.getLogger(__name__)

KNOWN_EVENTS = ("create", "patch", "delete")


class StreamState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class StreamDispatcher(ABC):
    @abstractmethod
    def on_open(self): ...

    @abstractmethod
    def on_close(self): ...

    @abstractmethod
    def on_error(self, error: BaseException): ...

    @abstractmethod
    def on_message(self, data: str): ...


class PushTransport(ABC):
    """A long-lived server-to-client connection; reconnecting is its own job."""

    @abstractmethod
    def connect(self, url: str, headers: Dict[str, str], dispatcher: StreamDispatcher):
        ...

    @abstractmethod
    def close(self):
        ...


def iter_sse(lines: Iterable[str]) -> Iterator[Tuple[str, str, Optional[int]]]:
    """Yield (event, data, retry_ms) for each complete server-sent event."""
    event, data, retry = "", [], None
    for line in lines:
        if line is None:
            continue
        if isinstance(line, bytes):
            line = line.decode("utf-8")
        if not line:
            if data:
                yield event or "message", "\n".join(data), retry
            event, data, retry = "", [], None
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event = value
        elif name == "data":
            data.append(value)
        elif name == "retry" and value.isdigit():
            retry = int(value)


class SSETransport(PushTransport):
    def __init__(
        self,
        http: Optional[requests.Session] = None,
        retry_interval: float = 3.0,
        connect_timeout: Optional[float] = None,
        read_timeout: Optional[float] = None,
    ):
        self._http = http or requests.Session()
        self._retry_interval = retry_interval
        self._connect_timeout = connect_timeout
        # a silent half-open connection surfaces as a read error and reconnects
        self._read_timeout = read_timeout
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._response = None

    def connect(self, url: str, headers: Dict[str, str], dispatcher: StreamDispatcher):
        if self._thread is not None:
            raise StreamTransportError("stream already connected")
        headers = {**headers, "Accept": "text/event-stream", "Cache-Control": "no-cache"}
        self._thread = threading.Thread(
            target=self._run, args=(url, headers, dispatcher), name="ffclient-stream", daemon=True
        )
        self._thread.start()

    def _run(self, url: str, headers: Dict[str, str], dispatcher: StreamDispatcher):
        while not self._stop.is_set():
            opened = False
            resp = None
            try:
                timeout = None
                if self._connect_timeout or self._read_timeout:
                    timeout = (self._connect_timeout, self._read_timeout)
                resp = self._http.get(url, headers=headers, stream=True, timeout=timeout)
                if not resp.ok:
                    error = StreamTransportError(f"stream returned {resp.status_code}")
                    if 400 <= resp.status_code < 500:
                        # rejected request; retrying with the same credentials cannot succeed
                        dispatcher.on_error(error)
                        self._stop.set()
                        break
                    raise error
                if resp.encoding is None:
                    resp.encoding = "utf-8"
                self._response = resp
                opened = True
                dispatcher.on_open()
                for event, data, retry in iter_sse(resp.iter_lines(decode_unicode=True)):
                    if self._stop.is_set():
                        break
                    if retry is not None:
                        self._retry_interval = retry / 1000.0
                    logger.debug("Stream message %r", event)
                    dispatcher.on_message(data)
            except Exception as e:
                # reader thread boundary: report and reconnect
                if not self._stop.is_set():
                    dispatcher.on_error(e)
            finally:
                self._response = None
                if resp is not None:
                    resp.close()
                if opened:
                    dispatcher.on_close()
            self._stop.wait(self._retry_interval)

    def join(self, timeout: Optional[float] = None):
        if self._thread is not None:
            self._thread.join(timeout)

    def close(self):
        if self._stop.is_set():
            return
        self._stop.set()
        resp = self._response
        if resp is not None:
            resp.close()


TRANSPORTS: Dict[str, Type[PushTransport]] = {"sse": SSETransport}


class StreamReconciler(StreamDispatcher):
    def __init__(
        self,
        cache: EvaluationCache,
        bus: EventBus,
        runner: TaskRunner,
        fetch: Callable[[str], Any],
        transport: PushTransport,
        create_delay: float = 1.0,
    ):
        self._cache = cache
        self._bus = bus
        self._runner = runner
        self._fetch = fetch
        self._transport = transport
        self._create_delay = create_delay
        self._lock = threading.Lock()
        self._state = StreamState.DISCONNECTED
        self._closed = False

    @property
    def state(self) -> StreamState:
        return self._state

    def start(self, url: str, headers: Dict[str, str]):
        with self._lock:
            self._state = StreamState.CONNECTING
        try:
            self._transport.connect(url, headers, self)
        except Exception as e:
            with self._lock:
                self._state = StreamState.DISCONNECTED
            if isinstance(e, StreamTransportError):
                raise
            raise StreamTransportError(f"could not open stream: {e}", cause=e) from e

    def on_open(self):
        if self._closed:
            return
        with self._lock:
            self._state = StreamState.CONNECTED
        logger.debug("Stream connected")
        self._bus.emit(Event.CONNECTED)

    def on_close(self):
        with self._lock:
            was = self._state
            self._state = StreamState.DISCONNECTED
        if self._closed or was == StreamState.DISCONNECTED:
            return
        logger.debug("Stream disconnected")
        self._bus.emit(Event.DISCONNECTED)

    def on_error(self, error: BaseException):
        if self._closed:
            return
        logger.error("Stream has issue: %s", error)
        if not isinstance(error, StreamTransportError):
            error = StreamTransportError(str(error), cause=error)
        self._bus.emit(Event.ERROR, error)

    def on_message(self, data: str):
        if self._closed:
            return
        try:
            message = StreamEvent.model_validate_json(data)
        except ValidationError as e:
            logger.error("Malformed stream message: %s", data)
            self._bus.emit(Event.ERROR, ParseError(f"malformed stream message: {e}", payload=data, cause=e))
            return

        logger.debug("Received event from stream: %s", message)
        STREAM_EVENTS.labels(message.event if message.event in KNOWN_EVENTS else "other").inc()

        if message.event == "create":
            self._runner.submit_later(self._create_delay, self._fetch, message.identifier)
        elif message.event == "patch":
            self._runner.submit(self._fetch, message.identifier)
        elif message.event == "delete":
            self._delete(message.identifier)
        else:
            logger.debug("Ignoring stream event %r", message.event)

    def _delete(self, identifier: str):
        if not self._cache.delete(identifier):
            return
        self._bus.emit(Event.CHANGED, Evaluation(flag=identifier, value=None, deleted=True))
        logger.debug("Evaluation deleted: %s", identifier)

    def close(self):
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._state = StreamState.DISCONNECTED
        self._transport.close()
