import logging
import threading
from typing import Any, Dict, Optional, Union

import requests

from ffclient.cache import EvaluationCache
from ffclient.config import Options, configure_logging
from ffclient.events import Event, EventBus, EventCallback
from ffclient.exceptions import AuthenticationError, FetchError, StreamTransportError
from ffclient.metrics import VARIATIONS, setup_metrics
from ffclient.models import AuthSession
from ffclient.schemas import Target
from ffclient.services.auth import authenticate
from ffclient.services.evaluations import fetch_all, fetch_one
from ffclient.streaming import TRANSPORTS, PushTransport, StreamReconciler, StreamState
from ffclient.tasks import TaskRunner

logger = logging.getLogger(__name__)

_MISSING = object()


class FFClient:
    """Feature flag client for a single target.

    Startup authenticates, loads every evaluation, then follows the push
    stream. Failures are never raised to the caller: they arrive as
    ``Event.ERROR`` payloads, so register an ERROR listener or they go
    unnoticed.

        client = FFClient("api-key", {"identifier": "user-1"})
        client.on(Event.ERROR, print)
        client.on(Event.READY, lambda flags: ...)
        client.start()
        client.variation("new-checkout", False)
    """

    def __init__(
        self,
        api_key: str,
        target: Union[Target, Dict[str, Any]],
        options: Union[Options, Dict[str, Any], None] = None,
        http: Optional[requests.Session] = None,
        transport: Optional[PushTransport] = None,
        runner: Optional[TaskRunner] = None,
    ):
        self.api_key = api_key
        self.target = target if isinstance(target, Target) else Target.model_validate(target)
        if options is None:
            options = Options()
        elif not isinstance(options, Options):
            options = Options.model_validate(options)
        self.options = options
        configure_logging(options)

        self._http = http or requests.Session()
        self._cache = EvaluationCache()
        self._bus = EventBus()
        self._runner = runner or TaskRunner(max_workers=options.max_workers)
        self._transport = transport
        self._reconciler: Optional[StreamReconciler] = None

        self._lock = threading.Lock()
        self._session: Optional[AuthSession] = None
        self._ready = threading.Event()
        self._started = False
        self._closed = False

        if options.metrics_port:
            setup_metrics(options.metrics_port)

    # public surface

    def on(self, event: Event, callback: EventCallback):
        self._bus.on(event, callback)

    def off(self, event: Optional[Event] = None, callback: Optional[EventCallback] = None):
        if event is None:
            self.close()
            return
        self._bus.off(event, callback)

    def variation(self, flag: str, default: Any = None) -> Any:
        value = self._cache.get(flag, _MISSING)
        if value is _MISSING:
            VARIATIONS.labels(flag, "fallback").inc()
            return default
        VARIATIONS.labels(flag, "hit").inc()
        return value

    def close(self):
        with self._lock:
            if self._closed:
                return
            self._closed = True
        logger.debug("Closing event stream")
        self._cache.close()
        self._bus.clear()
        self._runner.close()
        if self._reconciler is not None:
            self._reconciler.close()
        elif self._transport is not None:
            self._transport.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._ready.wait(timeout)

    @property
    def stream_state(self) -> StreamState:
        if self._reconciler is None:
            return StreamState.DISCONNECTED
        return self._reconciler.state

    @property
    def session(self) -> Optional[AuthSession]:
        with self._lock:
            return self._session

    def start(self, block: bool = False):
        with self._lock:
            if self._started or self._closed:
                return
            self._started = True
        if block:
            self._bootstrap()
            return
        threading.Thread(target=self._bootstrap, name="ffclient-bootstrap", daemon=True).start()

    # startup sequence

    def _set_session(self, session: AuthSession):
        with self._lock:
            self._session = session

    def _bootstrap(self):
        try:
            session = authenticate(self._http, self.options, self.api_key)
        except AuthenticationError as e:
            logger.error("Authentication error: %s", e)
            self._bus.emit(Event.ERROR, e)
            return
        self._set_session(session)
        logger.debug(
            "Target %s attributes %s",
            self.target.identifier,
            self.target.loggable_attributes(self.options.all_attributes_private, self.options.private_attribute_names),
        )

        try:
            fetch_all(self._http, self.options, session, self.target, self._cache)
        except FetchError as e:
            logger.error("Features fetch operation error: %s", e)
            self._bus.emit(Event.ERROR, e)
            return
        logger.debug("Fetch all flags ok: %s", self._cache.snapshot())

        if self._closed:
            return
        # stream only after the baseline snapshot is in place
        try:
            self._start_stream(session)
        except StreamTransportError as e:
            logger.error("Stream has issue: %s", e)
            self._bus.emit(Event.ERROR, e)
            return
        if self._closed:
            # close() raced the stream startup
            if self._reconciler is not None:
                self._reconciler.close()
            return

        snapshot = self._cache.snapshot()
        logger.debug("Event stream ready: %s", snapshot)
        self._ready.set()
        self._bus.emit(Event.READY, snapshot)

    def _start_stream(self, session: AuthSession):
        if not self.options.stream_enabled:
            logger.debug("Stream is disabled by configuration. Note: Polling is not yet supported")
            return
        transport = self._transport
        if transport is None:
            transport_cls = TRANSPORTS.get(self.options.stream_transport)
            if transport_cls is None:
                raise StreamTransportError(f"unknown stream transport {self.options.stream_transport!r}")
            transport = transport_cls(
                retry_interval=self.options.stream_retry_interval,
                connect_timeout=self.options.request_timeout,
                read_timeout=self.options.stream_read_timeout,
            )
            self._transport = transport
        self._reconciler = StreamReconciler(
            self._cache,
            self._bus,
            self._runner,
            self._fetch_flag,
            transport,
            create_delay=self.options.create_event_delay,
        )
        headers = {**session.headers(), "API-Key": self.api_key}
        self._reconciler.start(f"{self.options.base_url}/stream", headers)

    def _fetch_flag(self, identifier: str):
        session = self.session
        if session is None or self._closed:
            return None
        return fetch_one(self._http, self.options, session, self.target, identifier, self._cache, self._bus)


def initialize(
    api_key: str,
    target: Union[Target, Dict[str, Any]],
    options: Union[Options, Dict[str, Any], None] = None,
    **kwargs,
) -> FFClient:
    """Create a client and start it in the background; subscribe right after."""
    client = FFClient(api_key, target, options, **kwargs)
    client.start()
    return client
