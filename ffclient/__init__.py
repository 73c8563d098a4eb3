"""Feature flag client: evaluations cached locally, kept fresh by a push stream."""

from ffclient.client import FFClient, initialize
from ffclient.config import Options
from ffclient.events import Event, EventBus
from ffclient.exceptions import (
    AuthenticationError,
    ErrorCodes,
    FetchError,
    FFClientError,
    ParseError,
    StreamTransportError,
)
from ffclient.schemas import Evaluation, StreamEvent, Target
from ffclient.streaming import PushTransport, SSETransport, StreamState

__version__ = "0.1.0"

__all__ = [
    "AuthenticationError",
    "ErrorCodes",
    "Evaluation",
    "Event",
    "EventBus",
    "FetchError",
    "FFClient",
    "FFClientError",
    "Options",
    "ParseError",
    "PushTransport",
    "SSETransport",
    "StreamEvent",
    "StreamState",
    "StreamTransportError",
    "Target",
    "initialize",
]
