from typing import Any, Optional


class ErrorCodes:
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    FETCH_FAILED = "FETCH_FAILED"
    STREAM_TRANSPORT = "STREAM_TRANSPORT"
    PARSE_FAILED = "PARSE_FAILED"


class FFClientError(Exception):
    """Base class for everything delivered on the error channel."""

    def __init__(self, code: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.code = code
        self.cause = cause

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"


class AuthenticationError(FFClientError):
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(ErrorCodes.AUTHENTICATION_FAILED, message, cause)


class FetchError(FFClientError):
    """A bulk or point evaluation fetch failed; `response` is set for non-OK replies."""

    def __init__(
        self,
        message: str,
        kind: str,
        identifier: Optional[str] = None,
        response: Any = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(ErrorCodes.FETCH_FAILED, message, cause)
        self.kind = kind
        self.identifier = identifier
        self.response = response

    @property
    def status_code(self) -> Optional[int]:
        return getattr(self.response, "status_code", None)


class StreamTransportError(FFClientError):
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(ErrorCodes.STREAM_TRANSPORT, message, cause)


class ParseError(FFClientError):
    def __init__(self, message: str, payload: Any = None, cause: Optional[BaseException] = None):
        super().__init__(ErrorCodes.PARSE_FAILED, message, cause)
        self.payload = payload
