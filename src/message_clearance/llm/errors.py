"""
Pipeline error taxonomy.

Every failed attempt surfaces as exactly one PipelineError. The kind decides
whether the retry layer tries again; only the session translates it into a
user-facing message.

    INVALID_API_KEY   401/403 or missing key         never retried
    RATE_LIMITED      429                            retried
    NETWORK_ERROR     connection/transport failure   retried
    INVALID_RESPONSE  unusable body or content       never retried
    SERVER_ERROR      5xx                            retried
    TIMEOUT           timeout or cancellation        never retried
    UNKNOWN           any other non-2xx              retried
"""

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_API_KEY = "INVALID_API_KEY"
    RATE_LIMITED = "RATE_LIMITED"
    NETWORK_ERROR = "NETWORK_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    SERVER_ERROR = "SERVER_ERROR"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"


RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.RATE_LIMITED,
        ErrorKind.NETWORK_ERROR,
        ErrorKind.SERVER_ERROR,
        ErrorKind.UNKNOWN,
    }
)


class PipelineError(Exception):
    """A classified failure of one pipeline attempt."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        cause: BaseException | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self._kind = kind
        self._message = message
        self._cause = cause
        self._status_code = status_code

    @property
    def kind(self) -> ErrorKind:
        return self._kind

    @property
    def message(self) -> str:
        return self._message

    @property
    def cause(self) -> BaseException | None:
        return self._cause

    @property
    def status_code(self) -> int | None:
        return self._status_code

    @property
    def retryable(self) -> bool:
        return self._kind in RETRYABLE_KINDS

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self._kind.value}, message={self._message!r})"


class RequestCancelled(PipelineError):
    """The caller cancelled the request. Not an application error."""

    def __init__(self, message: str = "Request cancelled", cause: BaseException | None = None):
        super().__init__(ErrorKind.TIMEOUT, message, cause=cause)
