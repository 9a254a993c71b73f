"""
Analysis Session -- the state machine a front end drives.

    IDLE --submit--> RUNNING --ok--------> COMPLETE
                             --error-----> FAILED
                             --cancel----> IDLE      (silent, no error)
    COMPLETE / FAILED --submit--> RUNNING

At most one request is in flight per session. A new submit() cancels the
previous request before starting, and every continuation checks the
generation it was started under before touching state, so a superseded
request can never overwrite a newer one's result.

The session is the only layer that turns a PipelineError into something a
user reads. Every failure leaves it in an actionable state.

Usage:
    async with AnalysisSession(settings, orchestrator, history) as session:
        session.subscribe(render)
        result = await session.submit("Per my last email, ...")
        if session.error and session.error.needs_new_key:
            prompt_for_key()
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

from .config import PipelineConfig
from .llm.cancellation import CancelToken
from .llm.errors import ErrorKind, PipelineError, RequestCancelled
from .llm.retry import RetryOrchestrator
from .models import AnalysisRequest, AnalysisResult, HistoryEntry
from .security.validators import ValidationError

logger = logging.getLogger(__name__)


# =============================================================================
# STATE
# =============================================================================


class SessionStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class UserError:
    """A failure as the user sees it."""

    type: str
    message: str
    needs_new_key: bool = False


@dataclass(frozen=True)
class SessionSnapshot:
    status: SessionStatus
    current_text: str
    result: AnalysisResult | None
    error: UserError | None


USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.INVALID_API_KEY: "Your API key is invalid. Please check and update it.",
    ErrorKind.RATE_LIMITED: "Too many requests. Please wait a moment and try again.",
    ErrorKind.NETWORK_ERROR: "Network error. Please check your internet connection.",
    ErrorKind.TIMEOUT: "Request timed out. Please try again.",
    ErrorKind.SERVER_ERROR: "Server error. Please try again in a moment.",
}


def to_user_error(error: PipelineError) -> UserError:
    """Translate a pipeline failure into a short user-facing record."""
    message = USER_MESSAGES.get(error.kind, error.message)
    return UserError(
        type=error.kind.value,
        message=message,
        needs_new_key=error.kind == ErrorKind.INVALID_API_KEY,
    )


class SubmissionRejected(ValidationError):
    """submit() refused the input before any state change."""

    def __init__(self, type: str, message: str):
        super().__init__(message)
        self.error = UserError(type=type, message=message)


class SettingsSource(Protocol):
    """What the session reads on every submission."""

    @property
    def api_key(self) -> str: ...

    @property
    def model(self) -> str: ...


class HistorySink(Protocol):
    def add(self, entry: HistoryEntry) -> HistoryEntry: ...

    def get(self, entry_id: str) -> HistoryEntry | None: ...


Listener = Callable[[SessionSnapshot], None]


# =============================================================================
# SESSION
# =============================================================================


class AnalysisSession:
    """
    Coordinates at most one in-flight analysis for one front end.

    settings is held by reference and re-read on each submit(). history is
    appended to after each success and read only by load_from_history().
    """

    def __init__(
        self,
        settings: SettingsSource,
        orchestrator: RetryOrchestrator,
        history: HistorySink | None = None,
        config: PipelineConfig | None = None,
    ):
        self._settings = settings
        self._orchestrator = orchestrator
        self._history = history
        self._config = config or orchestrator.executor.config

        self._status = SessionStatus.IDLE
        self._current_text = ""
        self._result: AnalysisResult | None = None
        self._error: UserError | None = None

        self._token: CancelToken | None = None
        self._generation = 0
        self._closed = False
        self._listeners: list[Listener] = []

    # =========================================================================
    # OBSERVABLES
    # =========================================================================

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def current_text(self) -> str:
        return self._current_text

    @property
    def result(self) -> AnalysisResult | None:
        return self._result

    @property
    def error(self) -> UserError | None:
        return self._error

    @property
    def is_running(self) -> bool:
        return self._status == SessionStatus.RUNNING

    @property
    def has_result(self) -> bool:
        return self._status == SessionStatus.COMPLETE and self._result is not None

    @property
    def has_error(self) -> bool:
        return self._status == SessionStatus.FAILED and self._error is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            status=self._status,
            current_text=self._current_text,
            result=self._result,
            error=self._error,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call `listener` with a snapshot after every transition."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _transition(self, status: SessionStatus) -> None:
        previous = self._status
        self._status = status
        logger.debug(f"[Session] {previous.value} -> {status.value}")
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"[Session] Listener failed: {e}", exc_info=True)

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    async def submit(self, text: str) -> AnalysisResult | None:
        """
        Analyze `text`, superseding any request already in flight.

        Returns the result on success, None on failure or cancellation (see
        `status` and `error`).

        Raises:
            SubmissionRejected: blank text or no API key; state is unchanged.
            RuntimeError: the session has been closed.
        """
        if self._closed:
            raise RuntimeError("Session is closed")

        text = (text or "").strip()
        if not text:
            raise SubmissionRejected("VALIDATION", "Please enter a message to analyze")

        # Settings and history are small local sqlite calls made inline on the loop.
        api_key = self._settings.api_key
        if not api_key:
            raise SubmissionRejected("NO_API_KEY", "Please add your OpenRouter API key")

        self._release_token()
        self._generation += 1
        generation = self._generation
        token = CancelToken()
        self._token = token

        self._current_text = text
        self._result = None
        self._error = None
        self._transition(SessionStatus.RUNNING)

        request = AnalysisRequest(
            text=text,
            model=self._settings.model,
            max_retries=self._config.max_retries,
            timeout_ms=self._config.timeout_ms,
            cancel_token=token,
        )
        logger.info(f"[Session] Submitting generation {generation} ({len(text)} chars)")

        try:
            result = await self._orchestrator.run(request, api_key)
        except RequestCancelled:
            if self._is_current(generation):
                self._token = None
                self._transition(SessionStatus.IDLE)
            return None
        except PipelineError as e:
            if not self._is_current(generation):
                logger.debug(f"[Session] Dropping stale failure of generation {generation}")
                return None
            logger.error(f"[Session] Analysis failed: {e.kind.value}: {e.message}")
            self._token = None
            self._error = to_user_error(e)
            self._transition(SessionStatus.FAILED)
            return None

        if not self._is_current(generation):
            logger.debug(f"[Session] Dropping stale result of generation {generation}")
            return None

        self._token = None
        self._result = result
        self._transition(SessionStatus.COMPLETE)
        self._record(text, result, request.model)
        return result

    def cancel(self) -> None:
        """Abort the in-flight request, if any, and return to IDLE."""
        if self._token is not None:
            logger.info(f"[Session] Cancelling generation {self._generation}")
        self._release_token()
        self._generation += 1
        self._error = None
        self._transition(SessionStatus.IDLE)

    def reset(self) -> None:
        """cancel() plus forgetting the last text, result and error."""
        self._release_token()
        self._generation += 1
        self._current_text = ""
        self._result = None
        self._error = None
        self._transition(SessionStatus.IDLE)

    async def retry(self) -> AnalysisResult | None:
        """Re-submit the last attempted text. No-op if there is none."""
        if not self._current_text:
            return None
        return await self.submit(self._current_text)

    def load_from_history(self, entry_id: str) -> bool:
        """Show a stored analysis as the current result. False if not found."""
        entry = self._history.get(entry_id) if self._history is not None else None
        if entry is None:
            return False
        self._release_token()
        self._generation += 1
        self._current_text = entry.original_message
        self._result = entry.result
        self._error = None
        self._transition(SessionStatus.COMPLETE)
        return True

    def close(self) -> None:
        """Teardown: cancel in-flight work; later submissions are refused."""
        if self._closed:
            return
        self._release_token()
        self._generation += 1
        self._closed = True
        self._listeners.clear()
        logger.debug("[Session] Closed")

    async def __aenter__(self) -> "AnalysisSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    def _release_token(self) -> None:
        token, self._token = self._token, None
        if token is not None:
            token.cancel()

    def _record(self, text: str, result: AnalysisResult, model: str) -> None:
        if self._history is None:
            return
        try:
            self._history.add(HistoryEntry(original_message=text, result=result, model=model))
        except Exception as e:
            logger.error(f"[Session] Failed to record history: {e}", exc_info=True)
