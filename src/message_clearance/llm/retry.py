"""
Retry Orchestrator -- bounded exponential backoff around the Request Executor.

Policy per failed attempt:
  - INVALID_API_KEY, INVALID_RESPONSE, TIMEOUT: propagate immediately
  - RequestCancelled (caller abort): propagate immediately
  - RATE_LIMITED, NETWORK_ERROR, SERVER_ERROR, UNKNOWN: retry while attempts remain

Backoff before retry n is min(1000 * 2**(n-1), 10000) ms: 1s, 2s, 4s, 8s, 10s...
The backoff sleep observes the request's cancel token.
"""

import logging
from typing import Awaitable, Callable

from ..models import AnalysisRequest, AnalysisResult
from .cancellation import CancelToken, OperationCancelled, cancellable_sleep
from .client import RequestExecutor
from .errors import ErrorKind, PipelineError, RequestCancelled

logger = logging.getLogger(__name__)

RETRY_BASE_DELAY_MS = 1000
RETRY_MAX_DELAY_MS = 10_000

SleepFn = Callable[[float, CancelToken | None], Awaitable[None]]


def backoff_delay(attempt: int) -> float:
    """Delay in seconds to wait after failed attempt number `attempt` (1-based)."""
    delay_ms = min(RETRY_BASE_DELAY_MS * 2 ** (attempt - 1), RETRY_MAX_DELAY_MS)
    return delay_ms / 1000


class RetryOrchestrator:
    """
    Runs the executor up to max_retries times. Zero allows no attempts.

    Usage:
        orchestrator = RetryOrchestrator(RequestExecutor(config))
        result = await orchestrator.run(request, api_key)
    """

    def __init__(self, executor: RequestExecutor, sleep: SleepFn = cancellable_sleep):
        self._executor = executor
        self._sleep = sleep

    @property
    def executor(self) -> RequestExecutor:
        return self._executor

    async def run(
        self,
        request: AnalysisRequest,
        api_key: str,
        max_retries: int | None = None,
    ) -> AnalysisResult:
        """
        Analyze `request`, retrying transient failures.

        Raises:
            PipelineError: the last error observed, unchanged.
            RequestCancelled: the request's cancel token tripped.
        """
        attempts = request.max_retries if max_retries is None else max_retries
        if attempts <= 0:
            logger.error("[Retry] No attempts allowed (max_retries=0)")
            raise PipelineError(ErrorKind.UNKNOWN, "Request failed after retries")

        token = request.cancel_token
        last_error: PipelineError | None = None

        for attempt in range(1, attempts + 1):
            try:
                return await self._executor.execute(request, api_key, token)
            except RequestCancelled:
                logger.info(f"[Retry] Request cancelled on attempt {attempt}")
                raise
            except PipelineError as e:
                last_error = e
            except Exception as e:
                logger.error(f"[Retry] Unexpected executor failure: {e}", exc_info=True)
                last_error = PipelineError(ErrorKind.UNKNOWN, str(e) or type(e).__name__, cause=e)

            if not last_error.retryable:
                logger.warning(
                    f"[Retry] {last_error.kind.value} on attempt {attempt} is not retryable"
                )
                raise last_error

            if attempt >= attempts:
                break

            delay = backoff_delay(attempt)
            logger.warning(
                f"[Retry] Attempt {attempt}/{attempts} failed ({last_error.kind.value}), "
                f"retrying in {delay:.1f}s"
            )
            try:
                await self._sleep(delay, token)
            except OperationCancelled as e:
                logger.info("[Retry] Cancelled during backoff")
                raise RequestCancelled(cause=e) from e

        logger.error(f"[Retry] Giving up after {attempts} attempt(s): {last_error.message}")
        raise last_error
