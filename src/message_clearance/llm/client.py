"""
Request Executor -- one HTTP round trip to the chat-completion endpoint.

Features:
  - Local input checks before any network call (blank text, blank key)
  - Hard cap on message length (truncates, never fails)
  - Timeout composed with the caller's cancel token (either one aborts)
  - HTTP status classification into the PipelineError taxonomy
  - Content extraction and shape validation of the model's answer
  - Security: API key never logged, injection patterns detected and logged

Exactly one network call per execute(); retries live in retry.py.

Usage:
    executor = RequestExecutor(config)
    result = await executor.execute(
        AnalysisRequest(text="per my last email...", model="openai/gpt-4o"),
        api_key="sk-or-...",
        cancel_token=token,
    )
    result.verdict  # Verdict.NEEDS_EDIT
"""

import logging
import time
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from ..config import MAX_MESSAGE_LENGTH, MAX_TOKENS, TEMPERATURE, PipelineConfig
from ..models import AnalysisRequest, AnalysisResult
from ..security.prompt_guard import guard_message
from .cancellation import (
    TIMEOUT_REASON,
    CancelToken,
    OperationCancelled,
    any_token,
    timeout_token,
)
from .errors import ErrorKind, PipelineError, RequestCancelled
from .extraction import extract
from .prompts import build_messages
from .validation import validate_analysis

logger = logging.getLogger(__name__)

ERROR_BODY_PREVIEW = 200


class RequestExecutor:
    """
    Builds and sends one analysis request, classifies the outcome.

    The HTTP transport is injectable so tests can use httpx.MockTransport:

        executor = RequestExecutor(config, transport=httpx.MockTransport(handler))
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._config = config or PipelineConfig()
        self._transport = transport

    @property
    def config(self) -> PipelineConfig:
        return self._config

    def _headers(self, api_key: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
            "HTTP-Referer": self._config.app_url,
            "X-Title": self._config.app_title,
        }

    def build_payload(self, request: AnalysisRequest, text: str) -> dict[str, Any]:
        return {
            "model": request.model,
            "messages": build_messages(text),
            "temperature": TEMPERATURE,
            "max_tokens": MAX_TOKENS,
        }

    async def _post(
        self, payload: dict[str, Any], api_key: str, timeout: float
    ) -> httpx.Response:
        async with httpx.AsyncClient(transport=self._transport, timeout=timeout) as client:
            return await client.post(
                self._config.api_url, json=payload, headers=self._headers(api_key)
            )

    async def execute(
        self,
        request: AnalysisRequest,
        api_key: str,
        cancel_token: CancelToken | None = None,
    ) -> AnalysisResult:
        """
        Run one attempt of the analysis.

        Args:
            request: The analysis request.
            api_key: Provider key, sent as a bearer token.
            cancel_token: Caller cancellation. Defaults to request.cancel_token.

        Returns:
            AnalysisResult with metadata attached.

        Raises:
            PipelineError: classified failure. RequestCancelled if the caller
                cancelled.
        """
        if not request.text or not request.text.strip():
            raise PipelineError(ErrorKind.INVALID_RESPONSE, "Message is required")
        if not api_key or not api_key.strip():
            raise PipelineError(ErrorKind.INVALID_API_KEY, "API key is required")

        guarded = guard_message(request.text, MAX_MESSAGE_LENGTH)
        payload = self.build_payload(request, guarded.text)

        caller_token = cancel_token if cancel_token is not None else request.cancel_token
        timer = timeout_token(request.timeout_seconds)
        signal = any_token(caller_token, timer)

        start = time.monotonic()
        try:
            response = await signal.run(
                self._post(payload, api_key.strip(), request.timeout_seconds)
            )
        except OperationCancelled as e:
            if e.reason == TIMEOUT_REASON:
                raise PipelineError(
                    ErrorKind.TIMEOUT,
                    f"Request timed out after {request.timeout_ms}ms",
                    cause=e,
                ) from e
            raise RequestCancelled(cause=e) from e
        except httpx.TimeoutException as e:
            raise PipelineError(
                ErrorKind.TIMEOUT,
                f"Request timed out after {request.timeout_ms}ms",
                cause=e,
            ) from e
        except httpx.TransportError as e:
            raise PipelineError(
                ErrorKind.NETWORK_ERROR,
                "Network error. Check your internet connection.",
                cause=e,
            ) from e
        finally:
            signal.close()
            timer.close()

        latency_ms = (time.monotonic() - start) * 1000
        logger.debug(
            f"[LLM] {request.model}: HTTP {response.status_code} ({latency_ms:.0f}ms)"
        )

        self._raise_for_status(response)
        content = self._message_content(response)
        parsed = extract(content)

        problem = validate_analysis(parsed)
        if problem:
            raise PipelineError(
                ErrorKind.INVALID_RESPONSE, f"Invalid analysis response: {problem}"
            )

        try:
            return AnalysisResult.from_payload(
                parsed, model=request.model, original_length=len(request.text)
            )
        except PydanticValidationError as e:
            raise PipelineError(
                ErrorKind.INVALID_RESPONSE,
                f"Invalid analysis response: {e.error_count()} field error(s)",
                cause=e,
            ) from e

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Map a non-2xx response to its PipelineError kind."""
        status = response.status_code
        if 200 <= status < 300:
            return

        if status in (401, 403):
            raise PipelineError(
                ErrorKind.INVALID_API_KEY,
                "Invalid API key. Please check your OpenRouter API key.",
                status_code=status,
            )
        if status == 429:
            raise PipelineError(
                ErrorKind.RATE_LIMITED,
                "Rate limited. Please wait a moment and try again.",
                status_code=status,
            )
        if status >= 500:
            raise PipelineError(
                ErrorKind.SERVER_ERROR,
                "OpenRouter server error. Please try again.",
                status_code=status,
            )

        body = response.text[:ERROR_BODY_PREVIEW]
        raise PipelineError(
            ErrorKind.UNKNOWN, f"API error: {status} {body}".strip(), status_code=status
        )

    def _message_content(self, response: httpx.Response) -> str:
        """Locate choices[0].message.content in the response body."""
        try:
            data = response.json()
        except ValueError as e:
            raise PipelineError(
                ErrorKind.INVALID_RESPONSE, "API response is not valid JSON", cause=e
            ) from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None

        if content is None:
            raise PipelineError(
                ErrorKind.INVALID_RESPONSE, "Invalid response structure from API"
            )
        return content
