"""
Recover a JSON value from raw model output.

Models are told to answer with bare JSON but routinely wrap it in a code
fence or a sentence of prose. Three strategies are tried in order, first
success wins:

  1. parse_direct       the whole text is JSON
  2. parse_fenced       the interior of the first ``` or ```json fence
  3. parse_brace_span   the widest span from the first "{" to the last "}"

Each strategy is a pure function returning a ParseAttempt; none of them
raise. Only extract() turns "nothing parsed" into a PipelineError.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable

from .errors import ErrorKind, PipelineError

logger = logging.getLogger(__name__)

FENCE_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
BRACE_SPAN_PATTERN = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class ParseAttempt:
    ok: bool
    value: Any = None
    strategy: str = ""


FAILED = ParseAttempt(ok=False)


def _loads(text: str, strategy: str) -> ParseAttempt:
    try:
        return ParseAttempt(ok=True, value=json.loads(text), strategy=strategy)
    except (json.JSONDecodeError, ValueError):
        return FAILED


def parse_direct(raw: str) -> ParseAttempt:
    return _loads(raw, "direct")


def parse_fenced(raw: str) -> ParseAttempt:
    match = FENCE_PATTERN.search(raw)
    if not match:
        return FAILED
    return _loads(match.group(1).strip(), "fenced")


def parse_brace_span(raw: str) -> ParseAttempt:
    match = BRACE_SPAN_PATTERN.search(raw)
    if not match:
        return FAILED
    return _loads(match.group(0), "brace_span")


STRATEGIES: tuple[Callable[[str], ParseAttempt], ...] = (
    parse_direct,
    parse_fenced,
    parse_brace_span,
)


def extract(raw_text: str) -> Any:
    """Return the first JSON value any strategy recovers from `raw_text`.

    Raises:
        PipelineError(INVALID_RESPONSE): no strategy produced a value.
    """
    if not isinstance(raw_text, str):
        raise PipelineError(
            ErrorKind.INVALID_RESPONSE,
            f"Model content is not text (got {type(raw_text).__name__})",
        )

    for strategy in STRATEGIES:
        attempt = strategy(raw_text)
        if attempt.ok:
            if attempt.strategy != "direct":
                logger.debug(f"[Extract] Recovered JSON via {attempt.strategy} strategy")
            return attempt.value

    raise PipelineError(
        ErrorKind.INVALID_RESPONSE,
        "Could not parse AI response as JSON",
    )
