"""
Prompt Guard - Bound the user's message before it goes into the analysis prompt.

The message is the thing being critiqued, so its wording is never rewritten:
  guard_message()            -- null bytes out, hard length cap, injection scan
  detect_injection_attempt() -- pattern scan; logs and reports, never blocks

A message that quotes an injection attempt ("they sent me 'ignore previous
instructions', how do I reply?") is a legitimate thing to analyze. The
system prompt tells the model the message is data; findings here only go
to the log.

Reference: OWASP LLM Top 10 (2025) - LLM01: Prompt Injection
"""

import logging
import re
from typing import NamedTuple

logger = logging.getLogger(__name__)

INJECTION_PATTERNS: dict[str, re.Pattern] = {
    "ignore-instructions": re.compile(r"ignore\s+(all\s+)?(previous|prior|above)\s+instructions", re.I),
    "forget-instructions": re.compile(r"forget\s+(all\s+)?(your|previous)\s+instructions", re.I),
    "role-override": re.compile(r"you\s+are\s+now\s+(a|an|the)\b", re.I),
    "verdict-override": re.compile(r"(respond|answer|reply)\s+with\s+.{0,20}good_to_send", re.I),
    "chat-template-token": re.compile(r"<\|(im_start|im_end|system|user|assistant)\|>", re.I),
    "inst-tag": re.compile(r"\[/?INST\]", re.I),
    "safety-override": re.compile(r"override\s+safety|jailbreak", re.I),
}


class GuardedMessage(NamedTuple):
    text: str
    original_length: int
    truncated: bool
    findings: list[str]


def detect_injection_attempt(text: str) -> list[str]:
    """Names of the injection patterns found in `text` (empty = clean)."""
    if not text:
        return []

    findings = [name for name, pattern in INJECTION_PATTERNS.items() if pattern.search(text)]
    if findings:
        logger.warning(
            f"[PromptGuard] Message matches injection pattern(s) {', '.join(findings)} "
            f"({len(text)} chars); analyzing as data"
        )
    return findings


def guard_message(text: str, max_length: int) -> GuardedMessage:
    """
    Prepare a message for the user turn of the analysis prompt.

    Null bytes are removed, then the text is cut to `max_length` characters
    with no marker appended. Never fails on long input.

    Usage:
        guarded = guard_message(request.text, MAX_MESSAGE_LENGTH)
        build_messages(guarded.text)
    """
    original_length = len(text or "")
    cleaned = (text or "").replace("\x00", "")

    truncated = len(cleaned) > max_length
    if truncated:
        logger.warning(
            f"[PromptGuard] Message truncated from {len(cleaned)} to {max_length} chars"
        )
        cleaned = cleaned[:max_length]

    return GuardedMessage(
        text=cleaned,
        original_length=original_length,
        truncated=truncated,
        findings=detect_injection_attempt(cleaned),
    )
