"""
Sensitive-info scan -- flag personal data in a message before it is sent.

Regex-only and advisory. Each finding is "<label>: <first match>" so the
front end can show the user exactly what was spotted.
"""

import re
from typing import NamedTuple


class SensitivePattern(NamedTuple):
    pattern: re.Pattern
    label: str


SENSITIVE_PATTERNS: list[SensitivePattern] = [
    SensitivePattern(re.compile(r"\b\d{3}[-.\s]?\d{3}[-.\s]?\d{4}\b"), "Phone number"),
    SensitivePattern(
        re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "Email address"
    ),
    SensitivePattern(re.compile(r"\b\d{5}(?:-\d{4})?\b"), "ZIP code"),
    SensitivePattern(
        re.compile(
            r"\b\d{1,5}\s+[\w\s]+(?:street|st|avenue|ave|road|rd|drive|dr|lane|ln"
            r"|way|court|ct|boulevard|blvd)\b",
            re.IGNORECASE,
        ),
        "Street address",
    ),
    SensitivePattern(re.compile(r"\b(?:\d{4}[-\s]?){3}\d{4}\b"), "Credit card number"),
    SensitivePattern(re.compile(r"\b\d{3}[-\s]?\d{2}[-\s]?\d{4}\b"), "SSN"),
]


def detect_sensitive_info(text: str) -> list[str]:
    """Return one "<label>: <first match>" entry per pattern that matches."""
    if not text:
        return []

    found = []
    for pattern, label in SENSITIVE_PATTERNS:
        match = pattern.search(text)
        if match:
            found.append(f"{label}: {match.group(0)}")
    return found
