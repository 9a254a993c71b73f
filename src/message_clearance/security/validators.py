"""
Input Validators - checks at the edges: CLI arguments, settings, env config.

Raise ValidationError (a ValueError) with a message fit to show the user,
except validate_prefix(), which only warns: an OpenRouter key with an
unexpected prefix is still stored and tried.
"""

import logging
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

ALLOWED_URL_SCHEMES = {"http", "https"}


class ValidationError(ValueError):
    """Input rejected at a boundary. str(e) is user-facing."""


def validate_not_empty(value: str | None, field_name: str = "input") -> str:
    """Return `value` stripped; reject None, empty and whitespace-only."""
    if not value or not value.strip():
        raise ValidationError(f"{field_name} cannot be empty")
    return value.strip()


def validate_in_choices(value: str, choices: list[str], field_name: str = "value") -> str:
    if value not in choices:
        raise ValidationError(f"{field_name} must be one of: {', '.join(choices)}")
    return value


def validate_prefix(value: str, prefix: str, field_name: str = "value") -> bool:
    """Loose format check. Logs a warning and returns False on mismatch."""
    if value.startswith(prefix):
        return True
    logger.warning(f"[Validators] {field_name} does not start with {prefix!r}")
    return False


def validate_api_url(url: str, field_name: str = "API URL") -> str:
    """
    Check an endpoint override before the API key is sent to it.

    Only http(s) URLs with a hostname are accepted. Plain http is allowed
    for local proxies but logged, since the key travels as a bearer token.
    """
    url = validate_not_empty(url, field_name)
    parsed = urlparse(url)

    if parsed.scheme not in ALLOWED_URL_SCHEMES:
        raise ValidationError(f"{field_name} must use http or https (got '{parsed.scheme}')")
    if not parsed.hostname:
        raise ValidationError(f"{field_name} must include a hostname")

    if parsed.scheme == "http":
        logger.warning(f"[Validators] {field_name} uses plain http: {parsed.hostname}")
    return url
