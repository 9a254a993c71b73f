"""Shape check for a parsed analysis payload. Pure, never raises."""

from typing import Any

VALID_VERDICTS = ("good_to_send", "needs_edit", "high_risk")
REQUIRED_REWRITES = ("short", "warm", "confident")


def validate_analysis(candidate: Any) -> str | None:
    """Return None if `candidate` has the required analysis shape.

    Otherwise return a description of the first failed check. Individual
    risk entries and `missing` are not inspected here.
    """
    if candidate is None or not isinstance(candidate, dict):
        return "Response is not an object"

    verdict = candidate.get("verdict")
    if not isinstance(verdict, str) or verdict not in VALID_VERDICTS:
        return f"Invalid verdict: {verdict}"

    if not isinstance(candidate.get("risks"), list):
        return "Missing or invalid risks array"

    rewrites = candidate.get("rewrites")
    if not isinstance(rewrites, dict):
        return "Missing or invalid rewrites object"

    for key in REQUIRED_REWRITES:
        if not isinstance(rewrites.get(key), str):
            return f"Missing rewrite: {key}"

    return None
