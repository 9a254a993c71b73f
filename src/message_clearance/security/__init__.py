"""Security utilities -- input validation, prompt guard, sensitive-info scan."""
from .prompt_guard import GuardedMessage, detect_injection_attempt, guard_message
from .sensitive_info import detect_sensitive_info
from .validators import (
    ValidationError,
    validate_api_url,
    validate_in_choices,
    validate_not_empty,
    validate_prefix,
)
