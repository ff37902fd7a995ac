"""Security utilities -- prompt injection defense and boundary validation."""
from .prompt_guard import detect_injection_attempt, sanitize_for_prompt, wrap_user_content
from .validators import (
    ValidationError,
    validate_config_id,
    validate_in_choices,
    validate_text,
    validate_url,
)
