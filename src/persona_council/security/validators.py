"""
Input validators for values crossing the system boundary.

Parse at the boundary: tool arguments, config ids, and outbound base URLs are
checked here once, so inner layers can trust what they receive. Every failure
raises ValidationError with a message fit to show the caller.
"""

import ipaddress
import logging
import re
from urllib.parse import urlparse

from ..errors import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_URL_SCHEMES = {"http", "https"}
BLOCKED_HOSTNAMES = {"metadata.google.internal"}
CONFIG_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


def validate_text(
    value: str,
    field_name: str = "input",
    min_length: int = 1,
    max_length: int = 2000,
) -> str:
    """Trim, then require the length to be within [min_length, max_length]."""
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string")
    value = value.strip()
    if not value and min_length > 0:
        raise ValidationError(f"{field_name} cannot be empty")
    if len(value) < min_length:
        raise ValidationError(f"{field_name} must be at least {min_length} characters")
    if len(value) > max_length:
        raise ValidationError(f"{field_name} must be at most {max_length} characters")
    return value


def validate_config_id(value: str, field_name: str = "config_id") -> str:
    """Config ids are letters, digits, underscores and hyphens."""
    value = validate_text(value, field_name, max_length=100)
    if not CONFIG_ID_PATTERN.match(value):
        raise ValidationError(
            f"{field_name} may contain only letters, numbers, underscores, and hyphens"
        )
    return value


def validate_in_choices(value: str, choices: list[str], field_name: str = "value") -> str:
    if value not in choices:
        raise ValidationError(f"{field_name} must be one of: {', '.join(choices)}")
    return value


def _is_private_ip(hostname: str) -> bool:
    try:
        addr = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return addr.is_private or addr.is_loopback or addr.is_link_local


def validate_url(url: str, field_name: str = "url", allow_private: bool = False) -> str:
    """
    Validate an outbound base URL (persona sources, config API).

    Only http/https with a hostname. Private, loopback and link-local
    addresses are rejected unless ``allow_private`` (local development).
    """
    if not url or not url.strip():
        raise ValidationError(f"{field_name} cannot be empty")

    parsed = urlparse(url.strip())
    if parsed.scheme not in ALLOWED_URL_SCHEMES:
        raise ValidationError(f"{field_name} must use http or https (got '{parsed.scheme}')")

    hostname = (parsed.hostname or "").lower()
    if not hostname:
        raise ValidationError(f"{field_name} must include a hostname")
    if hostname in BLOCKED_HOSTNAMES:
        raise ValidationError(f"{field_name} cannot point to {hostname}")
    if not allow_private and (
        hostname == "localhost" or _is_private_ip(hostname) or hostname.endswith(".internal")
    ):
        raise ValidationError(f"{field_name} cannot point to private/internal addresses")

    logger.debug(f"[Validators] URL validated: {parsed.scheme}://{hostname}")
    return url.strip().rstrip("/")
