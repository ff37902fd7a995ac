"""
Runtime settings loaded from PERSONA_COUNCIL_* environment variables.

    PERSONA_COUNCIL_LOCAL_PERSONAS   path to a JSON array of local personas
    PERSONA_COUNCIL_CONFIG_PATH      synchronizer state file
    PERSONA_COUNCIL_USER_KEY         config API key (overrides the saved one)
    PERSONA_COUNCIL_API_BASE_URL     config API base URL
    PERSONA_COUNCIL_PROVIDER         template | anthropic | openai
    PERSONA_COUNCIL_MODEL            model name for LLM providers
    PERSONA_COUNCIL_CACHE_DURATION   persona cache lifetime in seconds
    PERSONA_COUNCIL_REQUEST_TIMEOUT  default HTTP timeout in seconds
    PERSONA_COUNCIL_HISTORY_SIZE     sessions kept in history
    PERSONA_COUNCIL_AUTO_SYNC        "true" to poll the config API for updates
    PERSONA_COUNCIL_LOG_LEVEL        DEBUG | INFO | WARNING | ERROR
    CORS_ORIGINS                     comma-separated origins for the gateway
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

ENV_PREFIX = "PERSONA_COUNCIL_"
DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:8000",
    "http://localhost:8080",
]


def _env(name: str, default: str = "") -> str:
    return os.environ.get(f"{ENV_PREFIX}{name}", default).strip()


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"[Settings] {ENV_PREFIX}{name}={raw!r} is not a number, using {default}")
        return default


def _cors_origins() -> list[str]:
    origins = os.environ.get("CORS_ORIGINS", "")
    if origins.strip():
        return [o.strip() for o in origins.split(",") if o.strip()]
    return list(DEFAULT_CORS_ORIGINS)


@dataclass
class Settings:
    local_personas_path: Path | None = None
    config_path: Path | None = None
    user_key: str | None = None
    api_base_url: str | None = None
    provider: str = "template"
    model: str | None = None
    cache_duration: float = 300.0
    request_timeout: float = 15.0
    history_size: int = 100
    auto_sync: bool = False
    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

    @classmethod
    def from_env(cls) -> "Settings":
        local = _env("LOCAL_PERSONAS")
        config_path = _env("CONFIG_PATH")
        return cls(
            local_personas_path=Path(local).expanduser() if local else None,
            config_path=Path(config_path).expanduser() if config_path else None,
            user_key=_env("USER_KEY") or None,
            api_base_url=_env("API_BASE_URL") or None,
            provider=_env("PROVIDER", "template").lower(),
            model=_env("MODEL") or None,
            cache_duration=_env_float("CACHE_DURATION", 300.0),
            request_timeout=_env_float("REQUEST_TIMEOUT", 15.0),
            history_size=int(_env_float("HISTORY_SIZE", 100)),
            auto_sync=_env("AUTO_SYNC").lower() in ("1", "true", "yes"),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            cors_origins=_cors_origins(),
        )
