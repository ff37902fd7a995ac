"""Config sync -- remote persona configs and the persisted local state."""

from .config_sync import (
    ConfigSummary,
    ConfigSynchronizer,
    LocalConfig,
    PersonaConfig,
    validate_persona_config,
)
