"""
Wiring -- builds the object graph shared by the CLI and the API gateway.

    NetworkClient -> PersonaRepository  -+
                  -> ConfigSynchronizer -+-> PersonaToolService
    provider      -> CollaborationOrchestrator -+
"""

import logging

from .collaboration.orchestrator import CollaborationOrchestrator
from .errors import ConfigValidationError
from .personas.repository import PersonaRepository, load_local_personas
from .providers import create_provider
from .settings import Settings
from .sync.config_sync import DEFAULT_CONFIG_PATH, ConfigSynchronizer
from .tools.service import PersonaToolService
from .utils.network import NetworkClient

logger = logging.getLogger(__name__)


def build_service(settings: Settings | None = None, warm_up: bool = True) -> PersonaToolService:
    """Create a fully wired PersonaToolService from settings (env by default)."""
    settings = settings or Settings.from_env()
    network = NetworkClient(timeout=settings.request_timeout)

    local = load_local_personas(settings.local_personas_path) if settings.local_personas_path else []
    repository = PersonaRepository(
        network=network,
        local_personas=local,
        cache_duration=settings.cache_duration,
        warm_up=warm_up,
    )

    synchronizer = ConfigSynchronizer(
        network=network,
        config_path=settings.config_path or DEFAULT_CONFIG_PATH,
    )
    # Environment values apply to this process only; nothing is written back.
    if settings.user_key:
        synchronizer.local_config.user_key = settings.user_key
    if settings.api_base_url:
        synchronizer.set_api_base_url(settings.api_base_url)

    saved = synchronizer.current_config
    if saved is not None and not local:
        try:
            repository.update_from_config(saved)
            logger.info(f"[Bootstrap] Restored synced config {saved.id} v{saved.version}")
        except ConfigValidationError as e:
            logger.warning(f"[Bootstrap] Saved config {saved.id} is unusable: {e.message}")

    orchestrator = CollaborationOrchestrator(
        repository,
        provider=create_provider(settings.provider, settings.model),
        history_size=settings.history_size,
    )
    return PersonaToolService(repository, orchestrator, synchronizer)
