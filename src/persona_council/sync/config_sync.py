"""
ConfigSynchronizer -- pulls persona configs from the config API and keeps
local state on disk.

Local state (LocalConfig) is a JSON file holding the user's opaque API key,
the API base URL, the currently applied persona config and sync settings.
The API is bearer-authenticated; every response is an envelope:

    {"success": true, "data": ..., "error": null}

Usage:
    sync = ConfigSynchronizer(network=NetworkClient())
    sync.set_user_key("uk_...")
    configs = await sync.list_remote_configs()
    config = await sync.sync_from_remote(configs[0].id)
    repository.update_from_config(config)
"""

import asyncio
import hashlib
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from ..errors import (
    AuthError,
    ConfigValidationError,
    NetworkError,
    NotFoundError,
    PersonaCouncilError,
    SyncInProgressError,
)
from ..security.validators import validate_config_id, validate_text, validate_url
from ..utils.cache import NAMESPACE_CONFIG, NAMESPACE_USER_CONFIGS, TTLCache, cache_key
from ..utils.network import NetworkClient

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.juyiting.com"
DEFAULT_CONFIG_PATH = Path.home() / ".persona_council" / "config.json"
CONFIG_LIST_TTL = 120.0
CONFIG_DOWNLOAD_TTL = 600.0
LIST_TIMEOUT = 10.0
LIST_RETRIES = 2
DOWNLOAD_TIMEOUT = 15.0
DOWNLOAD_RETRIES = 3
REQUIRED_PERSONA_FIELDS = ("id", "name", "rule", "goal")


# =============================================================================
# MODELS
# =============================================================================


class PersonaConfig(BaseModel):
    """A named bundle of personas downloaded from the config API."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    version: str
    description: str = ""
    personas: list[dict[str, Any]]
    collaboration: dict[str, Any] = Field(default_factory=dict)
    updated_at: str | None = None


class ConfigSummary(BaseModel):
    """One entry of the remote config listing."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    description: str = ""
    version: str = ""
    persona_count: int = 0
    updated_at: str | None = None


class CacheSettings(BaseModel):
    duration: float = 300.0
    max_size: int = 1000


class SyncSettings(BaseModel):
    auto_sync: bool = False
    sync_interval: float = 3600.0
    retry_attempts: int = 3


class LocalConfig(BaseModel):
    """Everything persisted between runs."""

    user_key: str | None = None
    api_base_url: str = DEFAULT_API_BASE_URL
    current_config: PersonaConfig | None = None
    last_sync_time: str | None = None
    cache: CacheSettings = Field(default_factory=CacheSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)


def validate_persona_config(raw: Any) -> PersonaConfig:
    """
    Check a downloaded config before anything uses it.

    Raises:
        ConfigValidationError: missing id/name/version, empty personas, or a
            persona without id/name/rule/goal.
    """
    if not isinstance(raw, dict):
        raise ConfigValidationError("Config must be a JSON object")
    for name in ("id", "name", "version"):
        value = raw.get(name)
        if not isinstance(value, str) or not value.strip():
            raise ConfigValidationError(f"Config is missing required field '{name}'")
    personas = raw.get("personas")
    if not isinstance(personas, list) or not personas:
        raise ConfigValidationError("Config must contain a non-empty 'personas' array")
    for i, persona in enumerate(personas):
        if not isinstance(persona, dict):
            raise ConfigValidationError(f"Persona #{i} is not an object")
        for name in REQUIRED_PERSONA_FIELDS:
            value = persona.get(name)
            if not isinstance(value, str) or not value.strip():
                raise ConfigValidationError(f"Persona #{i} is missing required field '{name}'")
    try:
        return PersonaConfig.model_validate(raw)
    except pydantic.ValidationError as e:
        raise ConfigValidationError(f"Config has invalid structure: {e}") from e


# =============================================================================
# SYNCHRONIZER
# =============================================================================


class ConfigSynchronizer:
    def __init__(
        self,
        network: NetworkClient | None = None,
        config_path: Path | str = DEFAULT_CONFIG_PATH,
        cache: TTLCache | None = None,
    ):
        self._network = network or NetworkClient()
        self._path = Path(config_path)
        self._cache = cache or TTLCache()
        self._sync_lock = asyncio.Lock()
        self._auto_sync_task: asyncio.Task | None = None
        self._local = self._load()

    # -------------------------------------------------------------------------
    # Local state
    # -------------------------------------------------------------------------

    def _load(self) -> LocalConfig:
        if not self._path.exists():
            return LocalConfig()
        try:
            with open(self._path, encoding="utf-8") as f:
                return LocalConfig.model_validate(json.load(f))
        except (OSError, ValueError) as e:
            logger.warning(f"[ConfigSync] Could not read {self._path}, using defaults: {e}")
            return LocalConfig()

    def save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w", encoding="utf-8") as f:
            f.write(self._local.model_dump_json(indent=2))
        logger.debug(f"[ConfigSync] Saved local config to {self._path}")

    @property
    def local_config(self) -> LocalConfig:
        return self._local

    @property
    def user_key(self) -> str | None:
        return self._local.user_key

    @property
    def current_config(self) -> PersonaConfig | None:
        return self._local.current_config

    def set_user_key(self, user_key: str) -> None:
        self._local.user_key = validate_text(user_key, "user_key", max_length=500)
        self.clear_cache()
        self.save()
        logger.info("[ConfigSync] User key updated")

    def set_api_base_url(self, url: str, persist: bool = False) -> None:
        """Point at another config API. Cached listings belong to the old one."""
        self._local.api_base_url = validate_url(url, "api_base_url")
        self.clear_cache()
        if persist:
            self.save()

    def clear_cache(self) -> None:
        self._cache.clear()

    # -------------------------------------------------------------------------
    # Remote API
    # -------------------------------------------------------------------------

    def _require_key(self) -> str:
        if not self._local.user_key:
            raise AuthError(
                "No user key configured",
                hints=[
                    "Set PERSONA_COUNCIL_USER_KEY in the environment",
                    "Or run: persona-council set-key <key>",
                ],
            )
        return self._local.user_key

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._require_key()}"}

    async def _get_envelope(self, path: str, timeout: float, retries: int) -> Any:
        url = f"{self._local.api_base_url.rstrip('/')}{path}"
        try:
            result = await self._network.get(
                url, headers=self._headers(), timeout=timeout, retry_attempts=retries
            )
        except NetworkError as e:
            if e.status in (401, 403):
                raise AuthError(
                    "The config API rejected the user key",
                    hints=["Check the key, or obtain a new one from the config service"],
                ) from e
            raise

        envelope = result.data
        if not isinstance(envelope, dict):
            raise ConfigValidationError(f"Unexpected response shape from {url}")
        if not envelope.get("success", False):
            raise NetworkError(
                str(envelope.get("error") or "Config API request failed"),
                code=NetworkError.HTTP_ERROR,
                status=result.status,
                url=url,
            )
        return envelope.get("data")

    async def list_remote_configs(self) -> list[ConfigSummary]:
        key = cache_key(
            NAMESPACE_USER_CONFIGS,
            hashlib.sha256(self._require_key().encode()).hexdigest()[:16],
        )
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        data = await self._get_envelope("/api/configs", LIST_TIMEOUT, LIST_RETRIES)
        if not isinstance(data, list):
            raise ConfigValidationError("Config listing must be an array")
        configs = []
        for item in data:
            try:
                configs.append(ConfigSummary.model_validate(item))
            except pydantic.ValidationError as e:
                logger.warning(f"[ConfigSync] Skipping malformed config summary: {e}")
        self._cache.set(key, configs, ttl=CONFIG_LIST_TTL)
        logger.info(f"[ConfigSync] Listed {len(configs)} remote configs")
        return configs

    async def download_config(self, config_id: str) -> PersonaConfig:
        config_id = validate_config_id(config_id)
        key = cache_key(NAMESPACE_CONFIG, config_id)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        data = await self._get_envelope(
            f"/api/download?configId={config_id}", DOWNLOAD_TIMEOUT, DOWNLOAD_RETRIES
        )
        config = validate_persona_config(data)
        self._cache.set(key, config, ttl=CONFIG_DOWNLOAD_TTL)
        logger.info(
            f"[ConfigSync] Downloaded config {config.id} ({len(config.personas)} personas)"
        )
        return config

    async def sync_from_remote(self, config_id: str) -> PersonaConfig:
        """
        Download a listed config and make it the current one.

        Raises:
            SyncInProgressError: another sync is running.
            NotFoundError: the id is not in the user's listing.
        """
        if self._sync_lock.locked():
            raise SyncInProgressError("A config sync is already in progress")

        async with self._sync_lock:
            configs = await self.list_remote_configs()
            if not any(c.id == config_id for c in configs):
                raise NotFoundError(
                    f"Config '{config_id}' not found",
                    hints=["Use list_persona_configs to see available configs"],
                )
            config = await self.download_config(config_id)
            self._local.current_config = config
            self._local.last_sync_time = datetime.now(timezone.utc).isoformat()
            self.save()
            logger.info(f"[ConfigSync] Synced config {config.id} v{config.version}")
            return config

    async def check_for_updates(self) -> bool:
        """True when the listing shows a newer version of the current config."""
        current = self._local.current_config
        if current is None or not self._local.user_key:
            return False
        self.clear_cache()
        for summary in await self.list_remote_configs():
            if summary.id != current.id:
                continue
            changed = summary.version != current.version or (
                summary.updated_at is not None and summary.updated_at != current.updated_at
            )
            if changed:
                logger.info(
                    f"[ConfigSync] Update available for {current.id}: "
                    f"{current.version} -> {summary.version}"
                )
            return changed
        return False

    # -------------------------------------------------------------------------
    # Auto sync
    # -------------------------------------------------------------------------

    def start_auto_sync(self) -> None:
        if self._auto_sync_task is not None and not self._auto_sync_task.done():
            return
        self._auto_sync_task = asyncio.ensure_future(self._auto_sync_loop())
        logger.info(
            f"[ConfigSync] Auto-sync every {self._local.sync.sync_interval:.0f}s"
        )

    async def _auto_sync_loop(self) -> None:
        while True:
            await asyncio.sleep(self._local.sync.sync_interval)
            try:
                await self.check_for_updates()
            except PersonaCouncilError as e:
                logger.warning(f"[ConfigSync] Update check failed: {e.message}")

    def stop_auto_sync(self) -> None:
        if self._auto_sync_task is not None:
            self._auto_sync_task.cancel()
            self._auto_sync_task = None

    def get_sync_status(self) -> dict[str, Any]:
        current = self._local.current_config
        return {
            "has_user_key": bool(self._local.user_key),
            "api_base_url": self._local.api_base_url,
            "current_config_id": current.id if current else None,
            "current_config_name": current.name if current else None,
            "last_sync_time": self._local.last_sync_time,
            "auto_sync": self._auto_sync_task is not None and not self._auto_sync_task.done(),
            "sync_in_progress": self._sync_lock.locked(),
        }
