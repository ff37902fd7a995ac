"""
Error taxonomy shared by every layer.

Every failure that crosses a module boundary is a PersonaCouncilError with a
machine-readable ``kind``, a human message, and optional remediation hints.
The tool service turns these into structured responses; nothing below it
needs to know how errors are rendered.

Usage:
    try:
        persona = await service.summon_persona("nobody")
    except NotFoundError as e:
        print(e.kind, e.message, e.hints)
"""

from typing import Any


class PersonaCouncilError(Exception):
    """Base class for all expected failures."""

    kind = "error"

    def __init__(self, message: str, hints: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.hints = list(hints or [])

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "hints": self.hints}


class ValidationError(PersonaCouncilError, ValueError):
    """Raised when input validation fails. Contains a user-friendly message."""

    kind = "validation"


class NotFoundError(PersonaCouncilError):
    """A persona, config, or session could not be located."""

    kind = "not_found"


class NetworkError(PersonaCouncilError):
    """
    An outbound HTTP call failed.

    ``code`` is one of TIMEOUT, HTTP_ERROR, NETWORK_ERROR. ``status`` is set
    for HTTP_ERROR.
    """

    kind = "network"

    TIMEOUT = "TIMEOUT"
    HTTP_ERROR = "HTTP_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"

    def __init__(
        self,
        message: str,
        code: str = NETWORK_ERROR,
        status: int | None = None,
        url: str | None = None,
        hints: list[str] | None = None,
    ):
        super().__init__(message, hints)
        self.code = code
        self.status = status
        self.url = url

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"code": self.code, "status": self.status, "url": self.url})
        return data


class AuthError(PersonaCouncilError):
    """Missing or rejected credential for the config API."""

    kind = "auth"


class ConfigValidationError(PersonaCouncilError):
    """A persona config (remote or local) failed structural validation."""

    kind = "config_validation"


class SyncInProgressError(PersonaCouncilError):
    """A config sync was requested while another one is running."""

    kind = "sync_in_progress"


class CollaborationCancelledError(PersonaCouncilError):
    """The collaboration session was cancelled before it finished."""

    kind = "cancelled"

    def __init__(self, session_id: str):
        super().__init__(f"Collaboration session {session_id} was cancelled")
        self.session_id = session_id
