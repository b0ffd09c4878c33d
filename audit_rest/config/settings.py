"""
Audit Settings
==============
Global options, validated once at startup.
"""

import os
from typing import Any, Callable, Dict, Mapping, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..diff import DiffStrategy, passthrough
from ..exceptions import AuditConfigError
from ..stores.cache import FIVE_MINUTES_MS

INJECTED_HEADER = "x-audit-injected"


def default_is_auditable(path: str, method: str) -> bool:
    """Audit everything under ``/api``."""
    return path.startswith("/api")


class AuditSettings(BaseModel):
    """Immutable global configuration of the auditing core."""

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    audit_get_requests: bool = True
    show_errors_on_stderr: bool = True
    diff_func: DiffStrategy = passthrough
    disable_cache: bool = False
    client_id: str = "client-app"
    sid_username_attribute: str = "userName"
    emit_event_name: str = "auditing"
    cache_expires_in: int = Field(default=FIVE_MINUTES_MS, gt=0)  # milliseconds
    is_auditable: Callable[[str, str], bool] = default_is_auditable
    # None registers the default subscriber that logs each record
    event_handler: Optional[Callable[..., Any]] = None
    request_scoped_pending: bool = True
    injected_header: str = INJECTED_HEADER

    @field_validator("client_id", "sid_username_attribute", "emit_event_name", "injected_header")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("injected_header")
    @classmethod
    def _lower_header(cls, value: str) -> str:
        return value.lower()

    @classmethod
    def from_env(cls, **overrides: Any) -> "AuditSettings":
        """
        Build settings from ``AUDIT_*`` environment variables.

        Keyword overrides win over the environment; callables
        (``diff_func``, ``is_auditable``, ``event_handler``) can only be
        passed as overrides.
        """
        env: Dict[str, Any] = {}
        flags = {
            "audit_get_requests": "AUDIT_GET_REQUESTS",
            "show_errors_on_stderr": "AUDIT_SHOW_ERRORS",
            "disable_cache": "AUDIT_DISABLE_CACHE",
            "request_scoped_pending": "AUDIT_REQUEST_SCOPED_PENDING",
        }
        for name, var in flags.items():
            if os.getenv(var) is not None:
                env[name] = os.getenv(var).lower() == "true"

        strings = {
            "client_id": "AUDIT_CLIENT_ID",
            "sid_username_attribute": "AUDIT_SID_USERNAME_ATTRIBUTE",
            "emit_event_name": "AUDIT_EMIT_EVENT_NAME",
            "cache_expires_in": "AUDIT_CACHE_EXPIRES_IN",
        }
        for name, var in strings.items():
            if os.getenv(var) is not None:
                env[name] = os.getenv(var)

        env.update(overrides)
        return load_settings(env)


def load_settings(options: Union[AuditSettings, Mapping[str, Any], None] = None) -> AuditSettings:
    """Validate ``options`` into settings, raising AuditConfigError on rejection."""
    if isinstance(options, AuditSettings):
        return options
    try:
        return AuditSettings(**dict(options or {}))
    except ValidationError as e:
        raise AuditConfigError(f"Invalid audit settings: {e}")
