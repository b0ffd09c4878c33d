"""
Audit Configuration
===================
Global settings and per-route options.
"""

from .settings import (
    AuditSettings,
    INJECTED_HEADER,
    default_is_auditable,
    load_settings,
)
from .route import (
    DEFAULT_ROUTE_CONFIG,
    ID_PARAM_DEFAULT,
    RouteAuditConfig,
    audit_route,
    route_config_of,
)

__all__ = [
    # Settings
    "AuditSettings",
    "INJECTED_HEADER",
    "default_is_auditable",
    "load_settings",
    # Routes
    "DEFAULT_ROUTE_CONFIG",
    "ID_PARAM_DEFAULT",
    "RouteAuditConfig",
    "audit_route",
    "route_config_of",
]
