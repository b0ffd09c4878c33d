"""
Route Audit Configuration
=========================
Per-route auditing options and the decorator that attaches them.
"""

from typing import Any, Callable, Dict, Mapping, Optional, Tuple, TypeVar
from pydantic import BaseModel, ConfigDict, field_validator

from ..exceptions import AuditConfigError

ID_PARAM_DEFAULT = "id"
ROUTE_CONFIG_ATTRIBUTE = "__audit_route__"

F = TypeVar("F", bound=Callable[..., Any])


class RouteAuditConfig(BaseModel):
    """Auditing options of a single route."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    disabled: bool = False
    action: Optional[str] = None
    entity: Optional[str] = None
    entity_keys: Tuple[str, ...] = ()
    id_param: str = ID_PARAM_DEFAULT
    get_path: Optional[str] = None
    get_path_id: Optional[str] = None
    skip_diff: Tuple[str, ...] = ()

    @field_validator("id_param")
    @classmethod
    def _id_param_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("id_param must not be empty")
        return value

    def read_path(self, path: str, path_params: Mapping[str, Any]) -> str:
        """
        Path of the canonical read endpoint for this route.

        ``get_path`` is a template formatted with the request path params;
        ``{id}`` is filled from ``get_path_id`` (or ``id_param``) when the
        route names its id differently.
        """
        if not self.get_path:
            return path

        params: Dict[str, Any] = dict(path_params)
        id_source = self.get_path_id or self.id_param
        if "id" not in params and id_source in params:
            params["id"] = params[id_source]

        try:
            return self.get_path.format_map(params)
        except KeyError as e:
            raise AuditConfigError(
                f"get_path placeholder {e} has no matching path parameter",
                endpoint=path,
            )


DEFAULT_ROUTE_CONFIG = RouteAuditConfig()


def audit_route(**options: Any) -> Callable[[F], F]:
    """
    Attach auditing options to an endpoint.

    Example:
        @app.put("/api/users/{id}")
        @audit_route(entity="users", skip_diff=["updated_at"])
        async def update_user(id: int, body: dict): ...
    """
    config = RouteAuditConfig(**options)

    def decorator(endpoint: F) -> F:
        setattr(endpoint, ROUTE_CONFIG_ATTRIBUTE, config)
        return endpoint

    return decorator


def route_config_of(endpoint: Any) -> RouteAuditConfig:
    """Options attached to ``endpoint``, or the defaults."""
    return getattr(endpoint, ROUTE_CONFIG_ATTRIBUTE, None) or DEFAULT_ROUTE_CONFIG
