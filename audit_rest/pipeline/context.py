"""
Audit Context
=============
Request-scoped state carried from the pre-handler phase to the
pre-response phase.
"""

import uuid
from typing import Any, Dict, List, Mapping, Optional
from dataclasses import dataclass, field

from ..config.route import DEFAULT_ROUTE_CONFIG, RouteAuditConfig
from ..records.builder import resolve_entity
from ..records.enums import HttpVerb
from ..stores.base import endpoint_key


def resolve_username(scope: Mapping[str, Any], attribute: str) -> Optional[str]:
    """
    Username of an already authenticated session.

    Looks at ``scope["session"]`` first, then at the same attribute of
    ``scope["user"]`` as set by an authentication middleware.
    """
    session = scope.get("session")
    if isinstance(session, Mapping) and session.get(attribute):
        return session[attribute]

    user = scope.get("user")
    if user is not None and getattr(user, "is_authenticated", True):
        value = getattr(user, attribute, None)
        if value:
            return value

    return None


@dataclass
class AuditContext:
    """Everything the two phases know about one request."""
    method: str
    path: str
    username: Optional[str] = None
    route: RouteAuditConfig = DEFAULT_ROUTE_CONFIG
    route_path: Optional[str] = None
    path_params: Dict[str, Any] = field(default_factory=dict)
    query: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    payload: Any = None
    payload_is_stream: bool = False
    injected: bool = False
    app: Any = None
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    # filled in by the pre-handler phase
    baseline: Any = None
    errors: List[str] = field(default_factory=list)

    @property
    def verb(self) -> HttpVerb:
        return HttpVerb.of(self.method)

    @property
    def endpoint(self) -> str:
        """Route+verb key, e.g. ``put:/api/users/42``."""
        return endpoint_key(self.method, self.path)

    @property
    def read_path(self) -> str:
        return self.route.read_path(self.path, self.path_params)

    @property
    def read_endpoint(self) -> str:
        """Canonical read key the baseline is cached under."""
        return endpoint_key("get", self.read_path)

    @property
    def entity(self) -> Optional[str]:
        return resolve_entity(self.route.entity, self.route_path, self.path)

    @property
    def route_id(self) -> Any:
        return self.path_params.get(self.route.id_param)


@dataclass
class ObservedResponse:
    """What the pre-response phase sees of the handler's response."""
    status_code: int
    body: Any = None
    is_stream: bool = True

    @property
    def succeeded(self) -> bool:
        return 200 <= self.status_code < 300
