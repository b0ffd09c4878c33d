"""
Audit Record Builder
====================
Construction of mutation and action records from request metadata.
"""

import re
from typing import Any, Dict, Mapping, Optional, Sequence

from .enums import ActionType, HttpVerb, MUTATION_ACTIONS
from .models import AuditAction, AuditMutation

_PARAM_SEGMENT = re.compile(r"^\{.*\}$")


def resolve_entity(
    entity: Optional[str],
    route_path: Optional[str] = None,
    path: Optional[str] = None,
) -> Optional[str]:
    """
    Resolve the entity name of a request.

    Args:
        entity: Explicit entity configured on the route
        route_path: Matched route template (e.g. "/api/users/{id}")
        path: Concrete request path, used when no template matched

    Returns:
        The configured entity, else the last literal segment of the template,
        else the last non-numeric segment of the path.
    """
    if entity:
        return entity

    if route_path:
        literals = [
            s for s in route_path.split("/")
            if s and not _PARAM_SEGMENT.match(s)
        ]
        if literals:
            return literals[-1]

    if path:
        segments = [s for s in path.split("/") if s and not s.isdigit()]
        if segments:
            return segments[-1]

    return None


def resolve_entity_id(
    entity_keys: Sequence[str],
    id_value: Any = None,
    data: Any = None,
) -> Any:
    """
    Resolve the identity of the audited entity.

    Key fields extracted from ``data`` win over the route id parameter.
    A single key yields its value, several keys yield a mapping.
    """
    if entity_keys and isinstance(data, Mapping):
        found = {key: data[key] for key in entity_keys if data.get(key) is not None}
        if len(entity_keys) == 1 and found:
            return found[entity_keys[0]]
        if found:
            return found

    return id_value


def create_mutation(
    method: str,
    entity: Optional[str],
    entity_id: Any,
    username: str,
    original_values: Optional[Dict[str, Any]] = None,
    new_values: Optional[Dict[str, Any]] = None,
    action: Optional[str] = None,
    client_id: Optional[str] = None,
) -> AuditMutation:
    """Build a mutation record; the action defaults from the HTTP verb."""
    if not action:
        default = MUTATION_ACTIONS.get(HttpVerb.of(method))
        action = default.value if default else None

    return AuditMutation(
        method=method.upper(),
        action=action,
        entity=entity,
        entity_id=entity_id,
        username=username,
        original_values=original_values,
        new_values=new_values,
        application=client_id,
    )


def create_action(
    entity: Optional[str],
    entity_id: Any,
    username: str,
    data: Optional[Dict[str, Any]] = None,
    action: Optional[str] = None,
    client_id: Optional[str] = None,
) -> AuditAction:
    """Build an action record; reads default to SEARCH."""
    return AuditAction(
        entity=entity,
        entity_id=entity_id,
        username=username,
        action=action or ActionType.SEARCH.value,
        data=data if data is not None else {},
        application=client_id,
    )
