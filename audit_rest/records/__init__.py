"""
Audit Records
=============
Record types, enums and the builder functions.
"""

from .enums import (
    ActionType,
    AuditOutcome,
    EventType,
    HttpVerb,
    MutationAction,
)
from .models import AuditAction, AuditMutation, AuditRecord
from .builder import (
    create_action,
    create_mutation,
    resolve_entity,
    resolve_entity_id,
)

__all__ = [
    # Enums
    "ActionType",
    "AuditOutcome",
    "EventType",
    "HttpVerb",
    "MutationAction",
    # Models
    "AuditAction",
    "AuditMutation",
    "AuditRecord",
    # Builder
    "create_action",
    "create_mutation",
    "resolve_entity",
    "resolve_entity_id",
]
