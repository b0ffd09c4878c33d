"""
audit-rest
==========
Audit trail for REST APIs: before/after snapshots, field-level diffs and
structured audit records published in-process.
"""

__version__ = "1.8.0"

# Records
from audit_rest.records import (
    ActionType,
    AuditAction,
    AuditMutation,
    AuditOutcome,
    AuditRecord,
    EventType,
    HttpVerb,
    MutationAction,
    create_action,
    create_mutation,
)

# Diff
from audit_rest.diff import changed_fields, diff, passthrough, remove_fields

# Stores
from audit_rest.stores import (
    KeyValueStore,
    PendingMutationStore,
    PreStateCache,
    endpoint_key,
)

# Configuration
from audit_rest.config import (
    AuditSettings,
    RouteAuditConfig,
    audit_route,
)

# Errors
from audit_rest.exceptions import (
    AuditConfigError,
    AuditError,
    BaselineUnavailableError,
    NullRecordError,
)

# Pipeline
from audit_rest.classifier import Phase, RequestClassifier
from audit_rest.baseline import InjectedReadFetcher
from audit_rest.events import AuditEmitter, AuditEventBus, log_audit_record
from audit_rest.pipeline import AuditContext, AuditPipeline, ObservedResponse
from audit_rest.middleware import AuditTrailMiddleware

# Logging
from audit_rest.log_config import configure_logging

__all__ = [
    # Records
    "ActionType",
    "AuditAction",
    "AuditMutation",
    "AuditOutcome",
    "AuditRecord",
    "EventType",
    "HttpVerb",
    "MutationAction",
    "create_action",
    "create_mutation",
    # Diff
    "changed_fields",
    "diff",
    "passthrough",
    "remove_fields",
    # Stores
    "KeyValueStore",
    "PendingMutationStore",
    "PreStateCache",
    "endpoint_key",
    # Configuration
    "AuditSettings",
    "RouteAuditConfig",
    "audit_route",
    # Errors
    "AuditConfigError",
    "AuditError",
    "BaselineUnavailableError",
    "NullRecordError",
    # Pipeline
    "Phase",
    "RequestClassifier",
    "InjectedReadFetcher",
    "AuditEmitter",
    "AuditEventBus",
    "log_audit_record",
    "AuditContext",
    "AuditPipeline",
    "ObservedResponse",
    "AuditTrailMiddleware",
    # Logging
    "configure_logging",
]
