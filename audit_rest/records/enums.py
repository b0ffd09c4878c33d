"""
Audit Enums
===========
Record types, outcomes, actions and HTTP verb classes.
"""

from enum import Enum


class EventType(str, Enum):
    """Top-level discriminator of an emitted record."""
    MUTATION = "MUTATION"
    ACTION = "ACTION"


class AuditOutcome(str, Enum):
    """Outcome stamped on a record."""
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class MutationAction(str, Enum):
    """Default actions of mutation records, derived from the HTTP verb."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ActionType(str, Enum):
    """Default actions of action records."""
    SEARCH = "SEARCH"


class HttpVerb(str, Enum):
    """Verb classes the pipeline branches on."""
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    OTHER = "other"

    @classmethod
    def of(cls, method: str) -> "HttpVerb":
        return _VERBS.get(method.upper(), cls.OTHER)


_VERBS = {
    "GET": HttpVerb.READ,
    "POST": HttpVerb.CREATE,
    "PUT": HttpVerb.UPDATE,
    "PATCH": HttpVerb.UPDATE,
    "DELETE": HttpVerb.DELETE,
}

MUTATION_ACTIONS = {
    HttpVerb.CREATE: MutationAction.CREATE,
    HttpVerb.UPDATE: MutationAction.UPDATE,
    HttpVerb.DELETE: MutationAction.DELETE,
}
