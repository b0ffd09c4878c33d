"""
Audit Record Models
===================
Data models for the records published by the pipeline.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union
from dataclasses import dataclass, field

from .enums import AuditOutcome, EventType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AuditMutation:
    """A create, update or delete observed on an entity."""
    method: str
    action: str
    entity: Optional[str]
    entity_id: Any
    username: str
    original_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    application: Optional[str] = None
    outcome: AuditOutcome = AuditOutcome.SUCCESS
    timestamp: datetime = field(default_factory=_utcnow)

    type = EventType.MUTATION

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the emitted record schema."""
        body = {
            "entity": self.entity,
            "entityId": self.entity_id,
            "action": self.action,
            "username": self.username,
            "timestamp": self.timestamp.isoformat(),
        }
        # values that were never observed are absent, not empty
        if self.original_values is not None:
            body["originalValues"] = self.original_values
        if self.new_values is not None:
            body["newValues"] = self.new_values
        return {
            "application": self.application,
            "type": self.type.value,
            "body": body,
            "outcome": self.outcome.value,
        }


@dataclass
class AuditAction:
    """A read or a custom business action."""
    entity: Optional[str]
    entity_id: Any
    username: str
    action: str
    data: Dict[str, Any] = field(default_factory=dict)
    application: Optional[str] = None
    outcome: AuditOutcome = AuditOutcome.SUCCESS
    timestamp: datetime = field(default_factory=_utcnow)

    type = EventType.ACTION

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the emitted record schema."""
        return {
            "application": self.application,
            "type": self.type.value,
            "body": {
                "entity": self.entity,
                "entityId": self.entity_id,
                "action": self.action,
                "username": self.username,
                "data": self.data,
                "timestamp": self.timestamp.isoformat(),
            },
            "outcome": self.outcome.value,
        }


AuditRecord = Union[AuditMutation, AuditAction]
