"""
Audit Pipeline
==============
Two-phase interception: before the handler and before the response.
"""

from .context import AuditContext, ObservedResponse, resolve_username
from .pipeline import AuditPipeline

__all__ = [
    "AuditContext",
    "ObservedResponse",
    "resolve_username",
    "AuditPipeline",
]
