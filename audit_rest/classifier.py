"""
Request Classifier
==================
Decides whether a request takes part in auditing.
"""

from enum import Enum
from typing import Callable, Optional

from .config.route import RouteAuditConfig


class Phase(str, Enum):
    """Interception points of the pipeline."""
    PRE_HANDLER = "pre_handler"
    PRE_RESPONSE = "pre_response"


class RequestClassifier:
    """Side-effect-free gate combining route options, session and path filters."""

    def __init__(self, is_auditable: Callable[[str, str], bool]):
        self.is_auditable = is_auditable

    def allows(
        self,
        route: RouteAuditConfig,
        username: Optional[str],
        path: str,
        method: str,
        phase: Phase,
    ) -> bool:
        if route.disabled:
            return False
        if not username:
            return False
        if not self.is_auditable(path, method):
            return False
        # custom actions are built entirely after the handler ran
        if phase is Phase.PRE_HANDLER and route.action:
            return False
        return True
