from typing import Optional


class AuditError(Exception):
    """Base exception for every failure inside the auditing core."""
    def __init__(self, message: str, endpoint: Optional[str] = None):
        self.message = message
        self.endpoint = endpoint
        super().__init__(f"[{endpoint or 'audit'}] {message}")

    @property
    def kind(self) -> str:
        return "internal"


class BaselineUnavailableError(AuditError):
    """Raised when the state of a resource before a mutation cannot be obtained."""

    @property
    def kind(self) -> str:
        return "baseline_unavailable"


class NullRecordError(AuditError):
    """Raised when the emitter is asked to publish a missing record."""

    @property
    def kind(self) -> str:
        return "null_record"


class AuditConfigError(AuditError):
    """Raised when settings or route options are rejected at startup."""

    @property
    def kind(self) -> str:
        return "config"
