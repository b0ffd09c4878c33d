"""
Pending Mutation Store
======================
Records built in the pre-handler phase, waiting for the response phase.
"""

from typing import Dict, Optional

from ..records.models import AuditRecord


class PendingMutationStore:
    """
    One built-but-unpublished record per key.

    A second write before the first one is consumed overwrites it;
    this is a slot, not a queue.
    """

    def __init__(self):
        self._records: Dict[str, AuditRecord] = {}

    def get(self, key: str) -> Optional[AuditRecord]:
        return self._records.get(key)

    def set(self, key: str, value: AuditRecord) -> None:
        self._records[key] = value

    def delete(self, key: str) -> None:
        self._records.pop(key, None)

    def clear(self) -> None:
        self._records = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: str) -> bool:
        return key in self._records
