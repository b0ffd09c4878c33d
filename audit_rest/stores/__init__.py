"""
Audit Stores
============
Keyed stores shared across in-flight requests.
"""

from .base import KeyValueStore, endpoint_key
from .cache import PreStateCache, FIVE_MINUTES_MS
from .pending import PendingMutationStore

__all__ = [
    "KeyValueStore",
    "endpoint_key",
    "PreStateCache",
    "FIVE_MINUTES_MS",
    "PendingMutationStore",
]
