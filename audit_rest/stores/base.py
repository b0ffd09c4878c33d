"""
Store Interface
===============
Capability interface shared by the pipeline's keyed stores.
"""

from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal keyed store the pipeline depends on."""

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def clear(self) -> None:
        ...


def endpoint_key(method: str, path: str) -> str:
    """Canonical ``verb:path`` key, e.g. ``put:/api/users/42``."""
    return f"{method.lower()}:{path}"
