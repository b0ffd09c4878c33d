"""
Diff Engine
===========
Field-level comparison of a baseline snapshot against new state.
"""

from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

Values = Dict[str, Any]
DiffStrategy = Callable[[Values, Values], Tuple[Values, Values]]


def remove_fields(values: Optional[Mapping[str, Any]], fields: Iterable[str]) -> Values:
    """Return a copy of ``values`` without ``fields``."""
    if not values:
        return {}
    skipped = set(fields)
    return {key: value for key, value in values.items() if key not in skipped}


def passthrough(original: Values, updated: Values) -> Tuple[Values, Values]:
    """Keep both sides as they are."""
    return original, updated


def changed_fields(original: Values, updated: Values) -> Tuple[Values, Values]:
    """
    Keep only the fields whose values differ.

    A field present on one side only counts as changed and is reported
    on the side that has it.
    """
    changed = [
        key for key in {**original, **updated}
        if key not in original or key not in updated or original[key] != updated[key]
    ]
    return (
        {key: original[key] for key in changed if key in original},
        {key: updated[key] for key in changed if key in updated},
    )


def diff(
    original: Optional[Mapping[str, Any]],
    updated: Optional[Mapping[str, Any]],
    skip_fields: Iterable[str] = (),
    strategy: DiffStrategy = passthrough,
) -> Tuple[Values, Values]:
    """
    Compare two flat value maps.

    Args:
        original: Baseline snapshot
        updated: Prospective or observed new state
        skip_fields: Keys removed from both sides before comparing
        strategy: Decides which remaining fields represent a change

    Returns:
        Tuple of (filtered_original, filtered_updated)
    """
    skip_fields = tuple(skip_fields)
    return strategy(
        remove_fields(original, skip_fields),
        remove_fields(updated, skip_fields),
    )
