# coordination/extractors.py
"""
Cycle id extraction from notification payloads.

Sources shape their payloads differently; each extractor understands one
shape and they are tried in priority order until one yields an id.
"""
from collections.abc import Mapping
from typing import Any, Callable

CycleId = str | int
Extractor = Callable[[Mapping[str, Any]], CycleId | None]


def _as_cycle_id(value: Any) -> CycleId | None:
    # bool is an int subclass but never a valid id
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value:
        return value
    return None


def _nested_id(payload: Mapping[str, Any], *keys: str) -> CycleId | None:
    for key in keys:
        nested = payload.get(key)
        if isinstance(nested, Mapping):
            found = _as_cycle_id(nested.get("id"))
            if found is not None:
                return found
    return None


def from_cycle_id(payload: Mapping[str, Any]) -> CycleId | None:
    """``{"cycleId": ...}`` or ``{"cycle_id": ...}``."""
    for key in ("cycleId", "cycle_id"):
        found = _as_cycle_id(payload.get(key))
        if found is not None:
            return found
    return None


def from_active_cycle(payload: Mapping[str, Any]) -> CycleId | None:
    """``{"activeCycle": {"id": ...}}``."""
    return _nested_id(payload, "activeCycle", "active_cycle")


def from_info(payload: Mapping[str, Any]) -> CycleId | None:
    """``{"info": {"id": ...}}``."""
    return _nested_id(payload, "info")


def from_bare_id(payload: Mapping[str, Any]) -> CycleId | None:
    """``{"id": ...}``."""
    return _as_cycle_id(payload.get("id"))


DEFAULT_EXTRACTORS: tuple[Extractor, ...] = (
    from_cycle_id,
    from_active_cycle,
    from_info,
    from_bare_id,
)


def extract_cycle_id(
    payload: Any,
    extractors: tuple[Extractor, ...] = DEFAULT_EXTRACTORS,
) -> CycleId | None:
    """Return the first id found by ``extractors``, or None."""
    if not isinstance(payload, Mapping):
        return None
    for extractor in extractors:
        found = extractor(payload)
        if found is not None:
            return found
    return None
