from collections.abc import Callable, Mapping
from typing import Any, TypeVar

_MISSING = object()

R = TypeVar("R")


def create_selector(selector: Callable[[Any], R]) -> Callable[[Any], R]:
    """
    Memoizes `selector` against the last state object it saw (one slot).

    A new state reference recomputes; the same reference returns the cached
    result without calling `selector`.
    """
    last_state: object = _MISSING
    last_result: Any = None

    def memoized(state: Any) -> R:
        nonlocal last_state, last_result
        if state is last_state:
            return last_result
        last_state = state
        last_result = selector(state)
        return last_result

    return memoized


def get_path(state: Any, path: str) -> Any:
    """Walks a dot-delimited path through nested mappings; missing parts yield None."""
    value = state
    for part in path.split("."):
        if isinstance(value, Mapping):
            value = value.get(part)
        else:
            value = getattr(value, part, None)
        if value is None:
            return None
    return value
