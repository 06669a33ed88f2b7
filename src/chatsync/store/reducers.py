from collections.abc import Callable, Mapping
from typing import Any, TypeAlias

import msgspec
from msgspec import structs

from chatsync.exceptions import InvalidActionError

from .actions import Action, ActionTypes

Reducer: TypeAlias = Callable[[Any, Action], Any]
Handler: TypeAlias = Callable[[Any, Action], Any]


def create_reducer(
    initial_state: Any,
    handlers: Mapping[str, Handler],
    *,
    state_type: type | None = None,
) -> Reducer:
    """
    Builds a reducer that dispatches on `action.type`.

    `@@state/RESET` always replaces the state with the action payload (or the
    initial state when the payload is None), whatever the handler map says.

    With `state_type`, plain data arriving through RESET or a hydrated state
    is converted into that type before the handlers see it.
    """

    def coerce(value: Any) -> Any:
        if state_type is None or isinstance(value, state_type):
            return value
        try:
            return msgspec.convert(value, state_type)
        except msgspec.ValidationError as e:
            raise InvalidActionError(f"State does not fit {state_type.__name__}: {e}") from e

    def reducer(state: Any, action: Action) -> Any:
        if state is None:
            state = initial_state

        if action.type == ActionTypes.RESET:
            if action.payload is None:
                return initial_state
            if isinstance(action.payload, Mapping):
                return coerce(dict(action.payload))
            return coerce(action.payload)

        state = coerce(state)
        handler = handlers.get(action.type)
        if handler is None:
            return state
        return handler(state, action)

    return reducer


def combine_reducers(reducers: Mapping[str, Reducer]) -> Reducer:
    """
    Composes per-domain reducers into one over a `{domain: substate}` mapping.

    Returns the previous state object unchanged when no domain produced a new
    substate reference.
    """

    def combined(state: Mapping[str, Any] | None, action: Action) -> Mapping[str, Any]:
        if state is None:
            state = {}

        next_state: dict[str, Any] = {}
        has_changed = False
        for key, reducer in reducers.items():
            previous_for_key = state.get(key)
            next_for_key = reducer(previous_for_key, _scope_action(action, key))
            next_state[key] = next_for_key
            has_changed = has_changed or next_for_key is not previous_for_key

        return next_state if has_changed else state

    return combined


def _scope_action(action: Action, key: str) -> Action:
    # RESET carries the whole tree; each domain only gets its own slice.
    if action.type != ActionTypes.RESET or not isinstance(action.payload, Mapping):
        return action
    return structs.replace(action, payload=action.payload.get(key))
