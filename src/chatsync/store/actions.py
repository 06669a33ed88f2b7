import re
import types
from collections.abc import Mapping
from typing import Any, Final

import msgspec
from msgspec import Struct, field

from chatsync.clock import SystemClock, millis_from_clock
from chatsync.exceptions import InvalidActionError

_ACTION_TYPE_RE: Final = re.compile(r"^(@@[a-z]+|[a-z][A-Za-z0-9_-]*)/[A-Z][A-Z0-9_]*$")
_SYSTEM_CLOCK: Final = SystemClock()


class ActionTypes:
    """Bookkeeping action types owned by the store itself."""

    INIT: Final = "@@state/INIT"
    RESET: Final = "@@state/RESET"
    PERSIST: Final = "@@state/PERSIST"
    HYDRATE: Final = "@@state/HYDRATE"


class Action(Struct, frozen=True):
    type: str
    payload: Any = None
    meta: dict[str, Any] = field(default_factory=dict)
    # Epoch milliseconds, like every bus payload.
    timestamp: int = field(default_factory=lambda: millis_from_clock(_SYSTEM_CLOCK))


def validate_action_type(action_type: str) -> str:
    if not _ACTION_TYPE_RE.match(action_type):
        raise InvalidActionError(f"Action type must look like '<domain>/<VERB>', got: {action_type!r}")
    return action_type


class ActionCreator:
    """
    Builds `Action` objects of one type.

    When a payload type is declared, the payload is converted to it (dicts into
    structs, lists into typed lists) and rejected if it does not fit.
    """

    type: str
    payload_type: Any

    def __init__(self, action_type: str, payload_type: Any = None) -> None:
        self.type = validate_action_type(action_type)
        self.payload_type = payload_type

    def __call__(self, payload: Any = None, meta: Mapping[str, Any] | None = None) -> Action:
        return Action(type=self.type, payload=self._coerce(payload), meta=dict(meta or {}))

    def matches(self, action: object) -> bool:
        return isinstance(action, Action) and action.type == self.type

    def _coerce(self, payload: Any) -> Any:
        if self.payload_type is None:
            return payload
        # Parameterized generics (list[Message]) cannot be isinstance targets.
        is_plain_class = isinstance(self.payload_type, type) and not isinstance(self.payload_type, types.GenericAlias)
        if is_plain_class and isinstance(payload, self.payload_type):
            return payload
        try:
            return msgspec.convert(payload, self.payload_type)
        except msgspec.ValidationError as e:
            raise InvalidActionError(f"Invalid payload for {self.type}: {e}") from e

    def __repr__(self) -> str:
        return f"ActionCreator({self.type!r})"


def create_action(action_type: str, payload_type: Any = None) -> ActionCreator:
    return ActionCreator(action_type, payload_type)
