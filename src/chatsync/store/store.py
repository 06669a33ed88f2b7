import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any, TypeAlias

from pydantic import TypeAdapter, ValidationError

from chatsync.events import EventBus, Signal, StateChange
from chatsync.exceptions import InvalidActionError, StorageError
from chatsync.serialization import to_builtins
from chatsync.storage import KeyValueBackend

from .actions import Action, ActionTypes
from .middleware import Dispatch, Middleware, MiddlewareAPI, logger_middleware, thunk_middleware
from .reducers import Reducer
from .selectors import get_path

logger = logging.getLogger(__name__)

Listener: TypeAlias = Callable[[dict[str, Any]], object]
PathListener: TypeAlias = Callable[[dict[str, Any], dict[str, Any]], object]

DEFAULT_PERSIST_KEY = "app_state"

_StateAdapter = TypeAdapter(dict[str, Any])


def _identity_reducer(state: Any, action: Action) -> Any:
    return state


class Store:
    """
    Observable state container driven by a root reducer.

    Actions travel through the middleware chain (composed once, right-to-left)
    to the root reducer. After each transition subscribers are called with the
    previous state and `state:change` is published on the bus, if one was given.
    """

    _state: dict[str, Any]
    _root_reducer: Reducer
    _listeners: list[Listener]
    _bus: EventBus | None
    _dispatch_chain: Dispatch
    debug: bool

    def __init__(
        self,
        root_reducer: Reducer | None = None,
        initial_state: Mapping[str, Any] | None = None,
        middleware: Sequence[Middleware] = (),
        bus: EventBus | None = None,
        debug: bool = False,
    ) -> None:
        self._state = dict(initial_state or {})
        self._root_reducer = root_reducer or _identity_reducer
        self._listeners = []
        self._bus = bus
        self.debug = debug
        self._dispatch_chain = self._apply_middleware(middleware)

        _ = self.dispatch(Action(type=ActionTypes.INIT))

    # ---------- Public API ----------

    def get_state(self) -> dict[str, Any]:
        """Returns a shallow copy of the current state."""
        return dict(self._state)

    def dispatch(self, action: Any) -> Any:
        return self._dispatch_chain(action)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        if not callable(listener):
            raise TypeError("Expected the listener to be a function.")
        if listener not in self._listeners:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def subscribe_to_path(self, paths: str | Sequence[str], listener: PathListener) -> Callable[[], None]:
        """
        Calls `listener(state, prev_state)` only when the object found at one of
        the dot-delimited `paths` is a different reference than before.
        """
        path_list = [paths] if isinstance(paths, str) else list(paths)

        def on_change(prev_state: dict[str, Any]) -> None:
            state = self._state
            if any(get_path(prev_state, path) is not get_path(state, path) for path in path_list):
                _ = listener(dict(state), prev_state)

        return self.subscribe(on_change)

    def reset(self, state: Mapping[str, Any] | None = None) -> Action:
        return self.dispatch(Action(type=ActionTypes.RESET, payload=dict(state or {})))

    async def persist(
        self,
        backend: KeyValueBackend,
        key: str = DEFAULT_PERSIST_KEY,
        state_filter: Callable[[dict[str, Any]], Mapping[str, Any]] | None = None,
    ) -> None:
        state_to_save: Mapping[str, Any] = self._state
        if state_filter is not None:
            state_to_save = state_filter(dict(state_to_save))

        try:
            serialized = _StateAdapter.dump_json(to_builtins(state_to_save)).decode("utf-8")
            await backend.set({key: serialized})
        except StorageError:
            logger.exception("Error persisting state under %r", key)
            raise
        except (TypeError, ValueError) as e:
            logger.exception("Error serializing state under %r", key)
            raise StorageError(f"State under {key!r} is not serializable: {e}") from e

        _ = self.dispatch(Action(type=ActionTypes.PERSIST, payload={"key": key, "state": state_to_save}))

    async def hydrate(self, backend: KeyValueBackend, key: str = DEFAULT_PERSIST_KEY, merge: bool = True) -> bool:
        """
        Restores state saved by `persist`. Returns False when nothing was stored.
        """
        try:
            result = await backend.get(key)
        except StorageError:
            logger.exception("Error hydrating state from %r", key)
            raise

        serialized = result.get(key)
        if not serialized:
            return False

        try:
            parsed = _StateAdapter.validate_json(serialized)
        except ValidationError as e:
            logger.exception("Stored state under %r is corrupt", key)
            raise StorageError(f"Stored state under {key!r} is corrupt: {e}") from e

        new_state = {**self._state, **parsed} if merge else parsed
        _ = self.dispatch(Action(type=ActionTypes.HYDRATE, payload={"key": key, "state": new_state}))
        return True

    # ---------- Internal ----------

    def _apply_middleware(self, middleware: Sequence[Middleware]) -> Dispatch:
        api = MiddlewareAPI(get_state=self.get_state, dispatch=lambda action: self.dispatch(action))
        dispatch: Dispatch = self._reduce
        for link in reversed([m(api) for m in middleware]):
            dispatch = link(dispatch)
        return dispatch

    def _reduce(self, action: Any) -> Any:
        if not isinstance(action, Action):
            if callable(action):
                raise InvalidActionError("Thunks need the thunk middleware to be dispatched.")
            raise InvalidActionError(f"Actions must be created with create_action, got {type(action).__name__}.")

        prev_state = self._state
        base_state = prev_state
        if action.type == ActionTypes.HYDRATE:
            base_state = dict(action.payload["state"])

        self._state = self._root_reducer(base_state, action)

        self._notify_listeners(dict(prev_state))
        if self._bus is not None:
            self._bus.emit(
                Signal.STATE_CHANGE,
                StateChange(action=action, prev_state=dict(prev_state), next_state=dict(self._state)),
            )
        return action

    def _notify_listeners(self, prev_state: dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                _ = listener(prev_state)
            except Exception:
                logger.exception("Error in store listener")


def create_store(
    root_reducer: Reducer | None = None,
    initial_state: Mapping[str, Any] | None = None,
    middleware: Sequence[Middleware] | None = None,
    bus: EventBus | None = None,
    debug: bool = False,
) -> Store:
    """
    Builds a Store; without explicit middleware the thunk runner is installed,
    plus the action logger when `debug` is set.
    """
    if middleware is None:
        middleware = [thunk_middleware, logger_middleware] if debug else [thunk_middleware]
    return Store(root_reducer, initial_state, middleware, bus, debug)
