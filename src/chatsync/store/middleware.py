import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeAlias

from .actions import Action

logger = logging.getLogger("chatsync.store")

Dispatch: TypeAlias = Callable[[Any], Any]
Middleware: TypeAlias = Callable[["MiddlewareAPI"], Callable[[Dispatch], Dispatch]]


@dataclass(frozen=True)
class MiddlewareAPI:
    get_state: Callable[[], dict[str, Any]]
    dispatch: Dispatch


def create_middleware(fn: Callable[[MiddlewareAPI, Dispatch, Any], Any]) -> Middleware:
    """Adapts a flat `fn(api, next, action)` into the curried middleware shape."""

    def middleware(api: MiddlewareAPI) -> Callable[[Dispatch], Dispatch]:
        def wrap(next_dispatch: Dispatch) -> Dispatch:
            def dispatch(action: Any) -> Any:
                return fn(api, next_dispatch, action)

            return dispatch

        return wrap

    return middleware


def _log_action(api: MiddlewareAPI, next_dispatch: Dispatch, action: Any) -> Any:
    if not logger.isEnabledFor(logging.DEBUG):
        return next_dispatch(action)

    label = action.type if isinstance(action, Action) else getattr(action, "__name__", repr(action))
    logger.debug("Action: %s\n  prev state: %r\n  action: %r", label, api.get_state(), action)
    result = next_dispatch(action)
    logger.debug("Action: %s\n  next state: %r", label, api.get_state())
    return result


def _run_thunk(api: MiddlewareAPI, next_dispatch: Dispatch, action: Any) -> Any:
    if callable(action) and not isinstance(action, Action):
        return action(api.dispatch, api.get_state)
    return next_dispatch(action)


logger_middleware: Middleware = create_middleware(_log_action)
thunk_middleware: Middleware = create_middleware(_run_thunk)
