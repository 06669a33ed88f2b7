"""
Reducer-driven, observable state container.

Provides:
- Action objects and the validating action factory
- Reducer construction and composition
- Single-slot memoized selectors
- Middleware (action logger, thunk runner)
- The Store itself with persist / hydrate over a key-value backend
"""

from .actions import Action, ActionCreator, ActionTypes, create_action
from .middleware import Middleware, MiddlewareAPI, create_middleware, logger_middleware, thunk_middleware
from .reducers import Reducer, combine_reducers, create_reducer
from .selectors import create_selector, get_path
from .store import DEFAULT_PERSIST_KEY, Store, create_store

__all__ = [
    "Action",
    "ActionCreator",
    "ActionTypes",
    "create_action",
    "Middleware",
    "MiddlewareAPI",
    "create_middleware",
    "logger_middleware",
    "thunk_middleware",
    "Reducer",
    "combine_reducers",
    "create_reducer",
    "create_selector",
    "get_path",
    "DEFAULT_PERSIST_KEY",
    "Store",
    "create_store",
]
