"""History slice: the conversation list shown by history surfaces."""

from typing import Any

from msgspec import Struct, field, structs

from chatsync.exceptions import ChatsyncError
from chatsync.history import ChatHistoryService
from chatsync.models import Conversation
from chatsync.store import Action, create_action, create_reducer, create_selector
from chatsync.store.middleware import Dispatch

from . import chat


class HistoryState(Struct, frozen=True):
    conversations: list[Conversation] = field(default_factory=list)
    is_loading: bool = False
    error: str | None = None


load_started = create_action("history/LOAD_STARTED")
load_succeeded = create_action("history/LOAD_SUCCEEDED", list[Conversation])
load_failed = create_action("history/LOAD_FAILED", str)


def _load_started(state: HistoryState, action: Action) -> HistoryState:
    return structs.replace(state, is_loading=True, error=None)


def _load_succeeded(state: HistoryState, action: Action) -> HistoryState:
    return structs.replace(state, conversations=action.payload, is_loading=False, error=None)


def _load_failed(state: HistoryState, action: Action) -> HistoryState:
    return structs.replace(state, is_loading=False, error=action.payload)


reducer = create_reducer(
    HistoryState(),
    {
        load_started.type: _load_started,
        load_succeeded.type: _load_succeeded,
        load_failed.type: _load_failed,
    },
    state_type=HistoryState,
)


def select_history(state: dict[str, Any]) -> HistoryState:
    return state["history"]


select_conversations = create_selector(lambda state: select_history(state).conversations)
select_is_loading = create_selector(lambda state: select_history(state).is_loading)


def load_history(service: ChatHistoryService):
    async def thunk(dispatch: Dispatch, get_state) -> list[Conversation]:
        _ = dispatch(load_started())
        try:
            conversations = await service.get_history()
        except ChatsyncError as e:
            _ = dispatch(load_failed(e.message))
            return []
        _ = dispatch(load_succeeded(conversations))
        return conversations

    return thunk


def open_conversation(service: ChatHistoryService, conversation_id: str):
    """Loads a stored conversation into the chat slice; returns None for unknown ids."""

    async def thunk(dispatch: Dispatch, get_state) -> Conversation | None:
        conversation = await service.load_conversation(conversation_id)
        if conversation is None:
            return None
        _ = dispatch(chat.load_conversation(conversation))
        return conversation

    return thunk
