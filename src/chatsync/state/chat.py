"""Chat slice: the conversation being composed in one context."""

from typing import Any, Final

from msgspec import Struct, field, structs

from chatsync.history import ChatHistoryService, normalize_model, normalize_provider
from chatsync.history.normalize import DEFAULT_MODELS
from chatsync.models import Conversation, Message, Provider, TabSnapshot
from chatsync.store import Action, create_action, create_reducer, create_selector
from chatsync.store.middleware import Dispatch

MAX_FORMATTED_TURNS: Final = 4


class PageContext(Struct, frozen=True):
    title: str = ""
    url: str = ""
    content: str = ""


class PageContextUpdate(Struct, frozen=True):
    title: str | None = None
    url: str | None = None
    content: str | None = None


class ProviderSelection(Struct, frozen=True):
    provider: str
    model: str | None = None


class ChatState(Struct, frozen=True):
    messages: list[Message] = field(default_factory=list)
    is_processing: bool = False
    current_provider: str = Provider.OPENAI.value
    current_model: str = DEFAULT_MODELS[Provider.OPENAI.value]
    system_prompt: str = ""
    page_context: PageContext = field(default_factory=PageContext)
    include_page_context: bool = False
    conversation_id: str | None = None


# --- Actions ---

add_message = create_action("chat/ADD_MESSAGE", Message)
clear_messages = create_action("chat/CLEAR_MESSAGES")
set_processing = create_action("chat/SET_PROCESSING", bool)
set_provider_and_model = create_action("chat/SET_PROVIDER_AND_MODEL", ProviderSelection)
set_system_prompt = create_action("chat/SET_SYSTEM_PROMPT", str)
set_page_context = create_action("chat/SET_PAGE_CONTEXT", PageContextUpdate)
set_include_page_context = create_action("chat/SET_INCLUDE_PAGE_CONTEXT", bool)
load_conversation = create_action("chat/LOAD_CONVERSATION", Conversation)
set_conversation_id = create_action("chat/SET_CONVERSATION_ID", str)
restore_snapshot = create_action("chat/RESTORE_SNAPSHOT", TabSnapshot)


# --- Reducer ---


def _add_message(state: ChatState, action: Action) -> ChatState:
    message: Message = action.payload
    if not message.content:
        return state
    return structs.replace(state, messages=[*state.messages, message])


def _clear_messages(state: ChatState, action: Action) -> ChatState:
    return structs.replace(state, messages=[], conversation_id=None)


def _set_processing(state: ChatState, action: Action) -> ChatState:
    return structs.replace(state, is_processing=action.payload)


def _set_provider_and_model(state: ChatState, action: Action) -> ChatState:
    selection: ProviderSelection = action.payload
    provider = normalize_provider(selection.provider)
    return structs.replace(
        state,
        current_provider=provider,
        current_model=normalize_model(selection.model, provider),
    )


def _set_system_prompt(state: ChatState, action: Action) -> ChatState:
    return structs.replace(state, system_prompt=action.payload)


def _set_page_context(state: ChatState, action: Action) -> ChatState:
    update: PageContextUpdate = action.payload
    changes = {name: value for name in update.__struct_fields__ if (value := getattr(update, name)) is not None}
    return structs.replace(state, page_context=structs.replace(state.page_context, **changes))


def _set_include_page_context(state: ChatState, action: Action) -> ChatState:
    return structs.replace(state, include_page_context=action.payload)


def _load_conversation(state: ChatState, action: Action) -> ChatState:
    conversation: Conversation = action.payload
    provider = normalize_provider(conversation.provider or state.current_provider)
    return structs.replace(
        state,
        messages=list(conversation.messages),
        conversation_id=conversation.id or None,
        current_provider=provider,
        current_model=normalize_model(conversation.model or state.current_model, provider),
        is_processing=False,
    )


def _set_conversation_id(state: ChatState, action: Action) -> ChatState:
    return structs.replace(state, conversation_id=action.payload)


def _restore_snapshot(state: ChatState, action: Action) -> ChatState:
    snapshot: TabSnapshot = action.payload
    return structs.replace(
        state,
        messages=list(snapshot.messages),
        include_page_context=snapshot.include_page_context,
        conversation_id=snapshot.conversation_id,
    )


reducer = create_reducer(
    ChatState(),
    {
        add_message.type: _add_message,
        clear_messages.type: _clear_messages,
        set_processing.type: _set_processing,
        set_provider_and_model.type: _set_provider_and_model,
        set_system_prompt.type: _set_system_prompt,
        set_page_context.type: _set_page_context,
        set_include_page_context.type: _set_include_page_context,
        load_conversation.type: _load_conversation,
        set_conversation_id.type: _set_conversation_id,
        restore_snapshot.type: _restore_snapshot,
    },
    state_type=ChatState,
)


# --- Selectors ---


def select_chat(state: dict[str, Any]) -> ChatState:
    return state["chat"]


select_messages = create_selector(lambda state: select_chat(state).messages)
select_is_processing = create_selector(lambda state: select_chat(state).is_processing)
select_current_provider = create_selector(lambda state: select_chat(state).current_provider)
select_current_model = create_selector(lambda state: select_chat(state).current_model)
select_system_prompt = create_selector(lambda state: select_chat(state).system_prompt)
select_page_context = create_selector(lambda state: select_chat(state).page_context)


def _messages_for_api(state: dict[str, Any]) -> list[dict[str, str]]:
    chat = select_chat(state)
    messages = [{"role": m.role, "content": m.content} for m in chat.messages]
    if chat.system_prompt:
        return [{"role": "system", "content": chat.system_prompt}, *messages]
    return messages


select_messages_for_api = create_selector(_messages_for_api)


def _formatted_history(state: dict[str, Any]) -> str:
    """Markdown rendering of the last few user/assistant turns, for prompt context."""
    turns: list[tuple[Message | None, Message | None]] = []
    user: Message | None = None
    assistant: Message | None = None

    for message in select_chat(state).messages:
        if message.role == "user":
            if user is not None:
                turns.append((user, assistant))
                assistant = None
            user = message
        elif message.role == "assistant":
            assistant = message
            if user is not None:
                turns.append((user, assistant))
                user = assistant = None

    if user is not None or assistant is not None:
        turns.append((user, assistant))
    if not turns:
        return ""

    parts = ["# Recent dialogue\n\n"]
    for index, (turn_user, turn_assistant) in enumerate(turns[-MAX_FORMATTED_TURNS:], start=1):
        parts.append(f"## Turn {index}\n\n")
        if turn_user is not None:
            parts.append(f"### User\n\n```\n{turn_user.content}\n```\n\n")
        if turn_assistant is not None:
            parts.append(f"### Assistant\n\n```\n{turn_assistant.content}\n```\n\n")
    return "".join(parts)


select_formatted_history = create_selector(_formatted_history)


# --- Thunks ---


def save_current_conversation(service: ChatHistoryService):
    """
    Saves the chat slice as a conversation and remembers the id it was stored under.

    No timestamp is sent, so each save stamps the record with the current time
    and the conversation moves to the top of the newest-first history.
    """

    async def thunk(dispatch: Dispatch, get_state) -> str | None:
        chat = select_chat(get_state())
        if not chat.messages:
            return None

        conversation = Conversation(
            id=chat.conversation_id or "",
            provider=chat.current_provider,
            model=chat.current_model,
            messages=list(chat.messages),
        )
        conversation_id = await service.save_conversation(conversation)
        if conversation_id is not None and conversation_id != chat.conversation_id:
            _ = dispatch(set_conversation_id(conversation_id))
        return conversation_id

    return thunk
