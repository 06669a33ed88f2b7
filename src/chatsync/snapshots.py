"""
Ephemeral per-tab and per-page chat snapshots.

A snapshot lets a surface put back what the user was looking at after switching
tabs or navigating. Nothing here is persisted; snapshots die with their tab.
"""

import logging
from collections.abc import Mapping
from typing import Any, TypeAlias
from urllib.parse import urlsplit, urlunsplit

from chatsync.clock import Clock, SystemClock
from chatsync.models import TabSnapshot

logger = logging.getLogger(__name__)

TabId: TypeAlias = str | int


def normalize_url(url: str) -> str:
    """Lowercases scheme and host, drops the fragment and any trailing slash of the path."""
    parts = urlsplit(url.strip())
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))


class SnapshotRegistry:
    _tabs: dict[TabId, TabSnapshot]
    _pages: dict[tuple[TabId, str], TabSnapshot]
    _clock: Clock

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._tabs = {}
        self._pages = {}

    def __len__(self) -> int:
        return len(self._tabs) + len(self._pages)

    def save_tab(self, tab_id: TabId, snapshot: TabSnapshot) -> None:
        self._tabs[tab_id] = snapshot

    def get_tab(self, tab_id: TabId) -> TabSnapshot | None:
        return self._tabs.get(tab_id)

    def save_page(self, tab_id: TabId, url: str, snapshot: TabSnapshot) -> None:
        self._pages[(tab_id, normalize_url(url))] = snapshot

    def get_page(self, tab_id: TabId, url: str) -> TabSnapshot | None:
        return self._pages.get((tab_id, normalize_url(url)))

    def restore(self, tab_id: TabId, url: str | None = None) -> TabSnapshot | None:
        """Page snapshot for `url` if there is one, else the tab's latest snapshot."""
        if url:
            page = self.get_page(tab_id, url)
            if page is not None:
                return page
        return self.get_tab(tab_id)

    def switch_away(self, tab_id: TabId, url: str | None, state: Mapping[str, Any]) -> TabSnapshot:
        """Captures the chat slice of `state` for the tab (and its page, when `url` is known)."""
        chat = state["chat"]
        snapshot = TabSnapshot(
            messages=list(chat.messages),
            include_page_context=chat.include_page_context,
            conversation_id=chat.conversation_id,
            timestamp=self._clock.now(),
        )
        self.save_tab(tab_id, snapshot)
        if url:
            self.save_page(tab_id, url, snapshot)
        logger.debug("Captured snapshot for tab %s (%d messages)", tab_id, len(snapshot.messages))
        return snapshot

    def close_tab(self, tab_id: TabId) -> None:
        _ = self._tabs.pop(tab_id, None)
        for key in [key for key in self._pages if key[0] == tab_id]:
            del self._pages[key]

    def clear(self) -> None:
        self._tabs.clear()
        self._pages.clear()
