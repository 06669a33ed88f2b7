# pyright: standard
import logging
import os
from collections.abc import Iterator

import pytest

from tests.helpers import ManualClock


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keeps CHATSYNC_* variables of the developer's shell out of the tests."""
    for name in list(os.environ):
        if name.startswith("CHATSYNC_"):
            monkeypatch.delenv(name)
    yield
    # CLI runs install a RichHandler and stop propagation; undo that for caplog.
    package_logger = logging.getLogger("chatsync")
    package_logger.handlers.clear()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()
