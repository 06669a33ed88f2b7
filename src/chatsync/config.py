import os
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Literal, TypeAlias

from pydantic import Field, TypeAdapter, ValidationError
from pydantic.dataclasses import dataclass as pydantic_dataclass

from chatsync.exceptions import ConfigurationError

ENV_PREFIX = "CHATSYNC_"
DEFAULT_STORAGE_FILE = Path.home() / ".chatsync" / "storage.json"

LogLevel: TypeAlias = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@pydantic_dataclass(slots=True, frozen=True)
class Settings:
    storage_file: Path = DEFAULT_STORAGE_FILE
    max_history: Annotated[int, Field(ge=1)] = 30
    auto_title: bool = True
    cache_ttl: Annotated[float, Field(ge=0)] = 300.0
    debounce_ms: Annotated[int, Field(ge=0)] = 250
    poll_seconds: Annotated[float, Field(gt=0)] = 30.0
    debug: bool = False
    log_level: LogLevel = "WARNING"

    @property
    def debounce_window(self) -> float:
        return self.debounce_ms / 1000


_SettingsAdapter = TypeAdapter(Settings)

_ENV_FIELDS = (
    "storage_file",
    "max_history",
    "auto_title",
    "cache_ttl",
    "debounce_ms",
    "poll_seconds",
    "debug",
    "log_level",
)


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """
    Reads `CHATSYNC_*` variables (e.g. CHATSYNC_MAX_HISTORY) on top of the defaults.

    Raises:
        ConfigurationError: if a variable does not parse or is out of range.
    """
    environ = os.environ if environ is None else environ

    raw: dict[str, str] = {}
    for name in _ENV_FIELDS:
        value = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if value is not None and value.strip():
            raw[name] = value.strip().upper() if name == "log_level" else value.strip()

    try:
        return _SettingsAdapter.validate_python(raw)
    except ValidationError as e:
        problems = "; ".join(
            f"{ENV_PREFIX}{str(err['loc'][0]).upper()}: {err['msg']}" if err["loc"] else err["msg"]
            for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from e
