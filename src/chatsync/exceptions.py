class ChatsyncError(Exception):
    """Base exception for all expected chatsync errors."""

    message: str
    exit_code: int

    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code


class ConfigurationError(ChatsyncError):
    """Configuration related errors (env vars)."""


class StorageError(ChatsyncError):
    """Backing key-value store failures (read, write, remove)."""


class InvalidInputError(ChatsyncError):
    """Malformed conversation input passed to a write path."""


class InvalidActionError(ChatsyncError):
    """An action that cannot be built or dispatched."""


class MigrationError(ChatsyncError):
    """A legacy record that cannot be converted."""
