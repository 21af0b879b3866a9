"""Exception types raised by the chat server and client."""

from __future__ import annotations

from .constants import NAME_IN_USE


class ChatError(Exception):
    """Base class for linechat errors."""


class AdmissionRejected(ChatError):
    """The server is at capacity; the connection was refused."""


class InvalidHandshake(ChatError):
    """The first line from a client was missing or not a usable name."""


class NameInUse(InvalidHandshake):
    def __init__(self, name: str) -> None:
        super().__init__(NAME_IN_USE.format(name=name))
        self.name = name


class MalformedCommand(ChatError):
    """A command line did not match its expected syntax."""


class RecipientNotFound(ChatError):
    def __init__(self, name: str) -> None:
        super().__init__(f"User {name} not found.")
        self.name = name


class TransportFailure(ChatError):
    """Reading from or writing to a channel failed."""


class ShutdownInProgress(ChatError):
    """The server has begun shutting down."""
