from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from . import messages
from .constants import QUIT_SENTINEL

if TYPE_CHECKING:
    from .service import ChatServer
    from .session import ChatSession


class MessageRouter:
    """
    Classifies lines received from clients and dispatches them.

    This class is responsible for:
    - Recognizing the quit sentinel
    - Handing slash commands to the CommandHandler
    - Broadcasting chat text to every session, with a self-echo to the sender
    - System notifications (joins, departures) to everyone but the subject
    """

    def __init__(self, server: ChatServer) -> None:
        self.server = server
        self.log = logging.getLogger("linechat.router")

    def route_line(self, session: ChatSession, line: str) -> bool:
        """
        Handle one line read from ``session``.

        Returns False when the session should end its read loop.
        """
        text = line.strip()
        if not text:
            return True

        if text == QUIT_SENTINEL:
            self.log.debug("%s sent the quit sentinel", session.name)
            return False

        if self.server.command_handler.handle_command(session, text):
            return True

        self.broadcast(session, line.rstrip())
        return True

    def broadcast(self, sender: ChatSession, text: str) -> None:
        """Send chat text from ``sender`` to every registered session."""
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug("Broadcast from %s: %s", sender.name, text)

        line = messages.chat_line(sender.name, text)
        echo = messages.self_echo(text)
        for session in self.server.session_manager.snapshot():
            session.deliver(echo if session is sender else line)
        self.server.stats_manager.inc("msgs_forwarded")

    def send_system_notification(self, text: str, *, exclude: ChatSession | None = None) -> None:
        """Notify every session except ``exclude``; suppressed during shutdown."""
        if self.server.is_shutting_down:
            return
        for session in self.server.session_manager.snapshot(exclude=exclude):
            session.deliver(text)
