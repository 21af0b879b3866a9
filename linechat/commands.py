"""Command handling for chat clients' slash commands."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from . import messages
from .constants import CMD_HELP, CMD_PM, CMD_USERS, HELP_TEXT, PM_FORMAT_ERROR
from .errors import MalformedCommand, RecipientNotFound

if TYPE_CHECKING:
    from .service import ChatServer
    from .session import ChatSession


def parse_private_message(cmdline: str) -> tuple[str, str]:
    """Split ``/pm <recipient> <message>`` into its two parts."""
    content = cmdline.strip()
    if not content.startswith(CMD_PM):
        raise MalformedCommand(PM_FORMAT_ERROR)
    content = content[len(CMD_PM):].strip()
    idx = content.find(" ")
    if idx <= 0:
        raise MalformedCommand(PM_FORMAT_ERROR)
    return content[:idx], content[idx + 1:]


class CommandHandler:
    """Handles the commands a connected client can send."""

    def __init__(self, server: ChatServer) -> None:
        self.server = server
        self.log = logging.getLogger("linechat.commands")

    def handle_command(self, session: ChatSession, text: str) -> bool:
        """Handle a command line from ``session``.

        Returns True if it was a recognized command (handled). Anything else
        returns False so the line can be broadcast as normal chat.
        """
        cmdline = text.strip()
        if not cmdline.startswith("/"):
            return False

        parts = cmdline.split(maxsplit=1)
        cmd = parts[0]

        if cmd == CMD_PM:
            self.log.debug("Private message from %s: %s", session.name, cmdline)
            try:
                self.send_private_message(session, cmdline)
            except MalformedCommand as e:
                self._reply_error(session, str(e))
            except RecipientNotFound as e:
                self._reply_error(session, messages.error_line(str(e)))
            return True

        if len(parts) > 1:
            return False

        if cmd.lower() == CMD_USERS:
            session.deliver(messages.active_users(self.server.session_manager.names()))
            return True

        if cmd.lower() == CMD_HELP:
            for line in HELP_TEXT.splitlines():
                session.deliver(line)
            return True

        return False

    def send_private_message(self, session: ChatSession, cmdline: str) -> None:
        """Deliver a /pm. Raises MalformedCommand or RecipientNotFound."""
        recipient, text = parse_private_message(cmdline)

        target = self.server.session_manager.get(recipient)
        if target is None:
            raise RecipientNotFound(recipient)

        target.deliver(messages.private_from(session.name, text))
        session.deliver(messages.private_to(recipient, text))
        self.server.stats_manager.inc("private_msgs")

    def _reply_error(self, session: ChatSession, text: str) -> None:
        self.server.stats_manager.inc("command_errors")
        session.deliver(text)
