from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Protocol

from . import messages
from .errors import NameInUse, ShutdownInProgress, TransportFailure

if TYPE_CHECKING:
    from .service import ChatServer


class LineChannel(Protocol):
    peer: str

    @property
    def closed(self) -> bool: ...

    def readline(self) -> str | None: ...

    def set_read_timeout(self, timeout: float | None) -> None: ...

    def write_line(self, text: str) -> None: ...

    def close(self) -> None: ...


class ChatSession:
    """
    One connected client: its display name, its channel and its read loop.

    A session is created only after a valid name line was received and is
    registered with the server's SessionManager before its loop starts.
    """

    def __init__(self, server: ChatServer, channel: LineChannel, name: str) -> None:
        self.server = server
        self.channel = channel
        self.name = name
        self.log = logging.getLogger("linechat.session")

    def __repr__(self) -> str:
        return f"<ChatSession {self.name!r} {self.peer}>"

    @property
    def peer(self) -> str:
        return getattr(self.channel, "peer", "-")

    def deliver(self, text: str) -> bool:
        """Send one line to this client. Returns False if it could not be sent."""
        if self.channel.closed:
            return False
        try:
            self.channel.write_line(text)
        except TransportFailure as e:
            self.log.warning("Error sending message to %s: %s", self.name, e)
            self.teardown()
            return False
        self.server.stats_manager.inc("bytes_out", len(text.encode("utf-8")) + 1)
        return True

    def run(self) -> None:
        """Read and route lines until the client leaves or the channel fails."""
        self.log.info("%s has connected to the server (%s)", self.name, self.peer)
        try:
            while True:
                line = self.channel.readline()
                if line is None:
                    break
                self.server.stats_manager.inc("bytes_in", len(line.encode("utf-8")) + 1)
                if not self.server.router.route_line(self, line):
                    break
        except TransportFailure as e:
            if not self.server.is_shutting_down:
                self.log.warning("Unexpected client disconnection: %s (%s)", self.name, e)
        finally:
            self.teardown()

    def teardown(self) -> None:
        """
        Deregister, close the channel and tell the others this client left.

        Safe to call any number of times from any thread; only the call that
        removes the registry entry logs and notifies.
        """
        removed = self.server.session_manager.unregister(self)

        try:
            self.channel.close()
        except OSError as e:
            self.log.debug("Error closing channel for %s: %s", self.name, e)

        if not removed:
            return

        self.server.stats_manager.inc("parts")
        self.log.info("%s (%s) has disconnected", self.name, self.peer)
        self.server.log_active_users()

        if not self.server.is_shutting_down:
            self.server.router.send_system_notification(messages.left_notice(self.name))


class SessionManager:
    """
    Registry of connected sessions keyed by display name.

    This class is responsible for:
    - Registering a session under a unique name (duplicates are rejected)
    - Removing a session exactly once
    - Name lookup for private messages
    - Consistent snapshots for broadcast, /users and shutdown

    All structural access goes through one lock. Callers deliver to the
    sessions returned by ``snapshot`` after the lock has been released.
    """

    def __init__(self, server: ChatServer) -> None:
        self.server = server
        self._lock = threading.RLock()
        self._sessions: dict[str, ChatSession] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._sessions

    def register(self, session: ChatSession) -> None:
        """Add a session. Raises NameInUse or ShutdownInProgress."""
        with self._lock:
            if self.server.is_shutting_down:
                raise ShutdownInProgress("server is shutting down")
            if session.name in self._sessions:
                raise NameInUse(session.name)
            self._sessions[session.name] = session

    def unregister(self, session: ChatSession) -> bool:
        """Remove ``session`` if it is still the one registered under its name."""
        with self._lock:
            if self._sessions.get(session.name) is not session:
                return False
            del self._sessions[session.name]
            return True

    def get(self, name: str) -> ChatSession | None:
        with self._lock:
            return self._sessions.get(name)

    def names(self) -> list[str]:
        with self._lock:
            return list(self._sessions.keys())

    def snapshot(self, *, exclude: ChatSession | None = None) -> list[ChatSession]:
        with self._lock:
            return [s for s in self._sessions.values() if s is not exclude]
