from __future__ import annotations

import logging
import signal
import socket
import sys
import threading
import time
from typing import TextIO

from . import messages
from .commands import CommandHandler
from .config import ServerRuntimeConfig
from .constants import CMD_STATS, CMD_USERS, QUIT_SENTINEL, SERVER_FULL, SERVER_SHUTDOWN
from .errors import (
    AdmissionRejected,
    InvalidHandshake,
    NameInUse,
    ShutdownInProgress,
    TransportFailure,
)
from .router import MessageRouter
from .session import ChatSession, LineChannel, SessionManager
from .stats import StatsManager
from .transport import SocketChannel
from .util import normalize_nick


class AdmissionController:
    """
    Capacity gate applied to every accepted connection.

    A slot is taken when a connection is accepted, before its handshake, and
    given back when that connection's worker ends. Checking and taking a slot
    is a single step, so the capacity is never exceeded.
    """

    def __init__(self, capacity: int) -> None:
        self.capacity = max(1, int(capacity))
        self._lock = threading.Lock()
        self._in_use = 0

    @property
    def in_use(self) -> int:
        with self._lock:
            return self._in_use

    def admit(self) -> None:
        """Take a slot. Raises AdmissionRejected when none is free."""
        with self._lock:
            if self._in_use >= self.capacity:
                raise AdmissionRejected(f"server is full ({self.capacity} clients)")
            self._in_use += 1

    def release(self) -> None:
        with self._lock:
            if self._in_use > 0:
                self._in_use -= 1


class ChatServer:
    def __init__(self, config: ServerRuntimeConfig) -> None:
        self.config = config
        self.log = logging.getLogger("linechat.server")

        # Set once, when shutdown begins. Sessions read it to stop sending
        # join/leave notices.
        self._shutdown = threading.Event()
        self._stopped = threading.Event()
        self._stop_lock = threading.Lock()

        self.session_manager = SessionManager(self)
        self.router = MessageRouter(self)
        self.command_handler = CommandHandler(self)
        self.stats_manager = StatsManager(self)
        self.admission = AdmissionController(config.max_clients)

        self._listener: socket.socket | None = None
        self._accept_thread: threading.Thread | None = None
        self._control_thread: threading.Thread | None = None

        self._workers: set[threading.Thread] = set()
        self._workers_lock = threading.Lock()

    @property
    def is_shutting_down(self) -> bool:
        return self._shutdown.is_set()

    @property
    def address(self) -> tuple[str, int] | None:
        if self._listener is None:
            return None
        host, port = self._listener.getsockname()[:2]
        return host, port

    def start(self) -> None:
        self.stats_manager.set_start_time()

        self._listener = socket.create_server((self.config.host, int(self.config.port)))
        # Accept polls so the loop notices shutdown even where closing the
        # listener does not interrupt a blocked accept().
        self._listener.settimeout(0.5)

        self._accept_thread = threading.Thread(
            target=self._accept_loop, name="linechat-accept", daemon=True
        )
        self._accept_thread.start()

        host, port = self.address or (self.config.host, self.config.port)
        self.log.info("Server is running on %s:%s", host, port)
        self.log.info("Policy max_clients=%s nick_max_chars=%s", self.config.max_clients, self.config.nick_max_chars)

    def _accept_loop(self) -> None:
        listener = self._listener
        while listener is not None and not self._shutdown.is_set():
            try:
                sock, addr = listener.accept()
            except TimeoutError:
                continue
            except OSError as e:
                if not self._shutdown.is_set():
                    self.log.error("Error accepting client connection: %s", e)
                    time.sleep(0.1)
                continue

            sock.settimeout(None)
            self.accept_channel(
                SocketChannel(
                    sock,
                    peer=f"{addr[0]}:{addr[1]}",
                    max_line_bytes=self.config.max_line_bytes,
                )
            )

        self.log.debug("Accept loop stopped")

    def accept_channel(self, channel: LineChannel) -> threading.Thread | None:
        """
        Run admission for a freshly accepted channel and start its worker.

        Returns the worker thread, or None if the connection was refused.
        """
        if self._shutdown.is_set():
            channel.close()
            return None

        try:
            self.admission.admit()
        except AdmissionRejected:
            self._reject(channel)
            return None

        self.stats_manager.inc("connections")
        self.log.info("Connection established with: %s", channel.peer)

        worker = threading.Thread(
            target=self._serve,
            args=(channel,),
            name=f"linechat-session-{channel.peer}",
            daemon=True,
        )
        with self._workers_lock:
            self._workers.add(worker)
        worker.start()
        return worker

    def _reject(self, channel: LineChannel) -> None:
        self.stats_manager.inc("rejected")
        self.log.warning("Connection rejected from: %s - Server is full.", channel.peer)
        try:
            channel.write_line(SERVER_FULL)
        except TransportFailure as e:
            self.log.debug("Could not send full notice to %s: %s", channel.peer, e)
        channel.close()

    def _serve(self, channel: LineChannel) -> None:
        try:
            session = self.handshake(channel)
            if session is not None:
                session.run()
        except Exception:
            self.log.exception("Unhandled error serving %s", channel.peer)
            channel.close()
        finally:
            self.admission.release()
            with self._workers_lock:
                self._workers.discard(threading.current_thread())

    def handshake(self, channel: LineChannel) -> ChatSession | None:
        """Read the name line and register a session, or close the channel."""
        try:
            return self.open_session(channel)
        except NameInUse as e:
            self.log.warning("Rejected duplicate name from %s: %s", channel.peer, e.name)
            try:
                channel.write_line(str(e))
            except TransportFailure:
                pass
        except InvalidHandshake as e:
            self.log.warning("Invalid handshake from %s: %s", channel.peer, e)
        except ShutdownInProgress:
            self.log.debug("Dropping %s; shutdown in progress", channel.peer)
        channel.close()
        return None

    def open_session(self, channel: LineChannel) -> ChatSession:
        """
        Create and register the session for ``channel``.

        Raises InvalidHandshake (or NameInUse) and ShutdownInProgress.
        """
        channel.set_read_timeout(self.config.handshake_timeout_s)
        try:
            line = channel.readline()
        except TransportFailure as e:
            raise InvalidHandshake(str(e)) from e
        finally:
            channel.set_read_timeout(None)
        if line is None:
            raise InvalidHandshake("connection closed before a name was sent")

        name = normalize_nick(line, self.config.nick_max_chars)
        if name is None:
            raise InvalidHandshake(f"invalid username received: {line!r}")

        session = ChatSession(self, channel, name)
        self.session_manager.register(session)
        self.stats_manager.inc("joins")
        self.router.send_system_notification(messages.joined_notice(name), exclude=session)
        return session

    def log_active_users(self) -> None:
        names = self.session_manager.names()
        if not names:
            self.log.info("No active users.")
            return
        self.log.info("Currently connected users: %s", ", ".join(names))

    def stop(self) -> None:
        """Warn and disconnect every client, then stop accepting connections."""
        with self._stop_lock:
            if self._shutdown.is_set():
                return
            self._shutdown.set()

        self.log.info("Shutting down")

        sessions = self.session_manager.snapshot()
        for session in sessions:
            session.deliver(SERVER_SHUTDOWN)

        self._close_sessions(sessions)

        listener = self._listener
        if listener is not None:
            try:
                listener.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            try:
                listener.close()
            except OSError as e:
                self.log.error("Error while closing the listening socket: %s", e)

        timeout = float(self.config.close_timeout_s)
        accept_thread = self._accept_thread
        if accept_thread is not None and accept_thread is not threading.current_thread():
            accept_thread.join(timeout)

        with self._workers_lock:
            workers = list(self._workers)
        deadline = time.monotonic() + timeout
        for worker in workers:
            worker.join(max(0.0, deadline - time.monotonic()))

        self._stopped.set()
        self.log.info("Server has been successfully shut down.")

    def _close_sessions(self, sessions: list[ChatSession]) -> None:
        # Each close runs on its own thread; one slow or failing client must
        # not hold up the rest.
        closers = []
        for session in sessions:
            t = threading.Thread(
                target=self._close_session,
                args=(session,),
                name=f"linechat-close-{session.name}",
                daemon=True,
            )
            t.start()
            closers.append(t)

        deadline = time.monotonic() + float(self.config.close_timeout_s)
        for t in closers:
            t.join(max(0.0, deadline - time.monotonic()))
            if t.is_alive():
                self.log.warning("Timed out closing %s", t.name)

    def _close_session(self, session: ChatSession) -> None:
        try:
            session.teardown()
        except Exception:
            self.log.exception("Error closing connection for %s", session.name)

    def handle_operator_command(self, line: str) -> None:
        cmd = line.strip()
        if not cmd:
            return
        if cmd == QUIT_SENTINEL:
            self.stop()
        elif cmd.lower() == CMD_USERS:
            self.log_active_users()
        elif cmd.lower() == CMD_STATS:
            self.log.info("%s", self.stats_manager.format_stats())
        else:
            self.log.info("Unknown command %r. Use %s to end the server.", cmd, QUIT_SENTINEL)

    def _control_loop(self, stream: TextIO) -> None:
        while not self._shutdown.is_set():
            line = stream.readline()
            if not line:
                self.log.debug("Control input closed")
                return
            self.handle_operator_command(line)

    def run_forever(self, control: TextIO | None = sys.stdin) -> None:
        if self._listener is None:
            self.start()

        signal.signal(signal.SIGINT, lambda *_: self._stop_async())
        signal.signal(signal.SIGTERM, lambda *_: self._stop_async())

        if control is not None:
            self.log.info("Type %s to end the server.", QUIT_SENTINEL)
            self._control_thread = threading.Thread(
                target=self._control_loop, args=(control,), name="linechat-control", daemon=True
            )
            self._control_thread.start()

        while not self._stopped.is_set():
            time.sleep(0.25)

    def _stop_async(self) -> None:
        # Signal handlers run on the main thread between bytecodes; do the
        # blocking part of shutdown elsewhere.
        threading.Thread(target=self.stop, name="linechat-shutdown", daemon=True).start()
