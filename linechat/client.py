from __future__ import annotations

import enum
import logging
import threading
from typing import Callable

from .config import ClientRuntimeConfig
from .console import ChatConsole
from .constants import NAME_IN_USE, QUIT_SENTINEL, SERVER_FULL
from .errors import TransportFailure
from .session import LineChannel
from .transport import open_channel
from .util import present_time

Connector = Callable[[str, int], LineChannel]


class ClientState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    GIVEN_UP = "given_up"


class ChatClient:
    """
    Interactive chat client with bounded reconnection.

    The main thread owns user input; a reader thread per connection prints
    server lines. When the reader loses the connection it moves the client to
    RECONNECTING and asks the user whether to retry; the next input line is
    taken as the answer.

    Only the first line on a connection can be a refusal from the server
    (full, or name already in use); later lines are chat and printed as is.
    """

    def __init__(
        self,
        config: ClientRuntimeConfig,
        name: str,
        *,
        connector: Connector | None = None,
        console: ChatConsole | None = None,
    ) -> None:
        self.config = config
        self.host = config.host
        self.port = int(config.port)
        self.name = name
        self.max_attempts = int(config.reconnect_attempts)
        self.delay_s = float(config.reconnect_delay_s)
        self.attempts = 0
        # Attempt count at the moment the current channel was attached.
        self._attached_at_attempt = 0

        self.log = logging.getLogger("linechat.client")
        self.console = console or ChatConsole()
        self._connector = connector or (
            lambda host, port: open_channel(host, port, timeout=config.connect_timeout_s)
        )

        self.state = ClientState.DISCONNECTED
        self.channel: LineChannel | None = None
        self._reader: threading.Thread | None = None

        self._cancel = threading.Event()
        self._link_lost = threading.Event()
        self._quitting = False
        self._rejected = False
        self._retrying = False

    @property
    def rejected(self) -> bool:
        return self._rejected

    @property
    def is_retrying(self) -> bool:
        return self._retrying

    def connect(self) -> None:
        """Open the first connection. Raises OSError if the server is unreachable."""
        self.state = ClientState.CONNECTING
        try:
            channel = self._connector(self.host, self.port)
        except OSError:
            self.state = ClientState.DISCONNECTED
            raise
        self._attach(channel)

    def _attach(self, channel: LineChannel) -> None:
        self.channel = channel
        self._attached_at_attempt = self.attempts
        self.attempts = 0
        self._link_lost.clear()
        self.state = ClientState.CONNECTED
        try:
            channel.write_line(self.name)
        except TransportFailure as e:
            self.log.debug("Sending name failed: %s", e)
        self._reader = threading.Thread(
            target=self._read_loop, args=(channel,), name="linechat-client-reader", daemon=True
        )
        self._reader.start()

    def _read_loop(self, channel: LineChannel) -> None:
        first = True
        try:
            while True:
                line = channel.readline()
                if line is None:
                    break
                if first:
                    first = False
                    if line == SERVER_FULL:
                        self._on_server_full(channel, line)
                        return
                    if line == NAME_IN_USE.format(name=self.name):
                        self._on_name_refused(channel, line)
                        return
                self.console.print_line(line)
        except TransportFailure as e:
            self.log.debug("Read failed: %s", e)

        if channel is not self.channel or self._quitting:
            return
        self.on_connection_lost()

    def _on_server_full(self, channel: LineChannel, line: str) -> None:
        self.console.print_error(line)
        self._rejected = True
        self.state = ClientState.DISCONNECTED
        channel.close()
        self.console.print_warning("Press ENTER to exit.")

    def _on_name_refused(self, channel: LineChannel, line: str) -> None:
        # After a reconnect the old session may still be registered; the
        # attempt counts as failed.
        self.console.print_error(line)
        channel.close()
        self.attempts = self._attached_at_attempt
        if self.attempts == 0:
            self.state = ClientState.GIVEN_UP
            self.console.print_warning("Restart the client with a different username.")
            self.console.print_warning("Press ENTER to exit.")
            return
        if not self.reconnect(wait_first=True):
            self.console.print_warning("Press ENTER to exit.")

    def on_connection_lost(self) -> None:
        self.state = ClientState.RECONNECTING
        self.console.print_error("Disconnected from server.")
        self.console.print_warning("You have been disconnected from the server.")
        self.console.print_warning("Would you like to try reconnecting to the server? (yes/no)")
        self._link_lost.set()

    def send(self, text: str) -> bool:
        """Send one line typed by the user. Returns False if it was not sent."""
        channel = self.channel
        if channel is None or self.state is not ClientState.CONNECTED:
            return False
        if text.startswith("/"):
            line = text.strip()
        else:
            line = f"[{present_time()}] {text}"
        try:
            channel.write_line(line)
        except TransportFailure as e:
            self.log.debug("Send failed: %s", e)
            return False
        return True

    def quit(self) -> None:
        self._quitting = True
        channel = self.channel
        if channel is not None:
            try:
                channel.write_line(QUIT_SENTINEL)
            except TransportFailure:
                pass
            channel.close()
        self.state = ClientState.DISCONNECTED
        self.console.print_warning("You have left the chat.")

    def cancel(self) -> None:
        """Abort a reconnection in progress, including its wait between attempts."""
        self._cancel.set()

    def handle_reconnect_answer(self, answer: str) -> bool:
        """Act on the user's reply to the reconnect question. True if connected again."""
        if answer.strip().lower() not in ("yes", "y"):
            self.state = ClientState.GIVEN_UP
            self.console.print_info("Exiting the chat. Bye!")
            return False
        return self.reconnect()

    def reconnect(self, *, wait_first: bool = False) -> bool:
        """
        Try the last known server until ``max_attempts`` attempts have been made.

        Waits ``delay_s`` between failed attempts, and before the first one
        when ``wait_first`` is set. Ends in CONNECTED (returns True) or
        GIVEN_UP (returns False); cancellation also ends in GIVEN_UP.
        """
        self.state = ClientState.RECONNECTING
        self._retrying = True
        try:
            if wait_first and self.attempts < self.max_attempts:
                self.console.print_warning(f"Retrying in {self.delay_s:g} seconds...")
                self._cancel.wait(self.delay_s)
            return self._retry_loop()
        finally:
            self._retrying = False

    def _retry_loop(self) -> bool:
        while self.attempts < self.max_attempts and not self._cancel.is_set():
            self.attempts += 1
            self.console.print_line(
                f"Attempting to reconnect to the server... (Attempt {self.attempts})"
            )
            try:
                channel = self._connector(self.host, self.port)
            except OSError as e:
                self.log.debug("Reconnect attempt %s failed: %s", self.attempts, e)
                self.console.print_error(f"Reconnection attempt failed: {e}")
                if self.attempts >= self.max_attempts:
                    break
                self.console.print_warning(f"Retrying in {self.delay_s:g} seconds...")
                if self._cancel.wait(self.delay_s):
                    break
                continue

            self.console.print_info("Reconnected to the server successfully!")
            self._attach(channel)
            return True

        if self._cancel.is_set():
            self.console.print_error("Reconnection disrupted.")
        else:
            self.console.print_error("Maximum retries has reached. Unable to reconnect.")
        self.state = ClientState.GIVEN_UP
        return False

    def run(self, read_input: Callable[[], str]) -> int:
        """Drive the input loop until the user quits or the client gives up."""
        while True:
            try:
                line = read_input()
            except EOFError:
                line = QUIT_SENTINEL

            if self._rejected or self.state is ClientState.GIVEN_UP:
                return 0

            if self._link_lost.is_set():
                self._link_lost.clear()
                if not self.handle_reconnect_answer(line):
                    return 0
                continue

            if line.strip() == QUIT_SENTINEL:
                self.quit()
                return 0

            if line.strip():
                self.send(line)
