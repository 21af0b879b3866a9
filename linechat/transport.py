"""Line-oriented channels over TCP sockets."""

from __future__ import annotations

import logging
import queue
import socket
import threading

from .codec import decode, encode
from .constants import MAX_LINE_BYTES
from .errors import TransportFailure

log = logging.getLogger("linechat.transport")

_CLOSE = object()


class SocketChannel:
    """
    A connected socket read and written as newline-delimited UTF-8 lines.

    ``readline`` is meant to be called from one thread only (the owner's read
    loop). ``write_line`` may be called from any thread and never blocks on
    the network: lines are queued and sent in order by a per-channel writer
    thread, so a peer that stops reading only stalls its own channel. A write
    error or an overflowing queue shuts the socket down, which the owner's
    read loop sees as end of stream.

    Incoming lines longer than ``max_line_bytes`` are a transport failure.

    ``close`` is idempotent and callable from any thread. It gives the writer
    up to ``linger_s`` seconds to flush queued lines, then shuts the socket
    down, which also wakes a reader blocked in ``readline``.
    """

    def __init__(
        self,
        sock: socket.socket,
        peer: str | None = None,
        *,
        max_pending: int = 1024,
        linger_s: float = 1.0,
        max_line_bytes: int = MAX_LINE_BYTES,
    ) -> None:
        self._sock = sock
        self._reader = sock.makefile("rb")
        self._outbox: queue.Queue = queue.Queue(maxsize=max_pending)
        self._close_lock = threading.Lock()
        self._closed = False
        self._failed = False
        self.linger_s = float(linger_s)
        self.max_line_bytes = int(max_line_bytes)
        if peer is None:
            try:
                host, port = sock.getpeername()[:2]
                peer = f"{host}:{port}"
            except (OSError, ValueError):
                peer = "-"
        self.peer = peer
        self._writer = threading.Thread(
            target=self._write_loop, name=f"linechat-writer-{peer}", daemon=True
        )
        self._writer.start()

    @property
    def closed(self) -> bool:
        return self._closed or self._failed

    def readline(self) -> str | None:
        """Return the next line without its terminator, or None at end of stream."""
        if self._closed:
            return None
        try:
            data = self._reader.readline(self.max_line_bytes + 1)
        except (OSError, ValueError) as e:
            # ValueError: the file object was closed under us by close().
            if self._closed:
                return None
            raise TransportFailure(f"read failed from {self.peer}: {e}") from e
        if not data:
            return None
        if len(data) > self.max_line_bytes and not data.endswith(b"\n"):
            raise TransportFailure(f"line from {self.peer} exceeds {self.max_line_bytes} bytes")
        return decode(data)

    def set_read_timeout(self, timeout: float | None) -> None:
        """Bound how long ``readline`` may block; None blocks indefinitely."""
        try:
            self._sock.settimeout(timeout)
        except OSError as e:
            log.debug("Setting read timeout for %s failed: %s", self.peer, e)

    def write_line(self, text: str) -> None:
        if self.closed:
            raise TransportFailure(f"channel to {self.peer} is closed")
        try:
            self._outbox.put_nowait(encode(text))
        except queue.Full:
            self._fail("outbound queue full")
            raise TransportFailure(f"{self.peer} is not reading; dropping connection") from None

    def _write_loop(self) -> None:
        while True:
            item = self._outbox.get()
            if item is _CLOSE:
                return
            try:
                self._sock.sendall(item)
            except OSError as e:
                self._fail(f"write failed: {e}")
                return

    def _fail(self, reason: str) -> None:
        if self._failed or self._closed:
            return
        self._failed = True
        log.debug("Channel %s failed: %s", self.peer, reason)
        self._shutdown_socket()

    def _shutdown_socket(self) -> None:
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True

        try:
            self._outbox.put_nowait(_CLOSE)
        except queue.Full:
            pass
        if threading.current_thread() is not self._writer:
            self._writer.join(self.linger_s)

        self._shutdown_socket()
        try:
            self._reader.close()
        except OSError as e:
            log.debug("Closing reader for %s failed: %s", self.peer, e)
        try:
            self._sock.close()
        except OSError as e:
            log.debug("Closing socket for %s failed: %s", self.peer, e)


def open_channel(host: str, port: int, timeout: float | None = 10.0) -> SocketChannel:
    """Connect to a chat server. Raises OSError if the connection fails."""
    sock = socket.create_connection((host, int(port)), timeout=timeout)
    # The timeout only bounds the connect; reads block until the server speaks.
    sock.settimeout(None)
    return SocketChannel(sock, peer=f"{host}:{port}")
