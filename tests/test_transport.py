import socket

import pytest

from linechat.errors import TransportFailure
from linechat.transport import SocketChannel, open_channel


@pytest.fixture
def pair():
    a, b = socket.socketpair()
    channel = SocketChannel(a, peer="local")
    yield channel, b
    channel.close()
    b.close()


def _recv_line(sock: socket.socket) -> bytes:
    sock.settimeout(5.0)
    buf = b""
    while not buf.endswith(b"\n"):
        chunk = sock.recv(1024)
        if not chunk:
            break
        buf += chunk
    return buf


def test_write_line_sends_utf8_with_newline(pair) -> None:
    channel, other = pair
    channel.write_line("héllo wörld")
    assert _recv_line(other) == "héllo wörld\n".encode("utf-8")


def test_readline_strips_terminators(pair) -> None:
    channel, other = pair
    other.sendall(b"first\r\nsecond\n")
    assert channel.readline() == "first"
    assert channel.readline() == "second"


def test_readline_returns_none_at_eof(pair) -> None:
    channel, other = pair
    other.shutdown(socket.SHUT_WR)
    assert channel.readline() is None


def test_invalid_utf8_is_replaced(pair) -> None:
    channel, other = pair
    other.sendall(b"bad \xff byte\n")
    assert channel.readline() == "bad � byte"


def test_close_is_idempotent_and_stops_writes(pair) -> None:
    channel, _ = pair
    channel.close()
    channel.close()

    assert channel.closed
    assert channel.readline() is None
    with pytest.raises(TransportFailure):
        channel.write_line("too late")


def test_close_flushes_queued_lines(pair) -> None:
    channel, other = pair
    channel.write_line("Server is shutting down. Please disconnect.")
    channel.close()
    assert _recv_line(other) == b"Server is shutting down. Please disconnect.\n"


def test_open_channel_fails_on_closed_port() -> None:
    spare = socket.socket()
    spare.bind(("127.0.0.1", 0))
    port = spare.getsockname()[1]
    spare.close()

    with pytest.raises(OSError):
        open_channel("127.0.0.1", port, timeout=2.0)


def test_peer_that_stops_reading_overflows_the_outbox() -> None:
    a, b = socket.socketpair()
    a.setsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF, 4096)
    channel = SocketChannel(a, peer="stalled", max_pending=2, linger_s=0.1)
    payload = "x" * 65536
    try:
        with pytest.raises(TransportFailure):
            for _ in range(1000):
                channel.write_line(payload)
        assert channel.closed
        with pytest.raises(TransportFailure):
            channel.write_line("after failure")
    finally:
        channel.close()
        b.close()


def test_overlong_line_is_a_transport_failure() -> None:
    a, b = socket.socketpair()
    channel = SocketChannel(a, peer="local", max_line_bytes=8)
    try:
        b.sendall(b"12345678\n" + b"y" * 20 + b"\n")
        assert channel.readline() == "12345678"
        with pytest.raises(TransportFailure):
            channel.readline()
    finally:
        channel.close()
        b.close()


def test_read_timeout_bounds_readline(pair) -> None:
    channel, _ = pair
    channel.set_read_timeout(0.2)
    with pytest.raises(TransportFailure):
        channel.readline()
