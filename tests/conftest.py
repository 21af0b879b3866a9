import io
import queue
import threading
import time

import pytest
from rich.console import Console

from linechat.config import ClientRuntimeConfig, ServerRuntimeConfig
from linechat.console import ChatConsole
from linechat.errors import TransportFailure
from linechat.service import ChatServer


class FakeChannel:
    """In-memory stand-in for SocketChannel that records what was written."""

    def __init__(self, lines=(), peer="127.0.0.1:50000", read_timeout=5.0):
        self.peer = peer
        self.read_timeout = read_timeout
        self.sent = []
        self.events = []
        self.close_calls = 0
        self.fail_writes = False
        self.read_timeouts = []
        self._closed = False
        self._incoming = queue.Queue()
        for line in lines:
            self._incoming.put(line)

    @property
    def closed(self):
        return self._closed

    def feed(self, line):
        self._incoming.put(line)

    def end(self):
        self._incoming.put(None)

    def readline(self):
        if self._closed:
            return None
        try:
            item = self._incoming.get(timeout=self.read_timeout)
        except queue.Empty:
            return None
        if isinstance(item, Exception):
            raise item
        return item

    def set_read_timeout(self, timeout):
        self.read_timeouts.append(timeout)

    def write_line(self, text):
        if self._closed:
            raise TransportFailure("closed")
        if self.fail_writes:
            raise TransportFailure("broken pipe")
        self.sent.append(text)
        self.events.append(("write", text))

    def close(self):
        self.close_calls += 1
        self.events.append(("close", None))
        self._closed = True
        self._incoming.put(None)


def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def make_channel():
    return FakeChannel


@pytest.fixture
def server():
    srv = ChatServer(ServerRuntimeConfig(max_clients=4, close_timeout_s=1.0))
    yield srv
    if not srv.is_shutting_down:
        srv.stop()


@pytest.fixture
def join(server):
    """Register a session through the normal handshake and return it."""

    def _join(name):
        return server.open_session(FakeChannel([name], peer=f"{name}:1"))

    return _join


@pytest.fixture
def quiet_console():
    return ChatConsole(Console(file=io.StringIO(), force_terminal=False))


@pytest.fixture
def client_config():
    return ClientRuntimeConfig(
        host="127.0.0.1",
        port=65534,
        reconnect_attempts=5,
        reconnect_delay_s=0.0,
        show_progress=False,
    )


@pytest.fixture
def run_in_thread():
    threads = []

    def _run(target, *args):
        t = threading.Thread(target=target, args=args, daemon=True)
        t.start()
        threads.append(t)
        return t

    yield _run
    for t in threads:
        t.join(2.0)


@pytest.fixture
def wait():
    return wait_until
