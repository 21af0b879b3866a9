"""Statistics tracking and reporting for the chat server."""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .service import ChatServer


class StatsManager:
    """
    Thread-safe lifetime counters for the chat server.

    Tracks:
    - Connections accepted and rejected
    - Joins and parts
    - Broadcast and private messages forwarded
    - Command errors reported to senders
    - Bytes in/out
    """

    def __init__(self, server: ChatServer) -> None:
        self.server = server
        self._lock = threading.Lock()

        self.started_wall_time: float | None = None
        self.started_monotonic: float | None = None

        self._counters: dict[str, int] = {
            "connections": 0,
            "rejected": 0,
            "joins": 0,
            "parts": 0,
            "msgs_forwarded": 0,
            "private_msgs": 0,
            "command_errors": 0,
            "bytes_in": 0,
            "bytes_out": 0,
        }

    def set_start_time(self) -> None:
        self.started_wall_time = time.time()
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        with self._lock:
            self._counters[key] = int(self._counters.get(key, 0)) + int(delta)

    def get(self, key: str) -> int:
        with self._lock:
            return int(self._counters.get(key, 0))

    def format_stats(self) -> str:
        from . import __version__

        started = self.started_monotonic
        uptime_s = (time.monotonic() - started) if started is not None else 0.0

        with self._lock:
            c = dict(self._counters)
        names = self.server.session_manager.names()

        lines: list[str] = []
        lines.append(f"linechat {__version__} stats")
        lines.append(f"uptime_s={uptime_s:.1f}")
        lines.append(f"clients={len(names)} max_clients={self.server.config.max_clients}")
        lines.append(
            "connections: accepted={} rejected={}".format(
                c.get("connections", 0), c.get("rejected", 0)
            )
        )
        lines.append(
            "events: joins={} parts={} msgs_fwd={} private_msgs={} command_errors={}".format(
                c.get("joins", 0),
                c.get("parts", 0),
                c.get("msgs_forwarded", 0),
                c.get("private_msgs", 0),
                c.get("command_errors", 0),
            )
        )
        lines.append(
            "io: bytes_in={} bytes_out={}".format(c.get("bytes_in", 0), c.get("bytes_out", 0))
        )
        return "\n".join(lines)
