from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, replace
from typing import Any

from .constants import (
    DEFAULT_CLIENT_HOST,
    DEFAULT_PORT,
    DEFAULT_SERVER_HOST,
    HANDSHAKE_TIMEOUT_S,
    MAX_CLIENTS,
    MAX_LINE_BYTES,
    NICK_MAX_CHARS,
    RECONNECT_ATTEMPTS,
    RECONNECT_DELAY_S,
)

log = logging.getLogger("linechat.config")


@dataclass(frozen=True)
class ServerRuntimeConfig:
    config_path: str | None = None
    host: str = DEFAULT_SERVER_HOST
    port: int = DEFAULT_PORT
    max_clients: int = MAX_CLIENTS
    nick_max_chars: int = NICK_MAX_CHARS
    handshake_timeout_s: float = HANDSHAKE_TIMEOUT_S
    max_line_bytes: int = MAX_LINE_BYTES
    close_timeout_s: float = 2.0
    show_progress: bool = True
    log_level: str = "INFO"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
    log_datefmt: str | None = None


@dataclass(frozen=True)
class ClientRuntimeConfig:
    config_path: str | None = None
    host: str = DEFAULT_CLIENT_HOST
    port: int = DEFAULT_PORT
    reconnect_attempts: int = RECONNECT_ATTEMPTS
    reconnect_delay_s: float = RECONNECT_DELAY_S
    connect_timeout_s: float = 10.0
    show_progress: bool = True


def parse_port(value: Any, default: int = DEFAULT_PORT) -> int:
    """Return ``value`` as a TCP port, or ``default`` if it is not one."""
    try:
        port = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    if port < 1 or port > 65535:
        return default
    return port


def load_toml(path: str) -> dict:
    import tomllib

    with open(path, "rb") as f:
        return tomllib.load(f)


def read_config_file(path: str | None) -> dict:
    """Load the TOML config file, or an empty table if it is missing or broken."""
    if not path:
        return {}
    if not os.path.exists(path):
        log.warning("Config file not found at %s; using default settings", path)
        return {}
    try:
        data = load_toml(path)
    except (OSError, ValueError) as e:
        log.error("Error reading configuration file %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def _section(data: dict, name: str) -> dict:
    table = data.get(name)
    return table if isinstance(table, dict) else {}


def apply_server_config(cfg: ServerRuntimeConfig, data: dict) -> ServerRuntimeConfig:
    merged: dict[str, Any] = dict(_section(data, "server"))

    log_table = _section(data, "logging")
    for key in ("level", "console", "file", "format", "datefmt"):
        if key in log_table:
            merged[f"log_{key}"] = log_table[key]

    allowed = set(asdict(cfg).keys())
    # This identifies where the file came from; do not let the file override it.
    allowed.discard("config_path")
    updates = {k: v for k, v in merged.items() if k in allowed}

    if "port" in updates:
        port = parse_port(updates["port"], -1)
        if port < 0:
            log.error(
                "Invalid port number %r in configuration; using default port %s",
                updates["port"],
                DEFAULT_PORT,
            )
            port = DEFAULT_PORT
        updates["port"] = port
    if "max_clients" in updates:
        try:
            updates["max_clients"] = max(1, int(updates["max_clients"]))
        except (TypeError, ValueError):
            log.error("Invalid max_clients %r in configuration", updates["max_clients"])
            updates.pop("max_clients")
    if "max_line_bytes" in updates:
        try:
            updates["max_line_bytes"] = max(64, int(updates["max_line_bytes"]))
        except (TypeError, ValueError):
            log.error("Invalid max_line_bytes %r in configuration", updates["max_line_bytes"])
            updates.pop("max_line_bytes")
    for key in ("handshake_timeout_s", "close_timeout_s"):
        if key in updates:
            try:
                updates[key] = max(0.1, float(updates[key]))
            except (TypeError, ValueError):
                log.error("Invalid %s %r in configuration", key, updates[key])
                updates.pop(key)
    if "log_file" in updates and updates["log_file"] == "":
        updates["log_file"] = None
    if "log_datefmt" in updates and updates["log_datefmt"] == "":
        updates["log_datefmt"] = None
    return replace(cfg, **updates) if updates else cfg


def apply_client_config(cfg: ClientRuntimeConfig, data: dict) -> ClientRuntimeConfig:
    table = _section(data, "client")

    allowed = set(asdict(cfg).keys())
    allowed.discard("config_path")
    updates = {k: v for k, v in table.items() if k in allowed}

    if "port" in updates:
        updates["port"] = parse_port(updates["port"])
    if "reconnect_attempts" in updates:
        try:
            updates["reconnect_attempts"] = max(0, int(updates["reconnect_attempts"]))
        except (TypeError, ValueError):
            updates.pop("reconnect_attempts")
    for key in ("reconnect_delay_s", "connect_timeout_s"):
        if key in updates:
            try:
                updates[key] = max(0.0, float(updates[key]))
            except (TypeError, ValueError):
                updates.pop(key)
    return replace(cfg, **updates) if updates else cfg
