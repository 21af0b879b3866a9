"""Construction of the text lines the server sends to clients."""

from __future__ import annotations

from .constants import SELF_ECHO_PREFIX, SYSTEM_PREFIX


def system_notice(text: str) -> str:
    return f"{SYSTEM_PREFIX} {text}"


def joined_notice(name: str) -> str:
    return system_notice(f"{name} has joined the chat.")


def left_notice(name: str) -> str:
    return system_notice(f"{name} has left the chat.")


def active_users(names: list[str]) -> str:
    return system_notice("Active users: " + ", ".join(names))


def chat_line(sender: str, text: str) -> str:
    return f"{sender}: {text}"


def self_echo(text: str) -> str:
    return f"{SELF_ECHO_PREFIX}{text}"


def private_from(sender: str, text: str) -> str:
    return f"[Private Message from {sender}] {text}"


def private_to(recipient: str, text: str) -> str:
    return f"[Private Message to {recipient}] {text}"


def error_line(text: str) -> str:
    return f"[ERROR] {text}"
