from __future__ import annotations


def encode(text: str) -> bytes:
    return text.encode("utf-8") + b"\n"


def decode(b: bytes) -> str:
    return b.decode("utf-8", errors="replace").rstrip("\r\n")
