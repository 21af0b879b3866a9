from __future__ import annotations

import os
import random
from datetime import datetime

_ADJECTIVES = ("Happy", "Cool", "Bright", "Calm", "Fast", "Rude", "Unlucky", "Lucky")
_NOUNS = ("Shark", "Tiger", "Wolf", "Hawk", "Bunny")


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def normalize_nick(value, max_chars: int = 32) -> str | None:
    if not isinstance(value, str):
        return None

    s = value.strip()
    if not s:
        return None

    if max_chars > 0 and len(s) > int(max_chars):
        return None

    # Names are used as lookup keys and shown inline in chat lines; reject
    # anything that would break a line or a /pm target.
    if any(ch.isspace() for ch in s) or not s.isprintable():
        return None

    return s


def present_time() -> str:
    return datetime.now().strftime("%H:%M:%S")


def random_nick(rng: random.Random | None = None) -> str:
    r = rng or random.Random()
    return f"{r.choice(_ADJECTIVES)}{r.choice(_NOUNS)}{r.randrange(1000)}"
