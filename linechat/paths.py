from __future__ import annotations

import os
from pathlib import Path

from .util import expand_path


def default_linechat_dir() -> Path:
    override = os.environ.get("LINECHAT_HOME")
    if override:
        return Path(expand_path(override))
    return Path.home() / ".linechat"


def default_config_path() -> Path:
    return default_linechat_dir() / "linechat.toml"
