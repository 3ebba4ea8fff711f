"""Small shared helpers."""

import os
import time
from pathlib import Path


def get_tagshelf_home() -> Path:
    """Directory holding the default database.

    Respects TAGSHELF_HOME, falling back to ~/.tagshelf.
    """
    env_home = os.environ.get("TAGSHELF_HOME")
    if env_home:
        return Path(env_home).expanduser()
    return Path.home() / ".tagshelf"


def now_millis() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)
