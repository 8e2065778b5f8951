"""Core schema helpers for waybackx."""

from .errors import ConfigError, InputError, WaybackError
from .keys import *  # noqa: F401,F403 re-export stable keys

__all__ = ["ConfigError", "InputError", "WaybackError"] + [name for name in globals() if name.startswith("K_")]
