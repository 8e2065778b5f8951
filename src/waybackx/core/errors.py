"""Exception types shared across waybackx."""

from __future__ import annotations


class WaybackError(Exception):
    """Base class for waybackx errors."""


class ConfigError(WaybackError, ValueError):
    """Invalid startup configuration (mode, retry ceiling, rule table)."""


class InputError(WaybackError):
    """Domains could not be read from the input stream."""
