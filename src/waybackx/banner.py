"""Startup banner and version text (written to stderr, never stdout)."""

from __future__ import annotations

import sys
from typing import Optional, TextIO

from . import __version__

BANNER = r"""
                          __                  __              
 _      __ ____ _ __  __ / /_   ____ _ _____ / /__ _  __
| | /| / // __  // / / // __ \ / __  // ___// //_/| |/_/
| |/ |/ // /_/ // /_/ // /_/ // /_/ // /__ / ,<  _>  <  
|__/|__/ \__,_/ \__, //_.___/ \__,_/ \___//_/|_|/_/|_|  
               /____/
"""


def version_line() -> str:
    return f"Current waybackx version v{__version__}"


def format_banner() -> str:
    return f"{BANNER}\n{version_line():>60}\n"


def print_banner(stream: Optional[TextIO] = None) -> None:
    print(format_banner(), file=stream or sys.stderr)
