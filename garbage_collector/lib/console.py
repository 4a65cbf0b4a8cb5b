"""
Console logging helpers.

Everything diagnostic goes to stderr with a ``[network]`` prefix so that
stdout stays reserved for the report summary.
"""

import os
import sys


def debug_enabled() -> bool:
    """Return True when the DEBUG environment variable is set to a truthy value."""
    return os.environ.get("DEBUG", "").strip().lower() in ("1", "true", "yes", "on")


def log(network: str, message: str) -> None:
    """Log a message with network prefix."""
    print(f"[{network}] {message}", file=sys.stderr)


def log_debug(network: str, message: str) -> None:
    """Log a message only when DEBUG is enabled."""
    if debug_enabled():
        log(network, message)
