"""
Exception hierarchy for the wallet garbage collector.

Per-batch and per-network errors are caught by the layer that degrades them;
only registry and report failures are expected to reach the CLI.
"""

from typing import Optional


class GarbageCollectorError(Exception):
    """Base class for all errors raised by this project."""

    pass


class ConfigurationError(GarbageCollectorError, ValueError):
    """Raised when a network descriptor is unusable for scanning."""

    pass


class RegistryError(GarbageCollectorError):
    """Raised when the network registry itself cannot be loaded."""

    pass


class RPCError(GarbageCollectorError):
    """Raised for transport, HTTP and JSON-RPC errors during a node call."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TokenListError(GarbageCollectorError):
    """Raised when a network's token candidate list cannot be obtained."""

    pass


class PriceLookupError(GarbageCollectorError):
    """Raised when the price oracle request fails."""

    pass


class ReportError(GarbageCollectorError):
    """Raised when a saved report cannot be read back."""

    pass


class SwapError(GarbageCollectorError):
    """Raised when the swap aggregator cannot produce a quote or transaction."""

    pass


class ScanCancelledError(GarbageCollectorError):
    """Raised inside a network scan once its cancel event has been set."""

    pass
