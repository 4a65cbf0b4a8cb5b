"""
Data models for multi-chain balance scanning.

This module defines the network and token descriptors consumed by the scanner,
the balance records it produces, and the thread-safe result map shared by the
per-network scan tasks.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from .errors import ConfigurationError


# Reserved address standing in for a chain's native coin
NATIVE_TOKEN_ADDRESS = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True)
class NetworkDescriptor:
    """
    Static configuration for one chain.

    Shared read-only across concurrent scans. A zero batch-call address is
    accepted here but rejected by validate_for_scanning().
    """

    id: int
    name: str
    rpc_endpoints: Tuple[str, ...]
    batch_call_address: str
    explorer: str = ""
    currency: str = "ETH"

    def __post_init__(self):
        if isinstance(self.id, bool) or not isinstance(self.id, int) or self.id <= 0:
            raise ConfigurationError(f"Chain id must be a positive integer, got {self.id!r}")
        if not self.name:
            raise ConfigurationError("Network name is required")
        endpoints = tuple(self.rpc_endpoints or ())
        if not endpoints:
            raise ConfigurationError(f"Network {self.name}: at least one RPC endpoint is required")
        object.__setattr__(self, "rpc_endpoints", endpoints)

    @property
    def has_batch_call(self) -> bool:
        """True if batched reads are possible on this network."""
        try:
            return int(self.batch_call_address, 16) != 0
        except (TypeError, ValueError):
            return False

    def validate_for_scanning(self) -> None:
        """Raise ConfigurationError if this network cannot be scanned."""
        if not self.has_batch_call:
            raise ConfigurationError(f"Network {self.name}: batch-call contract address is not set")


@dataclass(frozen=True)
class TokenDescriptor:
    """A candidate token from a network's token list."""

    address: str  # Contract address or NATIVE_TOKEN_ADDRESS
    name: str
    symbol: str
    decimals: int

    def __post_init__(self):
        if not 0 <= self.decimals <= 255:
            raise ValueError(f"Token {self.address}: decimals out of range: {self.decimals}")

    @property
    def is_native(self) -> bool:
        return self.address.lower() == NATIVE_TOKEN_ADDRESS.lower()


@dataclass
class BalanceRecord:
    """
    A non-zero token balance held by the scanned wallet.

    Zero balances are never materialized. fiat_price stays 0 until the price
    enricher runs, and is set at most once after that.
    """

    token_address: str
    token_name: str
    token_symbol: str
    decimals: int
    raw_balance: int
    fiat_price: float = 0.0

    def __post_init__(self):
        if self.raw_balance <= 0:
            raise ValueError(f"Balance for {self.token_address} must be positive")

    @classmethod
    def from_token(cls, token: TokenDescriptor, raw_balance: int) -> "BalanceRecord":
        """Build a record carrying the token's metadata."""
        return cls(
            token_address=token.address,
            token_name=token.name,
            token_symbol=token.symbol,
            decimals=token.decimals,
            raw_balance=raw_balance,
        )

    def set_fiat_price(self, price: float) -> None:
        self.fiat_price = float(price)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the JSON report. The raw balance is kept as a decimal string."""
        return {
            "token_address": self.token_address,
            "token_name": self.token_name,
            "token_symbol": self.token_symbol,
            "decimals": self.decimals,
            "balance": str(self.raw_balance),
            "token_price": self.fiat_price,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BalanceRecord":
        return cls(
            token_address=data["token_address"],
            token_name=data["token_name"],
            token_symbol=data["token_symbol"],
            decimals=int(data["decimals"]),
            raw_balance=int(data["balance"]),
            fiat_price=float(data.get("token_price", 0.0)),
        )


@dataclass(frozen=True)
class EncodedCall:
    """One sub-call of an aggregated read."""

    target: str
    call_data: bytes


@dataclass
class ScanResult:
    """
    Balances per network name, shared by all network tasks.

    Writes are serialized behind a single lock, held only while inserting one
    network's completed record list. Networks without balances are never
    inserted.
    """

    balances: Dict[str, List[BalanceRecord]] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def publish(self, network: str, records: List[BalanceRecord]) -> bool:
        """Insert a network's records. Returns False if there was nothing to insert."""
        if not records:
            return False
        with self._lock:
            self.balances[network] = list(records)
        return True

    def as_dict(self) -> Dict[str, List[BalanceRecord]]:
        """Snapshot copy of the current map."""
        with self._lock:
            return {name: list(records) for name, records in self.balances.items()}

    def networks(self) -> List[str]:
        with self._lock:
            return sorted(self.balances)

    def __len__(self) -> int:
        with self._lock:
            return len(self.balances)

    def __contains__(self, network: object) -> bool:
        with self._lock:
            return network in self.balances
