"""
Pytest configuration and shared fixtures for wallet garbage collector tests.
"""

import threading
from typing import Dict, List, Tuple

import pytest
from eth_abi import encode

from garbage_collector.lib.errors import RPCError
from garbage_collector.lib.models import NetworkDescriptor, TokenDescriptor


MULTICALL3_ADDRESS = "0xcA11bde05977b3631167028862bE2a173976CA11"


def uint256(value: int) -> bytes:
    """ABI-encode an unsigned integer as a 32-byte word."""
    return encode(["uint256"], [value])


class FakeNode:
    """
    Stand-in for the RPC nodes behind one or more endpoints.

    Answers tryAggregate calls from per-endpoint balances keyed by call
    target, fails a configured number of times per endpoint, and records
    every submission.
    """

    def __init__(self):
        self.results: Dict[Tuple[str, str], Tuple[bool, bytes]] = {}
        self.failures: Dict[str, int] = {}
        self.delays: Dict[str, float] = {}
        self.submissions: List[Tuple[str, list]] = []
        self.clients_built: List[str] = []
        self.clients_closed: List[str] = []
        self._lock = threading.Lock()

    def set_balance(self, endpoint: str, target: str, value: int) -> None:
        self.results[(endpoint, target.lower())] = (True, uint256(value))

    def set_result(self, endpoint: str, target: str, success: bool, data: bytes) -> None:
        self.results[(endpoint, target.lower())] = (success, data)

    def fail(self, endpoint: str, times: int) -> None:
        self.failures[endpoint] = times

    def delay(self, endpoint: str, seconds: float) -> None:
        self.delays[endpoint] = seconds

    def endpoints_used(self) -> List[str]:
        return [endpoint for endpoint, _ in self.submissions]

    def factory(self, endpoint: str) -> "FakeClient":
        with self._lock:
            self.clients_built.append(endpoint)
        return FakeClient(self, endpoint)


class FakeClient:
    def __init__(self, node: FakeNode, endpoint: str):
        self.node = node
        self.endpoint = endpoint

    def close(self):
        with self.node._lock:
            self.node.clients_closed.append(self.endpoint)

    def try_aggregate(self, batch_call_address, calls):
        node = self.node
        with node._lock:
            node.submissions.append((self.endpoint, list(calls)))
            if node.failures.get(self.endpoint, 0) > 0:
                node.failures[self.endpoint] -= 1
                raise RPCError(f"node at {self.endpoint} unavailable", status_code=503)
        if node.delays.get(self.endpoint):
            threading.Event().wait(node.delays[self.endpoint])
        return [
            node.results.get((self.endpoint, call.target.lower()), (True, uint256(0)))
            for call in calls
        ]


@pytest.fixture
def sample_wallet_address():
    """Sample Ethereum wallet address for testing."""
    return "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"  # vitalik.eth


@pytest.fixture
def fake_node():
    return FakeNode()


@pytest.fixture
def make_network():
    """Factory for network descriptors with Multicall3 as batch-call contract."""

    def _make(name="Ethereum", endpoints=("https://rpc-a.example.com/rpc",), chain_id=1, **kwargs):
        kwargs.setdefault("batch_call_address", MULTICALL3_ADDRESS)
        return NetworkDescriptor(
            id=chain_id,
            name=name,
            rpc_endpoints=tuple(endpoints),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_tokens():
    """Factory for n ERC-20 descriptors with distinct numeric addresses."""

    def _make(count, offset=0, decimals=18):
        return [
            TokenDescriptor(
                address="0x" + format(offset + index + 1, "040x"),
                name=f"Token {offset + index + 1}",
                symbol=f"TK{offset + index + 1}",
                decimals=decimals,
            )
            for index in range(count)
        ]

    return _make
