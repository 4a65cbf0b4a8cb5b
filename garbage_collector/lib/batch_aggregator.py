"""
Batched balance scanning for a single network.

This module turns a list of candidate tokens into the wallet's non-zero
balances on one network. Tokens are partitioned into fixed-size batches, each
batch is read through one tryAggregate call against the network's batch-call
contract, and a failing batch is retried with endpoint failover or a fixed
backoff before being abandoned.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterator, List, Optional, Sequence, Tuple

from .call_encoder import decode_balance, encode_balance_call
from .console import log, log_debug
from .errors import RPCError, ScanCancelledError
from .models import BalanceRecord, NetworkDescriptor, TokenDescriptor
from .rpc_client import RPCClient, sanitize_endpoint


DEFAULT_BATCH_SIZE = 500
DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_DELAY = 3.0  # seconds, single-endpoint networks only
DEFAULT_BATCH_DELAY = 0.2  # seconds, after every batch


def iter_batches(tokens: Sequence[TokenDescriptor], batch_size: int) -> Iterator[List[TokenDescriptor]]:
    """
    Yield consecutive batches of at most batch_size tokens.

    The last batch is always flushed even when it is smaller than batch_size.

    Examples:
        500 tokens, batch_size 500 -> one batch of 500
        501 tokens, batch_size 500 -> batches of 500 and 1
        0 tokens -> no batches
    """
    if batch_size <= 0:
        raise ValueError(f"Batch size must be positive, got {batch_size}")
    for start in range(0, len(tokens), batch_size):
        yield list(tokens[start : start + batch_size])


@dataclass
class _FailoverState:
    """Endpoint state for one aggregation pass. Never shared across networks."""

    client: Any
    endpoint_index: int = 0


class BatchAggregator:
    """
    Reads many token balances for one wallet through a batch-call contract.

    Batches of a network are processed strictly one after another. Per-token
    problems and exhausted batches only shrink the result; they never raise.
    """

    def __init__(
        self,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        client_factory: Callable[[str], Any] = RPCClient,
    ):
        """
        Initialize the aggregator.

        Args:
            batch_size: Maximum number of tokens per aggregated call
            max_retries: Failed submissions after which a batch is abandoned
            retry_delay: Wait before resubmitting on a single-endpoint network
            batch_delay: Pause after every batch
            client_factory: Builds a client bound to one endpoint URL
        """
        if batch_size <= 0:
            raise ValueError(f"Batch size must be positive, got {batch_size}")
        if max_retries <= 0:
            raise ValueError(f"Max retries must be positive, got {max_retries}")
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.batch_delay = batch_delay
        self.client_factory = client_factory

    def scan(
        self,
        network: NetworkDescriptor,
        wallet: str,
        tokens: Sequence[TokenDescriptor],
        cancel_event: Optional[threading.Event] = None,
    ) -> List[BalanceRecord]:
        """
        Scan a wallet's balances of the given tokens on one network.

        Args:
            network: Network to scan
            wallet: Wallet address
            tokens: Candidate tokens, native sentinel included if wanted
            cancel_event: When set, the scan stops before the next submission
                and any pending wait is cut short

        Returns:
            Non-zero balances in token order

        Raises:
            ConfigurationError: If the network has no batch-call contract
            ScanCancelledError: If cancel_event was set during the scan
        """
        network.validate_for_scanning()

        state = _FailoverState(client=self.client_factory(network.rpc_endpoints[0]))
        balances: List[BalanceRecord] = []
        abandoned = 0

        try:
            for batch_number, batch in enumerate(iter_batches(tokens, self.batch_size), start=1):
                self._check_cancelled(network, cancel_event)

                results = self._submit_with_retry(
                    network, wallet, batch, state, batch_number, cancel_event
                )
                if results is None:
                    abandoned += 1
                else:
                    balances.extend(self._collect_balances(batch, results))

                self._pause(self.batch_delay, cancel_event)
        finally:
            state.client.close()

        if abandoned:
            log(network.name, f"{abandoned} batch(es) abandoned after retries were exhausted")
        return balances

    def _submit_with_retry(
        self,
        network: NetworkDescriptor,
        wallet: str,
        batch: List[TokenDescriptor],
        state: _FailoverState,
        batch_number: int,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[List[Tuple[bool, bytes]]]:
        """
        Submit one batch, retrying on RPC failures.

        With several endpoints, the k-th failure moves the pass to endpoint
        k mod endpoint count. With a single endpoint, the same call is
        resubmitted after retry_delay.

        Returns:
            The sub-results, or None if the batch was abandoned

        Raises:
            ScanCancelledError: If cancel_event is set before an attempt
        """
        calls = [encode_balance_call(wallet, token, network.batch_call_address) for token in batch]
        endpoint_count = len(network.rpc_endpoints)
        retry_count = 0

        while retry_count < self.max_retries:
            self._check_cancelled(network, cancel_event)
            try:
                results = state.client.try_aggregate(network.batch_call_address, calls)
                log_debug(
                    network.name,
                    f"Batch {batch_number}: {len(calls)} calls via "
                    f"{sanitize_endpoint(network.rpc_endpoints[state.endpoint_index])}",
                )
                return results
            except RPCError as e:
                retry_count += 1
                log(
                    network.name,
                    f"Batch {batch_number}: RPC call failed ({e}). Retry count: {retry_count}",
                )
                if retry_count >= self.max_retries:
                    break
                if endpoint_count > 1:
                    state.endpoint_index = retry_count % endpoint_count
                    state.client.close()
                    state.client = self.client_factory(network.rpc_endpoints[state.endpoint_index])
                else:
                    self._pause(self.retry_delay, cancel_event)

        log(
            network.name,
            f"Batch {batch_number}: giving up after {retry_count} failed attempts, "
            f"{len(batch)} token(s) skipped",
        )
        return None

    @staticmethod
    def _check_cancelled(network: NetworkDescriptor, cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ScanCancelledError(f"Scan of {network.name} cancelled")

    @staticmethod
    def _pause(seconds: float, cancel_event: Optional[threading.Event]) -> None:
        """Wait, returning early once cancel_event is set."""
        if cancel_event is None:
            time.sleep(seconds)
        else:
            cancel_event.wait(seconds)

    @staticmethod
    def _collect_balances(
        batch: List[TokenDescriptor], results: List[Tuple[bool, bytes]]
    ) -> List[BalanceRecord]:
        """Turn decoded sub-results into records, dropping absent and zero values."""
        records: List[BalanceRecord] = []
        for token, (success, return_data) in zip(batch, results):
            balance = decode_balance(success, return_data)
            if balance is not None:
                records.append(BalanceRecord.from_token(token, balance))
        return records
