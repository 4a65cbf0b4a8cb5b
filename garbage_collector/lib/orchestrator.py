"""
Concurrent scanning across all configured networks.

Each network is scanned by its own task on a thread pool. Tasks are isolated:
a failing or slow network only delays the final join, and results are merged
into one ScanResult keyed by network name.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Dict, List, Optional

from .batch_aggregator import BatchAggregator
from .console import log
from .errors import ConfigurationError, PriceLookupError, ScanCancelledError, TokenListError
from .models import NetworkDescriptor, ScanResult
from .prices import PriceClient
from .token_lists import TokenListProvider, native_token


class ScanOrchestrator:
    """Fans the batch aggregator out over networks and merges the results."""

    def __init__(
        self,
        aggregator: BatchAggregator,
        token_provider: TokenListProvider,
        price_client: PriceClient,
        max_workers: Optional[int] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            aggregator: Scanner used for every network
            token_provider: Source of each network's candidate tokens
            price_client: Price enricher for non-empty results
            max_workers: Thread pool size (defaults to one per network)
        """
        self.aggregator = aggregator
        self.token_provider = token_provider
        self.price_client = price_client
        self.max_workers = max_workers

    def scan_network(
        self,
        network: NetworkDescriptor,
        wallet: str,
        results: ScanResult,
        cancel_event: threading.Event,
    ) -> None:
        """
        Scan one network and publish its balances.

        Token-list and price failures are handled here; a cancelled scan never
        publishes anything.
        """
        if cancel_event.is_set():
            return
        log(network.name, "Starting wallet scan...")

        try:
            tokens = self.token_provider.get_tokens(network)
        except TokenListError as e:
            log(network.name, f"ERROR: {e}. Skipping network.")
            return

        tokens.append(native_token(network))
        log(network.name, f"Checking {len(tokens)} tokens")

        try:
            balances = self.aggregator.scan(network, wallet, tokens, cancel_event=cancel_event)
        except ScanCancelledError:
            log(network.name, "Scan cancelled. Results discarded.")
            return

        if not balances:
            log(network.name, "No non-zero balances found")
            return

        try:
            priced = self.price_client.enrich(network.name, balances)
            log(network.name, f"Priced {priced} of {len(balances)} balance(s)")
        except PriceLookupError as e:
            log(network.name, f"Price lookup failed: {e}. Reporting balances without prices.")

        if cancel_event.is_set():
            log(network.name, "Scan cancelled. Results discarded.")
            return

        results.publish(network.name, balances)
        log(network.name, f"Found {len(balances)} non-zero balance(s)")

    def scan_all_networks(
        self,
        networks: List[NetworkDescriptor],
        wallet: str,
        timeout: Optional[float] = None,
    ) -> ScanResult:
        """
        Scan a wallet on every network concurrently.

        Args:
            networks: Networks to scan
            wallet: Wallet address
            timeout: Overall deadline in seconds; unfinished networks are
                cancelled at their next batch boundary

        Returns:
            ScanResult holding only networks with non-zero balances
        """
        results = ScanResult()
        cancel_event = threading.Event()

        scannable: List[NetworkDescriptor] = []
        for network in networks:
            try:
                network.validate_for_scanning()
            except ConfigurationError as e:
                log(network.name, f"ERROR: {e}. Skipping network.")
                continue
            scannable.append(network)

        if not scannable:
            return results

        workers = self.max_workers or len(scannable)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures: Dict[Future, NetworkDescriptor] = {
                executor.submit(self.scan_network, network, wallet, results, cancel_event): network
                for network in scannable
            }

            _, pending = wait(futures, timeout=timeout)
            if pending:
                names = ", ".join(sorted(futures[future].name for future in pending))
                log("orchestrator", f"Timed out after {timeout}s. Cancelling: {names}")
                cancel_event.set()
                wait(pending)

            for future, network in futures.items():
                error = future.exception()
                if error is not None:
                    log(network.name, f"ERROR: unexpected failure: {error!r}. Skipping network.")

        return results
