#!/usr/bin/env python3
"""
Find every non-zero token balance of a wallet across many EVM networks.

This script scans each network in the registry concurrently, reading token
balances in batches through the network's multicall contract, prices the
results, writes a JSON report per wallet and prints per-chain totals.
"""

import argparse
import sys
from typing import Dict, List, Optional

from eth_utils import is_address, to_checksum_address

from garbage_collector.lib.batch_aggregator import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_MAX_RETRIES,
    BatchAggregator,
)
from garbage_collector.lib.console import log
from garbage_collector.lib.errors import RegistryError, ReportError, SwapError
from garbage_collector.lib.formatters import (
    DEFAULT_OUTPUT_DIR,
    print_summary,
    read_report,
    write_report,
)
from garbage_collector.lib.models import BalanceRecord, NetworkDescriptor
from garbage_collector.lib.orchestrator import ScanOrchestrator
from garbage_collector.lib.prices import PriceClient
from garbage_collector.lib.registry import DEFAULT_CHAINS_FILE, filter_networks, load_registry
from garbage_collector.lib.swap_quotes import OdosClient, SUPPORTED_NETWORKS, is_native_token
from garbage_collector.lib.token_lists import DEFAULT_CACHE_DIR, TokenListProvider


def positive_int(value: str) -> int:
    """argparse type for strictly positive integers."""
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return number


def validate_wallets(wallets: List[str]) -> List[str]:
    """
    Validate wallet addresses and normalize them to checksum form.

    Invalid addresses are logged and dropped so the remaining wallets can
    still be scanned.

    Args:
        wallets: Wallet addresses as given on the command line

    Returns:
        Checksummed valid addresses, in input order
    """
    validated = []
    for wallet in wallets:
        if not is_address(wallet):
            log("wallet", f"Error parsing address {wallet}. Skipping.")
            continue
        validated.append(to_checksum_address(wallet))
    return validated


def quote_swaps(
    client: OdosClient,
    networks: List[NetworkDescriptor],
    balances: Dict[str, List[BalanceRecord]],
    wallet: str,
    assemble: bool = False,
) -> int:
    """
    Print an Odos quote into native coin for every non-native balance.

    With assemble set, each quoted path is also assembled into an unsigned,
    simulated transaction. Nothing is signed or sent.

    Returns:
        Number of balances quoted
    """
    by_name = {network.name: network for network in networks}
    quoted = 0
    for network_name, records in sorted(balances.items()):
        network = by_name.get(network_name)
        if network is None or network.name not in SUPPORTED_NETWORKS:
            continue
        for record in records:
            if is_native_token(record.token_address):
                continue
            try:
                quote = client.get_quote(network, record, wallet)
            except SwapError as e:
                log(network_name, f"No swap quote for {record.token_symbol}: {e}")
                continue
            log(
                network_name,
                f"Swap {record.token_symbol} -> {network.currency}: "
                f"out {quote.out_amounts[0] if quote.out_amounts else '?'} "
                f"(net value {quote.net_out_value:.2f}, path {quote.path_id})",
            )
            quoted += 1
            if assemble:
                try:
                    transaction = client.assemble(quote.path_id, wallet)
                except SwapError as e:
                    log(network_name, f"Could not assemble swap for {record.token_symbol}: {e}")
                    continue
                log(
                    network_name,
                    f"Assembled swap for {record.token_symbol}: to {transaction.get('to')}, "
                    f"gas {transaction.get('gas')}",
                )
    return quoted


def main(args: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        args: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parser = argparse.ArgumentParser(
        description=(
            "Find non-zero token balances of wallets across EVM networks "
            "and write a priced JSON report."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Scan every network in data/chains.json
  %(prog)s --wallet 0x...

  # Scan two networks only, with smaller batches
  %(prog)s --wallet 0x... --networks Ethereum Base --batch-size 200

  # Print the last saved report
  %(prog)s --wallet 0x... --show-report

  # Quote and simulate converting every balance into native coin
  %(prog)s --wallet 0x... --quote-swaps --assemble-swaps
        """,
    )

    parser.add_argument(
        "--wallet",
        nargs="+",
        required=True,
        help="Wallet address(es) to scan",
    )
    parser.add_argument(
        "--chains-file",
        default=DEFAULT_CHAINS_FILE,
        help=f"Network registry JSON (default: {DEFAULT_CHAINS_FILE})",
    )
    parser.add_argument(
        "--token-lists-dir",
        default=DEFAULT_CACHE_DIR,
        help=f"Token list cache directory (default: {DEFAULT_CACHE_DIR})",
    )
    parser.add_argument(
        "--output-dir",
        default=DEFAULT_OUTPUT_DIR,
        help=f"Report directory (default: {DEFAULT_OUTPUT_DIR})",
    )
    parser.add_argument(
        "--networks",
        nargs="+",
        help="Networks to scan (default: all networks in the registry)",
    )
    parser.add_argument(
        "--batch-size",
        type=positive_int,
        default=DEFAULT_BATCH_SIZE,
        help=f"Tokens per multicall batch (default: {DEFAULT_BATCH_SIZE})",
    )
    parser.add_argument(
        "--max-retries",
        type=positive_int,
        default=DEFAULT_MAX_RETRIES,
        help=f"Failed attempts before a batch is abandoned (default: {DEFAULT_MAX_RETRIES})",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Overall scan deadline per wallet, in seconds",
    )
    parser.add_argument(
        "--show-report",
        action="store_true",
        help="Print the saved report of each wallet instead of scanning",
    )
    parser.add_argument(
        "--quote-swaps",
        action="store_true",
        help="After scanning, print Odos quotes for converting balances into native coin",
    )
    parser.add_argument(
        "--assemble-swaps",
        action="store_true",
        help="Also assemble and simulate each quoted swap, never signed or sent (implies --quote-swaps)",
    )

    parsed_args = parser.parse_args(args)

    wallets = validate_wallets(parsed_args.wallet)
    if not wallets:
        print("Error: no valid wallet address given", file=sys.stderr)
        return 1

    if parsed_args.show_report:
        for wallet in wallets:
            try:
                balances = read_report(wallet, parsed_args.output_dir)
            except ReportError as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1
            print(f"Wallet: {wallet}")
            print_summary(balances)
        return 0

    # Load networks
    try:
        networks = load_registry(parsed_args.chains_file)
        if parsed_args.networks:
            networks = filter_networks(networks, parsed_args.networks)
    except (RegistryError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    orchestrator = ScanOrchestrator(
        aggregator=BatchAggregator(
            batch_size=parsed_args.batch_size,
            max_retries=parsed_args.max_retries,
        ),
        token_provider=TokenListProvider(parsed_args.token_lists_dir),
        price_client=PriceClient(),
    )

    for wallet in wallets:
        log("wallet", f"Scanning {wallet} on {len(networks)} network(s)")
        result = orchestrator.scan_all_networks(networks, wallet, timeout=parsed_args.timeout)
        balances = result.as_dict()

        print(f"Wallet: {wallet}")
        print_summary(balances)

        try:
            report_file = write_report(balances, wallet, parsed_args.output_dir)
        except OSError as e:
            print(f"Error: failed to write report: {e}", file=sys.stderr)
            return 1
        print(f"\nResults written to: {report_file}", file=sys.stderr)

        if parsed_args.quote_swaps or parsed_args.assemble_swaps:
            quote_swaps(OdosClient(), networks, balances, wallet, assemble=parsed_args.assemble_swaps)

    return 0


if __name__ == "__main__":
    sys.exit(main())
