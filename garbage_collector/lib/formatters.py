"""
Report output for scanned wallet balances.

This module writes and reads the per-wallet JSON report and renders the
human-readable summary with per-chain and grand fiat totals.
"""

import json
import sys
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Mapping, Optional, TextIO

from .errors import ReportError
from .models import BalanceRecord


DEFAULT_OUTPUT_DIR = "results"
SEPARATOR = "---------------------------------"


def format_quantity(raw_balance: int, decimals: int) -> str:
    """
    Format balance with full precision, trimming trailing zeros.

    Args:
        raw_balance: Raw balance value (in smallest unit)
        decimals: Number of decimal places

    Returns:
        Formatted balance string with trailing zeros trimmed

    Examples:
        format_quantity(1000000, 6) -> "1"
        format_quantity(1500000, 6) -> "1.5"
        format_quantity(1234567890123456789, 18) -> "1.234567890123456789"
    """
    if raw_balance == 0:
        return "0"

    if decimals == 0:
        return str(raw_balance)

    balance = Decimal(raw_balance).scaleb(-decimals)
    formatted = format(balance, "f")

    if "." in formatted:
        formatted = formatted.rstrip("0").rstrip(".")

    return formatted


def fiat_value(record: BalanceRecord) -> Decimal:
    """Fiat value of a record: raw_balance / 10^decimals * fiat_price."""
    return Decimal(record.raw_balance).scaleb(-record.decimals) * Decimal(str(record.fiat_price))


def report_path(wallet: str, output_dir: str = DEFAULT_OUTPUT_DIR) -> Path:
    """
    Path of a wallet's JSON report.

    Examples:
        report_path("0xAbC...") -> results/tokens_0xabc....json
    """
    return Path(output_dir) / f"tokens_{wallet.lower()}.json"


def write_report(
    results: Mapping[str, List[BalanceRecord]],
    wallet: str,
    output_dir: str = DEFAULT_OUTPUT_DIR,
) -> str:
    """
    Write the balances of a wallet as pretty-printed JSON.

    Args:
        results: Balance records keyed by network name
        wallet: Scanned wallet address, used in the file name
        output_dir: Directory for reports (created if missing)

    Returns:
        Path of the written file

    Raises:
        OSError: If the report cannot be written
    """
    path = report_path(wallet, output_dir)
    path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        network: [record.to_dict() for record in records]
        for network, records in sorted(results.items())
    }
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
        f.write("\n")

    return str(path)


def read_report(wallet: str, output_dir: str = DEFAULT_OUTPUT_DIR) -> Dict[str, List[BalanceRecord]]:
    """
    Read a wallet's saved report.

    Raises:
        ReportError: If the file is missing or malformed
    """
    path = report_path(wallet, output_dir)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ReportError(f"Failed to read report {path}: {e}") from e
    except ValueError as e:
        raise ReportError(f"Report {path} is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ReportError(f"Report {path} must be a JSON object")

    try:
        return {
            network: [BalanceRecord.from_dict(entry) for entry in entries]
            for network, entries in data.items()
        }
    except (KeyError, TypeError, ValueError) as e:
        raise ReportError(f"Report {path} has a malformed entry: {e}") from e


def summarize(results: Mapping[str, List[BalanceRecord]]) -> List[str]:
    """
    Render the human-readable report.

    One block per chain lists each token's quantity and value followed by the
    chain total; the last line is the grand total.
    """
    lines: List[str] = []
    total = Decimal(0)

    for network, records in sorted(results.items()):
        lines.append(f"Chain: {network}")
        chain_total = Decimal(0)
        for record in records:
            value = fiat_value(record)
            chain_total += value
            quantity = format_quantity(record.raw_balance, record.decimals)
            lines.append(f"Token: {record.token_symbol}, Balance: {quantity}, Value: {value:.2f}")
        total += chain_total
        lines.append(f"Total balance for chain: {chain_total:.2f}")
        lines.append(SEPARATOR)
        lines.append("")

    lines.append(f"Total balance: {total:.2f}")
    return lines


def print_summary(
    results: Mapping[str, List[BalanceRecord]], stream: Optional[TextIO] = None
) -> None:
    """Print the summary to a stream (stdout by default)."""
    stream = stream or sys.stdout
    for line in summarize(results):
        print(line, file=stream)
