"""
Odos aggregator client for quoting dust-to-native swaps.

Only the read side is covered: requesting a quote that converts a discovered
balance into the chain's native coin and assembling the unsigned transaction.
Approvals, signing and broadcasting are not performed here.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from .errors import SwapError
from .models import NATIVE_TOKEN_ADDRESS, ZERO_ADDRESS, BalanceRecord, NetworkDescriptor


QUOTE_URL = "https://api.odos.xyz/sor/quote/v2"
ASSEMBLE_URL = "https://api.odos.xyz/sor/assemble"
DEFAULT_TIMEOUT = 30.0  # seconds
DEFAULT_SLIPPAGE_PERCENT = 3.0

SUPPORTED_NETWORKS = [
    "Ethereum",
    "Arbitrum",
    "Avalanche",
    "Polygon",
    "Bsc",
    "Optimism",
    "Base",
    "Fantom",
    "Zksync",
    "Linea",
    "Scroll",
    "Mantle",
]

# Addresses the aggregator or token lists use for a chain's native coin
NATIVE_ADDRESSES = {
    ZERO_ADDRESS.lower(),
    NATIVE_TOKEN_ADDRESS.lower(),
    "0x0000000000000000000000000000000000001010",  # Polygon MATIC
}


@dataclass
class SwapQuote:
    """Quote for converting one balance into native coin."""

    path_id: str
    in_amounts: List[str]
    out_amounts: List[str]
    net_out_value: float
    price_impact: Optional[float] = None
    gas_estimate: Optional[float] = None


def is_native_token(address: str) -> bool:
    """Check whether an address represents a chain's native coin."""
    return address.lower() in NATIVE_ADDRESSES


class OdosClient:
    """Client for the Odos smart order router."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
        slippage_percent: float = DEFAULT_SLIPPAGE_PERCENT,
    ):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.slippage_percent = slippage_percent

    def _post(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise SwapError(f"Odos request failed: {e}") from e

        if response.status_code != 200:
            raise SwapError(f"Odos returned {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as e:
            raise SwapError("Odos response is not valid JSON") from e
        if not isinstance(data, dict):
            raise SwapError("Unexpected Odos response shape")
        return data

    def get_quote(
        self, network: NetworkDescriptor, record: BalanceRecord, user_address: str
    ) -> SwapQuote:
        """
        Quote swapping the full balance of a record into native coin.

        Args:
            network: Network the balance lives on
            record: Balance to convert
            user_address: Wallet that holds the balance

        Returns:
            SwapQuote for the conversion

        Raises:
            SwapError: For unsupported networks, native input, or request failures
        """
        if network.name not in SUPPORTED_NETWORKS:
            raise SwapError(f"Network {network.name} not supported by Odos")
        if is_native_token(record.token_address):
            raise SwapError("Both tokens are native")

        payload = {
            "chainId": network.id,
            "inputTokens": [
                {"tokenAddress": record.token_address, "amount": str(record.raw_balance)}
            ],
            "outputTokens": [{"tokenAddress": ZERO_ADDRESS, "proportion": 1}],
            "userAddr": user_address,
            "slippageLimitPercent": self.slippage_percent,
            "pathViz": False,
            "referralCode": 0,
            "simple": True,
        }
        data = self._post(QUOTE_URL, payload)

        try:
            return SwapQuote(
                path_id=data["pathId"],
                in_amounts=list(data["inAmounts"]),
                out_amounts=list(data["outAmounts"]),
                net_out_value=float(data["netOutValue"]),
                price_impact=data.get("priceImpact"),
                gas_estimate=data.get("gasEstimate"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SwapError(f"Malformed Odos quote: {e}") from e

    def assemble(self, path_id: str, user_address: str, simulate: bool = True) -> Dict[str, Any]:
        """
        Assemble the unsigned swap transaction for a quoted path.

        Raises:
            SwapError: If assembly fails or the simulation reports failure
        """
        data = self._post(
            ASSEMBLE_URL,
            {"userAddr": user_address, "pathId": path_id, "simulate": simulate},
        )
        if simulate and not (data.get("simulation") or {}).get("isSuccess", False):
            raise SwapError("Failed to simulate swap")
        transaction = data.get("transaction")
        if not isinstance(transaction, dict):
            raise SwapError("Odos response has no transaction")
        return transaction
