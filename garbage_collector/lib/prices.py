"""
Fiat price enrichment through the DefiLlama coins API.

One batched request per network: every token is looked up as
``<chain-key>:<address>`` and the response entries are matched back onto the
balance records by address.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import requests

from .errors import PriceLookupError
from .models import BalanceRecord


DEFAULT_PRICES_URL = "https://coins.llama.fi/prices/current/"
DEFAULT_TIMEOUT = 30.0  # seconds

# Registry names whose DefiLlama chain key is not simply the lower-cased name
PRICE_CHAIN_KEYS = {
    "Zksync": "era",
    "Nova": "arbitrum_nova",
    "Avalanche": "avax",
    "Gnosis": "xdai",
    "Opbnb": "op_bnb",
}


@dataclass
class PriceQuote:
    """One entry of the price response."""

    price: float
    symbol: Optional[str] = None
    decimals: Optional[int] = None
    confidence: Optional[float] = None
    timestamp: Optional[int] = None


def price_chain_key(network_name: str) -> str:
    """Map a registry network name to its DefiLlama chain key."""
    return PRICE_CHAIN_KEYS.get(network_name, network_name.lower())


def build_query(chain_key: str, addresses: Iterable[str]) -> str:
    """Join lookup keys into the comma-separated path segment."""
    return ",".join(f"{chain_key}:{address}" for address in addresses)


def apply_prices(records: List[BalanceRecord], quotes: Dict[str, PriceQuote]) -> int:
    """
    Set fiat prices on the records matching the quote keys.

    Keys are split on ':' and the address part compared case-insensitively.
    Records without a quote keep their current price.

    Returns:
        Number of records priced
    """
    by_address: Dict[str, List[BalanceRecord]] = {}
    for record in records:
        by_address.setdefault(record.token_address.lower(), []).append(record)

    priced = 0
    for key, quote in quotes.items():
        address = key.split(":", 1)[-1].lower()
        for record in by_address.get(address, []):
            record.set_fiat_price(quote.price)
            priced += 1
    return priced


class PriceClient:
    """Client for the DefiLlama current-prices endpoint."""

    def __init__(
        self,
        base_url: str = DEFAULT_PRICES_URL,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.session = session or requests.Session()
        self.timeout = timeout

    def get_prices(self, network_name: str, addresses: List[str]) -> Dict[str, PriceQuote]:
        """
        Look up current prices for tokens on one network.

        Args:
            network_name: Registry network name
            addresses: Token addresses to price

        Returns:
            Quotes keyed by the '<chain-key>:<address>' key returned by the API

        Raises:
            PriceLookupError: If the request fails or the response has no coins
        """
        if not addresses:
            return {}

        url = self.base_url + build_query(price_chain_key(network_name), addresses)
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise PriceLookupError(f"Price request failed: {e}") from e
        except ValueError as e:
            raise PriceLookupError("Price response is not valid JSON") from e

        coins = data.get("coins") if isinstance(data, dict) else None
        if not isinstance(coins, dict):
            raise PriceLookupError("Coins data is null")

        quotes: Dict[str, PriceQuote] = {}
        for key, entry in coins.items():
            quote = self._parse_quote(entry)
            if quote is not None:
                quotes[key] = quote
        return quotes

    @staticmethod
    def _parse_quote(entry: Any) -> Optional[PriceQuote]:
        if not isinstance(entry, dict):
            return None
        try:
            price = float(entry["price"])
        except (KeyError, TypeError, ValueError):
            return None
        decimals = entry.get("decimals")
        return PriceQuote(
            price=price,
            symbol=entry.get("symbol"),
            decimals=int(decimals) if isinstance(decimals, (int, float)) else None,
            confidence=entry.get("confidence"),
            timestamp=entry.get("timestamp"),
        )

    def enrich(self, network_name: str, records: List[BalanceRecord]) -> int:
        """
        Price a network's balance records in place.

        Returns:
            Number of records priced

        Raises:
            PriceLookupError: If the lookup fails; records are left unpriced
        """
        if not records:
            return 0
        addresses = list(dict.fromkeys(record.token_address for record in records))
        return apply_prices(records, self.get_prices(network_name, addresses))
