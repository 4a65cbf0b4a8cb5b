"""
Token candidate lists per network.

Lists are read from a local cache directory when present and otherwise
fetched from the CoinGecko token-list service and cached for the next run.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from eth_utils import is_address, to_checksum_address

from .console import log
from .errors import TokenListError
from .models import NATIVE_TOKEN_ADDRESS, NetworkDescriptor, TokenDescriptor


DEFAULT_CACHE_DIR = "data/token_lists"
DEFAULT_TIMEOUT = 30.0  # seconds
TOKEN_LIST_URL = "https://tokens.coingecko.com/{slug}/all.json"

# CoinGecko platform slug for each registry network name
COINGECKO_SLUGS = {
    "Ethereum": "ethereum",
    "Arbitrum": "arbitrum-one",
    "Optimism": "optimistic-ethereum",
    "Base": "base",
    "Linea": "linea",
    "Zksync": "zksync",
    "Bsc": "binance-smart-chain",
    "Opbnb": "opbnb",
    "Polygon": "polygon-pos",
    "Avalanche": "avalanche",
    "Scroll": "scroll",
    "Blast": "blast",
    "Mantle": "mantle",
    "Gnosis": "xdai",
    "Fantom": "fantom",
    "Celo": "celo",
    "Core": "core",
    "Nova": "arbitrum-nova",
}

NATIVE_DECIMALS = 18


def native_token(network: NetworkDescriptor) -> TokenDescriptor:
    """Build the sentinel descriptor for a network's native coin."""
    return TokenDescriptor(
        address=NATIVE_TOKEN_ADDRESS,
        name=network.currency,
        symbol=network.currency,
        decimals=NATIVE_DECIMALS,
    )


def parse_token_list(entries: Any) -> List[TokenDescriptor]:
    """
    Parse raw token-list entries.

    Raises:
        TokenListError: If the list or any entry is malformed
    """
    if not isinstance(entries, list):
        raise TokenListError("Token list must be an array")

    tokens: List[TokenDescriptor] = []
    for index, entry in enumerate(entries):
        try:
            address = entry["address"]
            if not is_address(address):
                raise ValueError(f"invalid address {address!r}")
            tokens.append(
                TokenDescriptor(
                    address=to_checksum_address(address),
                    name=str(entry["name"]),
                    symbol=str(entry["symbol"]),
                    decimals=int(entry["decimals"]),
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            raise TokenListError(f"Malformed token list entry #{index}: {e}") from e
    return tokens


class TokenListProvider:
    """Supplies the candidate tokens of a network, caching remote lists on disk."""

    def __init__(
        self,
        cache_dir: str = DEFAULT_CACHE_DIR,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.cache_dir = Path(cache_dir)
        self.session = session or requests.Session()
        self.timeout = timeout

    def cache_path(self, network: NetworkDescriptor) -> Path:
        return self.cache_dir / f"{network.name}.json"

    def get_tokens(self, network: NetworkDescriptor) -> List[TokenDescriptor]:
        """
        Get the candidate tokens for a network.

        Args:
            network: Network whose list is wanted

        Returns:
            Token descriptors, native sentinel not included

        Raises:
            TokenListError: If neither the cache nor the remote list is usable
        """
        path = self.cache_path(network)
        if path.exists():
            try:
                return parse_token_list(self._read_cache(path))
            except TokenListError as e:
                log(network.name, f"Ignoring unusable token list cache: {e}")

        log(network.name, "Fetching token data from CoinGecko")
        entries = self.fetch_token_list(network)
        tokens = parse_token_list(entries)
        self._write_cache(path, entries)
        return tokens

    def fetch_token_list(self, network: NetworkDescriptor) -> List[Dict[str, Any]]:
        """Download the raw token list of a network."""
        slug = COINGECKO_SLUGS.get(network.name)
        if not slug:
            raise TokenListError(f"No CoinGecko token list for network {network.name}")

        url = TOKEN_LIST_URL.format(slug=slug)
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise TokenListError(f"Token list request failed: {e}") from e
        except ValueError as e:
            raise TokenListError("Token list response is not valid JSON") from e

        tokens = data.get("tokens") if isinstance(data, dict) else None
        if tokens is None:
            raise TokenListError("Token data is null")
        return tokens

    @staticmethod
    def _read_cache(path: Path) -> Any:
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise TokenListError(f"Cannot read cached token list {path}: {e}") from e

    def _write_cache(self, path: Path, entries: List[Dict[str, Any]]) -> None:
        """Write the cache through a temp file so readers never see a partial list."""
        tmp_name = None
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, prefix=f".{path.name}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(entries, f, indent=2)
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise TokenListError(f"Cannot cache token list {path}: {e}") from e
