"""
Network registry loading.

The registry is a JSON object keyed by network name:

    {
        "Ethereum": {
            "id": 1,
            "rpc": ["https://ethereum.publicnode.com"],
            "explorer": "https://etherscan.io/tx/",
            "multicall": "0xcA11bde05977b3631167028862bE2a173976CA11",
            "currency": "ETH"
        }
    }

Entries are parsed into NetworkDescriptor objects at load time so the scanner
never sees loosely-typed values.
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List

from eth_utils import is_address, to_checksum_address

from .console import log
from .errors import ConfigurationError, RegistryError
from .models import NetworkDescriptor, ZERO_ADDRESS


DEFAULT_CHAINS_FILE = "data/chains.json"


def parse_network(name: str, entry: Dict[str, Any]) -> NetworkDescriptor:
    """
    Parse one registry entry.

    A missing or invalid multicall address is turned into the zero address;
    the network then loads but is rejected before scanning.

    Raises:
        ConfigurationError: If a required field is missing or invalid
    """
    if not isinstance(entry, dict):
        raise ConfigurationError(f"Network {name}: entry must be an object")

    chain_id = entry.get("id")
    if isinstance(chain_id, bool) or not isinstance(chain_id, int):
        raise ConfigurationError(f"Network {name}: missing or invalid chain id")

    rpc = entry.get("rpc")
    if not isinstance(rpc, list) or not all(isinstance(url, str) and url for url in rpc):
        raise ConfigurationError(f"Network {name}: 'rpc' must be a list of URLs")

    multicall = entry.get("multicall")
    if isinstance(multicall, str) and is_address(multicall):
        batch_call_address = to_checksum_address(multicall)
    else:
        batch_call_address = ZERO_ADDRESS

    return NetworkDescriptor(
        id=chain_id,
        name=name,
        rpc_endpoints=tuple(rpc),
        batch_call_address=batch_call_address,
        explorer=str(entry.get("explorer", "")),
        currency=str(entry.get("currency") or "ETH"),
    )


def load_registry(path: str = DEFAULT_CHAINS_FILE) -> List[NetworkDescriptor]:
    """
    Load all networks from a registry file.

    Invalid entries are logged and skipped; the rest of the registry still
    loads.

    Raises:
        RegistryError: If the file cannot be read or is not a JSON object
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise RegistryError(f"Cannot read network registry {path}: {e}") from e
    except ValueError as e:
        raise RegistryError(f"Network registry {path} is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise RegistryError(f"Network registry {Path(path).name} must be a JSON object")

    networks: List[NetworkDescriptor] = []
    for name, entry in data.items():
        try:
            networks.append(parse_network(name, entry))
        except ConfigurationError as e:
            log(name, f"Error creating network: {e}. Skipping network.")
    return networks


def filter_networks(networks: List[NetworkDescriptor], names: Iterable[str]) -> List[NetworkDescriptor]:
    """
    Select networks by case-insensitive name, in the order requested.

    Raises:
        ValueError: If a requested name is not in the registry
    """
    by_name = {network.name.lower(): network for network in networks}
    selected = []
    for name in names:
        network = by_name.get(name.lower())
        if network is None:
            raise ValueError(
                f"Unsupported network: {name}. "
                f"Supported: {', '.join(network.name for network in networks)}"
            )
        selected.append(network)
    return selected
