"""
ABI encoding and decoding for balance reads.

Builds the per-token sub-calls of an aggregated read (native balance through
the batch-call contract, ERC-20 balanceOf through the token contract), the
tryAggregate envelope around them, and decodes the raw return buffers.
"""

from typing import List, Optional, Sequence, Tuple, Union

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector

from .models import EncodedCall, TokenDescriptor


BALANCE_OF_SELECTOR = function_signature_to_4byte_selector("balanceOf(address)")
GET_ETH_BALANCE_SELECTOR = function_signature_to_4byte_selector("getEthBalance(address)")
TRY_AGGREGATE_SELECTOR = function_signature_to_4byte_selector(
    "tryAggregate(bool,(address,bytes)[])"
)

# "0x" followed by the 64 hex characters of a 32-byte word
MAX_UINT256_HEX_LENGTH = 66

# Some nodes hand back the text of an empty hex string instead of empty bytes
EMPTY_HEX_PLACEHOLDER = b"0x"


def encode_balance_call(
    wallet: str, token: TokenDescriptor, batch_call_address: str
) -> EncodedCall:
    """
    Build the sub-call reading the wallet's balance of one token.

    Args:
        wallet: Wallet address whose balance is read
        token: Token to read; the native sentinel reads the chain's coin
        batch_call_address: Address of the network's batch-call contract

    Returns:
        EncodedCall targeting the batch-call contract (native coin) or the
        token contract (ERC-20)
    """
    argument = encode(["address"], [wallet])
    if token.is_native:
        return EncodedCall(target=batch_call_address, call_data=GET_ETH_BALANCE_SELECTOR + argument)
    return EncodedCall(target=token.address, call_data=BALANCE_OF_SELECTOR + argument)


def encode_try_aggregate(calls: Sequence[EncodedCall], require_success: bool = False) -> bytes:
    """Encode tryAggregate(requireSuccess, calls) call data."""
    values = [(call.target, call.call_data) for call in calls]
    return TRY_AGGREGATE_SELECTOR + encode(["bool", "(address,bytes)[]"], [require_success, values])


def decode_try_aggregate(data: bytes) -> List[Tuple[bool, bytes]]:
    """Decode the (bool success, bytes returnData)[] result of tryAggregate."""
    results = decode(["(bool,bytes)[]"], data)[0]
    return [(bool(success), bytes(return_data)) for success, return_data in results]


def decode_balance(success: bool, return_data: Union[bytes, str]) -> Optional[int]:
    """
    Decode one sub-call result into a balance.

    Args:
        success: Success flag reported by the batch-call contract
        return_data: Raw return buffer (bytes, or hex text from some nodes)

    Returns:
        The balance as an integer, or None when the sub-call failed, returned
        nothing, could not be parsed, or the balance is zero

    Examples:
        decode_balance(False, b"...") -> None
        decode_balance(True, b"0x") -> None
        decode_balance(True, (5).to_bytes(32, "big")) -> 5
    """
    if not success:
        return None

    if isinstance(return_data, (bytes, bytearray)):
        raw = bytes(return_data)
        if not raw or raw == EMPTY_HEX_PLACEHOLDER:
            return None
        hex_data = "0x" + raw.hex()
    else:
        hex_data = str(return_data).strip()
        if not hex_data.lower().startswith("0x"):
            hex_data = "0x" + hex_data
        if hex_data == EMPTY_HEX_PLACEHOLDER.decode():
            return None

    # Oversized payloads are left-aligned; only the leading word is the balance
    hex_data = hex_data[:MAX_UINT256_HEX_LENGTH]

    try:
        value = int(hex_data, 16)
    except ValueError:
        return None

    if value <= 0:
        return None
    return value
