"""
JSON-RPC client bound to a single node endpoint.

This module performs eth_call requests and the tryAggregate batch read over
HTTP. It never retries on its own: the batch aggregator decides whether to
resubmit, back off, or fail over to another endpoint.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlsplit

import requests
from eth_abi.exceptions import DecodingError

from .call_encoder import decode_try_aggregate, encode_try_aggregate
from .errors import RPCError
from .models import EncodedCall


DEFAULT_TIMEOUT = 30.0  # seconds


def sanitize_endpoint(endpoint: str) -> str:
    """
    Reduce an endpoint URL to scheme and host.

    Provider URLs often embed an API key in the path or query string, so only
    this form is ever shown in logs and error messages.
    """
    parts = urlsplit(endpoint)
    if not parts.scheme or not parts.netloc:
        return "[endpoint]"
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return f"{parts.scheme}://{host}"


class RPCClient:
    """
    Minimal JSON-RPC client for one endpoint.

    Rotating to another endpoint means building a new client; instances are
    cheap and hold no state besides the HTTP session.
    """

    def __init__(
        self,
        endpoint: str,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize the client.

        Args:
            endpoint: RPC endpoint URL
            session: Optional requests session to reuse
            timeout: Per-request timeout in seconds
        """
        self.endpoint = endpoint
        self.timeout = timeout
        self._owns_session = session is None
        self.session = session or requests.Session()
        self._request_id = 0

    def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session:
            self.session.close()

    def _sanitize_error_message(self, message: str) -> str:
        """Remove the full endpoint URL from error messages to prevent credential leakage."""
        return message.replace(self.endpoint, sanitize_endpoint(self.endpoint))

    def _request(self, method: str, params: List[Any]) -> Any:
        """
        Make a JSON-RPC request.

        Args:
            method: JSON-RPC method name
            params: Method parameters

        Returns:
            The 'result' field from the JSON-RPC response

        Raises:
            RPCError: For transport, HTTP and JSON-RPC errors
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": self._request_id,
        }

        try:
            response = self.session.post(self.endpoint, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            sanitized_msg = self._sanitize_error_message(str(e))
            raise RPCError(f"Request failed: {sanitized_msg}") from e

        if response.status_code == 429:
            raise RPCError("Rate limit exceeded", status_code=429)
        if response.status_code >= 400:
            raise RPCError(
                f"HTTP error: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data: Dict[str, Any] = response.json()
        except ValueError as e:
            raise RPCError("Invalid JSON in RPC response") from e

        if not isinstance(data, dict):
            raise RPCError("Unexpected RPC response shape")

        if data.get("error") is not None:
            error = data["error"]
            if isinstance(error, dict):
                raise RPCError(
                    f"RPC error: {error.get('message', str(error))}",
                    status_code=error.get("code"),
                )
            raise RPCError(f"RPC error: {error}")

        if "result" not in data:
            raise RPCError("RPC response has no result")

        return data["result"]

    def eth_call(self, to: str, data: bytes, block: str = "latest") -> bytes:
        """
        Execute a read-only contract call.

        Args:
            to: Contract address
            data: Encoded call data
            block: Block tag to read at

        Returns:
            Raw return bytes
        """
        result = self._request("eth_call", [{"to": to, "data": "0x" + data.hex()}, block])
        if not isinstance(result, str):
            raise RPCError("eth_call result is not a hex string")
        hex_data = result[2:] if result.startswith("0x") else result
        try:
            return bytes.fromhex(hex_data)
        except ValueError as e:
            raise RPCError("eth_call result is not valid hex") from e

    def try_aggregate(
        self, batch_call_address: str, calls: Sequence[EncodedCall]
    ) -> List[Tuple[bool, bytes]]:
        """
        Submit calls as one tryAggregate(false, calls) read.

        Individual sub-call reverts are reported through their success flag
        and never fail the whole batch.

        Returns:
            One (success, return_data) pair per call, in call order
        """
        if not calls:
            return []

        raw = self.eth_call(batch_call_address, encode_try_aggregate(calls, require_success=False))
        try:
            results = decode_try_aggregate(raw)
        except DecodingError as e:
            raise RPCError(f"Could not decode aggregated result: {e}") from e

        if len(results) != len(calls):
            raise RPCError(
                f"Aggregated result has {len(results)} entries for {len(calls)} calls"
            )
        return results
