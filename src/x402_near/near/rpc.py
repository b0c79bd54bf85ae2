"""NEAR JSON-RPC client used by payment clients and the relayer."""

from __future__ import annotations

import base64
import itertools
import json
import logging
from typing import Any

import httpx

from x402_near.exceptions import TransportError
from x402_near.near.actions import PublicKey, SignedTransaction
from x402_near.networks import get_rpc_url

logger = logging.getLogger(__name__)

DEFAULT_RPC_TIMEOUT = 30.0

# Wait for the transaction and its receipts to execute, but not for finality
DEFAULT_WAIT_UNTIL = "EXECUTED_OPTIMISTIC"


class NearRpcError(Exception):
    """The NEAR node answered with a JSON-RPC error.

    ``name`` is the most specific error name the node reported (for example
    ``INVALID_TRANSACTION`` or ``UNKNOWN_ACCESS_KEY``).
    """

    def __init__(self, name: str, message: str, data: Any = None):
        super().__init__(f"{name}: {message}" if message else name)
        self.name = name
        self.data = data

    @classmethod
    def from_response(cls, error: Any) -> NearRpcError:
        if not isinstance(error, dict):
            return cls("RPC_ERROR", str(error))
        cause = error.get("cause") or {}
        name = cause.get("name") or error.get("name") or "RPC_ERROR"
        data = error.get("data")
        info = cause.get("info")
        if isinstance(data, str):
            message = data
        elif data is not None:
            message = str(data)
        elif info:
            message = str(info)
        else:
            message = error.get("message", "")
        return cls(name, message, data=data)


class NearRpcClient:
    """Thin synchronous JSON-RPC client for a NEAR node.

    Example:
        ```python
        rpc = NearRpcClient.for_network("testnet")
        height = rpc.latest_block()["header"]["height"]
        ```
    """

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_RPC_TIMEOUT,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None
        self._ids = itertools.count(1)

    @classmethod
    def for_network(
        cls, network: str, custom_url: str | None = None, **kwargs: Any
    ) -> NearRpcClient:
        return cls(get_rpc_url(network, custom_url), **kwargs)

    @property
    def url(self) -> str:
        return self._url

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.Client(timeout=self._timeout)
        return self._http_client

    def close(self) -> None:
        """Close HTTP client if we own it."""
        if self._owns_client and self._http_client:
            self._http_client.close()
            self._http_client = None

    def __enter__(self) -> NearRpcClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def call(self, method: str, params: Any) -> Any:
        """Issue a JSON-RPC call and return its ``result``.

        Raises:
            TransportError: If the node cannot be reached or answers with a
                non-JSON or non-2xx HTTP response.
            NearRpcError: If the node answers with a JSON-RPC error.
        """
        request_body = {
            "jsonrpc": "2.0",
            "id": str(next(self._ids)),
            "method": method,
            "params": params,
        }
        try:
            response = self._get_client().post(self._url, json=request_body)
        except httpx.HTTPError as e:
            logger.error(f"NEAR RPC {method} to {self._url} failed: {e}")
            raise TransportError(f"NEAR RPC unreachable: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(
                f"NEAR RPC returned invalid JSON ({response.status_code})"
            ) from e

        if not isinstance(data, dict):
            raise TransportError("NEAR RPC returned an unexpected payload")
        if data.get("error") is not None:
            raise NearRpcError.from_response(data["error"])
        if response.status_code >= 400:
            raise TransportError(f"NEAR RPC HTTP error: {response.status_code}")

        result = data.get("result")
        # Query errors are reported inside the result by older nodes
        if isinstance(result, dict) and isinstance(result.get("error"), str):
            raise NearRpcError("QUERY_ERROR", result["error"])
        return result

    # =========================================================================
    # Ledger queries
    # =========================================================================

    def view_access_key(self, account_id: str, public_key: PublicKey | str) -> dict[str, Any]:
        """Fetch an access key, including its current ``nonce``."""
        return self.call(
            "query",
            {
                "request_type": "view_access_key",
                "finality": "final",
                "account_id": account_id,
                "public_key": str(public_key),
            },
        )

    def latest_block(self) -> dict[str, Any]:
        """Fetch the latest final block."""
        return self.call("block", {"finality": "final"})

    def send_tx(
        self, signed_tx: SignedTransaction, wait_until: str = DEFAULT_WAIT_UNTIL
    ) -> dict[str, Any]:
        """Submit a signed transaction and wait for its execution outcome."""
        return self.call(
            "send_tx",
            {"signed_tx_base64": signed_tx.to_base64(), "wait_until": wait_until},
        )

    def tx_status(
        self, tx_hash: str, sender_account_id: str, wait_until: str = DEFAULT_WAIT_UNTIL
    ) -> dict[str, Any]:
        """Query the execution outcome of a previously submitted transaction."""
        return self.call(
            "tx",
            {
                "tx_hash": tx_hash,
                "sender_account_id": sender_account_id,
                "wait_until": wait_until,
            },
        )

    def view_function(
        self, contract_id: str, method_name: str, args: dict[str, Any] | None = None
    ) -> Any:
        """Call a contract view method and decode its JSON result."""
        result = self.call(
            "query",
            {
                "request_type": "call_function",
                "finality": "final",
                "account_id": contract_id,
                "method_name": method_name,
                "args_base64": base64.b64encode(
                    json.dumps(args or {}).encode("utf-8")
                ).decode("ascii"),
            },
        )
        return json.loads(bytes(result["result"]))

    def ft_balance_of(self, token_id: str, account_id: str) -> int:
        """NEP-141 balance of ``account_id`` in atomic units."""
        return int(self.view_function(token_id, "ft_balance_of", {"account_id": account_id}))
