"""
AgentChain SDK Solana RPC Module

Asynchronous JSON-RPC client for a Solana node. It is the single connection
the SDK keeps to a cluster: the status oracle used by payment confirmation,
account reads, fee estimation and raw transaction submission all go through
it.

Classes:
    SignatureStatus: Reported confirmation state of one transaction
    SolanaRpcClient: JSON-RPC client over httpx

Example:
    >>> rpc = SolanaRpcClient("https://api.devnet.solana.com")
    >>> status = await rpc.get_signature_status("5VERv8NMvzbJMEkV8xnrLkEaWRtSz9CosKDYjCJjBRnbJLgp8uirBgmQpjKhoR4tjF3ZpRzrFmBV6UjKdiSZkQUW")
    >>> status.is_confirmed
    True

Note:
    - Reads are retried according to RetryConfig (see agentchain.retry)
    - sendTransaction is never retried; a resend could double-spend once the
      first copy lands
"""

from __future__ import annotations

import base64
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from .exceptions import NetworkError, RequestTimeoutError, RetryExhaustedError, RPCError
from .retry import RetryConfig, DEFAULT_RETRY_CONFIG, NO_RETRY_CONFIG, call_with_retry

logger = logging.getLogger("agentchain.rpc")

LAMPORTS_PER_SOL = 1_000_000_000

CONFIRMED_LEVELS = ("confirmed", "finalized")

_COMMITMENT_RANK = {"processed": 0, "confirmed": 1, "finalized": 2}


@dataclass(frozen=True)
class SignatureStatus:
    """
    Confirmation state of a submitted transaction.

    Attributes:
        confirmation_level: "processed", "confirmed", "finalized", or None when
            the node does not know the signature yet
        error: Transaction error reported by the node, None on success
        slot: Slot the transaction landed in
    """

    confirmation_level: Optional[str] = None
    error: Optional[Any] = None
    slot: Optional[int] = None

    @property
    def is_confirmed(self) -> bool:
        return self.error is None and self.confirmation_level in CONFIRMED_LEVELS

    @property
    def is_failed(self) -> bool:
        return self.error is not None

    def reached(self, commitment: str) -> bool:
        """Whether the transaction is at least at ``commitment``."""
        if self.confirmation_level is None:
            return False
        return _COMMITMENT_RANK.get(self.confirmation_level, -1) >= _COMMITMENT_RANK[commitment]


class SolanaRpcClient:
    """
    Solana JSON-RPC client.

    Args:
        rpc_url: JSON-RPC endpoint
        timeout: HTTP timeout (seconds)
        retry_config: Retry policy for reads
        client: Pre-built httpx.AsyncClient (optional, e.g. with a mock transport)
    """

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 10.0,
        retry_config: Optional[RetryConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.retry_config = retry_config or DEFAULT_RETRY_CONFIG
        self._client = client
        self._owns_client = client is None
        self._ids = itertools.count(1)

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def call(
        self,
        method: str,
        params: Optional[List[Any]] = None,
        retry_config: Optional[RetryConfig] = None,
    ) -> Any:
        """
        Perform one JSON-RPC call and return its ``result``.

        Args:
            method: JSON-RPC method name
            params: Positional parameters
            retry_config: Override of the client's retry policy for this call

        Raises:
            RPCError: The node returned an error object, a malformed body or a
                non-transient HTTP status
            RequestTimeoutError: Every attempt timed out
            RetryExhaustedError: Every attempt failed transiently
        """
        config = retry_config or self.retry_config
        try:
            return await call_with_retry(
                lambda: self._round_trip(method, params or []),
                config,
                method,
            )
        except RetryExhaustedError as e:
            if isinstance(e.last_error, httpx.TimeoutException):
                raise RequestTimeoutError(method, self.timeout) from e
            raise
        except NetworkError:
            raise
        except httpx.HTTPStatusError as e:
            raise RPCError(
                f"HTTP {e.response.status_code} from RPC node",
                rpc_url=self.rpc_url,
                method=method,
            ) from e
        except httpx.HTTPError as e:
            raise RPCError(str(e), rpc_url=self.rpc_url, method=method) from e

    async def _round_trip(self, method: str, params: List[Any]) -> Any:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        response = await self._get_client().post(self.rpc_url, json=body)
        response.raise_for_status()
        try:
            payload = response.json()
        except ValueError as e:
            raise RPCError("Malformed JSON-RPC response", rpc_url=self.rpc_url, method=method) from e

        if not isinstance(payload, dict):
            raise RPCError("Malformed JSON-RPC response", rpc_url=self.rpc_url, method=method)
        error = payload.get("error")
        if error:
            if isinstance(error, dict):
                raise RPCError(
                    error.get("message") or "JSON-RPC error",
                    rpc_url=self.rpc_url,
                    method=method,
                    rpc_code=error.get("code"),
                )
            raise RPCError(str(error), rpc_url=self.rpc_url, method=method)
        return payload.get("result")

    # ============ Status Oracle ============

    async def get_signature_status(self, signature: str) -> SignatureStatus:
        """
        Report the confirmation state of a transaction signature.

        Returns:
            SignatureStatus; all fields None when the signature is unknown
        """
        result = await self.call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": True}],
        )
        values = (result or {}).get("value") or [None]
        value = values[0]
        if value is None:
            return SignatureStatus()
        return SignatureStatus(
            confirmation_level=value.get("confirmationStatus"),
            error=value.get("err"),
            slot=value.get("slot"),
        )

    # ============ Accounts ============

    async def get_balance(self, address: str) -> float:
        """Return the SOL balance of an address."""
        result = await self.call("getBalance", [address])
        lamports = (result or {}).get("value", 0)
        return lamports / LAMPORTS_PER_SOL

    async def get_signatures_for_address(self, address: str, limit: int = 10) -> List[Dict[str, Any]]:
        result = await self.call("getSignaturesForAddress", [address, {"limit": limit}])
        return list(result or [])

    async def get_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        return await self.call(
            "getTransaction",
            [signature, {"encoding": "json", "maxSupportedTransactionVersion": 0}],
        )

    # ============ Transactions ============

    async def get_latest_blockhash(self, commitment: str = "confirmed") -> str:
        result = await self.call("getLatestBlockhash", [{"commitment": commitment}])
        return result["value"]["blockhash"]

    async def get_fee_for_message(self, message: bytes, commitment: str = "confirmed") -> Optional[int]:
        """
        Fee in lamports the cluster would charge for a serialized message.

        Returns None when the message's blockhash has expired.
        """
        encoded = base64.b64encode(message).decode("ascii")
        result = await self.call("getFeeForMessage", [encoded, {"commitment": commitment}])
        return (result or {}).get("value")

    async def send_raw_transaction(self, transaction: bytes, preflight_commitment: str = "confirmed") -> str:
        """Submit a signed, serialized transaction once; returns its signature."""
        encoded = base64.b64encode(transaction).decode("ascii")
        return await self.call(
            "sendTransaction",
            [encoded, {"encoding": "base64", "preflightCommitment": preflight_commitment}],
            retry_config=NO_RETRY_CONFIG,
        )

    # ============ Network ============

    async def get_version(self) -> Dict[str, Any]:
        return await self.call("getVersion")

    async def get_epoch_info(self) -> Dict[str, Any]:
        return await self.call("getEpochInfo")

    async def get_health(self) -> str:
        return await self.call("getHealth")
