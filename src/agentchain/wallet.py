"""
AgentChain SDK Wallet Module

Provides the signing-session interface used to authorize SOL transfers and
the WalletService that holds the active session.

Classes:
    TransferResult: Outcome of a submitted transfer
    WalletSession: Abstract base class for signing sessions
    KeypairWalletSession: Session backed by a local Solana keypair
    DummyWalletSession: Deterministic session for development and testing (Ed25519)
    WalletService: Active-session holder plus balance/history/network/fee reads

Functions:
    is_valid_address: Check that a string is a base58 encoded 32-byte public key
    build_transfer_message: Compile a SOL transfer (plus optional memo) into a message

Example:
    >>> from agentchain.wallet import DummyWalletSession
    >>> session = DummyWalletSession()
    >>> await sdk.wallet.connect_wallet(session)
    >>> sdk.wallet.is_wallet_connected()
    True

Note:
    - DummyWalletSession never touches the network and provides no custody of funds
    - KeypairWalletSession submits through the SDK's SolanaRpcClient; transactions
      are built and signed with solders
    - Supporting another wallet only requires implementing the WalletSession interface
"""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import base58
from Crypto.PublicKey import ECC
from Crypto.Signature import eddsa
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from .exceptions import InvalidAddressError, NetworkError, WalletError, WalletNotConnectedError
from .rpc import LAMPORTS_PER_SOL, SolanaRpcClient

logger = logging.getLogger("agentchain.wallet")

MEMO_PROGRAM_ID = "MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr"


def is_valid_address(address: str) -> bool:
    """
    Check that an address is a base58 encoded 32-byte public key.

    Example:
        >>> is_valid_address("11111111111111111111111111111111")
        True
        >>> is_valid_address("not-an-address")
        False
    """
    if not address or not isinstance(address, str):
        return False
    try:
        return len(base58.b58decode(address)) == 32
    except ValueError:
        return False


def _short(address: str) -> str:
    return address[:8] + "..." if address else address


def build_transfer_message(
    payer: str,
    recipient: str,
    amount: float,
    blockhash: str,
    memo: Optional[str] = None,
) -> Message:
    """
    Compile a System Program transfer of ``amount`` SOL, paid by ``payer``.

    A memo adds an SPL Memo instruction signed by the payer.
    """
    payer_key = Pubkey.from_string(payer)
    instructions = [
        transfer(
            TransferParams(
                from_pubkey=payer_key,
                to_pubkey=Pubkey.from_string(recipient),
                lamports=int(round(amount * LAMPORTS_PER_SOL)),
            )
        )
    ]
    if memo:
        instructions.append(
            Instruction(
                Pubkey.from_string(MEMO_PROGRAM_ID),
                memo.encode("utf-8"),
                [AccountMeta(payer_key, is_signer=True, is_writable=True)],
            )
        )
    return Message.new_with_blockhash(instructions, payer_key, Hash.from_string(blockhash))


@dataclass(frozen=True)
class TransferResult:
    """
    Outcome of a submitted transfer.

    Attributes:
        signature: Transaction signature (base58)
        confirmed: Whether the node confirmed the transaction at submission time
        slot: Slot of the confirmation, if known
        error: Error reported by the node, if any
    """

    signature: str
    confirmed: bool
    slot: Optional[int] = None
    error: Optional[str] = None


class WalletSession:
    """
    Abstract base class for signing sessions.

    Methods:
        get_address: Base58 public key of the session
        is_connected: Whether the session can sign now
        connect / disconnect: Session lifecycle
        validate_address: Address-format check used before submitting payments
        sign_and_send_transfer: Sign, submit and confirm a SOL transfer
        sign_message: Sign arbitrary bytes
    """

    def get_address(self) -> str:
        raise NotImplementedError

    def is_connected(self) -> bool:
        raise NotImplementedError

    async def connect(self) -> None:
        raise NotImplementedError

    async def disconnect(self) -> None:
        raise NotImplementedError

    def validate_address(self, address: str) -> bool:
        """
        Validate a recipient address.

        Raises:
            InvalidAddressError: Address is not a valid public key
        """
        if not is_valid_address(address):
            raise InvalidAddressError(address)
        return True

    async def sign_and_send_transfer(
        self,
        recipient: str,
        amount: float,
        memo: Optional[str] = None,
    ) -> TransferResult:
        """
        Sign and submit a transfer of ``amount`` SOL to ``recipient``.

        Raises:
            WalletError: Signing or submission failed
        """
        raise NotImplementedError

    def sign_message(self, message: bytes) -> bytes:
        """Return the 64-byte Ed25519 signature of ``message``."""
        raise NotImplementedError


class KeypairWalletSession(WalletSession):
    """
    Signing session backed by a local Solana keypair.

    Transactions are built and signed locally, submitted once with
    sendTransaction and then followed with getSignatureStatuses until they
    reach ``commitment`` or ``confirm_timeout`` elapses.

    Args:
        secret_key: 64-byte keypair, as bytes or a base58 string
        rpc: Client used for blockhashes, submission and status checks
        commitment: Commitment level awaited after submission
        poll_interval: Pause between status checks (seconds)
        confirm_timeout: Longest wait for ``commitment`` (seconds)
    """

    def __init__(
        self,
        secret_key: Union[bytes, str],
        rpc: SolanaRpcClient,
        commitment: str = "confirmed",
        poll_interval: float = 0.5,
        confirm_timeout: float = 30.0,
    ) -> None:
        if isinstance(secret_key, str):
            self._keypair = Keypair.from_base58_string(secret_key)
        else:
            self._keypair = Keypair.from_bytes(secret_key)
        self.rpc = rpc
        self.commitment = commitment
        self.poll_interval = poll_interval
        self.confirm_timeout = confirm_timeout
        self._connected = False

    @property
    def address(self) -> str:
        return str(self._keypair.pubkey())

    def get_address(self) -> str:
        return self.address

    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False

    def sign_message(self, message: bytes) -> bytes:
        return bytes(self._keypair.sign_message(message))

    async def sign_and_send_transfer(
        self,
        recipient: str,
        amount: float,
        memo: Optional[str] = None,
    ) -> TransferResult:
        logger.info("Sending SOL: from=%s, to=%s, amount=%s", _short(self.address), _short(recipient), amount)
        try:
            blockhash = await self.rpc.get_latest_blockhash(self.commitment)
            message = build_transfer_message(self.address, recipient, amount, blockhash, memo)
            tx = Transaction([self._keypair], message, Hash.from_string(blockhash))
            signature = await self.rpc.send_raw_transaction(bytes(tx), preflight_commitment=self.commitment)
        except NetworkError as e:
            raise WalletError("Failed to send SOL transaction", {"reason": str(e)}) from e
        except ValueError as e:
            raise WalletError("Failed to build SOL transaction", {"reason": str(e)}) from e

        result = await self._await_commitment(signature)
        logger.info("SOL sent: signature=%s, confirmed=%s", result.signature, result.confirmed)
        return result

    async def _await_commitment(self, signature: str) -> TransferResult:
        deadline = time.monotonic() + self.confirm_timeout
        while True:
            try:
                status = await self.rpc.get_signature_status(signature)
            except NetworkError as e:
                logger.warning("Status check failed for %s: %s", signature, e)
            else:
                if status.is_failed:
                    return TransferResult(signature, False, status.slot, str(status.error))
                if status.reached(self.commitment):
                    return TransferResult(signature, True, status.slot)
            if time.monotonic() >= deadline:
                return TransferResult(
                    signature,
                    False,
                    error=f"not {self.commitment} within {self.confirm_timeout}s",
                )
            await asyncio.sleep(self.poll_interval)


class DummyWalletSession(WalletSession):
    """
    Deterministic signing session for development and testing.

    Holds a real Ed25519 key (so signatures verify) but never submits
    anything; transfers return a signature over the transfer description.

    Args:
        confirm_transfers: Value reported as ``confirmed`` for every transfer
        connected: Start in the connected state

    Attributes:
        transfers: Recorded (recipient, amount, memo) tuples

    Warning:
        No funds move. Use KeypairWalletSession against a real cluster.
    """

    def __init__(self, confirm_transfers: bool = True, connected: bool = False) -> None:
        self._key = ECC.generate(curve="ed25519")
        self._address = base58.b58encode(self._key.public_key().export_key(format="raw")).decode("ascii")
        self.confirm_transfers = confirm_transfers
        self._connected = connected
        self.transfers: List[tuple] = []

    @property
    def address(self) -> str:
        return self._address

    def get_address(self) -> str:
        return self._address

    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False

    def sign_message(self, message: bytes) -> bytes:
        return eddsa.new(self._key, "rfc8032").sign(message)

    async def sign_and_send_transfer(
        self,
        recipient: str,
        amount: float,
        memo: Optional[str] = None,
    ) -> TransferResult:
        if not self._connected:
            raise WalletNotConnectedError()
        self.transfers.append((recipient, amount, memo))
        description = f"{self._address}:{recipient}:{amount}:{memo or ''}:{len(self.transfers)}"
        signature = base58.b58encode(self.sign_message(description.encode("utf-8"))).decode("ascii")
        return TransferResult(
            signature=signature,
            confirmed=self.confirm_transfers,
            error=None if self.confirm_transfers else "simulated failure",
        )


class WalletService:
    """
    Wallet service.

    Holds the active signing session and exposes the account reads of the
    RPC client.

    Args:
        rpc: Solana RPC client
        network: Cluster name reported by get_network_info
    """

    def __init__(self, rpc: SolanaRpcClient, network: str = "devnet") -> None:
        self.rpc = rpc
        self.network = network
        self._session: Optional[WalletSession] = None

    # ============ Session ============

    def update_rpc(self, rpc: SolanaRpcClient, network: Optional[str] = None) -> None:
        """
        Point reads, and a keypair session bound to the old client, at ``rpc``.

        The connected session stays connected.
        """
        previous, self.rpc = self.rpc, rpc
        if network is not None:
            self.network = network
        if isinstance(self._session, KeypairWalletSession) and self._session.rpc is previous:
            self._session.rpc = rpc
        logger.info("Wallet RPC endpoint updated: %s (%s)", rpc.rpc_url, self.network)

    @property
    def session(self) -> Optional[WalletSession]:
        return self._session

    async def connect_wallet(self, session: WalletSession) -> None:
        """
        Connect a signing session, replacing the current one.

        Raises:
            WalletError: The session failed to connect
        """
        try:
            if not session.is_connected():
                await session.connect()
        except WalletError:
            raise
        except Exception as e:
            raise WalletError("Failed to connect wallet", {"reason": str(e)}) from e
        self._session = session
        logger.info("Wallet connected: %s", session.get_address())

    async def disconnect_wallet(self) -> None:
        if self._session is None:
            return
        session, self._session = self._session, None
        try:
            await session.disconnect()
        except Exception as e:
            raise WalletError("Failed to disconnect wallet", {"reason": str(e)}) from e
        logger.info("Wallet disconnected")

    def is_wallet_connected(self) -> bool:
        return self._session is not None and self._session.is_connected()

    def _require_session(self) -> WalletSession:
        if not self.is_wallet_connected():
            raise WalletNotConnectedError()
        return self._session

    def validate_address(self, address: str) -> bool:
        """
        Validate an address with the active session, or the base58 check
        when no session is connected.

        Raises:
            InvalidAddressError: Address is invalid
        """
        if self._session is not None:
            return self._session.validate_address(address)
        if not is_valid_address(address):
            raise InvalidAddressError(address)
        return True

    # ============ Transfers & Signing ============

    async def send_sol(self, recipient: str, amount: float, memo: Optional[str] = None) -> TransferResult:
        session = self._require_session()
        self.validate_address(recipient)
        return await session.sign_and_send_transfer(recipient, amount, memo)

    async def estimate_transfer_fee(self, recipient: str, amount: float, memo: Optional[str] = None) -> float:
        """
        Estimate the network fee, in SOL, of sending ``amount`` SOL to ``recipient``
        from the connected wallet.

        Returns 0.0 when the node cannot price the message.

        Raises:
            WalletNotConnectedError: No session is connected
            InvalidAddressError: Recipient is invalid
            NetworkError: The fee could not be fetched
        """
        session = self._require_session()
        self.validate_address(recipient)
        try:
            blockhash = await self.rpc.get_latest_blockhash()
            message = build_transfer_message(session.get_address(), recipient, amount, blockhash, memo)
            lamports = await self.rpc.get_fee_for_message(bytes(message))
        except NetworkError as e:
            raise NetworkError("Failed to estimate transaction fee", {"reason": str(e)}) from e
        fee = (lamports or 0) / LAMPORTS_PER_SOL
        logger.debug("Fee estimated: %s SOL to %s = %s SOL", amount, _short(recipient), fee)
        return fee

    @staticmethod
    def generate_keypair() -> Keypair:
        """
        Create a fresh Solana keypair.

        Example:
            >>> keypair = WalletService.generate_keypair()
            >>> session = KeypairWalletSession(bytes(keypair), sdk.rpc)
        """
        return Keypair()

    def sign_message(self, message: str) -> str:
        """Sign a UTF-8 message with the active session; returns base64."""
        session = self._require_session()
        signature = session.sign_message(message.encode("utf-8"))
        return base64.b64encode(signature).decode("ascii")

    @staticmethod
    def verify_signature(message: str, signature: str, address: str) -> bool:
        """
        Verify a base64 Ed25519 signature against a base58 public key.

        Returns False for malformed input instead of raising.
        """
        if not is_valid_address(address):
            return False
        try:
            public_key = eddsa.import_public_key(base58.b58decode(address))
            eddsa.new(public_key, "rfc8032").verify(message.encode("utf-8"), base64.b64decode(signature))
        except ValueError:
            return False
        return True

    # ============ Reads ============

    async def get_balance(self, address: str) -> float:
        self.validate_address(address)
        balance = await self.rpc.get_balance(address)
        logger.debug("Balance fetched: %s = %s SOL", _short(address), balance)
        return balance

    async def get_connected_wallet_balance(self) -> float:
        session = self._require_session()
        return await self.get_balance(session.get_address())

    async def get_transaction_history(self, address: str, limit: int = 10) -> List[Dict[str, Any]]:
        """
        Fetch recent transactions of an address.

        Transactions whose details cannot be fetched are skipped.
        """
        self.validate_address(address)
        signatures = await self.rpc.get_signatures_for_address(address, limit=limit)

        async def _fetch(entry: Dict[str, Any]) -> Optional[Dict[str, Any]]:
            try:
                tx = await self.rpc.get_transaction(entry["signature"])
            except NetworkError as e:
                logger.warning("Failed to fetch transaction %s: %s", entry.get("signature"), e)
                return None
            return {
                "signature": entry["signature"],
                "slot": entry.get("slot"),
                "block_time": entry.get("blockTime"),
                "transaction": tx,
            }

        results = await asyncio.gather(*(_fetch(entry) for entry in signatures))
        return [r for r in results if r is not None]

    async def get_network_info(self) -> Dict[str, Any]:
        version, epoch_info = await asyncio.gather(self.rpc.get_version(), self.rpc.get_epoch_info())
        return {
            "network": self.network,
            "endpoint": self.rpc.rpc_url,
            "version": version,
            "epoch_info": epoch_info,
        }
