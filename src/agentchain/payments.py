"""
AgentChain SDK Payments Module

Payment requests, SOL payment submission and the payment confirmation
lifecycle.

Classes:
    PaymentStatus: Payment lifecycle states
    PaymentRequest: Immutable description of an intended transfer
    Payment: Record of a submitted transfer
    PaymentProcessor: Builder, submitter, verifier and query surface

Example:
    >>> request = sdk.payments.create_payment_request(1.5, "SOL", "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin")
    >>> payment = await sdk.payments.process_payment(request, user_id="user-1")
    >>> payment.status
    <PaymentStatus.PENDING: 'pending'>

Note:
    - Only native SOL payments are submitted; token payments raise
      PaymentNotImplementedError
    - The processor's dict is the source of truth; the cache mirrors it
    - A payment never leaves a terminal status
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol

from .cache import TTLCache
from .config import PollConfig
from .exceptions import (
    InvalidPaymentError,
    PaymentNotFoundError,
    PaymentNotImplementedError,
    SDKError,
    TransferFailedError,
    WalletNotConnectedError,
)
from .ids import generate_id
from .monitor import ConfirmationMonitor
from .rpc import SignatureStatus
from .wallet import WalletService

logger = logging.getLogger("agentchain.payments")

NATIVE_CURRENCY = "SOL"
REQUEST_TTL = 30 * 60
PAYMENT_TTL = 60 * 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentStatus(str, Enum):
    """Payment lifecycle states. Everything except PENDING is terminal."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


@dataclass(frozen=True)
class PaymentRequest:
    """
    An unsubmitted payment intent.

    Attributes:
        amount: Amount in units of ``currency``
        currency: "SOL" or a token mint address
        recipient: Base58 recipient address
        reference: Caller-unique reference
        memo: Optional memo attached to the transfer
        expires_at: UTC expiry; submission is refused afterwards
    """

    amount: float
    currency: str
    recipient: str
    reference: str
    memo: Optional[str] = None
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class Payment:
    """
    A submitted payment.

    Updates produce a new object (dataclasses.replace) stored back into the
    processor; instances handed to callers are never mutated.
    """

    id: str
    user_id: str
    amount: float
    currency: str
    tx_signature: str
    status: PaymentStatus = PaymentStatus.PENDING
    created_at: datetime = field(default_factory=_utcnow)
    agent_id: Optional[str] = None
    reference: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None


class StatusOracle(Protocol):
    async def get_signature_status(self, signature: str) -> SignatureStatus:
        ...


class PaymentProcessor:
    """
    Payment processor.

    Args:
        wallet: Wallet service holding the signing session
        cache: Shared cache (None disables mirroring)
        oracle: Signature status source, defaults to ``wallet.rpc``
        platform_fee_percent: Fee percentage (0-100)
        fee_recipient: Platform fee recipient address
        poll_config: Confirmation polling settings
        monitor_confirmations: Schedule a confirmation poll after each submission
        clock: Returns the current UTC datetime
    """

    def __init__(
        self,
        wallet: WalletService,
        cache: Optional[TTLCache] = None,
        oracle: Optional[StatusOracle] = None,
        platform_fee_percent: float = 0.0,
        fee_recipient: Optional[str] = None,
        poll_config: Optional[PollConfig] = None,
        monitor_confirmations: bool = True,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.wallet = wallet
        self.oracle = oracle or wallet.rpc
        self.platform_fee_percent = platform_fee_percent
        self.fee_recipient = fee_recipient
        self.monitor_confirmations = monitor_confirmations
        self._cache = cache
        self._clock = clock
        self._payments: Dict[str, Payment] = {}
        self.monitor = ConfirmationMonitor(
            verify=self.verify_payment,
            on_exhausted=self._expire,
            config=poll_config,
        )

    # ============ Payment Requests ============

    def create_payment_request(
        self,
        amount: float,
        currency: str,
        recipient: str,
        reference: Optional[str] = None,
        memo: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> PaymentRequest:
        """
        Build a payment request and cache it under its reference.

        Args:
            amount: Positive amount
            currency: "SOL" or a token mint address
            recipient: Recipient address
            reference: Caller reference, generated when omitted
            memo: Transfer memo
            expires_at: Expiry, defaults to 30 minutes from now

        Raises:
            InvalidPaymentError: Non-positive amount, empty recipient or past expiry
        """
        request = PaymentRequest(
            amount=amount,
            currency=currency or NATIVE_CURRENCY,
            recipient=recipient,
            reference=reference or generate_id("pay_"),
            memo=memo,
            expires_at=expires_at or self._clock() + timedelta(seconds=REQUEST_TTL),
        )
        self._check_request_fields(request)

        if self._cache is not None:
            self._cache.set(f"payment-request:{request.reference}", request, REQUEST_TTL)
        logger.info(
            "Payment request created: reference=%s, amount=%s %s, recipient=%s",
            request.reference,
            amount,
            request.currency,
            recipient[:8] + "...",
        )
        return request

    def get_payment_request(self, reference: str) -> Optional[PaymentRequest]:
        """Recover a cached request before it expires."""
        if self._cache is None:
            return None
        return self._cache.get(f"payment-request:{reference}")

    # ============ Submission ============

    async def process_payment(
        self,
        request: PaymentRequest,
        user_id: str,
        agent_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Payment:
        """
        Submit a payment request and record a PENDING payment.

        Raises:
            InvalidPaymentError: Request failed validation
            WalletNotConnectedError: No signing session is active
            PaymentNotImplementedError: Non-SOL currency
            TransferFailedError: The transfer did not confirm at submission
        """
        logger.info(
            "Processing payment: reference=%s, amount=%s %s",
            request.reference,
            request.amount,
            request.currency,
        )
        self._validate_request(request)

        if not self.wallet.is_wallet_connected():
            raise WalletNotConnectedError()

        if request.currency != NATIVE_CURRENCY:
            raise PaymentNotImplementedError(request.currency)
        signature = await self._send_native(request)

        payment = Payment(
            id=generate_id("payment_"),
            user_id=user_id,
            agent_id=agent_id,
            amount=request.amount,
            currency=request.currency,
            tx_signature=signature,
            reference=request.reference,
            created_at=self._clock(),
            metadata=metadata,
        )
        self._store(payment)

        if self.monitor_confirmations:
            self.monitor.watch(payment.id)

        logger.info("Payment processed: id=%s, signature=%s", payment.id, signature)
        return payment

    async def _send_native(self, request: PaymentRequest) -> str:
        session = self.wallet.session
        try:
            result = await session.sign_and_send_transfer(request.recipient, request.amount, request.memo)
        except SDKError:
            raise
        except Exception as e:
            raise TransferFailedError(reason=str(e)) from e

        if not result.confirmed:
            raise TransferFailedError(signature=result.signature, reason=result.error)
        return result.signature

    def _check_request_fields(self, request: PaymentRequest) -> None:
        amount = request.amount
        if (
            isinstance(amount, bool)
            or not isinstance(amount, (int, float))
            or not math.isfinite(amount)
            or amount <= 0
        ):
            raise InvalidPaymentError("Payment amount must be greater than 0", {"amount": amount})

        if request.expires_at is not None:
            expires_at = request.expires_at
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            if expires_at < self._clock():
                raise InvalidPaymentError(
                    "Payment request has expired",
                    {"reference": request.reference, "expires_at": expires_at.isoformat()},
                )

        if not request.recipient:
            raise InvalidPaymentError("Payment recipient is required")

    def _validate_request(self, request: PaymentRequest) -> None:
        self._check_request_fields(request)
        try:
            valid = self.wallet.validate_address(request.recipient)
        except Exception as e:
            raise InvalidPaymentError(
                "Invalid recipient address format",
                {"recipient": request.recipient},
            ) from e
        if not valid:
            raise InvalidPaymentError("Invalid recipient address format", {"recipient": request.recipient})

    # ============ Lifecycle ============

    async def verify_payment(self, payment_id: str) -> Payment:
        """
        Re-check a payment against the status oracle.

        Terminal payments are returned without a query. Only payments this
        processor submitted are verified; a record another processor left in
        a shared cache is not one of them.

        Raises:
            PaymentNotFoundError: Unknown payment id
            NetworkError: Status oracle unreachable
        """
        payment = self._payments.get(payment_id)
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        if payment.status.is_terminal:
            return payment

        logger.debug("Verifying payment %s: signature=%s", payment_id, payment.tx_signature)
        status = await self.oracle.get_signature_status(payment.tx_signature)

        if status.is_failed:
            logger.warning("Payment failed: %s (%s)", payment_id, status.error)
            return self._transition(payment_id, PaymentStatus.FAILED)
        if status.is_confirmed:
            logger.info("Payment confirmed: %s (%s)", payment_id, status.confirmation_level)
            return self._transition(payment_id, PaymentStatus.CONFIRMED, confirmed_at=self._clock())

        logger.debug("Payment still pending: %s", payment_id)
        return self._payments[payment_id]

    def cancel_payment(self, payment_id: str) -> Payment:
        """
        Cancel a pending payment and stop its confirmation poll.

        A payment already in a terminal status is returned unchanged.

        Raises:
            PaymentNotFoundError: Unknown payment id
        """
        if payment_id not in self._payments:
            raise PaymentNotFoundError(payment_id)
        self.monitor.cancel(payment_id)
        payment = self._transition(payment_id, PaymentStatus.CANCELLED)
        if payment.status is PaymentStatus.CANCELLED:
            logger.info("Payment cancelled: %s", payment_id)
        return payment

    def _expire(self, payment_id: str) -> None:
        if payment_id in self._payments:
            self._transition(payment_id, PaymentStatus.EXPIRED)

    def _transition(self, payment_id: str, status: PaymentStatus, **changes: Any) -> Payment:
        current = self._payments[payment_id]
        if current.status.is_terminal:
            logger.debug(
                "Ignoring %s for payment %s already %s",
                status.value,
                payment_id,
                current.status.value,
            )
            return current
        updated = replace(current, status=status, **changes)
        self._store(updated)
        return updated

    def _store(self, payment: Payment) -> None:
        self._payments[payment.id] = payment
        if self._cache is not None:
            self._cache.set(f"payment:{payment.id}", payment, PAYMENT_TTL)

    # ============ Queries ============

    def get_payment(self, payment_id: str) -> Optional[Payment]:
        """Cache-first lookup; repopulates the cache on a miss."""
        if self._cache is not None:
            cached = self._cache.get(f"payment:{payment_id}")
            if cached is not None:
                return cached

        payment = self._payments.get(payment_id)
        if payment is not None and self._cache is not None:
            self._cache.set(f"payment:{payment_id}", payment, PAYMENT_TTL)
        return payment

    def list_payments(
        self,
        user_id: Optional[str] = None,
        agent_id: Optional[str] = None,
        status: Optional[PaymentStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Payment]:
        """
        Filter payments by equality, newest first, then apply offset/limit.
        """
        payments = list(self._payments.values())
        if user_id is not None:
            payments = [p for p in payments if p.user_id == user_id]
        if agent_id is not None:
            payments = [p for p in payments if p.agent_id == agent_id]
        if status is not None:
            payments = [p for p in payments if p.status == status]

        payments.sort(key=lambda p: p.created_at, reverse=True)
        page = payments[offset:offset + limit]
        logger.debug("Payments listed: total=%d, returned=%d", len(payments), len(page))
        return page

    def calculate_platform_fee(self, amount: float) -> float:
        return amount * (self.platform_fee_percent / 100)

    async def close(self) -> None:
        """Stop every confirmation poll."""
        await self.monitor.shutdown()
