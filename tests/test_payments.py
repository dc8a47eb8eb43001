import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from agentchain.cache import TTLCache
from agentchain.config import PollConfig
from agentchain.exceptions import (
    InvalidPaymentError,
    PaymentNotFoundError,
    PaymentNotImplementedError,
    TransferFailedError,
    WalletNotConnectedError,
)
from agentchain.ids import generate_id, to_base36
from agentchain.payments import Payment, PaymentProcessor, PaymentStatus
from agentchain.rpc import SignatureStatus, SolanaRpcClient
from agentchain.wallet import DummyWalletSession, TransferResult, WalletService, WalletSession

RECIPIENT = "11111111111111111111111111111111"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


class FixedSession(WalletSession):
    def __init__(self, signature: str = "5sig", confirmed: bool = True, error: Optional[Exception] = None) -> None:
        self.signature = signature
        self.confirmed = confirmed
        self.error = error
        self.sent = []

    def get_address(self) -> str:
        return "So11111111111111111111111111111111111111112"

    def is_connected(self) -> bool:
        return True

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def sign_and_send_transfer(self, recipient, amount, memo=None) -> TransferResult:
        if self.error is not None:
            raise self.error
        self.sent.append((recipient, amount, memo))
        return TransferResult(signature=self.signature, confirmed=self.confirmed)


class ScriptedOracle:
    """Returns queued statuses; the last one repeats."""

    def __init__(self, *statuses) -> None:
        self.statuses = list(statuses) or [SignatureStatus()]
        self.calls = []

    async def get_signature_status(self, signature: str) -> SignatureStatus:
        self.calls.append(signature)
        item = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(item, Exception):
            raise item
        return item


class StepClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


def _processor(session=None, oracle=None, cache=None, **kwargs) -> PaymentProcessor:
    wallet = WalletService(SolanaRpcClient("https://rpc.test"))
    if session is not None:
        asyncio.run(wallet.connect_wallet(session))
    kwargs.setdefault("monitor_confirmations", False)
    return PaymentProcessor(wallet, cache=cache, oracle=oracle or ScriptedOracle(), **kwargs)


def test_generate_id_prefix_and_uniqueness():
    ids = {generate_id("payment_") for _ in range(200)}
    assert len(ids) == 200
    assert all(i.startswith("payment_") for i in ids)


def test_to_base36():
    assert to_base36(0) == "0"
    assert to_base36(35) == "z"
    assert to_base36(36) == "10"


def test_payment_status_terminal():
    assert PaymentStatus.PENDING.is_terminal is False
    for status in (PaymentStatus.CONFIRMED, PaymentStatus.FAILED, PaymentStatus.CANCELLED, PaymentStatus.EXPIRED):
        assert status.is_terminal is True


class TestPaymentRequests:
    def test_defaults(self):
        processor = _processor()
        request = processor.create_payment_request(1.5, "SOL", RECIPIENT)
        assert request.amount == 1.5
        assert request.currency == "SOL"
        assert request.reference.startswith("pay_")
        assert request.expires_at > datetime.now(timezone.utc) + timedelta(minutes=29)

    def test_cached_under_reference(self):
        processor = _processor(cache=TTLCache())
        request = processor.create_payment_request(2, "SOL", RECIPIENT, reference="order-7", memo="coffee")
        assert processor.get_payment_request("order-7") == request
        assert processor.get_payment_request("order-8") is None

    def test_without_cache(self):
        processor = _processor()
        processor.create_payment_request(2, "SOL", RECIPIENT, reference="order-7")
        assert processor.get_payment_request("order-7") is None

    @pytest.mark.parametrize("amount", [0, -1, float("nan"), float("inf"), True, "1"])
    def test_rejects_bad_amount(self, amount):
        with pytest.raises(InvalidPaymentError):
            _processor().create_payment_request(amount, "SOL", RECIPIENT)

    def test_rejects_empty_recipient(self):
        with pytest.raises(InvalidPaymentError):
            _processor().create_payment_request(1, "SOL", "")

    def test_rejects_past_expiry(self):
        past = datetime.now(timezone.utc) - timedelta(minutes=1)
        with pytest.raises(InvalidPaymentError):
            _processor().create_payment_request(1, "SOL", RECIPIENT, expires_at=past)


class TestProcessPayment:
    def test_native_payment_is_pending_with_signature(self):
        session = FixedSession(signature="5VERv8NM")
        cache = TTLCache()
        processor = _processor(session, cache=cache)
        request = processor.create_payment_request(1.5, "SOL", RECIPIENT, memo="order-1")

        payment = asyncio.run(processor.process_payment(request, user_id="user-1", agent_id="agent-9"))

        assert payment.status is PaymentStatus.PENDING
        assert payment.tx_signature == "5VERv8NM"
        assert payment.amount == 1.5
        assert payment.reference == request.reference
        assert payment.agent_id == "agent-9"
        assert session.sent == [(RECIPIENT, 1.5, "order-1")]
        assert processor.get_payment(payment.id) == payment
        assert cache.get(f"payment:{payment.id}") == payment

    def test_with_dummy_session(self):
        processor = _processor(DummyWalletSession())
        request = processor.create_payment_request(0.25, "SOL", RECIPIENT)
        payment = asyncio.run(processor.process_payment(request, user_id="user-1"))
        assert payment.status is PaymentStatus.PENDING
        assert payment.tx_signature

    @pytest.mark.parametrize("amount", [0, -3])
    def test_invalid_amount_creates_no_record(self, amount):
        session = FixedSession()
        processor = _processor(session)
        request = processor.create_payment_request(1, "SOL", RECIPIENT)
        bad = type(request)(amount=amount, currency="SOL", recipient=RECIPIENT, reference="r")

        with pytest.raises(InvalidPaymentError):
            asyncio.run(processor.process_payment(bad, user_id="user-1"))
        assert processor.list_payments() == []
        assert session.sent == []

    def test_invalid_recipient(self):
        processor = _processor(FixedSession())
        request = processor.create_payment_request(1, "SOL", "not-a-solana-address")
        with pytest.raises(InvalidPaymentError):
            asyncio.run(processor.process_payment(request, user_id="user-1"))

    def test_expired_request_rejected_at_submission(self):
        clock = StepClock()
        processor = _processor(FixedSession(), clock=clock)
        request = processor.create_payment_request(1, "SOL", RECIPIENT)
        clock.now += timedelta(hours=1)
        with pytest.raises(InvalidPaymentError):
            asyncio.run(processor.process_payment(request, user_id="user-1"))

    def test_wallet_not_connected(self):
        processor = _processor()
        request = processor.create_payment_request(1, "SOL", RECIPIENT)
        with pytest.raises(WalletNotConnectedError):
            asyncio.run(processor.process_payment(request, user_id="user-1"))

    def test_token_payment_not_implemented(self):
        session = FixedSession()
        processor = _processor(session)
        request = processor.create_payment_request(10, USDC_MINT, RECIPIENT)
        with pytest.raises(PaymentNotImplementedError):
            asyncio.run(processor.process_payment(request, user_id="user-1"))
        assert session.sent == []
        assert processor.list_payments() == []

    def test_unconfirmed_transfer_fails(self):
        processor = _processor(FixedSession(confirmed=False))
        request = processor.create_payment_request(1, "SOL", RECIPIENT)
        with pytest.raises(TransferFailedError) as exc_info:
            asyncio.run(processor.process_payment(request, user_id="user-1"))
        assert exc_info.value.details["signature"] == "5sig"
        assert processor.list_payments() == []

    def test_session_exception_becomes_transfer_failed(self):
        processor = _processor(FixedSession(error=OSError("socket closed")))
        request = processor.create_payment_request(1, "SOL", RECIPIENT)
        with pytest.raises(TransferFailedError):
            asyncio.run(processor.process_payment(request, user_id="user-1"))

    def test_schedules_confirmation_monitor(self):
        oracle = ScriptedOracle(SignatureStatus(confirmation_level="confirmed"))
        processor = _processor(
            FixedSession(),
            oracle=oracle,
            monitor_confirmations=True,
            poll_config=PollConfig(initial_delay=0, interval=0, max_attempts=3),
        )
        request = processor.create_payment_request(1, "SOL", RECIPIENT)

        async def scenario():
            payment = await processor.process_payment(request, user_id="user-1")
            assert processor.monitor.is_watching(payment.id)
            await processor.monitor.watch(payment.id)
            return payment.id

        payment_id = asyncio.run(scenario())
        assert processor.get_payment(payment_id).status is PaymentStatus.CONFIRMED


def _submit(processor: PaymentProcessor, user_id: str = "user-1", agent_id=None, amount: float = 1.0) -> Payment:
    request = processor.create_payment_request(amount, "SOL", RECIPIENT)
    return asyncio.run(processor.process_payment(request, user_id=user_id, agent_id=agent_id))


class TestVerifyPayment:
    def test_finalized_becomes_confirmed(self):
        oracle = ScriptedOracle(SignatureStatus(confirmation_level="finalized", slot=12))
        processor = _processor(FixedSession(), oracle=oracle)
        payment = _submit(processor)

        verified = asyncio.run(processor.verify_payment(payment.id))
        assert verified.status is PaymentStatus.CONFIRMED
        assert verified.confirmed_at is not None
        assert processor.get_payment(payment.id).status is PaymentStatus.CONFIRMED
        assert payment.status is PaymentStatus.PENDING

    def test_processed_stays_pending(self):
        oracle = ScriptedOracle(SignatureStatus(confirmation_level="processed"))
        processor = _processor(FixedSession(), oracle=oracle)
        payment = _submit(processor)
        assert asyncio.run(processor.verify_payment(payment.id)).status is PaymentStatus.PENDING

    def test_error_becomes_failed(self):
        oracle = ScriptedOracle(SignatureStatus(confirmation_level="confirmed", error={"InstructionError": [0, "Custom"]}))
        processor = _processor(FixedSession(), oracle=oracle)
        payment = _submit(processor)
        assert asyncio.run(processor.verify_payment(payment.id)).status is PaymentStatus.FAILED

    def test_unknown_payment(self):
        with pytest.raises(PaymentNotFoundError):
            asyncio.run(_processor().verify_payment("payment_missing"))

    def test_terminal_status_is_final(self):
        oracle = ScriptedOracle(
            SignatureStatus(confirmation_level="finalized"),
            SignatureStatus(error="late failure"),
        )
        processor = _processor(FixedSession(), oracle=oracle)
        payment = _submit(processor)

        first = asyncio.run(processor.verify_payment(payment.id))
        second = asyncio.run(processor.verify_payment(payment.id))
        assert first.status is PaymentStatus.CONFIRMED
        assert second.status is PaymentStatus.CONFIRMED
        assert len(oracle.calls) == 1
        assert processor.cancel_payment(payment.id).status is PaymentStatus.CONFIRMED

    def test_oracle_error_propagates(self):
        oracle = ScriptedOracle(ConnectionError("node down"))
        processor = _processor(FixedSession(), oracle=oracle)
        payment = _submit(processor)
        with pytest.raises(ConnectionError):
            asyncio.run(processor.verify_payment(payment.id))
        assert processor.get_payment(payment.id).status is PaymentStatus.PENDING

    def test_payment_from_another_processor_in_shared_cache(self):
        cache = TTLCache()
        owner = _processor(FixedSession(), cache=cache)
        payment = _submit(owner)
        oracle = ScriptedOracle(SignatureStatus(confirmation_level="finalized"))
        other = _processor(FixedSession(), cache=cache, oracle=oracle)

        assert other.get_payment(payment.id) == payment
        with pytest.raises(PaymentNotFoundError):
            asyncio.run(other.verify_payment(payment.id))
        with pytest.raises(PaymentNotFoundError):
            other.cancel_payment(payment.id)
        assert oracle.calls == []
        assert owner.get_payment(payment.id).status is PaymentStatus.PENDING

    def test_exhausted_monitor_expires_payment(self):
        oracle = ScriptedOracle(SignatureStatus(confirmation_level="processed"))
        processor = _processor(
            FixedSession(),
            oracle=oracle,
            monitor_confirmations=True,
            poll_config=PollConfig(initial_delay=0, interval=0, max_attempts=2),
        )
        request = processor.create_payment_request(1, "SOL", RECIPIENT)

        async def scenario():
            payment = await processor.process_payment(request, user_id="user-1")
            await processor.monitor.watch(payment.id)
            return payment.id

        payment_id = asyncio.run(scenario())
        assert processor.get_payment(payment_id).status is PaymentStatus.EXPIRED
        assert len(oracle.calls) == 2
        assert processor.monitor.active_count() == 0
        assert asyncio.run(processor.verify_payment(payment_id)).status is PaymentStatus.EXPIRED
        assert len(oracle.calls) == 2

        assert processor.get_payment(payment.id).status is PaymentStatus.PENDING


class TestCancelPayment:
    def test_cancel_pending(self):
        processor = _processor(FixedSession())
        payment = _submit(processor)
        cancelled = processor.cancel_payment(payment.id)
        assert cancelled.status is PaymentStatus.CANCELLED

    def test_cancel_unknown(self):
        with pytest.raises(PaymentNotFoundError):
            _processor().cancel_payment("payment_missing")

    def test_cancel_stops_monitor(self):
        processor = _processor(
            FixedSession(),
            monitor_confirmations=True,
            poll_config=PollConfig(initial_delay=60, interval=60, max_attempts=3),
        )
        request = processor.create_payment_request(1, "SOL", RECIPIENT)

        async def scenario():
            payment = await processor.process_payment(request, user_id="user-1")
            assert processor.monitor.is_watching(payment.id)
            cancelled = processor.cancel_payment(payment.id)
            await asyncio.sleep(0)
            return payment.id, cancelled

        payment_id, cancelled = asyncio.run(scenario())
        assert cancelled.status is PaymentStatus.CANCELLED
        assert processor.monitor.is_watching(payment_id) is False
        assert processor.monitor.active_count() == 0

    def test_cancel_during_in_flight_verify(self):
        class HeldOracle:
            """Reports finalized once released."""

            def __init__(self):
                self.started = asyncio.Event()
                self.release = asyncio.Event()

            async def get_signature_status(self, signature):
                self.started.set()
                await self.release.wait()
                return SignatureStatus(confirmation_level="finalized")

        processor = _processor(FixedSession())
        payment = _submit(processor)

        async def scenario():
            oracle = HeldOracle()
            processor.oracle = oracle
            verify = asyncio.create_task(processor.verify_payment(payment.id))
            await oracle.started.wait()
            cancelled = processor.cancel_payment(payment.id)
            oracle.release.set()
            return cancelled, await verify

        cancelled, verified = asyncio.run(scenario())
        assert cancelled.status is PaymentStatus.CANCELLED
        assert verified.status is PaymentStatus.CANCELLED
        assert verified.confirmed_at is None
        assert processor.get_payment(payment.id).status is PaymentStatus.CANCELLED

        assert processor.monitor.active_count() == 0


class TestQueries:
    def test_get_payment_repopulates_cache(self):
        cache = TTLCache()
        processor = _processor(FixedSession(), cache=cache)
        payment = _submit(processor)
        cache.clear()
        assert processor.get_payment(payment.id) == payment
        assert cache.has(f"payment:{payment.id}")

    def test_get_payment_unknown(self):
        assert _processor().get_payment("payment_missing") is None

    def test_list_filters_sorts_and_pages(self):
        processor = _processor(FixedSession(), clock=StepClock())
        first = _submit(processor, user_id="alice", agent_id="agent-1")
        second = _submit(processor, user_id="bob", agent_id="agent-1")
        third = _submit(processor, user_id="alice", agent_id="agent-2")
        processor.cancel_payment(second.id)

        assert [p.id for p in processor.list_payments()] == [third.id, second.id, first.id]
        assert [p.id for p in processor.list_payments(user_id="alice")] == [third.id, first.id]
        assert [p.id for p in processor.list_payments(agent_id="agent-1")] == [second.id, first.id]
        assert [p.id for p in processor.list_payments(status=PaymentStatus.CANCELLED)] == [second.id]
        assert [p.id for p in processor.list_payments(limit=1, offset=1)] == [second.id]
        assert processor.list_payments(user_id="carol") == []

    def test_platform_fee(self):
        processor = _processor(platform_fee_percent=2.5)
        assert processor.calculate_platform_fee(100) == pytest.approx(2.5)
        assert _processor().calculate_platform_fee(100) == 0
