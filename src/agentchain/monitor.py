"""
AgentChain SDK Confirmation Monitor Module

Drives submitted payments from PENDING to a terminal status by polling the
status oracle on a fixed interval.

Classes:
    ConfirmationMonitor: One cancellable poll task per payment id

Example:
    >>> monitor = ConfirmationMonitor(verify=processor.verify_payment, config=PollConfig())
    >>> monitor.watch("payment_lx3k...")
    >>> monitor.cancel("payment_lx3k...")
    True

Note:
    - Polls are bounded by attempt count, not wall-clock time
    - A failed status check is logged and still consumes an attempt
    - Errors inside a poll never reach the caller that scheduled it
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from .config import PollConfig
from .exceptions import PaymentNotFoundError, TransientNetworkError

logger = logging.getLogger("agentchain.monitor")


class ConfirmationMonitor:
    """
    Confirmation poller.

    Args:
        verify: Coroutine function re-checking one payment and returning it;
            the returned object must expose ``status.is_terminal``
        on_exhausted: Called with the payment id when attempts run out
        config: Poll settings, defaults to PollConfig()
    """

    def __init__(
        self,
        verify: Callable[[str], Awaitable[Any]],
        on_exhausted: Optional[Callable[[str], Any]] = None,
        config: Optional[PollConfig] = None,
    ) -> None:
        self._verify = verify
        self._on_exhausted = on_exhausted
        self.config = config or PollConfig()
        self._tasks: Dict[str, asyncio.Task] = {}

    def watch(self, payment_id: str) -> asyncio.Task:
        """
        Start polling a payment. Must be called from a running event loop.

        Idempotent per payment id: a second call returns the running task.
        """
        existing = self._tasks.get(payment_id)
        if existing is not None and not existing.done():
            return existing

        task = asyncio.get_running_loop().create_task(self._run(payment_id))
        self._tasks[payment_id] = task
        task.add_done_callback(lambda t, pid=payment_id: self._discard(pid, t))
        logger.debug("Monitoring payment %s", payment_id)
        return task

    def cancel(self, payment_id: str) -> bool:
        """Stop polling a payment; return whether a poll was running."""
        task = self._tasks.pop(payment_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug("Stopped monitoring payment %s", payment_id)
        return True

    def is_watching(self, payment_id: str) -> bool:
        task = self._tasks.get(payment_id)
        return task is not None and not task.done()

    def active_count(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    async def shutdown(self) -> None:
        """Cancel every running poll and wait for them to unwind."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _discard(self, payment_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(payment_id) is task:
            del self._tasks[payment_id]

    async def _run(self, payment_id: str) -> None:
        max_attempts = self.config.max_attempts
        await asyncio.sleep(self.config.initial_delay)

        for attempt in range(1, max_attempts + 1):
            try:
                payment = await self._verify(payment_id)
            except PaymentNotFoundError:
                logger.warning("Payment %s disappeared, stopping monitor", payment_id)
                return
            except Exception as e:
                logger.warning("%s", TransientNetworkError(payment_id, attempt, e))
            else:
                if payment.status.is_terminal:
                    logger.debug(
                        "Payment %s reached %s after %d checks",
                        payment_id,
                        payment.status.value,
                        attempt,
                    )
                    return

            if attempt < max_attempts:
                await asyncio.sleep(self.config.interval)

        logger.warning(
            "Payment confirmation monitoring timed out: %s after %d attempts",
            payment_id,
            max_attempts,
        )
        if self._on_exhausted is None:
            return
        try:
            result = self._on_exhausted(payment_id)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Timeout handler failed for payment %s", payment_id)
