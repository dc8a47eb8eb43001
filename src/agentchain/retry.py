"""
AgentChain SDK RPC Retry Module

Decides whether a failed JSON-RPC read is worth repeating and how long to
wait before the next attempt.

Classes:
    RetryConfig: Retry policy for one RPC client

Functions:
    is_retryable: Whether an RPC failure is transient
    retry_after: Server-requested wait carried by a 429/503 response
    backoff_delay: Exponential delay before attempt N
    next_delay: Delay before the next attempt, honouring Retry-After
    call_with_retry: Run one RPC operation under a RetryConfig

Predefined Configs:
    DEFAULT_RETRY_CONFIG: 3 attempts, 0.5s base delay
    PUBLIC_RPC_RETRY_CONFIG: 6 attempts, 1s base delay, for rate-limited public endpoints
    NO_RETRY_CONFIG: Single attempt (used for sendTransaction)

Note:
    Transient failures are:
    - transport errors (connection refused/reset, read timeouts)
    - HTTP 429 and 5xx answers from the node or its load balancer
    - JSON-RPC errors a lagging node reports for data it has not caught up
      with yet (-32004 block not available, -32005 node is behind,
      -32014 block status not yet available)
    Any other JSON-RPC error object is a definitive answer.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Awaitable, Callable, Optional, Tuple, TypeVar

import httpx

from .exceptions import RetryExhaustedError, RPCError

logger = logging.getLogger("agentchain.retry")

T = TypeVar("T")

NODE_LAGGING_CODES = (-32004, -32005, -32014)


@dataclass(frozen=True)
class RetryConfig:
    """
    Retry policy for JSON-RPC reads.

    Attributes:
        max_attempts: Attempts including the first one
        base_delay: Delay before the second attempt (seconds)
        max_delay: Cap for the exponential delay (seconds)
        backoff: Growth factor between consecutive delays
        jitter_factor: Random spread applied to each delay (0-1)
        retry_on_status_codes: HTTP statuses treated as transient
        retry_on_rpc_codes: JSON-RPC error codes treated as transient
        max_retry_after: Longest Retry-After the client agrees to wait (seconds)
    """

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 8.0
    backoff: float = 2.0
    jitter_factor: float = 0.1
    retry_on_status_codes: Tuple[int, ...] = (429, 500, 502, 503, 504)
    retry_on_rpc_codes: Tuple[int, ...] = NODE_LAGGING_CODES
    max_retry_after: float = 30.0


DEFAULT_RETRY_CONFIG = RetryConfig()

PUBLIC_RPC_RETRY_CONFIG = RetryConfig(max_attempts=6, base_delay=1.0, max_delay=20.0)

NO_RETRY_CONFIG = RetryConfig(max_attempts=1)


def is_retryable(error: BaseException, config: RetryConfig) -> bool:
    """
    Example:
        >>> is_retryable(RPCError("Node is behind by 42 slots", rpc_code=-32005), DEFAULT_RETRY_CONFIG)
        True
        >>> is_retryable(RPCError("Invalid param", rpc_code=-32602), DEFAULT_RETRY_CONFIG)
        False
    """
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in config.retry_on_status_codes
    if isinstance(error, RPCError):
        return error.rpc_code is not None and error.rpc_code in config.retry_on_rpc_codes
    return False


def retry_after(error: BaseException) -> Optional[float]:
    """
    Seconds requested by a Retry-After header, or None.

    Accepts both forms of the header: delay-seconds and an HTTP date.
    """
    if not isinstance(error, httpx.HTTPStatusError):
        return None
    value = error.response.headers.get("Retry-After")
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def backoff_delay(attempt: int, config: RetryConfig) -> float:
    """
    Delay before attempt ``attempt`` (2 is the first retry).

    Example:
        >>> config = RetryConfig(base_delay=0.5, backoff=2.0, jitter_factor=0)
        >>> [backoff_delay(n, config) for n in (2, 3, 4)]
        [0.5, 1.0, 2.0]
    """
    if attempt <= 1:
        return 0.0
    delay = min(config.base_delay * config.backoff ** (attempt - 2), config.max_delay)
    if config.jitter_factor:
        spread = delay * config.jitter_factor
        delay += random.uniform(-spread, spread)
    return max(0.0, delay)


def next_delay(error: BaseException, attempt: int, config: RetryConfig) -> float:
    """Wait before attempt ``attempt``; a Retry-After header wins over backoff."""
    requested = retry_after(error)
    if requested is not None:
        return min(requested, config.max_retry_after)
    return backoff_delay(attempt, config)


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig,
    method: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``operation`` until it succeeds, fails definitively or runs out of attempts.

    Args:
        operation: Zero-argument coroutine function performing one RPC round trip
        config: Retry policy
        method: JSON-RPC method name, for logs and errors
        sleep: Awaitable sleep, injectable for tests

    Raises:
        RetryExhaustedError: Every attempt failed transiently
        Exception: The first non-transient failure, unchanged
    """
    for attempt in range(1, config.max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not is_retryable(e, config):
                raise
            if attempt >= config.max_attempts:
                logger.warning("%s failed after %d attempts: %s", method, attempt, e)
                raise RetryExhaustedError(method, attempt, e) from e
            delay = next_delay(e, attempt + 1, config)
            logger.info(
                "Retrying %s (attempt %d/%d) in %.2fs: %s",
                method,
                attempt + 1,
                config.max_attempts,
                delay,
                e,
            )
            await sleep(delay)
    raise RetryExhaustedError(method, config.max_attempts)
