"""
AgentChain SDK

Python SDK for AgentChain agents on Solana, supporting:
- Agent record management (AgentManager)
- Wallet sessions, balances and signed SOL transfers (WalletService)
- Payment requests and confirmation tracking (PaymentProcessor)
- A shared time-bounded cache (TTLCache)

Quick Start:
    >>> from agentchain import AgentChainSDK, DummyWalletSession
    >>> async with AgentChainSDK.create_development() as sdk:
    ...     await sdk.wallet.connect_wallet(DummyWalletSession())
    ...     request = sdk.payments.create_payment_request(
    ...         1.5, "SOL", "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"
    ...     )
    ...     payment = await sdk.payments.process_payment(request, user_id="user-1")
"""

import logging

from .sdk import AgentChainSDK, VERSION as __version__
from .agents import Agent, AgentManager, AgentStatus, AgentType
from .cache import CacheEntry, TTLCache
from .config import CacheConfig, ConfigValidation, FieldError, PollConfig, SDKConfig, validate_config
from .monitor import ConfirmationMonitor
from .payments import Payment, PaymentProcessor, PaymentRequest, PaymentStatus
from .retry import RetryConfig, DEFAULT_RETRY_CONFIG, PUBLIC_RPC_RETRY_CONFIG, NO_RETRY_CONFIG
from .rpc import SignatureStatus, SolanaRpcClient
from .wallet import (
    DummyWalletSession,
    KeypairWalletSession,
    TransferResult,
    WalletService,
    WalletSession,
    is_valid_address,
)
from .exceptions import (
    SDKError,
    ConfigurationError,
    NetworkError,
    RPCError,
    RequestTimeoutError,
    RetryExhaustedError,
    TransientNetworkError,
    WalletError,
    WalletNotConnectedError,
    InvalidAddressError,
    PaymentError,
    InvalidPaymentError,
    TransferFailedError,
    PaymentNotFoundError,
    PaymentNotImplementedError,
    AgentError,
    AgentNotFoundError,
    AgentValidationError,
    AgentStateError,
)

logging.getLogger("agentchain").addHandler(logging.NullHandler())

__all__ = [
    "__version__",
    # Facade
    "AgentChainSDK",
    # Config
    "SDKConfig",
    "CacheConfig",
    "PollConfig",
    "RetryConfig",
    "DEFAULT_RETRY_CONFIG",
    "PUBLIC_RPC_RETRY_CONFIG",
    "NO_RETRY_CONFIG",
    "ConfigValidation",
    "FieldError",
    "validate_config",
    # Services
    "TTLCache",
    "CacheEntry",
    "AgentManager",
    "Agent",
    "AgentType",
    "AgentStatus",
    "PaymentProcessor",
    "PaymentRequest",
    "Payment",
    "PaymentStatus",
    "ConfirmationMonitor",
    "SolanaRpcClient",
    "SignatureStatus",
    "WalletService",
    "WalletSession",
    "KeypairWalletSession",
    "DummyWalletSession",
    "TransferResult",
    "is_valid_address",
    # Exceptions
    "SDKError",
    "ConfigurationError",
    "NetworkError",
    "RPCError",
    "RequestTimeoutError",
    "RetryExhaustedError",
    "TransientNetworkError",
    "WalletError",
    "WalletNotConnectedError",
    "InvalidAddressError",
    "PaymentError",
    "InvalidPaymentError",
    "TransferFailedError",
    "PaymentNotFoundError",
    "PaymentNotImplementedError",
    "AgentError",
    "AgentNotFoundError",
    "AgentValidationError",
    "AgentStateError",
]
