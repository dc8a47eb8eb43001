"""
AgentChain SDK Exceptions Module

Provides fine-grained exception types for precise error handling by callers.

Exception Hierarchy:
    SDKError (Base Class)
    ├── ConfigurationError
    ├── NetworkError
    │   ├── RPCError
    │   ├── RequestTimeoutError
    │   ├── RetryExhaustedError
    │   └── TransientNetworkError
    ├── WalletError
    │   ├── WalletNotConnectedError
    │   └── InvalidAddressError
    ├── PaymentError
    │   ├── InvalidPaymentError
    │   ├── TransferFailedError
    │   ├── PaymentNotFoundError
    │   └── PaymentNotImplementedError
    └── AgentError
        ├── AgentNotFoundError
        ├── AgentValidationError
        └── AgentStateError

Example:
    >>> from agentchain.exceptions import InvalidPaymentError, WalletNotConnectedError
    >>> try:
    ...     await sdk.payments.process_payment(request, user_id="user-1")
    ... except WalletNotConnectedError:
    ...     print("Connect a wallet first")
    ... except InvalidPaymentError as e:
    ...     print(f"Rejected: {e.details}")

Note:
    - All exceptions inherit from SDKError
    - Each exception has code and details attributes
    - Can catch parent exceptions to handle a category of errors
"""

from typing import Optional, Any


class SDKError(Exception):
    """
    SDK Base Exception.

    Base class for all SDK exceptions, providing unified error code and details mechanism.

    Attributes:
        code: Error code string for programmatic handling
        details: Error details, can be any type

    Args:
        message: Error message
        code: Error code, defaults to "SDK_ERROR"
        details: Error details
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.code = code or "SDK_ERROR"
        self.details = details

    def __str__(self) -> str:
        """Return formatted error message."""
        if self.details:
            return f"[{self.code}] {super().__str__()} - {self.details}"
        return f"[{self.code}] {super().__str__()}"


# ============ Configuration Exceptions ============


class ConfigurationError(SDKError):
    """
    Configuration Error.

    Raised when SDK configuration is incorrect, e.g. when a facade is built
    from a config that fails validation.

    Args:
        message: Error message
        details: Error details (usually the list of field errors)
    """

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message, "CONFIGURATION_ERROR", details)


# ============ Network Exceptions ============


class NetworkError(SDKError):
    """
    Network Request Error Base Class.

    Raised when a request to the RPC node fails.
    """

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message, "NETWORK_ERROR", details)


class RPCError(NetworkError):
    """
    RPC Call Failed Error.

    Raised when the Solana JSON-RPC node answers with an error object or an
    unexpected HTTP status.

    Args:
        message: Error message
        rpc_url: RPC node URL
        method: JSON-RPC method name
        rpc_code: JSON-RPC error code, when the node returned an error object

    Example:
        >>> raise RPCError("Node is behind by 42 slots", method="getBalance", rpc_code=-32005)
    """

    def __init__(
        self,
        message: str,
        rpc_url: Optional[str] = None,
        method: Optional[str] = None,
        rpc_code: Optional[int] = None,
    ) -> None:
        super().__init__(
            message,
            details={"rpc_url": rpc_url, "method": method, "rpc_code": rpc_code}
        )
        self.code = "RPC_ERROR"
        self.rpc_code = rpc_code


class RequestTimeoutError(NetworkError):
    """
    Request Timeout Error.

    Raised when every attempt of an RPC call timed out.

    Args:
        operation: JSON-RPC method name
        timeout_seconds: Per-request timeout in seconds
    """

    def __init__(self, operation: str, timeout_seconds: float) -> None:
        super().__init__(
            f"Operation '{operation}' timed out after {timeout_seconds}s",
            details={"operation": operation, "timeout": timeout_seconds}
        )
        self.code = "TIMEOUT_ERROR"


class RetryExhaustedError(NetworkError):
    """
    Retry Exhausted Error.

    Raised when an RPC operation fails after all retry attempts.

    Attributes:
        last_error: Exception from the last attempt
    """

    def __init__(
        self,
        operation: str,
        attempts: int,
        last_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(
            f"Operation '{operation}' failed after {attempts} attempts",
            details={
                "operation": operation,
                "attempts": attempts,
                "last_error": str(last_error),
            }
        )
        self.code = "RETRY_EXHAUSTED"
        self.last_error = last_error


class TransientNetworkError(NetworkError):
    """
    Transient Network Error.

    Wraps a status-oracle failure that happened while a payment was being
    monitored. It is logged and counted against the poll budget, never
    raised to callers of the public API.

    Args:
        payment_id: Payment being monitored
        attempt: Poll attempt number (starts from 1)
        cause: Original exception
    """

    def __init__(
        self,
        payment_id: str,
        attempt: int,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            f"Status check failed for payment '{payment_id}'",
            details={"payment_id": payment_id, "attempt": attempt, "cause": str(cause)}
        )
        self.code = "TRANSIENT_NETWORK_ERROR"
        self.cause = cause


# ============ Wallet Exceptions ============


class WalletError(SDKError):
    """
    Wallet Error Base Class.

    Raised when a wallet session cannot sign, send or connect.
    """

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message, "WALLET_ERROR", details)


class WalletNotConnectedError(WalletError):
    """
    Wallet Not Connected Error.

    Raised when an operation needs an active signing session but none is connected.

    Example:
        >>> raise WalletNotConnectedError()
        # [WALLET_NOT_CONNECTED] Wallet not connected
    """

    def __init__(self, reason: str = "Wallet not connected") -> None:
        super().__init__(reason)
        self.code = "WALLET_NOT_CONNECTED"


class InvalidAddressError(WalletError):
    """
    Invalid Address Format Error.

    Args:
        address: Invalid address
        expected_format: Description of expected format
    """

    def __init__(
        self,
        address: str,
        expected_format: str = "base58 encoded 32-byte public key",
    ) -> None:
        super().__init__(
            f"Invalid address format: {address}",
            details={"address": address, "expected": expected_format}
        )
        self.code = "INVALID_ADDRESS"


# ============ Payment Exceptions ============


class PaymentError(SDKError):
    """
    Payment Error Base Class.
    """

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message, "PAYMENT_ERROR", details)


class InvalidPaymentError(PaymentError):
    """
    Invalid Payment Error.

    Raised for a malformed, expired or non-positive payment request, or an
    empty/invalid recipient.

    Example:
        >>> raise InvalidPaymentError("Payment amount must be greater than 0", {"amount": 0})
    """

    def __init__(self, reason: str, details: Optional[Any] = None) -> None:
        super().__init__(reason, details)
        self.code = "INVALID_PAYMENT"


class TransferFailedError(PaymentError):
    """
    Transfer Failed Error.

    Raised when the signing session reports the transfer did not confirm at
    submission time.

    Args:
        signature: Transaction signature, if one was produced
        reason: Failure reason
    """

    def __init__(
        self,
        signature: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"Transfer failed: {reason or 'transaction failed to confirm'}",
            details={"signature": signature, "reason": reason}
        )
        self.code = "TRANSFER_FAILED"


class PaymentNotFoundError(PaymentError):
    """
    Payment Not Found Error.

    Args:
        payment_id: Unknown payment id
    """

    def __init__(self, payment_id: str) -> None:
        super().__init__(
            f"Payment not found: {payment_id}",
            details={"payment_id": payment_id}
        )
        self.code = "PAYMENT_NOT_FOUND"


class PaymentNotImplementedError(PaymentError):
    """
    Payment Path Not Implemented Error.

    Raised for token (non-SOL) payments, which the SDK does not submit.

    Args:
        currency: Requested currency or token mint
    """

    def __init__(self, currency: str) -> None:
        super().__init__(
            "SPL token payments not yet implemented",
            details={"currency": currency}
        )
        self.code = "NOT_IMPLEMENTED"


# ============ Agent Exceptions ============


class AgentError(SDKError):
    """
    Agent Record Error Base Class.
    """

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message, "AGENT_ERROR", details)


class AgentNotFoundError(AgentError):
    """
    Agent Not Found Error.

    Args:
        agent_id: Unknown agent id
    """

    def __init__(self, agent_id: str) -> None:
        super().__init__(
            f"Agent not found: {agent_id}",
            details={"agent_id": agent_id}
        )
        self.code = "AGENT_NOT_FOUND"


class AgentValidationError(AgentError):
    """
    Agent Validation Error.

    Raised when agent metadata is missing a required field.
    """

    def __init__(self, reason: str, details: Optional[Any] = None) -> None:
        super().__init__(reason, details)
        self.code = "AGENT_VALIDATION_FAILED"


class AgentStateError(AgentError):
    """
    Agent State Transition Error.

    Args:
        agent_id: Agent id
        current: Current status
        action: Attempted action
    """

    def __init__(self, agent_id: str, current: str, action: str) -> None:
        super().__init__(
            f"Cannot {action} agent in status '{current}'",
            details={"agent_id": agent_id, "status": current, "action": action}
        )
        self.code = "AGENT_INVALID_STATE"
