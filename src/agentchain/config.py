"""
AgentChain SDK Configuration Module

Typed configuration read once when the facade is constructed.

Classes:
    CacheConfig: Time-bounded cache settings
    PollConfig: Payment confirmation polling settings
    SDKConfig: Top-level SDK settings
    FieldError: A single field-level validation finding
    ConfigValidation: Result of validate_config

Functions:
    validate_config: Validate an SDKConfig, collecting every field error

Example:
    >>> from agentchain.config import SDKConfig, validate_config
    >>> result = validate_config(SDKConfig(rpc_url=""))
    >>> result.is_valid
    False
    >>> result.errors[0].field
    'rpc_url'
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .retry import RetryConfig, DEFAULT_RETRY_CONFIG

ENVIRONMENTS = ("development", "testnet", "production")
SOLANA_NETWORKS = ("mainnet-beta", "testnet", "devnet")

DEFAULT_RPC_URLS: Dict[str, str] = {
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "devnet": "https://api.devnet.solana.com",
}


@dataclass
class CacheConfig:
    """
    Cache settings.

    Attributes:
        enabled: Whether services read through the cache
        default_ttl: TTL applied when set() is called without one (seconds)
        max_size: Maximum number of stored entries
        cleanup_interval: Interval of the background expiry sweep (seconds)
    """

    enabled: bool = True
    default_ttl: float = 300.0
    max_size: int = 1000
    cleanup_interval: float = 60.0


@dataclass
class PollConfig:
    """
    Confirmation polling settings.

    Attributes:
        initial_delay: Wait before the first status check (seconds)
        interval: Wait between status checks (seconds)
        max_attempts: Number of status checks before monitoring gives up
    """

    initial_delay: float = 5.0
    interval: float = 10.0
    max_attempts: int = 30


@dataclass
class SDKConfig:
    """
    SDK configuration class.

    Attributes:
        environment: "development", "testnet" or "production"
        solana_network: "mainnet-beta", "testnet" or "devnet"
        rpc_url: Solana JSON-RPC endpoint
        timeout: HTTP request timeout (seconds)
        enable_logging: Set the package logger to INFO unless the application already chose a level
        platform_fee_percent: Fee percentage used by calculate_platform_fee (0-100)
        fee_recipient: Platform fee recipient address
        cache: Cache settings
        poll: Confirmation polling settings
        retry_config: Retry settings for RPC reads
        supabase_url: Database URL (production integrations)
        supabase_key: Database key (production integrations)
        moralis_api_key: Analytics API key (production integrations)
        openai_api_key: Chat API key (production integrations)
    """

    environment: str = "development"
    solana_network: str = "devnet"
    rpc_url: str = DEFAULT_RPC_URLS["devnet"]
    timeout: float = 10.0
    enable_logging: bool = True
    platform_fee_percent: float = 0.0
    fee_recipient: Optional[str] = None
    cache: CacheConfig = field(default_factory=CacheConfig)
    poll: PollConfig = field(default_factory=PollConfig)
    retry_config: RetryConfig = field(default_factory=lambda: DEFAULT_RETRY_CONFIG)
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    moralis_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None


@dataclass(frozen=True)
class FieldError:
    """A validation finding attached to one configuration field."""

    field: str
    message: str


@dataclass
class ConfigValidation:
    """Outcome of validate_config."""

    errors: List[FieldError] = field(default_factory=list)
    warnings: List[FieldError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": [{"field": e.field, "message": e.message} for e in self.errors],
            "warnings": [{"field": w.field, "message": w.message} for w in self.warnings],
        }


def validate_config(config: SDKConfig) -> ConfigValidation:
    """
    Validate an SDKConfig.

    All checks run; nothing short-circuits, so the result lists every
    problem at once.

    Args:
        config: Configuration to validate

    Returns:
        ConfigValidation with errors (invalid values) and warnings
        (missing optional integrations in production)
    """
    result = ConfigValidation()
    errors = result.errors

    if config.environment not in ENVIRONMENTS:
        errors.append(FieldError("environment", f"must be one of {', '.join(ENVIRONMENTS)}"))
    if config.solana_network not in SOLANA_NETWORKS:
        errors.append(FieldError("solana_network", f"must be one of {', '.join(SOLANA_NETWORKS)}"))
    if not config.rpc_url:
        errors.append(FieldError("rpc_url", "RPC endpoint is required"))
    elif not config.rpc_url.startswith(("http://", "https://")):
        errors.append(FieldError("rpc_url", "must be an http(s) URL"))
    if config.timeout <= 0:
        errors.append(FieldError("timeout", "must be greater than 0"))
    if not 0 <= config.platform_fee_percent <= 100:
        errors.append(FieldError("platform_fee_percent", "must be between 0 and 100"))

    if config.cache.default_ttl <= 0:
        errors.append(FieldError("cache.default_ttl", "must be greater than 0"))
    if config.cache.max_size < 1:
        errors.append(FieldError("cache.max_size", "must be at least 1"))
    if config.cache.cleanup_interval <= 0:
        errors.append(FieldError("cache.cleanup_interval", "must be greater than 0"))

    if config.poll.initial_delay < 0:
        errors.append(FieldError("poll.initial_delay", "must not be negative"))
    if config.poll.interval < 0:
        errors.append(FieldError("poll.interval", "must not be negative"))
    if config.poll.max_attempts < 1:
        errors.append(FieldError("poll.max_attempts", "must be at least 1"))

    if config.retry_config.max_attempts < 1:
        errors.append(FieldError("retry_config.max_attempts", "must be at least 1"))

    if config.environment == "production":
        if not config.supabase_url or not config.supabase_key:
            result.warnings.append(
                FieldError("supabase_url", "database configuration missing for production environment")
            )
        if not config.moralis_api_key:
            result.warnings.append(
                FieldError("moralis_api_key", "analytics API key missing for production environment")
            )
        if not config.openai_api_key:
            result.warnings.append(
                FieldError("openai_api_key", "chat API key missing for production environment")
            )
        if config.solana_network != "mainnet-beta":
            result.warnings.append(
                FieldError("solana_network", "production environment is not using mainnet-beta")
            )

    return result
