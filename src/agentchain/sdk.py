"""
AgentChain SDK Facade

One configuration object yields pre-wired services:
- Agent record management (agents)
- Wallet session and Solana reads (wallet)
- Payment requests, submission and confirmation tracking (payments)

Example:
    >>> from agentchain import AgentChainSDK, DummyWalletSession
    >>> async with AgentChainSDK.create_development() as sdk:
    ...     await sdk.wallet.connect_wallet(DummyWalletSession())
    ...     request = sdk.payments.create_payment_request(1.5, "SOL", recipient)
    ...     payment = await sdk.payments.process_payment(request, user_id="user-1")
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .agents import AgentManager
from .cache import TTLCache
from .config import DEFAULT_RPC_URLS, SDKConfig, ConfigValidation, validate_config
from .exceptions import ConfigurationError, NetworkError, WalletError
from .payments import PaymentProcessor
from .rpc import SolanaRpcClient
from .wallet import WalletService

logger = logging.getLogger("agentchain.sdk")

VERSION = "1.0.0"

_package_logger = logging.getLogger("agentchain")


class AgentChainSDK:
    """
    AgentChain SDK main class.

    Services are created on first access and share one cache. The cache
    sweep starts on the first service access made inside a running event loop.

    Args:
        config: Base configuration, defaults to SDKConfig()
        **overrides: SDKConfig field overrides (e.g. rpc_url=..., platform_fee_percent=2.5)

    Raises:
        ConfigurationError: Unknown override or invalid configuration
    """

    def __init__(self, config: Optional[SDKConfig] = None, **overrides: Any) -> None:
        config = config or SDKConfig()
        try:
            config = replace(config, **overrides)
        except TypeError as e:
            raise ConfigurationError("Unknown configuration field", {"reason": str(e)}) from e

        validation = validate_config(config)
        if not validation.is_valid:
            raise ConfigurationError("Invalid SDK configuration", validation.to_dict()["errors"])
        for warning in validation.warnings:
            logger.warning("Configuration warning: %s: %s", warning.field, warning.message)

        self.config = config
        self._apply_logging()
        self.cache = TTLCache(config.cache)
        self._rpc: Optional[SolanaRpcClient] = None
        self._agents: Optional[AgentManager] = None
        self._wallet: Optional[WalletService] = None
        self._payments: Optional[PaymentProcessor] = None

        logger.info(
            "SDK initialized: environment=%s, network=%s, rpc=%s",
            config.environment,
            config.solana_network,
            config.rpc_url,
        )

    # ============ Services ============

    @property
    def rpc(self) -> SolanaRpcClient:
        if self._rpc is None:
            self._rpc = SolanaRpcClient(
                self.config.rpc_url,
                timeout=self.config.timeout,
                retry_config=self.config.retry_config,
            )
        return self._rpc

    @property
    def agents(self) -> AgentManager:
        self._start_sweep()
        if self._agents is None:
            self._agents = AgentManager(cache=self._service_cache())
        return self._agents

    @property
    def wallet(self) -> WalletService:
        self._start_sweep()
        if self._wallet is None:
            self._wallet = WalletService(self.rpc, network=self.config.solana_network)
        return self._wallet

    @property
    def payments(self) -> PaymentProcessor:
        self._start_sweep()
        if self._payments is None:
            self._payments = PaymentProcessor(
                wallet=self.wallet,
                cache=self._service_cache(),
                platform_fee_percent=self.config.platform_fee_percent,
                fee_recipient=self.config.fee_recipient,
                poll_config=self.config.poll,
            )
        return self._payments

    def _service_cache(self) -> Optional[TTLCache]:
        return self.cache if self.config.cache.enabled else None

    def _apply_logging(self) -> None:
        # Only fills in a level the application has not chosen; never lowers it.
        if self.config.enable_logging and _package_logger.level == logging.NOTSET:
            _package_logger.setLevel(logging.INFO)

    def _start_sweep(self) -> None:
        if not self.config.cache.enabled or self.cache.running:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self.cache.start()

    # ============ Configuration ============

    def get_config(self) -> SDKConfig:
        return replace(self.config)

    async def update_config(self, **updates: Any) -> SDKConfig:
        """
        Apply configuration updates.

        Changing the network or endpoint opens a client for the new endpoint,
        rebinds the wallet and payment services to it and closes the old
        client. Recorded payments, running confirmation polls and the
        connected wallet session are kept.

        Raises:
            ConfigurationError: Unknown field or invalid result
        """
        if "solana_network" in updates and "rpc_url" not in updates:
            updates["rpc_url"] = DEFAULT_RPC_URLS.get(updates["solana_network"], self.config.rpc_url)
        try:
            candidate = replace(self.config, **updates)
        except TypeError as e:
            raise ConfigurationError("Unknown configuration field", {"reason": str(e)}) from e
        validation = validate_config(candidate)
        if not validation.is_valid:
            raise ConfigurationError("Invalid SDK configuration", validation.to_dict()["errors"])

        old = self.config
        self.config = candidate
        self._start_sweep()
        if candidate.rpc_url != old.rpc_url or candidate.solana_network != old.solana_network:
            await self._switch_endpoint()
        if candidate.enable_logging != old.enable_logging:
            self._apply_logging()

        logger.info(
            "SDK configuration updated: environment %s -> %s",
            old.environment,
            candidate.environment,
        )
        return self.get_config()

    async def _switch_endpoint(self) -> None:
        previous, self._rpc = self._rpc, None
        if previous is None:
            return

        rpc = self.rpc
        if self._wallet is not None:
            self._wallet.update_rpc(rpc, self.config.solana_network)
        if self._payments is not None and self._payments.oracle is previous:
            self._payments.oracle = rpc
        await previous.close()
        logger.info("RPC endpoint switched: %s -> %s", previous.rpc_url, rpc.rpc_url)

    def validate_config(self) -> ConfigValidation:
        return validate_config(self.config)

    @staticmethod
    def get_version() -> str:
        return VERSION

    # ============ Health & Cache ============

    async def get_health(self) -> Dict[str, Any]:
        """
        Report SDK health.

        Status is "healthy" unless the RPC node cannot be reached, in which
        case it is "degraded".
        """
        health: Dict[str, Any] = {
            "status": "healthy",
            "services": {
                "wallet": "connected" if self._wallet and self._wallet.is_wallet_connected() else "disconnected",
                "network": "connected",
                "cache": "enabled" if self.config.cache.enabled else "disabled",
            },
            "network": {
                "endpoint": self.config.rpc_url,
                "network": self.config.solana_network,
            },
            "timestamp": datetime.now(timezone.utc),
        }
        self._start_sweep()
        try:
            await self.rpc.get_version()
        except NetworkError as e:
            logger.warning("Health check failed: %s", e)
            health["status"] = "degraded"
            health["services"]["network"] = "error"
        return health

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("SDK cache cleared")

    def get_cache_stats(self) -> Dict[str, Any]:
        return {**self.cache.stats(), "enabled": self.config.cache.enabled}

    # ============ Lifecycle ============

    async def start(self) -> None:
        """Start the cache sweep now instead of on first service access."""
        self.cache.start()

    async def close(self) -> None:
        """
        Release resources: stop payment monitoring, disconnect the wallet,
        close the RPC client and destroy the cache.
        """
        logger.info("Closing SDK instance")
        if self._payments is not None:
            await self._payments.close()
        if self._wallet is not None and self._wallet.is_wallet_connected():
            try:
                await self._wallet.disconnect_wallet()
            except WalletError as e:
                logger.warning("Error disconnecting wallet during cleanup: %s", e)
        if self._rpc is not None:
            await self._rpc.close()
        self.cache.destroy()
        self._agents = None
        self._wallet = None
        self._payments = None
        self._rpc = None

    async def __aenter__(self) -> "AgentChainSDK":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ============ Factories ============

    @classmethod
    def create(cls, config: Optional[SDKConfig] = None, **overrides: Any) -> "AgentChainSDK":
        return cls(config, **overrides)

    @classmethod
    def create_development(cls, **overrides: Any) -> "AgentChainSDK":
        defaults = dict(
            environment="development",
            solana_network="devnet",
            rpc_url=DEFAULT_RPC_URLS["devnet"],
            enable_logging=True,
        )
        defaults.update(overrides)
        return cls(SDKConfig(), **defaults)

    @classmethod
    def create_production(
        cls,
        rpc_url: str,
        supabase_url: str,
        supabase_key: str,
        moralis_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        **overrides: Any,
    ) -> "AgentChainSDK":
        return cls(
            SDKConfig(),
            environment="production",
            solana_network="mainnet-beta",
            rpc_url=rpc_url,
            supabase_url=supabase_url,
            supabase_key=supabase_key,
            moralis_api_key=moralis_api_key,
            openai_api_key=openai_api_key,
            **overrides,
        )
