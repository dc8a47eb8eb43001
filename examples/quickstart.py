#!/usr/bin/env python3
"""
AgentChain SDK quick start

Creates an agent, connects a development wallet, submits a SOL payment and
checks its status once against devnet. No funds move: DummyWalletSession
signs locally and never submits, so the devnet node reports the signature
as unknown and the payment stays pending.

Run:
    python examples/quickstart.py
"""

import asyncio
import logging

from agentchain import AgentChainSDK, AgentType, DummyWalletSession, PollConfig
from agentchain.exceptions import NetworkError, SDKError

RECIPIENT = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"


async def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    # 1. Initialize the SDK
    print("🚀 Initializing SDK...")
    sdk = AgentChainSDK.create_development(
        platform_fee_percent=2.5,
        poll=PollConfig(initial_delay=1, interval=2, max_attempts=3),
    )
    async with sdk:
        print(f"   ✓ SDK {sdk.get_version()} ready on {sdk.config.solana_network}")

        # 2. Create and deploy an agent (in-process, no chain interaction)
        print("\n🤖 Creating agent...")
        agent = sdk.agents.create_agent(
            owner_id="user-1",
            type=AgentType.TRADING_BOT,
            metadata={"name": "Scout", "description": "Watches liquidity pools"},
        )
        agent = sdk.agents.deploy_agent(agent.id)
        print(f"   ✓ Agent {agent.id} is {agent.status.value}")

        # 3. Connect a wallet
        print("\n👛 Connecting wallet...")
        await sdk.wallet.connect_wallet(DummyWalletSession())
        print(f"   ✓ Wallet {sdk.wallet.session.get_address()}")
        try:
            fee = await sdk.wallet.estimate_transfer_fee(RECIPIENT, 1.5, memo="quickstart")
            print(f"   ✓ Estimated network fee: {fee} SOL")
        except NetworkError as e:
            print(f"   ✗ Fee estimate failed: {e}")

        # 4. Build and submit a payment
        print("\n💸 Submitting payment...")
        request = sdk.payments.create_payment_request(1.5, "SOL", RECIPIENT, memo="quickstart")
        payment = await sdk.payments.process_payment(request, user_id="user-1", agent_id=agent.id)
        print(f"   ✓ Payment {payment.id} is {payment.status.value}")
        print(f"   ✓ Platform fee: {sdk.payments.calculate_platform_fee(payment.amount)} SOL")

        # 5. Check the status once (the background monitor keeps polling)
        print("\n🔎 Verifying payment...")
        try:
            payment = await sdk.payments.verify_payment(payment.id)
            print(f"   ✓ Status: {payment.status.value}")
        except NetworkError as e:
            print(f"   ✗ Status check failed: {e}")

        health = await sdk.get_health()
        print(f"\n❤️  Health: {health['status']}, cache: {sdk.get_cache_stats()}")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except SDKError as e:
        print(f"❌ {e}")
