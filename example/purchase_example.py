import asyncio
import logging

from mint_client.adapters.evm.constants import MintConfig
from mint_client.adapters.providers import JsonRpcWalletProvider
from mint_client.clients.orchestrator import SessionOrchestrator
from mint_client.schemas.bases import ApprovalState

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# Reads MINT_* variables (and .env); the wallet bridge defaults to Frame's port.
config = MintConfig.from_env()
bridge_url = config.wallet_rpc_url or "http://127.0.0.1:1248"


async def main():
    async with JsonRpcWalletProvider(bridge_url) as provider:
        orchestrator = SessionOrchestrator(config, provider)
        orchestrator.listen()
        watcher = asyncio.create_task(provider.watch(interval=2.0))

        try:
            result = await orchestrator.connect()
            print("Connect:", result.to_canonical_json())
            if not result.ok:
                return

            status = await orchestrator.status()
            if status.approval_state is not ApprovalState.APPROVED:
                print("Approve:", (await orchestrator.approve()).to_canonical_json())

            print("Purchase:", (await orchestrator.purchase()).to_canonical_json())

            if orchestrator.refresh_task is not None:
                await orchestrator.refresh_task
            print("Status:", (await orchestrator.status()).to_canonical_json())
        finally:
            watcher.cancel()
            await orchestrator.aclose()


if __name__ == "__main__":
    asyncio.run(main())
