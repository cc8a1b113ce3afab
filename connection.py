import asyncio
import json
import logging

import websockets
from web3 import AsyncWeb3

from errors import ConsistencyError

logger = logging.getLogger("LiqbotConnection")

POLL_INTERVAL = 2.0  # seconds between eth_blockNumber polls without a WebSocket
REQUEST_TIMEOUT = 60


class NodeConnection:
    """AsyncWeb3 connection to the Ethereum node plus a new-block stream."""

    def __init__(self, http_rpc_url, chain_id, ws_rpc_url=None, poll_interval=POLL_INTERVAL):
        self.http_rpc_url = http_rpc_url
        self.ws_rpc_url = ws_rpc_url
        self.chain_id = chain_id
        self.poll_interval = poll_interval
        self.w3 = None

    async def connect(self) -> AsyncWeb3:
        logger.info(f"🔌 Connecting to RPC: {self.http_rpc_url[:40]}...")
        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
            self.http_rpc_url, request_kwargs={"timeout": REQUEST_TIMEOUT}
        ))

        chain_id = await self.w3.eth.chain_id
        if chain_id != self.chain_id:
            raise ConsistencyError(f"chainId mismatch (got {chain_id} instead of {self.chain_id})")

        logger.info(f"🟢 Connected to chain {chain_id}")
        return self.w3

    async def close(self):
        if self.w3 and hasattr(self.w3.provider, "disconnect"):
            await self.w3.provider.disconnect()

    async def block_stream(self):
        """Yields new block numbers using WSS subscriptions or HTTP polling fallback."""
        if self.ws_rpc_url:
            async for block_number in self._ws_blocks():
                yield block_number
        else:
            async for block_number in self._polled_blocks():
                yield block_number

    async def _ws_blocks(self):
        logger.info(f"🎧 Starting WSS Block Stream on {self.ws_rpc_url[:40]}...")
        async with websockets.connect(self.ws_rpc_url, ping_interval=20, ping_timeout=20) as ws:
            sub_msg = {"jsonrpc": "2.0", "id": 1, "method": "eth_subscribe", "params": ["newHeads"]}
            await ws.send(json.dumps(sub_msg))
            response = json.loads(await ws.recv())
            if "error" in response:
                raise ConnectionError(f"newHeads subscription rejected: {response['error']}")
            logger.info(f"✅ WSS Subscribed: {response.get('result')}")

            while True:
                data = json.loads(await ws.recv())
                if data.get("method") == "eth_subscription":
                    yield int(data["params"]["result"]["number"], 16)

    async def _polled_blocks(self):
        logger.info(f"📡 Starting HTTP Block Polling on {self.http_rpc_url[:40]}...")
        last_block = await self.w3.eth.block_number
        yield last_block

        while True:
            current_block = await self.w3.eth.block_number
            if current_block > last_block:
                last_block = current_block
                yield current_block
            else:
                await asyncio.sleep(self.poll_interval)
