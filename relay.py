"""
Minimal async client for a Flashbots-style bundle relay.

Requests are JSON-RPC over HTTPS, authenticated with an
`X-Flashbots-Signature` header signed by the searcher identity key. The identity
key holds no funds; it only builds reputation with the relay.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import List, Optional

import aiohttp
from eth_account.messages import encode_defunct
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import TransactionNotFound

from errors import RelayError

logger = logging.getLogger("LiqbotRelay")

DEFAULT_RELAY_URL = "https://relay.flashbots.net"
REQUEST_TIMEOUT = 30  # seconds
BLOCK_POLL_INTERVAL = 1.0  # seconds


class BundleResolution(IntEnum):
    BUNDLE_INCLUDED = 0
    BLOCK_PASSED_WITHOUT_INCLUSION = 1
    ACCOUNT_NONCE_TOO_HIGH = 2


@dataclass(frozen=True)
class BundleTransaction:
    """A signed transaction plus what is needed to track it after submission."""

    raw_transaction: HexBytes
    hash: HexBytes
    sender: str
    nonce: int

    @classmethod
    def from_signed(cls, signed, sender: str, nonce: int) -> "BundleTransaction":
        return cls(HexBytes(signed.raw_transaction), HexBytes(signed.hash), sender, nonce)


class BundleHandle:
    """Returned by `BundleRelay.send_bundle`; resolves once the target block is mined."""

    def __init__(self, w3, bundle_hash, transactions: List[BundleTransaction], target_block: int,
                 poll_interval: float = BLOCK_POLL_INTERVAL):
        self.w3 = w3
        self.bundle_hash = bundle_hash
        self.transactions = transactions
        self.target_block = target_block
        self.poll_interval = poll_interval

    async def _receipt(self, tx_hash):
        try:
            return await self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None

    async def wait(self) -> BundleResolution:
        while await self.w3.eth.block_number < self.target_block:
            await asyncio.sleep(self.poll_interval)

        receipts = [await self._receipt(tx.hash) for tx in self.transactions]
        if all(r is not None and r["blockNumber"] == self.target_block for r in receipts):
            return BundleResolution.BUNDLE_INCLUDED

        for tx in self.transactions:
            nonce = await self.w3.eth.get_transaction_count(tx.sender, self.target_block)
            if nonce > tx.nonce:
                return BundleResolution.ACCOUNT_NONCE_TOO_HIGH

        return BundleResolution.BLOCK_PASSED_WITHOUT_INCLUSION

    async def receipts(self) -> list:
        return [await self._receipt(tx.hash) for tx in self.transactions]


class BundleRelay:
    def __init__(self, w3, identity_account, relay_url: str = DEFAULT_RELAY_URL,
                 session: Optional[aiohttp.ClientSession] = None,
                 poll_interval: float = BLOCK_POLL_INTERVAL):
        self.w3 = w3
        self.identity = identity_account
        self.relay_url = relay_url
        self.poll_interval = poll_interval
        self._session = session
        self._request_id = 0

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT))
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    def _signature_header(self, body: str) -> str:
        message = encode_defunct(text=Web3.to_hex(Web3.keccak(text=body)))
        signed = self.identity.sign_message(message)
        return f"{self.identity.address}:{Web3.to_hex(signed.signature)}"

    async def _request(self, method: str, params: list):
        self._request_id += 1
        body = json.dumps({"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params})
        headers = {
            "Content-Type": "application/json",
            "X-Flashbots-Signature": self._signature_header(body),
        }

        session = await self._get_session()
        async with session.post(self.relay_url, data=body, headers=headers) as response:
            data = await response.json(content_type=None)

        error = data.get("error") if isinstance(data, dict) else None
        if error is not None:
            if isinstance(error, dict):
                raise RelayError(error.get("code"), error.get("message", ""))
            raise RelayError(response.status, str(error))

        return data.get("result")

    async def simulate(self, bundle: List[BundleTransaction], target_block: int) -> dict:
        """Dry-run the bundle on top of the latest state (`eth_callBundle`)."""
        result = await self._request("eth_callBundle", [{
            "txs": [Web3.to_hex(tx.raw_transaction) for tx in bundle],
            "blockNumber": hex(target_block),
            "stateBlockNumber": "latest",
        }])

        for tx_result in (result or {}).get("results", []):
            if tx_result.get("error"):
                logger.warning(f"Bundle simulation: tx {tx_result.get('txHash')} reverted: {tx_result['error']}")

        logger.info(f"🧪 Bundle simulated for block {target_block} (coinbaseDiff: {(result or {}).get('coinbaseDiff')})")
        return result or {}

    async def send_bundle(self, bundle: List[BundleTransaction], target_block: int) -> BundleHandle:
        result = await self._request("eth_sendBundle", [{
            "txs": [Web3.to_hex(tx.raw_transaction) for tx in bundle],
            "blockNumber": hex(target_block),
        }])
        bundle_hash = (result or {}).get("bundleHash")
        logger.info(f"📦 Bundle {bundle_hash} submitted for block {target_block}")
        return BundleHandle(self.w3, bundle_hash, list(bundle), target_block, self.poll_interval)
