"""
Submitting a populated liquidation and turning the result into an ExecutionResult.

Two strategies:
  - RawExecutor: sign and broadcast through the node (public mempool).
  - RelayExecutor: route the call through the deployed LiqbotExecutor contract,
    which passes a cut of the ETH compensation to the block producer, and send
    it as a private single-transaction bundle targeting the next block.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import List, Optional, Sequence

from hexbytes import HexBytes
from web3 import Web3

from errors import ConfigError
from parsing import LiquidationDetails, get_liquidation_details
from profitability import expected_compensation
from relay import BundleRelay, BundleResolution, BundleTransaction
from troves import ONE, ZERO, Trove, to_fixed_point

logger = logging.getLogger("LiqbotExecution")

EXECUTOR_ABI = [{
    "inputs": [
        {"internalType": "address", "name": "to", "type": "address"},
        {"internalType": "bytes", "name": "data", "type": "bytes"},
        {"internalType": "uint256", "name": "coinbaseCutRate", "type": "uint256"},
        {"internalType": "address[]", "name": "sweepTokens", "type": "address[]"}
    ],
    "name": "execute",
    "outputs": [],
    "stateMutability": "nonpayable",
    "type": "function"
}]

DEFAULT_MINER_CUT_RATE = Decimal("0.1")
EXECUTOR_GAS_OVERHEAD = 50_000  # LiqbotExecutor's own cost on top of the liquidation
RECEIPT_TIMEOUT = 180  # seconds


@dataclass
class LiquidationRequest:
    """Addresses chosen for one attempt and the unsigned batchLiquidateTroves call."""

    addresses: List[str]
    transaction: dict
    block_number: Optional[int] = None


@dataclass(frozen=True)
class ExecutionResult:
    status: str  # "failed" or "succeeded"
    raw_receipt: Optional[dict] = None
    details: Optional[LiquidationDetails] = None

    @classmethod
    def failed(cls, raw_receipt=None) -> "ExecutionResult":
        return cls("failed", raw_receipt)

    @classmethod
    def succeeded(cls, raw_receipt, details: LiquidationDetails) -> "ExecutionResult":
        return cls("succeeded", raw_receipt, details)

    @property
    def is_success(self) -> bool:
        return self.status == "succeeded"


class Executor(ABC):
    @abstractmethod
    def estimate_compensation(self, troves: Sequence[Trove], price) -> Decimal:
        """Expected compensation in LUSD for liquidating `troves`."""

    @abstractmethod
    async def execute(self, request: LiquidationRequest) -> ExecutionResult:
        """Send the liquidation and wait until it resolves."""

    async def close(self):
        pass


class RawExecutor(Executor):
    def __init__(self, w3, account, trove_manager_address: str, receipt_timeout: int = RECEIPT_TIMEOUT):
        self.w3 = w3
        self.account = account
        self.trove_manager_address = trove_manager_address
        self.receipt_timeout = receipt_timeout

    def estimate_compensation(self, troves, price) -> Decimal:
        return expected_compensation(troves, price)

    async def execute(self, request: LiquidationRequest) -> ExecutionResult:
        tx = dict(request.transaction)
        tx["from"] = self.account.address
        tx["nonce"] = await self.w3.eth.get_transaction_count(self.account.address, "pending")
        tx.setdefault("value", 0)
        if "chainId" not in tx:
            tx["chainId"] = await self.w3.eth.chain_id

        signed = self.account.sign_transaction(tx)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        logger.info(f"🔥 TX SENT: {Web3.to_hex(tx_hash)}")

        receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)

        if receipt["status"] != 1:
            return ExecutionResult.failed(receipt)

        details = get_liquidation_details(self.trove_manager_address, receipt["logs"])
        return ExecutionResult.succeeded(receipt, details)


class RelayExecutor(Executor):
    def __init__(self, w3, signer, relay: BundleRelay, executor_address: str,
                 trove_manager_address: str, lusd_token_address: str, miner_cut_rate=None):
        if miner_cut_rate is None:
            logger.warning(f"No miner cut rate configured; using default value of {DEFAULT_MINER_CUT_RATE}.")
            miner_cut_rate = DEFAULT_MINER_CUT_RATE

        miner_cut_rate = Decimal(miner_cut_rate)
        if miner_cut_rate < ZERO or miner_cut_rate > ONE:
            raise ConfigError("miner cut rate must be a number between 0 and 1")

        self.w3 = w3
        self.signer = signer
        self.relay = relay
        self.trove_manager_address = trove_manager_address
        self.lusd_token_address = Web3.to_checksum_address(lusd_token_address)
        self.miner_cut_rate = miner_cut_rate
        self.contract = w3.eth.contract(address=Web3.to_checksum_address(executor_address), abi=EXECUTOR_ABI)

    @classmethod
    def create(cls, w3, signer, config) -> "RelayExecutor":
        if not config.bundle_key:
            raise ConfigError("BUNDLE_KEY must be configured when using a bundle relay")

        relay = BundleRelay(w3, w3.eth.account.from_key(config.bundle_key), config.relay_url)
        return cls(
            w3,
            signer,
            relay,
            config.executor_address,
            config.trove_manager_address,
            config.lusd_token_address,
            config.miner_cut_rate,
        )

    def estimate_compensation(self, troves, price) -> Decimal:
        return expected_compensation(troves, price, self.miner_cut_rate)

    async def close(self):
        await self.relay.close()

    async def build_bundle(self, request: LiquidationRequest, latest_block: int) -> List[BundleTransaction]:
        liquidation = request.transaction
        if not liquidation.get("to") or not liquidation.get("data"):
            raise ValueError("populated liquidation is missing 'to' or 'data'")

        # Confirmed count at the snapshot block: pending transactions are ignored
        nonce = await self.w3.eth.get_transaction_count(self.signer.address, latest_block)

        tx = await self.contract.functions.execute(
            Web3.to_checksum_address(liquidation["to"]),
            HexBytes(liquidation["data"]),
            to_fixed_point(self.miner_cut_rate),
            [self.lusd_token_address],
        ).build_transaction({
            "from": self.signer.address,
            "nonce": nonce,
            "gas": liquidation["gas"] + EXECUTOR_GAS_OVERHEAD,
            "maxFeePerGas": liquidation["maxFeePerGas"],
            "maxPriorityFeePerGas": liquidation["maxPriorityFeePerGas"],
        })

        signed = self.signer.sign_transaction(tx)
        return [BundleTransaction.from_signed(signed, self.signer.address, nonce)]

    async def execute(self, request: LiquidationRequest) -> ExecutionResult:
        latest_block = request.block_number
        if latest_block is None:
            latest_block = await self.w3.eth.block_number
        target_block = latest_block + 1

        bundle = await self.build_bundle(request, latest_block)

        # Raises RelayError; nothing has been broadcast at this point
        await self.relay.simulate(bundle, target_block)

        handle = await self.relay.send_bundle(bundle, target_block)
        resolution = await handle.wait()

        if resolution != BundleResolution.BUNDLE_INCLUDED:
            logger.info(f"Bundle for block {target_block} resolved as {resolution.name}")
            return ExecutionResult.failed()

        [raw_receipt] = await handle.receipts()

        if not raw_receipt["status"]:
            return ExecutionResult.failed(raw_receipt)

        details = get_liquidation_details(self.trove_manager_address, raw_receipt["logs"])
        return ExecutionResult.succeeded(
            raw_receipt,
            replace(details, miner_cut=details.collateral_gas_compensation * self.miner_cut_rate),
        )
