"""
Read side of the Liquity contracts: candidate Troves and the system snapshot.
"""

import asyncio
import logging
from typing import List, Optional

from web3 import AsyncWeb3

from troves import Candidate, SystemState, Trove, decimalify

logger = logging.getLogger("LiqbotReader")

TROVE_MANAGER_ABI = [{
    "inputs": [],
    "name": "getEntireSystemColl",
    "outputs": [{"internalType": "uint256", "name": "entireSystemColl", "type": "uint256"}],
    "stateMutability": "view",
    "type": "function"
}, {
    "inputs": [],
    "name": "getEntireSystemDebt",
    "outputs": [{"internalType": "uint256", "name": "entireSystemDebt", "type": "uint256"}],
    "stateMutability": "view",
    "type": "function"
}, {
    "inputs": [],
    "name": "L_ETH",
    "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
    "stateMutability": "view",
    "type": "function"
}, {
    "inputs": [],
    "name": "L_LUSDDebt",
    "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
    "stateMutability": "view",
    "type": "function"
}, {
    "inputs": [{"internalType": "address[]", "name": "_troveArray", "type": "address[]"}],
    "name": "batchLiquidateTroves",
    "outputs": [],
    "stateMutability": "nonpayable",
    "type": "function"
}]

PRICE_FEED_ABI = [{
    "inputs": [],
    "name": "lastGoodPrice",
    "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
    "stateMutability": "view",
    "type": "function"
}]

STABILITY_POOL_ABI = [{
    "inputs": [],
    "name": "getTotalLUSDDeposits",
    "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
    "stateMutability": "view",
    "type": "function"
}]

MULTI_TROVE_GETTER_ABI = [{
    "inputs": [
        {"internalType": "int256", "name": "_startIdx", "type": "int256"},
        {"internalType": "uint256", "name": "_count", "type": "uint256"}
    ],
    "name": "getMultipleSortedTroves",
    "outputs": [{
        "components": [
            {"internalType": "address", "name": "owner", "type": "address"},
            {"internalType": "uint256", "name": "debt", "type": "uint256"},
            {"internalType": "uint256", "name": "coll", "type": "uint256"},
            {"internalType": "uint256", "name": "stake", "type": "uint256"},
            {"internalType": "uint256", "name": "snapshotETH", "type": "uint256"},
            {"internalType": "uint256", "name": "snapshotLUSDDebt", "type": "uint256"}
        ],
        "internalType": "struct MultiTroveGetter.CombinedTroveData[]",
        "name": "_troves",
        "type": "tuple[]"
    }],
    "stateMutability": "view",
    "type": "function"
}]

ASCENDING_COLLATERAL_RATIO = "ascendingCollateralRatio"
DESCENDING_COLLATERAL_RATIO = "descendingCollateralRatio"


class LiquityReader:
    """Wraps the Liquity contracts needed to find and liquidate risky Troves."""

    def __init__(self, w3, config):
        address = AsyncWeb3.to_checksum_address
        self.w3 = w3
        self.trove_manager = w3.eth.contract(address=address(config.trove_manager_address), abi=TROVE_MANAGER_ABI)
        self.price_feed = w3.eth.contract(address=address(config.price_feed_address), abi=PRICE_FEED_ABI)
        self.stability_pool = w3.eth.contract(address=address(config.stability_pool_address), abi=STABILITY_POOL_ABI)
        self.multi_trove_getter = w3.eth.contract(
            address=address(config.multi_trove_getter_address), abi=MULTI_TROVE_GETTER_ABI
        )

    async def _block(self, block_identifier):
        if block_identifier is None or block_identifier == "latest":
            return await self.w3.eth.block_number
        return block_identifier

    async def get_system_state(self, block_identifier=None) -> SystemState:
        block = await self._block(block_identifier)

        coll, debt, price, pool = await asyncio.gather(
            self.trove_manager.functions.getEntireSystemColl().call(block_identifier=block),
            self.trove_manager.functions.getEntireSystemDebt().call(block_identifier=block),
            self.price_feed.functions.lastGoodPrice().call(block_identifier=block),
            self.stability_pool.functions.getTotalLUSDDeposits().call(block_identifier=block),
        )

        return SystemState(
            total=Trove(decimalify(coll), decimalify(debt)),
            price=decimalify(price),
            lusd_in_stability_pool=decimalify(pool),
            block_number=block,
        )

    async def get_troves(self, first: int, sorted_by: str = ASCENDING_COLLATERAL_RATIO,
                         block_identifier=None) -> List[Candidate]:
        """
        Fetch up to `first` Troves with pending redistribution rewards applied.

        SortedTroves is kept in descending order, so a negative start index walks
        it from the tail (riskiest first).
        """
        if sorted_by == ASCENDING_COLLATERAL_RATIO:
            start_index = -1
        elif sorted_by == DESCENDING_COLLATERAL_RATIO:
            start_index = 0
        else:
            raise ValueError(f"unknown ordering {sorted_by!r}")

        block = await self._block(block_identifier)

        raw_troves, l_eth, l_lusd_debt = await asyncio.gather(
            self.multi_trove_getter.functions.getMultipleSortedTroves(start_index, first).call(block_identifier=block),
            self.trove_manager.functions.L_ETH().call(block_identifier=block),
            self.trove_manager.functions.L_LUSDDebt().call(block_identifier=block),
        )
        totals_redistributed = Trove(decimalify(l_eth), decimalify(l_lusd_debt))

        candidates = []
        for owner, debt, coll, stake, snapshot_eth, snapshot_lusd_debt in raw_troves:
            if debt == 0:
                continue
            trove = Trove(decimalify(coll), decimalify(debt)).apply_redistribution(
                decimalify(stake),
                Trove(decimalify(snapshot_eth), decimalify(snapshot_lusd_debt)),
                totals_redistributed,
            )
            candidates.append(Candidate(trove.collateral, trove.debt, AsyncWeb3.to_checksum_address(owner)))

        return candidates

    async def get_riskiest_trove(self, block_identifier=None) -> Optional[Candidate]:
        troves = await self.get_troves(1, block_identifier=block_identifier)
        return troves[0] if troves else None

    async def populate_liquidation(self, addresses: List[str], overrides: dict) -> dict:
        """Unsigned TroveManager.batchLiquidateTroves transaction."""
        return await self.trove_manager.functions.batchLiquidateTroves(list(addresses)).build_transaction(dict(overrides))
