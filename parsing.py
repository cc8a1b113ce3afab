from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from eth_abi import decode
from hexbytes import HexBytes
from web3 import Web3

from errors import MalformedLogsError
from troves import Trove, decimalify

# event TroveLiquidated(address indexed _borrower, uint256 _debt, uint256 _coll, uint8 _operation)
TROVE_LIQUIDATED_TOPIC = Web3.keccak(text="TroveLiquidated(address,uint256,uint256,uint8)")

# event Liquidation(uint256 _liquidatedDebt, uint256 _liquidatedColl,
#                   uint256 _collGasCompensation, uint256 _LUSDGasCompensation)
LIQUIDATION_PARAM_TYPES = ["uint256", "uint256", "uint256", "uint256"]
LIQUIDATION_TOPIC = Web3.keccak(text=f"Liquidation({','.join(LIQUIDATION_PARAM_TYPES)})")


@dataclass(frozen=True)
class LiquidationDetails:
    liquidated_addresses: List[str]
    collateral_gas_compensation: Decimal
    lusd_gas_compensation: Decimal
    total_liquidated: Trove
    miner_cut: Optional[Decimal] = None


def _same_address(a, b) -> bool:
    return Web3.to_checksum_address(a) == Web3.to_checksum_address(b)


def _topic(log, index):
    topics = log["topics"]
    return HexBytes(topics[index]) if len(topics) > index else None


def get_liquidation_details(trove_manager_address: str, logs) -> LiquidationDetails:
    """Decode the TroveManager events of a batch liquidation receipt."""
    trove_manager_logs = [log for log in logs if _same_address(log["address"], trove_manager_address)]

    liquidated_addresses = [
        Web3.to_checksum_address(decode(["address"], _topic(log, 1))[0])
        for log in trove_manager_logs
        if _topic(log, 0) == TROVE_LIQUIDATED_TOPIC
    ]

    totals = [
        decode(LIQUIDATION_PARAM_TYPES, HexBytes(log["data"]))
        for log in trove_manager_logs
        if _topic(log, 0) == LIQUIDATION_TOPIC
    ]

    if not totals:
        raise MalformedLogsError(f"no Liquidation event from {trove_manager_address} in receipt logs")

    liquidated_debt, liquidated_coll, coll_gas_compensation, lusd_gas_compensation = totals[0]

    return LiquidationDetails(
        liquidated_addresses=liquidated_addresses,
        collateral_gas_compensation=decimalify(coll_gas_compensation),
        lusd_gas_compensation=decimalify(lusd_gas_compensation),
        total_liquidated=Trove(decimalify(liquidated_coll), decimalify(liquidated_debt)),
    )
