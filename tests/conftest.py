"""
Shared fixtures and fakes for the liqbot tests.

Nothing here talks to a node or a relay: web3, contracts and the relay are
replaced with MagicMock / AsyncMock objects or the small fakes below.
"""

from decimal import Decimal

import pytest
from eth_abi import encode
from hexbytes import HexBytes
from web3 import Web3

from config import LiqbotConfig
from parsing import LIQUIDATION_TOPIC, TROVE_LIQUIDATED_TOPIC

TROVE_MANAGER = Web3.to_checksum_address("0x" + "a1" * 20)
STABILITY_POOL = Web3.to_checksum_address("0x" + "a2" * 20)
PRICE_FEED = Web3.to_checksum_address("0x" + "a3" * 20)
LUSD_TOKEN = Web3.to_checksum_address("0x" + "a4" * 20)
MULTI_TROVE_GETTER = Web3.to_checksum_address("0x" + "a5" * 20)
EXECUTOR = Web3.to_checksum_address("0x" + "a6" * 20)
SIGNER = Web3.to_checksum_address("0x" + "b1" * 20)

WEI = 10**18
GWEI = 10**9


def address(n: int) -> str:
    return Web3.to_checksum_address("0x" + f"{n:040x}")


class AwaitableValue:
    """Stands in for awaitable web3 properties such as `w3.eth.block_number`."""

    def __init__(self, value):
        self.value = value

    def __await__(self):
        async def _value():
            return self.value
        return _value().__await__()


def make_config(**overrides) -> LiqbotConfig:
    values = dict(
        http_rpc_url="http://localhost:8545",
        trove_manager_address=TROVE_MANAGER,
        stability_pool_address=STABILITY_POOL,
        price_feed_address=PRICE_FEED,
        lusd_token_address=LUSD_TOKEN,
        multi_trove_getter_address=MULTI_TROVE_GETTER,
        wallet_key="0x" + "11" * 32,
    )
    values.update(overrides)
    return LiqbotConfig(**values)


def trove_liquidated_log(borrower, contract=TROVE_MANAGER, debt=0, coll=0):
    return {
        "address": contract,
        "topics": [TROVE_LIQUIDATED_TOPIC, HexBytes(encode(["address"], [borrower]))],
        "data": HexBytes(encode(["uint256", "uint256", "uint8"], [debt, coll, 0])),
    }


def liquidation_log(debt, coll, coll_gas_compensation, lusd_gas_compensation, contract=TROVE_MANAGER):
    return {
        "address": contract,
        "topics": [LIQUIDATION_TOPIC],
        "data": HexBytes(encode(
            ["uint256", "uint256", "uint256", "uint256"],
            [debt, coll, coll_gas_compensation, lusd_gas_compensation],
        )),
    }


def make_receipt(status=1, logs=None, gas_used=400_000, effective_gas_price=20 * GWEI, block_number=101):
    return {
        "status": status,
        "transactionHash": HexBytes("0x" + "cd" * 32),
        "blockNumber": block_number,
        "gasUsed": gas_used,
        "effectiveGasPrice": effective_gas_price,
        "logs": logs or [],
    }


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def successful_logs():
    return [
        trove_liquidated_log(address(1), debt=2000 * WEI, coll=WEI),
        trove_liquidated_log(address(2), debt=4000 * WEI, coll=2 * WEI),
        liquidation_log(6000 * WEI, 3 * WEI, 15 * WEI // 1000, 400 * WEI),
    ]


@pytest.fixture
def price():
    return Decimal(2000)
