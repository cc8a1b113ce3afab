"""
Liquity liquidation bot.

Watches new blocks; whenever the riskiest Trove looks liquidatable, the
single-flight runner starts a liquidation attempt (select → price → execute).
Without WALLET_KEY it runs read-only and only logs opportunities.
"""

import asyncio
import logging
import sys

from alerts import TelegramAlerts
from config import load_config
from connection import NodeConnection
from errors import ConfigError, ConsistencyError
from execution import RawExecutor, RelayExecutor
from liquidation import have_undercollateralized_troves, try_to_liquidate
from liquity_reader import LiquityReader
from task_runner import SingleFlightRunner

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger("Liqbot")


def setup_logging(log_file=None):
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(format=LOG_FORMAT, datefmt=LOG_DATEFMT, level=logging.INFO, handlers=handlers, force=True)


def build_executor(w3, config):
    """Relay executor when a LiqbotExecutor is deployed, plain broadcast otherwise."""
    account = w3.eth.account.from_key(config.wallet_key)
    logger.info(f"🔑 Loaded Wallet: {account.address}")

    if config.uses_relay:
        logger.info(f"🛡️ Sending liquidations as bundles through {config.relay_url}")
        return RelayExecutor.create(w3, account, config)

    logger.info("📢 Broadcasting liquidations through the node")
    return RawExecutor(w3, account, config.trove_manager_address)


class Liqbot:
    def __init__(self, config):
        self.config = config
        self.connection = NodeConnection(config.http_rpc_url, config.chain_id, config.ws_rpc_url)
        self.alerts = TelegramAlerts(config.telegram_bot_token, config.telegram_chat_id)
        self.runner = SingleFlightRunner(self.liquidation_task)
        self.reader = None
        self.executor = None
        self.last_outcome = None
        self.last_processed_block = 0

    @property
    def w3(self):
        return self.connection.w3

    async def start(self):
        await self.connection.connect()
        self.reader = LiquityReader(self.w3, self.config)

        if self.config.read_only:
            logger.warning("No WALLET_KEY configured; running in read-only mode.")
        else:
            self.executor = build_executor(self.w3, self.config)

    async def liquidation_task(self):
        self.last_outcome = await try_to_liquidate(
            self.w3, self.reader, self.config, self.executor, self.alerts
        )

    async def check_block(self, block_number):
        state = await self.reader.get_system_state(block_number)
        riskiest = await self.reader.get_riskiest_trove(block_number)

        if have_undercollateralized_troves(state, riskiest):
            if not self.runner.trigger():
                logger.info(f"Block {block_number}: attempt in flight, deferring.")

    async def close(self):
        if self.executor is not None:
            await self.executor.close()
        await self.connection.close()

    async def run_forever(self):
        await self.start()
        await self.alerts.send("🟢 <b>Liqbot started</b>")
        logger.info("🚀 Waiting for price drops...")

        try:
            self.last_processed_block = await self.w3.eth.block_number
            await self.check_block(self.last_processed_block)

            while True:
                try:
                    async for block_number in self.connection.block_stream():
                        if block_number <= self.last_processed_block:
                            continue
                        self.last_processed_block = block_number
                        try:
                            await self.check_block(block_number)
                        except Exception as e:
                            logger.error(f"⚠️ Block {block_number} check failed: {e}")
                except Exception as e:
                    logger.error(f"⚠️ Block stream error: {e}")
                    await asyncio.sleep(1)
        finally:
            await self.close()


def main():
    setup_logging()

    try:
        config = load_config()
    except ConfigError as e:
        logger.critical(f"❌ {e}")
        sys.exit(1)

    if config.log_file:
        setup_logging(config.log_file)

    bot = Liqbot(config)
    try:
        asyncio.run(bot.run_forever())
    except KeyboardInterrupt:
        logger.info("🛑 Liqbot stopped.")
    except (ConfigError, ConsistencyError) as e:
        logger.critical(f"💥 Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
