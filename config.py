import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional

from dotenv import load_dotenv

from errors import ConfigError
from relay import DEFAULT_RELAY_URL

ENV_PATH = ".env"

# Liquity v1 mainnet deployment
MAINNET_ADDRESSES = {
    "TROVE_MANAGER_ADDRESS": "0xA39739EF8b0231DbFA0DcdA07d7e29faAbCf4bb2",
    "STABILITY_POOL_ADDRESS": "0x66017D22b0f8556afDd19FC67041899Eb65a21bb",
    "PRICE_FEED_ADDRESS": "0x4c517D4e2C851CA76d7eC94B805269Df0f2201De",
    "LUSD_TOKEN_ADDRESS": "0x5f98805A4E8be255a32880FDeC7F6728C6568bA0",
}

DEFAULT_MAX_TROVES_TO_LIQUIDATE = 10


@dataclass(frozen=True)
class LiqbotConfig:
    http_rpc_url: str
    trove_manager_address: str
    stability_pool_address: str
    price_feed_address: str
    lusd_token_address: str
    multi_trove_getter_address: str
    chain_id: int = 1
    ws_rpc_url: Optional[str] = None
    # No wallet key: read-only mode, opportunities are only logged
    wallet_key: Optional[str] = None
    relay_url: str = DEFAULT_RELAY_URL
    # Searcher identity for the relay; holds no funds
    bundle_key: Optional[str] = None
    # Deployed LiqbotExecutor; when set, liquidations go through the relay
    executor_address: Optional[str] = None
    miner_cut_rate: Optional[Decimal] = None
    max_priority_fee_per_gas: Optional[int] = None
    max_troves_to_liquidate: int = DEFAULT_MAX_TROVES_TO_LIQUIDATE
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    log_file: Optional[str] = None

    @property
    def read_only(self) -> bool:
        return not self.wallet_key

    @property
    def uses_relay(self) -> bool:
        return bool(self.executor_address)


def _get(environ: Mapping[str, str], name: str) -> Optional[str]:
    value = environ.get(name, "")
    value = value.strip().strip("'").strip('"')
    return value or None


def _int(environ, name, default=None) -> Optional[int]:
    raw = _get(environ, name)
    if raw is None:
        return default
    try:
        return int(raw, 0)
    except ValueError:
        raise ConfigError(f"{name} must be an integer (got {raw!r})") from None


def _decimal(environ, name) -> Optional[Decimal]:
    raw = _get(environ, name)
    if raw is None:
        return None
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise ConfigError(f"{name} must be a number (got {raw!r})") from None


def _address(environ, name) -> str:
    address = _get(environ, name) or MAINNET_ADDRESSES.get(name)
    if not address:
        raise ConfigError(f"Missing {name} in environment")
    return address


def load_config(environ: Optional[Mapping[str, str]] = None, env_path: str = ENV_PATH) -> LiqbotConfig:
    """Build the bot configuration from `environ` (default: process env + .env file)."""
    if environ is None:
        load_dotenv(env_path)
        environ = os.environ

    http_rpc_url = _get(environ, "HTTP_RPC_URL")
    if not http_rpc_url:
        raise ConfigError("Missing HTTP_RPC_URL in environment")

    max_troves = _int(environ, "MAX_TROVES_TO_LIQUIDATE", DEFAULT_MAX_TROVES_TO_LIQUIDATE)
    if max_troves < 1:
        raise ConfigError("MAX_TROVES_TO_LIQUIDATE must be at least 1")

    max_priority_fee = _int(environ, "MAX_PRIORITY_FEE_PER_GAS")
    if max_priority_fee is not None and max_priority_fee < 0:
        raise ConfigError("MAX_PRIORITY_FEE_PER_GAS must not be negative")

    return LiqbotConfig(
        http_rpc_url=http_rpc_url,
        ws_rpc_url=_get(environ, "WS_RPC_URL"),
        chain_id=_int(environ, "CHAIN_ID", 1),
        wallet_key=_get(environ, "WALLET_KEY"),
        relay_url=_get(environ, "RELAY_URL") or DEFAULT_RELAY_URL,
        bundle_key=_get(environ, "BUNDLE_KEY"),
        executor_address=_get(environ, "EXECUTOR_ADDRESS"),
        miner_cut_rate=_decimal(environ, "MINER_CUT_RATE"),
        max_priority_fee_per_gas=max_priority_fee,
        max_troves_to_liquidate=max_troves,
        trove_manager_address=_address(environ, "TROVE_MANAGER_ADDRESS"),
        stability_pool_address=_address(environ, "STABILITY_POOL_ADDRESS"),
        price_feed_address=_address(environ, "PRICE_FEED_ADDRESS"),
        lusd_token_address=_address(environ, "LUSD_TOKEN_ADDRESS"),
        multi_trove_getter_address=_address(environ, "MULTI_TROVE_GETTER_ADDRESS"),
        telegram_bot_token=_get(environ, "TELEGRAM_BOT_TOKEN"),
        telegram_chat_id=_get(environ, "TELEGRAM_CHAT_ID"),
        log_file=_get(environ, "LOG_FILE"),
    )
