"""
Exceptions raised by the liquidation bot.
"""


class LiqbotError(Exception):
    """Base exception for all liquidation bot errors."""


class ConfigError(LiqbotError):
    """Raised for invalid or missing configuration. Fatal at startup."""


class ConsistencyError(LiqbotError):
    """Raised when chain data contradicts what the bot expects (chain id, base fee, ...)."""


class MalformedLogsError(ConsistencyError):
    """Raised when a liquidation receipt lacks the aggregate Liquidation event."""


class RelayError(LiqbotError):
    """Structured error returned by the bundle relay."""

    def __init__(self, code, message):
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self):
        return f"relay error {self.code}: {self.message}"
