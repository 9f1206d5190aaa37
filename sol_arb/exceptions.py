"""
Exception hierarchy for the Solana DEX arbitrage scanner.

Startup errors (configuration, wallet) are fatal. Everything raised while a
scan cycle is running is contained by the evaluator or the scan loop and
logged with its venue and direction.
"""

from typing import Any, Dict, Optional


class SolArbError(Exception):
    """Base exception for all scanner errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(SolArbError):
    """Raised when a required setting is missing or invalid."""

    def __init__(
        self,
        message: str,
        variable: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.variable = variable


class WalletError(SolArbError):
    """Raised when a configured wallet credential cannot be loaded."""

    pass


class RpcConnectionError(SolArbError):
    """Raised when the ledger RPC endpoint is unreachable."""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint


class PoolStateError(SolArbError):
    """Base class for failures fetching or decoding a venue's pool account."""

    def __init__(
        self,
        message: str,
        venue: Optional[str] = None,
        address: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.venue = venue
        self.address = address


class PoolNotFoundError(PoolStateError):
    """Raised when the pool address holds no account data."""

    pass


class PoolDecodeError(PoolStateError):
    """Raised when neither decoder can read the pool account."""

    pass


class QuoteError(SolArbError):
    """Raised when a venue cannot produce a swap quote."""

    def __init__(
        self,
        message: str,
        venue: Optional[str] = None,
        direction: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.venue = venue
        self.direction = direction


class DecimalsFetchError(SolArbError):
    """Raised internally when mint precision cannot be read from the ledger."""

    def __init__(
        self,
        message: str,
        mint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.mint = mint
