"""
Solana DEX Arbitrage Scanner.

Polls a PumpSwap pool and a Meteora DLMM pair for the same token, normalizes
their swap quotes and reports round trips whose profit clears a threshold.
Execution is not implemented; the scanner only detects and logs.
"""

from .version import __version__

PROJECT_NAME = "solana-dex-arb-scanner"
VERSION = __version__

__all__ = ["PROJECT_NAME", "VERSION", "__version__"]
