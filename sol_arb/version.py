"""Scanner release version, shown by ``sol-arb --version`` and the banner."""

__version__ = "0.3.0"
