"""
Configuration loading and validation for the arbitrage scanner.

Settings come from environment variables (a .env file is loaded by the CLI)
and may be overlaid by a YAML file whose keys are the lower-case field
names of ScannerConfig.
"""

import os
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from solders.pubkey import Pubkey

from .exceptions import ConfigurationError
from .logging_config import LEVEL_NAMES
from .rpc import network_type

DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"
WSOL_MINT = "So11111111111111111111111111111111111111112"

# field name -> environment variable
ENV_VARS: Dict[str, str] = {
    "rpc_url": "RPC_URL",
    "keypair_path": "KEYPAIR_PATH",
    "private_key": "PRIVATE_KEY",
    "pumpswap_pool": "PUMPSWAP_POOL",
    "dlmm_pool": "DLMM_POOL",
    "mint": "MINT",
    "base_mint": "BASE_MINT",
    "slippage": "SLIPPAGE",
    "cache_duration_ms": "CACHE_DURATION",
    "min_profit_pct": "MIN_PROFIT_PCT",
    "trade_size": "WSOL_TRADE_SIZE",
    "process_delay_ms": "PROCESS_DELAY",
    "dry_run": "DRY_RUN",
    "log_level": "LOG_LEVEL",
    "bin_range": "BIN_RANGE",
}

REQUIRED_FIELDS = ("pumpswap_pool", "dlmm_pool", "mint", "base_mint")


class ScannerConfig(BaseModel):
    """
    Validated scanner settings.

    Attributes:
        rpc_url: Ledger RPC endpoint
        keypair_path: Path to a JSON secret-key array
        private_key: Base58-encoded secret key
        pumpswap_pool: PumpSwap pool address
        dlmm_pool: Meteora DLMM pair address
        mint: Target token mint
        base_mint: Base token mint (the asset trades start and end in)
        slippage: Slippage tolerance as a fraction (0.01 = 1%)
        cache_duration_ms: Pool-state cache lifetime
        min_profit_pct: Minimum round-trip profit to report, in percent
        trade_size: Base-asset amount used for every evaluation
        process_delay_ms: Delay between scans
        dry_run: Never attempt execution when True
        log_level: debug, info, warn or error
        bin_range: Bins per side in the analysis snapshot
        price_impact_sizes: Trade sizes reported by the analysis mode
    """

    rpc_url: str = DEFAULT_RPC_URL
    keypair_path: Optional[str] = None
    private_key: Optional[str] = None

    pumpswap_pool: str
    dlmm_pool: str
    mint: str
    base_mint: str

    slippage: Decimal = Field(default=Decimal("0.01"), ge=0, lt=1)
    cache_duration_ms: int = Field(default=60000, ge=0)
    min_profit_pct: Decimal = Decimal("0.3")
    trade_size: Decimal = Field(default=Decimal("0.1"), gt=0)
    process_delay_ms: int = Field(default=3000, ge=0)
    dry_run: bool = True
    log_level: str = "info"

    bin_range: int = Field(default=10, ge=1, le=500)
    price_impact_sizes: List[Decimal] = Field(
        default_factory=lambda: [Decimal("0.01"), Decimal("0.1"), Decimal("1")]
    )

    @field_validator("pumpswap_pool", "dlmm_pool", "mint", "base_mint")
    @classmethod
    def validate_address(cls, v):
        v = v.strip()
        try:
            Pubkey.from_string(v)
        except Exception as e:
            raise ValueError(f"not a valid base58 address: {v!r}") from e
        return v

    @field_validator("rpc_url")
    @classmethod
    def validate_rpc_url(cls, v):
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid RPC URL format: {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        if v.strip().lower() not in LEVEL_NAMES:
            raise ValueError(f"unknown log level {v!r}")
        return v.strip().lower()

    @field_validator("dry_run", mode="before")
    @classmethod
    def parse_dry_run(cls, v):
        if isinstance(v, str):
            return v.strip().lower() == "true"
        return v

    @field_validator("keypair_path", "private_key", mode="before")
    @classmethod
    def empty_as_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def pumpswap_pool_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.pumpswap_pool)

    @property
    def dlmm_pool_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.dlmm_pool)

    @property
    def mint_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.mint)

    @property
    def base_mint_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.base_mint)

    @property
    def process_delay_sec(self) -> float:
        return self.process_delay_ms / 1000.0

    def describe(self) -> List[str]:
        """Printable configuration summary; secrets reported only as set/not set."""
        return [
            f"Network: {network_type(self.rpc_url).upper()}",
            f"RPC URL: {self.rpc_url}",
            f"Keypair Path: {self.keypair_path or 'Not set'}",
            f"Private Key: {'Set (base58)' if self.private_key else 'Not set'}",
            f"PumpSwap Pool: {self.pumpswap_pool}",
            f"DLMM Pool: {self.dlmm_pool}",
            f"Target Token (MINT): {self.mint}",
            f"Base Token (BASE_MINT): {self.base_mint}",
            f"Trade Size: {self.trade_size} | Min Profit: {self.min_profit_pct}% "
            f"| Slippage: {self.slippage}",
            f"Scan Delay: {self.process_delay_ms}ms | Pool Cache: "
            f"{self.cache_duration_ms}ms | Dry Run: {self.dry_run}",
        ]


def _read_environment(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Collect the recognized variables that are set and non-empty."""
    values: Dict[str, Any] = {}
    for field_name, var in ENV_VARS.items():
        raw = environ.get(var)
        if raw is not None and raw.strip() != "":
            values[field_name] = raw.strip()
    return values


def _read_yaml(config_path: str) -> Dict[str, Any]:
    if not os.path.exists(config_path):
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse YAML: {e}") from e

    if config_dict is None:
        return {}
    if not isinstance(config_dict, dict):
        raise ConfigurationError("Config file must contain a YAML dictionary")

    unknown = set(config_dict) - set(ScannerConfig.model_fields)
    if unknown:
        raise ConfigurationError(
            f"Unknown config field(s) in {config_path}: {', '.join(sorted(unknown))}"
        )
    return config_dict


def load_config(
    environ: Optional[Mapping[str, str]] = None, config_path: Optional[str] = None
) -> ScannerConfig:
    """
    Build a validated ScannerConfig.

    Args:
        environ: Variables to read (defaults to os.environ)
        config_path: Optional YAML file whose values override the environment

    Returns:
        Validated ScannerConfig

    Raises:
        ConfigurationError: If a required variable is missing or a value is invalid
    """
    environ = os.environ if environ is None else environ
    values = _read_environment(environ)
    if config_path:
        values.update(_read_yaml(config_path))

    for field_name in REQUIRED_FIELDS:
        if not values.get(field_name):
            var = ENV_VARS[field_name]
            raise ConfigurationError(
                f"{var} environment variable is required", variable=var
            )

    try:
        return ScannerConfig(**values)
    except ValidationError as e:
        first = e.errors()[0]
        field_name = str(first["loc"][0]) if first.get("loc") else ""
        var = ENV_VARS.get(field_name, field_name)
        raise ConfigurationError(
            f"Invalid value for {var}: {first['msg']}",
            variable=var,
            details={"errors": e.errors()},
        ) from e
