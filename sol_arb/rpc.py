"""
Ledger RPC connection and wallet loading.

Wraps solana-py's AsyncClient construction, liveness checks with retry,
keypair loading from a JSON file or base58 string, and the classification
of errors the scan loop treats as connectivity problems.
"""

import asyncio
import json
from decimal import Decimal
from pathlib import Path
from typing import Optional

import httpx
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .exceptions import RpcConnectionError, WalletError
from .utils import get_logger

logger = get_logger(__name__)

LAMPORTS_PER_SOL = Decimal(10) ** 9
RPC_TIMEOUT_SEC = 60

CONNECTIVITY_MARKERS = (
    "connect",
    "timeout",
    "timed out",
    "network",
    "socket",
    "reset",
    "refused",
    "unavailable",
    "429",
    "too many requests",
)


def create_client(rpc_url: str) -> AsyncClient:
    """Create an AsyncClient at confirmed commitment."""
    return AsyncClient(rpc_url, commitment=Confirmed, timeout=RPC_TIMEOUT_SEC)


async def check_liveness(client: AsyncClient, endpoint: Optional[str] = None) -> int:
    """
    Verify the RPC endpoint answers.

    Returns:
        Current slot

    Raises:
        RpcConnectionError: If the slot cannot be fetched
    """
    try:
        resp = await client.get_slot()
    except Exception as e:
        raise RpcConnectionError(
            f"Failed to connect to Solana RPC: {e}",
            endpoint=endpoint,
        ) from e
    return resp.value


async def connect_with_retry(rpc_url: str, max_retries: int = 3) -> AsyncClient:
    """
    Create a client and verify it, retrying with exponential backoff.

    Args:
        rpc_url: RPC endpoint
        max_retries: Maximum number of attempts

    Returns:
        A client whose endpoint answered get_slot

    Raises:
        RpcConnectionError: If every attempt fails
    """
    last_error: Optional[Exception] = None

    for attempt in range(max_retries):
        client = create_client(rpc_url)
        try:
            slot = await check_liveness(client, rpc_url)
            logger.info(f"✅ Connection successful - Current slot: {slot}")
            return client
        except RpcConnectionError as e:
            last_error = e
            await client.close()
            logger.warning(f"Connection attempt {attempt + 1} failed: {e}")
            if attempt < max_retries - 1:
                # 1s, 2s, 4s
                await asyncio.sleep(2**attempt)

    raise RpcConnectionError(
        f"Failed to establish connection after {max_retries} attempts: {last_error}",
        endpoint=rpc_url,
    ) from last_error


def load_keypair(
    keypair_path: Optional[str] = None, private_key: Optional[str] = None
) -> Optional[Keypair]:
    """
    Load the wallet keypair.

    The JSON secret-key file is tried first, then the base58 private key.

    Returns:
        Keypair, or None when neither credential is configured

    Raises:
        WalletError: If a credential is configured but none could be loaded
    """
    if not keypair_path and not private_key:
        return None

    if keypair_path:
        try:
            secret = json.loads(Path(keypair_path).read_text(encoding="utf-8"))
            return Keypair.from_bytes(bytes(secret))
        except Exception as e:
            logger.warning(f"Failed to load keypair from file: {e}")

    if private_key:
        try:
            return Keypair.from_base58_string(private_key.strip())
        except Exception as e:
            logger.warning(f"Failed to load keypair from base58: {e}")

    raise WalletError(
        "No valid keypair found. Set either KEYPAIR_PATH (JSON file path) "
        "or PRIVATE_KEY (base58) in .env"
    )


async def get_sol_balance(client: AsyncClient, pubkey: Pubkey) -> Decimal:
    """Wallet balance in SOL."""
    resp = await client.get_balance(pubkey)
    return Decimal(resp.value) / LAMPORTS_PER_SOL


def network_type(rpc_url: str) -> str:
    """Guess the cluster from the RPC URL; custom endpoints count as mainnet."""
    url = rpc_url.lower()
    if "devnet" in url:
        return "devnet"
    if "testnet" in url:
        return "testnet"
    if "localhost" in url or "127.0.0.1" in url:
        return "localnet"
    return "mainnet"


def is_connectivity_error(exc: BaseException) -> bool:
    """True when an error looks like the RPC endpoint became unreachable."""
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(
            current,
            (RpcConnectionError, ConnectionError, TimeoutError, httpx.TransportError),
        ):
            return True
        message = str(current).lower()
        if any(marker in message for marker in CONNECTIVITY_MARKERS):
            return True
        current = current.__cause__ or current.__context__
    return False
