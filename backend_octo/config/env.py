"""
Environment variable loading for Backend Octo.

- SOLANA_RPC_URL: HTTP RPC endpoint (read from .env)
- HELIUS_API_KEY: Helius API key (used to build the RPC URL when SOLANA_RPC_URL is unset)
- SOLANA_WS_URL: WebSocket endpoint for account push notifications (derived from the RPC URL if unset)
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Project root: config is backend_octo/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _CONFIG_DIR.parent
_ROOT = _BACKEND_DIR.parent
_ENV_PATH = _ROOT / ".env"

MAINNET_RPC_URL = "https://api.mainnet-beta.solana.com"
HELIUS_MAINNET_URL_TEMPLATE = "https://mainnet.helius-rpc.com/?api-key={key}"


def load_octo_env() -> None:
    """Load .env from project root. Safe to call multiple times; never overrides the process env."""
    load_dotenv(_ENV_PATH, override=False)


def get_solana_rpc_url() -> str:
    """
    Resolve Solana RPC URL from env.
    Order: SOLANA_RPC_URL > HELIUS_API_KEY > public mainnet.
    """
    load_octo_env()
    url = (os.getenv("SOLANA_RPC_URL") or "").strip()
    if url:
        return url
    key = (os.getenv("HELIUS_API_KEY") or "").strip()
    if key:
        return HELIUS_MAINNET_URL_TEMPLATE.format(key=key)
    return MAINNET_RPC_URL


def http_to_ws(url: str) -> str:
    """Convert https:// or http:// to wss:// or ws:// for the push channel."""
    s = url.strip()
    if s.startswith("https://"):
        return "wss://" + s[8:]
    if s.startswith("http://"):
        return "ws://" + s[7:]
    return s


def get_solana_ws_url() -> str:
    """Return SOLANA_WS_URL, or the RPC URL with its scheme switched to ws(s)."""
    load_octo_env()
    url = (os.getenv("SOLANA_WS_URL") or "").strip()
    if url:
        return url
    return http_to_ws(get_solana_rpc_url())


def mask_rpc_url(url: str) -> str:
    """Hide the API key in a provider URL for logging."""
    if "api-key=" in url:
        return url.split("api-key=")[0] + "api-key=***"
    return url
