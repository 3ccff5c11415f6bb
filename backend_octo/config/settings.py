"""
Application settings and environment configuration.

Loads configuration from environment variables and .env, validates it, and
exposes typed settings (monitored wallet, RPC endpoints, exchange rule,
vitality thresholds, poll/decay periods, DB path) for the listener, ledger,
worker and API server.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from pathlib import Path

from solders.pubkey import Pubkey

from backend_octo.config.env import get_solana_rpc_url, get_solana_ws_url, load_octo_env

# Canonical wallet for the Octo agent (public address; observed only, never signed for)
DEFAULT_WALLET_ADDRESS = "8ejAYL1hNeJreUxTfwUQ5QVay7dN5FCbaEiQspiciVxw"

# 0.01 SOL = 1 HP = 1 minute of life
DEFAULT_MIN_DONATION_SOL = Decimal("0.01")
DEFAULT_MAX_HP = 720
DEFAULT_THRIVING_ABOVE = 60
DEFAULT_CRITICAL_AT_OR_BELOW = 14
DEFAULT_INITIAL_HP = 60
DEFAULT_DECAY_PERIOD_SEC = 60.0
DEFAULT_POLL_INTERVAL_SEC = 15.0
DEFAULT_SIGNATURES_LIMIT = 20
DEFAULT_REQUEST_TIMEOUT_SEC = 15.0
DEFAULT_PUSH_MAX_ATTEMPTS = 10
DEFAULT_PUSH_BACKOFF_MIN_SEC = 2.0
DEFAULT_PUSH_BACKOFF_MAX_SEC = 30.0
DEFAULT_DB_PATH = "octo.db"


def validate_wallet(wallet: str) -> str:
    """Validate a Solana public key with solders. Returns the stripped address; raises ValueError."""
    wallet = (wallet or "").strip()
    if not wallet:
        raise ValueError("wallet must be non-empty")
    try:
        Pubkey.from_string(wallet)
    except Exception as e:
        raise ValueError(f"Invalid Solana wallet: {e}") from e
    return wallet


def _env_str(name: str, default: str) -> str:
    return (os.getenv(name) or "").strip() or default


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def _env_decimal(name: str, default: Decimal) -> Decimal:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return Decimal(raw)
    except InvalidOperation as e:
        raise ValueError(f"{name} must be a decimal, got {raw!r}") from e


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Validated service configuration."""

    wallet_address: str = DEFAULT_WALLET_ADDRESS
    rpc_url: str = "https://api.mainnet-beta.solana.com"
    ws_url: str = "wss://api.mainnet-beta.solana.com"
    db_path: Path = Path(DEFAULT_DB_PATH)
    min_donation_sol: Decimal = DEFAULT_MIN_DONATION_SOL
    """Minimum qualifying donation; also the size of one HP."""
    max_hp: int = DEFAULT_MAX_HP
    thriving_above: int = DEFAULT_THRIVING_ABOVE
    critical_at_or_below: int = DEFAULT_CRITICAL_AT_OR_BELOW
    initial_hp: int = DEFAULT_INITIAL_HP
    decay_period_sec: float = DEFAULT_DECAY_PERIOD_SEC
    poll_interval_sec: float = DEFAULT_POLL_INTERVAL_SEC
    signatures_limit: int = DEFAULT_SIGNATURES_LIMIT
    request_timeout_sec: float = DEFAULT_REQUEST_TIMEOUT_SEC
    push_enabled: bool = True
    push_max_attempts: int = DEFAULT_PUSH_MAX_ATTEMPTS
    push_backoff_min_sec: float = DEFAULT_PUSH_BACKOFF_MIN_SEC
    push_backoff_max_sec: float = DEFAULT_PUSH_BACKOFF_MAX_SEC

    def __post_init__(self) -> None:
        validate_wallet(self.wallet_address)
        if not self.rpc_url.strip():
            raise ValueError("rpc_url must be non-empty")
        if self.min_donation_sol <= 0:
            raise ValueError("min_donation_sol must be positive")
        if not (self.thriving_above > self.critical_at_or_below > 0):
            raise ValueError("thresholds must satisfy thriving_above > critical_at_or_below > 0")
        if self.max_hp < self.thriving_above:
            raise ValueError("max_hp must be >= thriving_above")
        if not (0 <= self.initial_hp <= self.max_hp):
            raise ValueError("initial_hp must be between 0 and max_hp")
        if self.decay_period_sec <= 0 or self.poll_interval_sec <= 0:
            raise ValueError("decay_period_sec and poll_interval_sec must be positive")
        if not (1 <= self.signatures_limit <= 1000):
            raise ValueError("signatures_limit must be between 1 and 1000")
        if self.push_max_attempts < 1:
            raise ValueError("push_max_attempts must be >= 1")

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (after loading .env)."""
        load_octo_env()
        return cls(
            wallet_address=_env_str("OCTO_WALLET_ADDRESS", DEFAULT_WALLET_ADDRESS),
            rpc_url=get_solana_rpc_url(),
            ws_url=get_solana_ws_url(),
            db_path=Path(_env_str("OCTO_DB_PATH", DEFAULT_DB_PATH)),
            min_donation_sol=_env_decimal("MIN_DONATION_SOL", DEFAULT_MIN_DONATION_SOL),
            max_hp=_env_int("MAX_HP", DEFAULT_MAX_HP),
            thriving_above=_env_int("THRIVING_ABOVE", DEFAULT_THRIVING_ABOVE),
            critical_at_or_below=_env_int("CRITICAL_AT_OR_BELOW", DEFAULT_CRITICAL_AT_OR_BELOW),
            initial_hp=_env_int("INITIAL_HP", DEFAULT_INITIAL_HP),
            decay_period_sec=_env_float("DECAY_PERIOD_SEC", DEFAULT_DECAY_PERIOD_SEC),
            poll_interval_sec=_env_float("POLL_INTERVAL_SEC", DEFAULT_POLL_INTERVAL_SEC),
            signatures_limit=_env_int("SIGNATURES_LIMIT", DEFAULT_SIGNATURES_LIMIT),
            request_timeout_sec=_env_float("RPC_TIMEOUT_SEC", DEFAULT_REQUEST_TIMEOUT_SEC),
            push_enabled=_env_bool("PUSH_ENABLED", True),
            push_max_attempts=_env_int("PUSH_MAX_ATTEMPTS", DEFAULT_PUSH_MAX_ATTEMPTS),
            push_backoff_min_sec=_env_float("PUSH_BACKOFF_MIN_SEC", DEFAULT_PUSH_BACKOFF_MIN_SEC),
            push_backoff_max_sec=_env_float("PUSH_BACKOFF_MAX_SEC", DEFAULT_PUSH_BACKOFF_MAX_SEC),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings (cached; call get_settings.cache_clear() in tests)."""
    return Settings.from_env()
