"""
Transaction normalizer: raw getTransaction payloads to IncomingTransfer.

Computes the monitored account's own balance delta from meta pre/post
balances; a positive delta is an incoming transfer. Handles json and
jsonParsed account key shapes and versioned transactions (loadedAddresses).
Malformed payloads are discarded, never raised, so one bad record cannot
stall ingestion.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from backend_octo.octo_logging import get_logger
from backend_octo.solana_listener.models import (
    LAMPORTS_PER_SOL,
    UNKNOWN_COUNTERPARTY,
    IncomingTransfer,
)

logger = get_logger(__name__)


def _get_message_and_meta(raw: dict[str, Any]) -> tuple[dict[str, Any] | None, dict[str, Any] | None]:
    """Return (transaction.message, meta) from getTransaction-style result."""
    tx_obj = raw.get("transaction")
    if not tx_obj or not isinstance(tx_obj, dict):
        return None, None
    message = tx_obj.get("message")
    if not message or not isinstance(message, dict):
        return None, None
    meta = raw.get("meta")
    if not isinstance(meta, dict):
        meta = None
    return message, meta


def _get_account_keys(
    message: dict[str, Any],
    meta: dict[str, Any] | None = None,
) -> list[str]:
    """
    Resolve accountKeys to a list of base58 strings (handles json vs jsonParsed).
    For versioned transactions, appends meta.loadedAddresses (writable + readonly),
    which is the order pre/postBalances use.
    """
    keys = message.get("accountKeys")
    if not keys or not isinstance(keys, list):
        return []
    out = []
    for k in keys:
        if isinstance(k, str):
            out.append(k)
        elif isinstance(k, dict):
            out.append(str(k.get("pubkey", "")))
        else:
            out.append("")
    loaded = (meta or {}).get("loadedAddresses") or {}
    if isinstance(loaded, dict):
        for role in ("writable", "readonly"):
            for addr in loaded.get(role) or []:
                out.append(addr if isinstance(addr, str) else "")
    return out


def _balances(meta: dict[str, Any], key: str) -> list[int] | None:
    values = meta.get(key)
    if not isinstance(values, list):
        return None
    if not all(isinstance(v, int) and not isinstance(v, bool) for v in values):
        return None
    return values


def _resolve_counterparty(
    account_keys: list[str],
    pre: list[int],
    post: list[int],
    monitored_idx: int,
) -> str:
    """First other account whose balance decreased; 'unknown' if none."""
    for i, key in enumerate(account_keys):
        if i == monitored_idx or i >= len(pre) or i >= len(post):
            continue
        if post[i] - pre[i] < 0 and key:
            return key
    return UNKNOWN_COUNTERPARTY


def _block_time(raw: dict[str, Any]) -> datetime:
    ts = raw.get("blockTime")
    if ts is not None and not isinstance(ts, bool):
        try:
            return datetime.fromtimestamp(int(ts), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            pass
    return datetime.now(timezone.utc)


def _signature(raw: dict[str, Any]) -> str | None:
    sigs = (raw.get("transaction") or {}).get("signatures")
    if isinstance(sigs, list) and sigs and isinstance(sigs[0], str):
        return sigs[0]
    return None


def normalize(
    raw: Any,
    monitored: str,
    *,
    signature: str | None = None,
) -> IncomingTransfer | None:
    """
    Map one raw getTransaction result to zero or one IncomingTransfer.

    Returns None when the payload is malformed, the transaction failed,
    the monitored account is not a participant, or its balance did not grow.
    """
    if not isinstance(raw, dict):
        return None
    message, meta = _get_message_and_meta(raw)
    if message is None or meta is None:
        return None
    if meta.get("err") is not None:
        return None

    sig = signature or _signature(raw)
    if not sig:
        return None

    account_keys = _get_account_keys(message, meta)
    try:
        idx = account_keys.index(monitored)
    except ValueError:
        return None

    pre = _balances(meta, "preBalances")
    post = _balances(meta, "postBalances")
    if pre is None or post is None or idx >= len(pre) or idx >= len(post):
        logger.debug("normalizer_balances_missing", signature=sig)
        return None

    delta = post[idx] - pre[idx]
    if delta <= 0:
        return None

    slot = raw.get("slot")
    return IncomingTransfer(
        signature=sig,
        amount=Decimal(delta) / Decimal(LAMPORTS_PER_SOL),
        counterparty=_resolve_counterparty(account_keys, pre, post, idx),
        observed_at=_block_time(raw),
        lamports=delta,
        slot=int(slot) if isinstance(slot, int) else None,
    )
