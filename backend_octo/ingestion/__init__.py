"""
Push ingestion — WebSocket account-change notifications for the monitored wallet.
"""

from backend_octo.ingestion.account_stream import (
    AccountChangeStream,
    PushSubscribeError,
    StreamConfig,
    backoff_delay,
)

__all__ = [
    "AccountChangeStream",
    "PushSubscribeError",
    "StreamConfig",
    "backoff_delay",
]
