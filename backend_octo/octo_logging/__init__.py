"""
Structured logging for Backend Octo.

JSON logs with timestamp, event_type and keyword context.
Use get_logger() in every module for aggregation-friendly output.
"""

from backend_octo.octo_logging.logger import bind_wallet, get_logger

__all__ = ["bind_wallet", "get_logger"]
