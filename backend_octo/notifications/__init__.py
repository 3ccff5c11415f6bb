"""
Notification sink — donation, phase and balance events for UI and logs.
"""

from backend_octo.notifications.events import (
    BalanceUpdated,
    DonationAccepted,
    Event,
    PhaseChanged,
)
from backend_octo.notifications.hub import NotificationHub, log_event

__all__ = [
    "BalanceUpdated",
    "DonationAccepted",
    "Event",
    "NotificationHub",
    "PhaseChanged",
    "log_event",
]
