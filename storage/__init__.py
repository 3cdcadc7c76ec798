"""Storage package providing the notification latch file and fetch diagnostics."""

from .fetch_snapshot import write_fetch_snapshot
from .notification_state import NotificationStateStore, token_key

__all__ = ["NotificationStateStore", "token_key", "write_fetch_snapshot"]
