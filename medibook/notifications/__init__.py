"""Change notification fan-out."""

from medibook.notifications.events import ChangeEvent, ChangeType
from medibook.notifications.feed import ChangeFeed, Subscription, get_change_feed

__all__ = [
    "ChangeEvent",
    "ChangeFeed",
    "ChangeType",
    "Subscription",
    "get_change_feed",
]
