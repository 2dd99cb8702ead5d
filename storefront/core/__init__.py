"""Session context and event delivery"""

from .events import (
    ADMIN_SESSION_ENDED,
    ADMIN_SESSION_ESTABLISHED,
    CART_CHANGED,
    SESSION_ENDED,
    SESSION_ESTABLISHED,
    WISHLIST_CHANGED,
    EventBus,
)

__all__ = [
    "ADMIN_SESSION_ENDED",
    "ADMIN_SESSION_ESTABLISHED",
    "CART_CHANGED",
    "SESSION_ENDED",
    "SESSION_ESTABLISHED",
    "WISHLIST_CHANGED",
    "EventBus",
]
