"""Data models for sessions, catalog snapshots, cart and wishlist entries"""

from .catalog import CartTotals, Coupon, LineItem, Product, WishlistEntry
from .session import OtpChallenge, SessionCredential, TokenPair, UserProfile

__all__ = [
    "CartTotals",
    "Coupon",
    "LineItem",
    "Product",
    "WishlistEntry",
    "OtpChallenge",
    "SessionCredential",
    "TokenPair",
    "UserProfile",
]
