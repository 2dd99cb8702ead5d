"""
Per-namespace storefront session.

All client state hangs off one ``StorefrontSession``: nothing is global, and
two sessions with different namespaces (or stores) never see each other.

    with StorefrontSession.from_settings(load_settings()) as session:
        await session.auth.request_otp("a@b.com")
        session.cart.add_item(product)
"""

from pathlib import Path
from typing import Optional

from ..api.storefront_client import StorefrontAPI
from ..auth.admin import AdminGate
from ..auth.credentials import build_manager
from ..auth.customer import CustomerAuth
from ..services.cart import CartEngine
from ..services.coupons import CouponService
from ..services.store import JsonFileStore, MemoryStore, PersistentStore
from ..services.sync import CommerceSync
from ..services.wishlist import WishlistEngine
from ..utils.config import Settings
from ..utils.logger import get_logger, is_configured, setup_logging
from .events import EventBus

logger = get_logger(__name__)


def build_store(settings: Settings) -> PersistentStore:
    if settings.storage.backend == "memory":
        return MemoryStore()
    return JsonFileStore(Path(settings.storage.data_dir), settings.storage.namespace)


class StorefrontSession:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[PersistentStore] = None,
        api=None,
        events: Optional[EventBus] = None,
    ):
        self.settings = settings or Settings()
        self.store = store if store is not None else build_store(self.settings)
        self.api = api if api is not None else StorefrontAPI.from_settings(self.settings.api)
        self._owns_api = api is None
        self.events = events or EventBus()

        leeway = self.settings.auth.token_leeway_seconds
        self.customer_credentials = build_manager(self.store, self.api, self.events, "customer", leeway)
        self.admin_credentials = build_manager(self.store, self.api, self.events, "admin", leeway)

        self.auth = CustomerAuth(
            self.api,
            self.customer_credentials,
            self.events,
            max_attempts=self.settings.auth.otp_max_attempts,
            otp_ttl_minutes=self.settings.auth.otp_ttl_minutes,
        )
        self.admin = AdminGate(
            self.api,
            self.admin_credentials,
            self.store,
            self.events,
            login_path=self.settings.auth.admin_login_path,
        )
        self.cart = CartEngine(self.store, self.events)
        self.wishlist = WishlistEngine(self.store, self.events)
        self.coupons = CouponService(self.customer_credentials, self.cart)
        self.sync = CommerceSync(
            self.customer_credentials,
            self.cart,
            self.wishlist,
            self.events,
            enabled=self.settings.auth.sync_on_login,
        )
        self._closed = False

        logger.info(
            "Storefront session opened",
            namespace=self.settings.storage.namespace,
            auth_state=self.auth.state.value,
            cart_items=len(self.cart),
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "StorefrontSession":
        if not is_configured():
            log = settings.logging
            setup_logging(log.level, log.format, log.file_path, log.max_bytes, log.backup_count)
        return cls(settings=settings, **kwargs)

    def reload(self) -> None:
        """Re-read cart and wishlist from storage (e.g. after another client wrote)."""
        self.cart.load()
        self.wishlist.load()

    def close(self) -> None:
        if self._closed:
            return
        self.auth.close()
        self.admin.close()
        self.sync.close()
        self.events.clear()
        if self._owns_api:
            self.api.close()
        self._closed = True
        logger.info("Storefront session closed")

    def __enter__(self) -> "StorefrontSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
