"""Wishlist (favourites) with set semantics and write-through persistence"""

from typing import Dict, List

from pydantic import ValidationError

from ..core.events import WISHLIST_CHANGED, EventBus
from ..models.catalog import WishlistEntry
from ..utils.logger import get_logger
from .cart import ProductLike, as_product
from .store import PersistentStore

logger = get_logger(__name__)

WISHLIST_KEY = "wishlist"


class WishlistEngine:
    def __init__(self, store: PersistentStore, events: EventBus):
        self.store = store
        self.events = events
        self._entries: Dict[str, WishlistEntry] = {}
        # product_id -> index it was toggled off from, so toggling back restores the order
        self._removed_at: Dict[str, int] = {}
        self.load()

    def load(self) -> None:
        self._entries = {}
        self._removed_at = {}
        raw = self.store.get_json(WISHLIST_KEY)
        if raw is not None and not isinstance(raw, list):
            logger.warning("Stored wishlist has unexpected shape, starting empty")
            raw = None
        for entry in raw or []:
            try:
                item = WishlistEntry.model_validate(entry)
            except ValidationError:
                logger.warning("Dropped invalid wishlist entry")
                continue
            self._entries.setdefault(item.product_id, item)

    @property
    def entries(self) -> List[WishlistEntry]:
        return list(self._entries.values())

    def product_ids(self) -> frozenset:
        return frozenset(self._entries)

    def contains(self, product_id: str) -> bool:
        return str(product_id) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def toggle(self, product: ProductLike) -> bool:
        """Add the product if absent, remove it if present. Returns True when it is now wishlisted."""
        product = as_product(product)
        if product.id in self._entries:
            self._removed_at[product.id] = list(self._entries).index(product.id)
            del self._entries[product.id]
            present = False
        else:
            self._insert(WishlistEntry.from_product(product))
            present = True
        self._commit()
        return present

    def remove(self, product_id: str) -> None:
        if self._entries.pop(str(product_id), None) is not None:
            self._removed_at.pop(str(product_id), None)
            self._commit()

    def clear(self) -> None:
        self._removed_at = {}
        if self._entries:
            self._entries = {}
            self._commit()

    def _insert(self, entry: WishlistEntry) -> None:
        index = self._removed_at.pop(entry.product_id, None)
        if index is None or index >= len(self._entries):
            self._entries[entry.product_id] = entry
            return
        ordered = list(self._entries.items())
        ordered.insert(index, (entry.product_id, entry))
        self._entries = dict(ordered)

    def _commit(self) -> None:
        self.store.set_json(WISHLIST_KEY, [entry.model_dump(mode="json") for entry in self._entries.values()])
        self.events.emit(WISHLIST_CHANGED, product_ids=self.product_ids())
