"""
Shopping cart engine with write-through persistence.

Line items are kept in insertion order and keyed by product id. Every
mutation is written to the store before the method returns, then announced
with ``cartChanged``. Totals are derived on each read and never stored.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from ..core.events import CART_CHANGED, EventBus
from ..models.catalog import CartTotals, Coupon, LineItem, Product
from ..utils.logger import get_logger
from .store import PersistentStore

logger = get_logger(__name__)

CART_KEY = "cart"
COUPON_KEY = "coupon"

ProductLike = Union[Product, Dict[str, Any]]


def as_product(product: ProductLike) -> Product:
    if isinstance(product, Product):
        return product
    return Product.from_catalog(product)


class CartEngine:
    def __init__(self, store: PersistentStore, events: EventBus):
        self.store = store
        self.events = events
        self._items: Dict[str, LineItem] = {}
        self._coupon: Optional[Coupon] = None
        self.load()

    def load(self) -> None:
        """(Re)read the cart from storage, dropping entries that fail validation."""
        self._items = {}
        raw = self.store.get_json(CART_KEY)
        if raw is not None and not isinstance(raw, list):
            logger.warning("Stored cart has unexpected shape, starting empty")
            raw = None

        dropped = 0
        for entry in raw or []:
            try:
                item = LineItem.model_validate(entry)
            except ValidationError:
                dropped += 1
                continue
            existing = self._items.get(item.product_id)
            if existing is not None:
                item = existing.model_copy(update={"quantity": existing.quantity + item.quantity})
            self._items[item.product_id] = item
        if dropped:
            logger.warning("Dropped invalid cart entries", dropped=dropped)

        self._coupon = None
        coupon_raw = self.store.get_json(COUPON_KEY)
        if coupon_raw is not None:
            try:
                self._coupon = Coupon.model_validate(coupon_raw)
            except ValidationError:
                logger.warning("Dropped invalid stored coupon")

    @property
    def items(self) -> List[LineItem]:
        return list(self._items.values())

    @property
    def coupon(self) -> Optional[Coupon]:
        return self._coupon

    def get(self, product_id: str) -> Optional[LineItem]:
        return self._items.get(str(product_id))

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, product_id: object) -> bool:
        return str(product_id) in self._items

    def add_item(self, product: ProductLike, qty: int = 1) -> LineItem:
        """Add ``qty`` of ``product``; an existing line item is incremented, not duplicated."""
        if not isinstance(qty, int) or isinstance(qty, bool) or qty < 1:
            raise ValueError(f"Quantity must be a positive integer, got {qty!r}")
        product = as_product(product)

        existing = self._items.get(product.id)
        if existing is not None:
            item = existing.model_copy(update={"quantity": existing.quantity + qty})
        else:
            item = LineItem.from_product(product, qty)
        self._items[product.id] = item
        self._commit()
        return item

    def update_quantity(self, product_id: str, qty: int) -> Optional[LineItem]:
        """Set the quantity exactly; zero or less removes the line item."""
        if not isinstance(qty, int) or isinstance(qty, bool):
            raise ValueError(f"Quantity must be an integer, got {qty!r}")
        product_id = str(product_id)
        if qty <= 0:
            self.remove_item(product_id)
            return None

        existing = self._items.get(product_id)
        if existing is None:
            return None
        if existing.quantity == qty:
            return existing
        item = existing.model_copy(update={"quantity": qty})
        self._items[product_id] = item
        self._commit()
        return item

    def remove_item(self, product_id: str) -> None:
        if self._items.pop(str(product_id), None) is not None:
            self._commit()

    def clear(self) -> None:
        self._items = {}
        self._coupon = None
        self.store.remove(COUPON_KEY)
        self._commit()

    def apply_coupon(self, coupon: Coupon) -> CartTotals:
        if coupon.is_expired():
            raise ValueError(f"Coupon {coupon.code} has expired")
        self._coupon = coupon
        self.store.set_json(COUPON_KEY, coupon.model_dump(mode="json"))
        self._commit(persist_items=False)
        return self.totals()

    def remove_coupon(self) -> CartTotals:
        if self._coupon is not None:
            self._coupon = None
            self.store.remove(COUPON_KEY)
            self._commit(persist_items=False)
        return self.totals()

    def totals(self) -> CartTotals:
        item_count = sum(item.quantity for item in self._items.values())
        subtotal = round(sum(item.quantity * item.price for item in self._items.values()), 2)
        discount = 0.0
        coupon_code = None
        if self._coupon is not None and not self._coupon.is_expired():
            discount = round(subtotal * self._coupon.discount_percent / 100, 2)
            coupon_code = self._coupon.code
        return CartTotals(
            item_count=item_count,
            subtotal=subtotal,
            discount=discount,
            total=round(subtotal - discount, 2),
            coupon_code=coupon_code,
        )

    def _commit(self, persist_items: bool = True) -> None:
        if persist_items:
            self.store.set_json(CART_KEY, [item.model_dump(mode="json") for item in self._items.values()])
        self.events.emit(CART_CHANGED, totals=self.totals())
