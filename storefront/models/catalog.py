"""Catalog boundary records and cart/wishlist entries"""

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator


def _stringify_id(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


EntityId = Annotated[str, BeforeValidator(_stringify_id), Field(min_length=1)]


class Product(BaseModel):
    """
    Validated product snapshot, built once from catalog data.

    Accepts the catalog's loose shapes (``image_url`` or ``image``) and
    rejects anything without an id, a name and a non-negative price.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: EntityId
    name: str = Field(min_length=1)
    price: float = Field(ge=0)
    image: Optional[str] = None
    category: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if not data.get("image") and data.get("image_url"):
                data["image"] = data["image_url"]
        return data

    @classmethod
    def from_catalog(cls, data: Dict[str, Any]) -> "Product":
        return cls.model_validate(data)


class LineItem(BaseModel):
    """One cart entry. Immutable; the cart engine swaps entries instead of mutating them."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    product_id: EntityId
    quantity: int = Field(ge=1)
    price: float = Field(ge=0)
    name: str = Field(min_length=1)
    image: Optional[str] = None
    category: Optional[str] = None

    @classmethod
    def from_product(cls, product: Product, quantity: int) -> "LineItem":
        return cls(
            product_id=product.id,
            quantity=quantity,
            price=product.price,
            name=product.name,
            image=product.image,
            category=product.category,
        )

    @property
    def line_total(self) -> float:
        return round(self.quantity * self.price, 2)


class WishlistEntry(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    product_id: EntityId
    name: str = Field(min_length=1)
    price: float = Field(ge=0)
    image: Optional[str] = None
    category: Optional[str] = None

    @classmethod
    def from_product(cls, product: Product) -> "WishlistEntry":
        return cls(
            product_id=product.id,
            name=product.name,
            price=product.price,
            image=product.image,
            category=product.category,
        )


class Coupon(BaseModel):
    """Percentage discount coupon as returned by the coupon validation endpoint"""
    model_config = ConfigDict(frozen=True, extra="ignore")

    code: str = Field(min_length=1)
    discount_percent: float = Field(gt=0, le=100)
    expiry_date: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expiry_date is None:
            return False
        now = now or datetime.now(timezone.utc)
        expiry = self.expiry_date
        # Naive dates from the backend are UTC
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)
        return now > expiry


class CartTotals(BaseModel):
    """Derived cart figures. Recomputed on every read, never persisted."""
    model_config = ConfigDict(frozen=True)

    item_count: int = 0
    subtotal: float = 0.0
    discount: float = 0.0
    total: float = 0.0
    coupon_code: Optional[str] = None
