"""Entity model for the ledger: products, sales, and settings.

Records are frozen dataclasses. Mutations inside the ledger swap whole records
via :func:`dataclasses.replace`, so any snapshot handed to a caller stays
stable after later operations.

The ``*_to_dict``/``*_from_dict`` helpers define the blob layout used by the
persistence gateway. Field names follow the layout the browser application
has always stored (``qty``, ``minStock``, ``salesHistory`` and friends) so
existing exports and backups remain readable.
"""

from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping, Optional

from .constants import (
    DEFAULT_CATEGORY,
    DEFAULT_CURRENCY,
    DEFAULT_MIN_STOCK,
    DEFAULT_NOTIFICATIONS,
    DEFAULT_UNIT,
    DiscountType,
)
from .money import ZERO, round2, to_decimal


_BASE36 = string.digits + string.ascii_lowercase


@dataclass(frozen=True)
class Product:
    """A stocked item and its on-hand quantity."""

    id: str
    name: str
    category: str
    quantity: int
    unit: str
    price: Decimal
    min_stock: Optional[int]
    created_at: datetime
    updated_at: datetime

    @property
    def value(self) -> Decimal:
        """Stock value at the current price."""
        return self.price * self.quantity


@dataclass(frozen=True)
class Sale:
    """A completed sale, snapshotting product name and unit price."""

    id: str
    date: datetime
    product_id: str
    product: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    discount_type: DiscountType
    discount_value: Decimal
    discount_applied: Decimal
    total: Decimal


@dataclass(frozen=True)
class Settings:
    """User-editable application settings."""

    default_min_stock: int = DEFAULT_MIN_STOCK
    currency: str = DEFAULT_CURRENCY
    notifications: bool = DEFAULT_NOTIFICATIONS


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_id() -> str:
    """Generate an identifier from the millisecond clock plus a random suffix.

    Unique within one running instance; not meant to be unguessable.
    """

    millis = time.time_ns() // 1_000_000
    suffix = "".join(random.choices(_BASE36, k=11))
    return f"{_to_base36(millis)}{suffix}"


def _format_timestamp(moment: datetime) -> str:
    return moment.isoformat()


def _parse_timestamp(raw: Any) -> datetime:
    text = str(raw)
    # Browser timestamps use a "Z" suffix for UTC.
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        # Offset-less timestamps were written in local time.
        moment = moment.astimezone()
    return moment


def _whole_number(raw: Any, field_name: str, *, minimum: int) -> int:
    number = to_decimal(raw)
    if number != number.to_integral_value() or number < minimum:
        raise ValueError(f"{field_name} must be a whole number of at least {minimum}, got {raw!r}")
    return int(number)


def _optional_whole_number(raw: Any, field_name: str) -> Optional[int]:
    if raw is None or raw == "":
        return None
    return _whole_number(raw, field_name, minimum=0)


def _amount(raw: Any, field_name: str) -> Decimal:
    value = round2(raw)
    if value < 0:
        raise ValueError(f"{field_name} must be zero or positive, got {raw!r}")
    return value


def product_to_dict(product: Product) -> dict[str, Any]:
    """Serialize a product into its stored mapping."""

    return {
        "id": product.id,
        "name": product.name,
        "category": product.category,
        "qty": product.quantity,
        "unit": product.unit,
        "price": product.price,
        "minStock": product.min_stock,
        "createdAt": _format_timestamp(product.created_at),
        "updatedAt": _format_timestamp(product.updated_at),
    }


def product_from_dict(raw: Mapping[str, Any]) -> Product:
    """Rebuild a product from its stored mapping.

    Stored records get the same range checks as new ones: quantity, price and
    ``minStock`` may not be negative.

    Raises:
        KeyError: When a required field is absent.
        ValueError: When a field cannot be converted or is out of range.
    """

    created_at = _parse_timestamp(raw["createdAt"])
    return Product(
        id=str(raw["id"]),
        name=str(raw["name"]),
        category=str(raw.get("category") or DEFAULT_CATEGORY),
        quantity=_whole_number(raw["qty"], "qty", minimum=0),
        unit=str(raw.get("unit") or DEFAULT_UNIT),
        price=_amount(raw["price"], "price"),
        min_stock=_optional_whole_number(raw.get("minStock"), "minStock"),
        created_at=created_at,
        updated_at=_parse_timestamp(raw.get("updatedAt") or raw["createdAt"]),
    )


def sale_to_dict(sale: Sale) -> dict[str, Any]:
    """Serialize a sale into its stored mapping."""

    return {
        "id": sale.id,
        "date": _format_timestamp(sale.date),
        "product": sale.product,
        "productId": sale.product_id,
        "qty": sale.quantity,
        "price": sale.unit_price,
        "subtotal": sale.subtotal,
        "discountType": sale.discount_type.value,
        "discountValue": sale.discount_value,
        "discountApplied": sale.discount_applied,
        "total": sale.total,
    }


def sale_from_dict(raw: Mapping[str, Any]) -> Sale:
    """Rebuild a sale from its stored mapping.

    Older records may lack ``subtotal``; it is recomputed from quantity and
    unit price in that case.

    Raises:
        KeyError: When a required field is absent.
        ValueError: When a field cannot be converted, the quantity is not
            positive, an amount is negative, or the applied discount exceeds
            the subtotal.
    """

    quantity = _whole_number(raw["qty"], "qty", minimum=1)
    unit_price = _amount(raw["price"], "price")
    subtotal_raw = raw.get("subtotal")
    subtotal = _amount(subtotal_raw, "subtotal") if subtotal_raw is not None else round2(unit_price * quantity)
    discount_applied = _amount(raw.get("discountApplied") or ZERO, "discountApplied")
    if discount_applied > subtotal:
        raise ValueError(f"discountApplied {discount_applied} exceeds subtotal {subtotal}")
    return Sale(
        id=str(raw["id"]),
        date=_parse_timestamp(raw["date"]),
        product_id=str(raw.get("productId") or ""),
        product=str(raw["product"]),
        quantity=quantity,
        unit_price=unit_price,
        subtotal=subtotal,
        discount_type=DiscountType(raw.get("discountType") or DiscountType.FLAT.value),
        discount_value=_amount(raw.get("discountValue") or ZERO, "discountValue"),
        discount_applied=discount_applied,
        total=_amount(raw["total"], "total"),
    )


def settings_to_dict(settings: Settings) -> dict[str, Any]:
    return {
        "defaultMinStock": settings.default_min_stock,
        "currency": settings.currency,
        "notifications": settings.notifications,
    }


def settings_from_dict(raw: Mapping[str, Any], *, base: Optional[Settings] = None) -> Settings:
    """Overlay stored settings on ``base`` (defaults when omitted).

    Raises:
        ValueError: If ``defaultMinStock`` is not a positive integer.
    """

    base = base or Settings()
    default_min_stock = int(raw.get("defaultMinStock", base.default_min_stock))
    if default_min_stock <= 0:
        raise ValueError(f"defaultMinStock must be positive, got {default_min_stock}")
    return Settings(
        default_min_stock=default_min_stock,
        currency=str(raw.get("currency", base.currency)),
        notifications=bool(raw.get("notifications", base.notifications)),
    )


__all__ = [
    "Product",
    "Sale",
    "Settings",
    "generate_id",
    "product_to_dict",
    "product_from_dict",
    "sale_to_dict",
    "sale_from_dict",
    "settings_to_dict",
    "settings_from_dict",
]
