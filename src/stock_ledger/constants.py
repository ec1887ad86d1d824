"""Enumerations and defaults shared across Stock Ledger modules.

Centralises domain constants so that the persistence gateway, the ledger and
sale engine, the report aggregator, and the export surface rely on a single
source of truth for identifiers, storage keys, and column layouts.
"""

from __future__ import annotations

from enum import Enum


# Version tag written into backup bundles and expected in ``config.ini``.
EXPECTED_SCHEMA_VERSION = "2.0"

DEFAULT_CATEGORY = "Other"
DEFAULT_UNIT = "pieces"
DEFAULT_MIN_STOCK = 5
DEFAULT_CURRENCY = "INR"
DEFAULT_NOTIFICATIONS = True
TOP_PRODUCTS_LIMIT = 5


class StorageKey(str, Enum):
    """Keys of the three top-level blobs held by the persistence gateway."""

    INVENTORY = "inventory_enhanced_v2"
    SALES = "salesHistory_enhanced_v2"
    SETTINGS = "settings_enhanced_v2"


class StockTier(str, Enum):
    """Stock status tiers derived from quantity versus threshold."""

    OUT_OF_STOCK = "out-of-stock"
    LOW_STOCK = "low-stock"
    MEDIUM_STOCK = "medium-stock"
    IN_STOCK = "in-stock"

    @property
    def label(self) -> str:
        return _TIER_LABELS[self]


_TIER_LABELS = {
    StockTier.OUT_OF_STOCK: "Out of Stock",
    StockTier.LOW_STOCK: "Low Stock",
    StockTier.MEDIUM_STOCK: "Medium Stock",
    StockTier.IN_STOCK: "In Stock",
}


class StockFilter(str, Enum):
    """Inventory list filters; ``IN_STOCK`` means strictly above threshold."""

    IN_STOCK = "in-stock"
    LOW_STOCK = "low-stock"
    OUT_OF_STOCK = "out-of-stock"


class SortKey(str, Enum):
    """Columns an inventory listing can be ordered by."""

    NAME = "name"
    CATEGORY = "category"
    QUANTITY = "quantity"
    PRICE = "price"
    VALUE = "value"


class DiscountType(str, Enum):
    """How a sale's ``discount_value`` is interpreted."""

    FLAT = "flat"
    PERCENT = "percent"


class RoundingMode(str, Enum):
    """Rounding applied to a sale total before the final 2-decimal rounding."""

    NONE = "none"
    NEAREST_1 = "nearest1"
    NEAREST_2 = "nearest2"


class Granularity(str, Enum):
    """Bucket sizes supported by the report aggregator."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"


INVENTORY_COLUMNS = (
    "Name",
    "Category",
    "Quantity",
    "Unit",
    "Price",
    "Min Stock",
    "Total Value",
    "Status",
)

SALES_COLUMNS = (
    "DateTime",
    "Product",
    "Quantity",
    "Unit Price",
    "Subtotal",
    "Discount Type",
    "Discount Value",
    "Discount Applied",
    "Total",
)

REPORT_COLUMNS = (
    "Period",
    "Orders",
    "Units Sold",
    "Revenue",
    "Avg Order Value",
)


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "DEFAULT_CATEGORY",
    "DEFAULT_UNIT",
    "DEFAULT_MIN_STOCK",
    "DEFAULT_CURRENCY",
    "DEFAULT_NOTIFICATIONS",
    "TOP_PRODUCTS_LIMIT",
    "StorageKey",
    "StockTier",
    "StockFilter",
    "SortKey",
    "DiscountType",
    "RoundingMode",
    "Granularity",
    "INVENTORY_COLUMNS",
    "SALES_COLUMNS",
    "REPORT_COLUMNS",
]
