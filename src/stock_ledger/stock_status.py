"""Stock status derivation.

Tiers are always recomputed from the product's current quantity and the
threshold in force at the time of the read. Nothing here is cached on the
product because ``min_stock`` and the global default change independently.
"""

from __future__ import annotations

from typing import Optional, Union

from .constants import StockFilter, StockTier
from .models import Product


def effective_min_stock(product: Product, default_min_stock: int) -> int:
    """Return the product's own threshold, or the global default when unset.

    An explicit ``0`` is a real threshold (no low-stock alerting for the
    item) and does not fall back to the default.
    """

    if product.min_stock is None:
        return default_min_stock
    return product.min_stock


def classify(product: Product, default_min_stock: int) -> StockTier:
    """Classify a product into one of the four stock tiers."""

    threshold = effective_min_stock(product, default_min_stock)
    quantity = product.quantity
    if quantity == 0:
        return StockTier.OUT_OF_STOCK
    if quantity <= threshold:
        return StockTier.LOW_STOCK
    if quantity <= threshold * 2:
        return StockTier.MEDIUM_STOCK
    return StockTier.IN_STOCK


def matches_stock_filter(
    product: Product,
    stock_filter: Optional[Union[StockFilter, str]],
    default_min_stock: int,
) -> bool:
    """Check a product against an inventory list filter.

    The filter works on the threshold boundary only: ``IN_STOCK`` accepts
    anything above the threshold, so medium-stock items match it too.
    """

    if not stock_filter:
        return True
    stock_filter = StockFilter(stock_filter)
    threshold = effective_min_stock(product, default_min_stock)
    quantity = product.quantity
    if stock_filter is StockFilter.IN_STOCK:
        return quantity > threshold
    if stock_filter is StockFilter.LOW_STOCK:
        return 0 < quantity <= threshold
    return quantity == 0
