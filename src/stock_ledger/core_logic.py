"""Business logic layer for Stock Ledger.

This module owns the inventory and the sale log. It consumes the data access
layer for all I/O while ensuring every mutation passes through the domain
rules: stock never goes negative, a sale and its stock decrement happen
together, and a rejected operation leaves state exactly as it was.

Records are always addressed by identifier. Positions inside the product and
sale lists are resolved afresh under the context lock at the moment of each
mutation and never handed out.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Union

from . import data_manager, log, reports
from .constants import (
    DEFAULT_CATEGORY,
    DEFAULT_UNIT,
    EXPECTED_SCHEMA_VERSION,
    TOP_PRODUCTS_LIMIT,
    DiscountType,
    RoundingMode,
    SortKey,
    StockFilter,
    StockTier,
)
from .errors import (
    BusinessRuleViolation,
    DuplicateNameError,
    InsufficientStockError,
    InvalidInputError,
    InvalidQuantityError,
    MissingReferenceError,
    ProductNotFoundError,
    SaleNotFoundError,
)
from .models import Product, Sale, Settings, generate_id
from .money import Number, apply_rounding, round2, to_decimal
from .stock_status import classify, matches_stock_filter


Clock = Callable[[], datetime]
IdFactory = Callable[[], str]

PRODUCT_FIELDS = frozenset({"name", "category", "quantity", "unit", "price", "min_stock"})


def _local_now() -> datetime:
    return datetime.now().astimezone()


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration, storage, and the live ledger state.

    The context is the single owner of the product list and the sale log. All
    mutations run while holding ``lock`` so a stock check and the decrement
    that follows it cannot interleave with another operation.
    """

    config: data_manager.ConfigSettings
    store: data_manager.BlobStore
    state: data_manager.LedgerState
    clock: Clock = field(default=_local_now, compare=False)
    id_factory: IdFactory = field(default=generate_id, compare=False)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @property
    def settings(self) -> Settings:
        return self.state.settings


@dataclass(frozen=True)
class Quote:
    """Priced sale, shared by the preview and the commit path."""

    unit_price: Decimal
    quantity: int
    subtotal: Decimal
    discount: Decimal
    raw_total: Decimal
    total: Decimal
    insufficient_stock: bool = False


@dataclass(frozen=True)
class StockAlerts:
    out_of_stock: List[Product]
    low_stock: List[Product]

    @property
    def count(self) -> int:
        return len(self.out_of_stock) + len(self.low_stock)


@dataclass(frozen=True)
class InventorySummary:
    """Headline figures for the dashboard."""

    total_products: int
    total_stock: int
    inventory_value: Decimal
    low_stock_count: int
    out_of_stock_count: int
    today_revenue: Decimal
    total_sales: int
    total_revenue: Decimal
    total_units_sold: int
    total_discount: Decimal


@dataclass(frozen=True)
class ProductSales:
    """Sales aggregated under one product name."""

    name: str
    units: int
    revenue: Decimal
    orders: int


# ---------------------------------------------------------------------------
# Context lifecycle
# ---------------------------------------------------------------------------


def build_context(
    store: data_manager.BlobStore,
    *,
    config: Optional[data_manager.ConfigSettings] = None,
    clock: Optional[Clock] = None,
    id_factory: Optional[IdFactory] = None,
) -> RuntimeContext:
    """Load state from ``store`` and wrap it in a :class:`RuntimeContext`.

    Args:
        store (BlobStore): Persistence gateway holding the three blobs.
        config (ConfigSettings | None): Behaviour flags; when omitted the
            store's directory (if any) and default flags are used.
        clock (Callable | None): Source of "now"; defaults to local time.
        id_factory (Callable | None): Identifier generator; defaults to
            :func:`models.generate_id`.

    Returns:
        RuntimeContext: Context over the loaded (or default) state.
    """

    if config is None:
        config = data_manager.ConfigSettings(data_dir=getattr(store, "directory", Path.cwd()))
    state = data_manager.load_state(store)
    return RuntimeContext(
        config=config,
        store=store,
        state=state,
        clock=clock or _local_now,
        id_factory=id_factory or generate_id,
    )


def load_runtime_context(
    config_path: Optional[Path] = None,
    *,
    clock: Optional[Clock] = None,
    id_factory: Optional[IdFactory] = None,
) -> RuntimeContext:
    """Resolve ``config.ini`` and load the ledger from its data directory.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer searches upward from the current
            working directory.

    Returns:
        RuntimeContext: Context backed by a :class:`data_manager.JsonFileStore`.

    Raises:
        FileNotFoundError: If the configuration file cannot be located.
        KeyError: When mandatory configuration options are missing.
    """

    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    config = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    store = data_manager.JsonFileStore(config.data_dir)
    context = build_context(store, config=config, clock=clock, id_factory=id_factory)
    log.info("Loaded runtime context from '%s'", config.data_dir)
    return context


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate that the configured schema matches this release.

    Raises:
        RuntimeError: If ``SchemaVersion`` in ``config.ini`` does not match
            ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.config.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.config.schema_version,
        )
        raise RuntimeError(
            "Schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.config.schema_version)
        )

    log.debug("Schema version '%s' validated", context.config.schema_version)


def persist_context(context: RuntimeContext) -> None:
    """Write inventory, sale log, and settings back to the store."""

    with context.lock:
        try:
            data_manager.save_state(context.store, context.state)
        except OSError as exc:
            log.error("Failed to persist ledger state: %s", exc)
            raise
    log.info(
        "Persisted %d products and %d sales",
        len(context.state.products),
        len(context.state.sales),
    )


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload state from the store, discarding unsaved in-memory changes.

    Returns:
        RuntimeContext: Fresh context sharing configuration, store, clock and
            id factory with ``context``.
    """

    refreshed = build_context(
        context.store,
        config=context.config,
        clock=context.clock,
        id_factory=context.id_factory,
    )
    log.info("Reloaded ledger state from store")
    return refreshed


@contextmanager
def _mutation(context: RuntimeContext) -> Iterator[None]:
    """Hold the lock for one mutation and autosave once it succeeds.

    The product list, sale log and settings are snapshotted first. If the
    body or the autosave raises, the snapshot is put back so a failed call
    never leaves its change in memory, and the error propagates.
    """
    with context.lock:
        products = list(context.state.products)
        sales = list(context.state.sales)
        settings = context.state.settings
        try:
            yield
            if context.config.autosave:
                persist_context(context)
        except Exception:
            context.state.products[:] = products
            context.state.sales[:] = sales
            context.state.settings = settings
            raise


def _now(context: RuntimeContext) -> datetime:
    return context.clock()


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Not a whole number: {value!r}")
    if isinstance(value, int):
        return value
    number = to_decimal(value)
    if number != number.to_integral_value():
        raise ValueError(f"Not a whole number: {value!r}")
    return int(number)


def require_name(name: Any) -> str:
    """Return the stripped product name.

    Raises:
        InvalidInputError: If the name is missing or blank.
    """
    text = str(name).strip() if name is not None else ""
    if not text:
        log.warning("Product name validation failed: %r", name)
        raise InvalidInputError("Product name is required")
    return text


def require_stock_quantity(quantity: Any) -> int:
    """Validate an on-hand quantity: a whole number, zero or more.

    Raises:
        InvalidInputError: If ``quantity`` is negative or not a whole number.
    """
    try:
        value = _as_int(quantity)
    except ValueError as exc:
        log.warning("Stock quantity validation failed: %r", quantity)
        raise InvalidInputError(f"Quantity must be a whole number, got {quantity!r}") from exc
    if value < 0:
        log.warning("Stock quantity validation failed: %s", value)
        raise InvalidInputError("Quantity must be zero or positive")
    return value


def require_sale_quantity(quantity: Any) -> int:
    """Validate a sale quantity: a whole number greater than zero.

    Raises:
        InvalidQuantityError: If ``quantity`` is not a positive whole number.
    """
    try:
        value = _as_int(quantity)
    except ValueError as exc:
        log.warning("Sale quantity validation failed: %r", quantity)
        raise InvalidQuantityError(f"Quantity must be a whole number, got {quantity!r}") from exc
    if value <= 0:
        log.warning("Sale quantity validation failed: %s", value)
        raise InvalidQuantityError("Quantity must be greater than zero")
    return value


def require_nonnegative_money(amount: Any, *, field_name: str = "Amount") -> Decimal:
    """Validate that a monetary value is a finite number, zero or more.

    Raises:
        InvalidInputError: If ``amount`` is not numeric, is negative, or is
            too large to carry two decimal places.
    """
    try:
        value = to_decimal(amount)
        round2(value)
    except ValueError as exc:
        log.warning("%s validation failed: %r", field_name, amount)
        raise InvalidInputError(f"{field_name} must be a number within range, got {amount!r}") from exc
    if value < 0:
        log.warning("%s validation failed: %s", field_name, value)
        raise InvalidInputError(f"{field_name} must be zero or positive")
    return value


def require_min_stock(min_stock: Any) -> Optional[int]:
    """Validate a per-product threshold; ``None`` or ``""`` means unset."""
    if min_stock is None or min_stock == "":
        return None
    try:
        value = _as_int(min_stock)
    except ValueError as exc:
        log.warning("Minimum stock validation failed: %r", min_stock)
        raise InvalidInputError(f"Minimum stock must be a whole number, got {min_stock!r}") from exc
    if value < 0:
        log.warning("Minimum stock validation failed: %s", value)
        raise InvalidInputError("Minimum stock must be zero or positive")
    return value


def _text_or_default(value: Any, default: str) -> str:
    text = str(value).strip() if value is not None else ""
    return text or default


# ---------------------------------------------------------------------------
# Inventory ledger
# ---------------------------------------------------------------------------


def _find_product_index(context: RuntimeContext, product_id: str) -> int:
    for index, product in enumerate(context.state.products):
        if product.id == product_id:
            return index
    log.warning("Product lookup failed for id '%s'", product_id)
    raise ProductNotFoundError(f"Unknown product id: {product_id}")


def _name_taken(context: RuntimeContext, name: str, *, exclude_id: Optional[str] = None) -> bool:
    folded = name.casefold()
    return any(
        product.name.casefold() == folded and product.id != exclude_id
        for product in context.state.products
    )


def get_product(context: RuntimeContext, product_id: str) -> Product:
    """Resolve a product by identifier.

    Raises:
        ProductNotFoundError: If ``product_id`` is unknown.
    """
    with context.lock:
        return context.state.products[_find_product_index(context, product_id)]


def create_product(
    context: RuntimeContext,
    *,
    name: Any,
    quantity: Any,
    price: Any,
    category: Optional[str] = None,
    unit: Optional[str] = None,
    min_stock: Any = None,
) -> Product:
    """Validate and append a new product to the inventory.

    Args:
        context (RuntimeContext): Runtime context owning the inventory.
        name: Display name; must be non-blank and unique ignoring case.
        quantity: Opening stock, a whole number zero or more.
        price: Unit price, zero or more; stored rounded to two places.
        category (str | None): Defaults to ``"Other"``.
        unit (str | None): Defaults to ``"pieces"``.
        min_stock: Per-product low-stock threshold; ``None`` follows the
            global ``default_min_stock`` setting.

    Returns:
        Product: The stored product.

    Raises:
        InvalidInputError: If any field fails validation.
        DuplicateNameError: If another product already uses the name.
    """
    clean_name = require_name(name)
    clean_quantity = require_stock_quantity(quantity)
    clean_price = round2(require_nonnegative_money(price, field_name="Price"))
    clean_min_stock = require_min_stock(min_stock)

    with _mutation(context):
        if _name_taken(context, clean_name):
            log.warning("Rejected duplicate product name '%s'", clean_name)
            raise DuplicateNameError(f"Product with this name already exists: {clean_name}")
        now = _now(context)
        product = Product(
            id=context.id_factory(),
            name=clean_name,
            category=_text_or_default(category, DEFAULT_CATEGORY),
            quantity=clean_quantity,
            unit=_text_or_default(unit, DEFAULT_UNIT),
            price=clean_price,
            min_stock=clean_min_stock,
            created_at=now,
            updated_at=now,
        )
        context.state.products.append(product)

    log.info(
        "Created product '%s' (%s) with quantity=%s price=%s",
        product.name,
        product.id,
        product.quantity,
        product.price,
    )
    return product


def _clean_product_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    unknown = set(fields) - PRODUCT_FIELDS
    if unknown:
        log.warning("Rejected unknown product fields: %s", ", ".join(sorted(unknown)))
        raise InvalidInputError(f"Unknown product field(s): {', '.join(sorted(unknown))}")

    changes: Dict[str, Any] = {}
    if "name" in fields:
        changes["name"] = require_name(fields["name"])
    if "category" in fields:
        changes["category"] = _text_or_default(fields["category"], DEFAULT_CATEGORY)
    if "quantity" in fields:
        changes["quantity"] = require_stock_quantity(fields["quantity"])
    if "unit" in fields:
        changes["unit"] = _text_or_default(fields["unit"], DEFAULT_UNIT)
    if "price" in fields:
        changes["price"] = round2(require_nonnegative_money(fields["price"], field_name="Price"))
    if "min_stock" in fields:
        changes["min_stock"] = require_min_stock(fields["min_stock"])
    return changes


def update_product(context: RuntimeContext, product_id: str, **fields: Any) -> Product:
    """Overwrite mutable fields of an existing product.

    ``id`` and ``created_at`` are preserved and ``updated_at`` is refreshed.
    Name uniqueness is only re-checked when the configuration enables
    ``enforce_unique_on_rename``.

    Raises:
        ProductNotFoundError: If ``product_id`` is unknown.
        InvalidInputError: If a field is unknown or fails validation.
        DuplicateNameError: If renaming collides and uniqueness is enforced.
    """
    changes = _clean_product_fields(fields)

    with _mutation(context):
        index = _find_product_index(context, product_id)
        if (
            context.config.enforce_unique_on_rename
            and "name" in changes
            and _name_taken(context, changes["name"], exclude_id=product_id)
        ):
            log.warning("Rejected rename of '%s' to duplicate '%s'", product_id, changes["name"])
            raise DuplicateNameError(f"Product with this name already exists: {changes['name']}")
        updated = replace(context.state.products[index], updated_at=_now(context), **changes)
        context.state.products[index] = updated

    log.info("Updated product '%s' fields: %s", product_id, ", ".join(sorted(changes)) or "-")
    return updated


def remove_product(context: RuntimeContext, product_id: str) -> Product:
    """Delete a product. Sales that reference it keep their snapshot.

    Raises:
        ProductNotFoundError: If ``product_id`` is unknown.
    """
    with _mutation(context):
        index = _find_product_index(context, product_id)
        removed = context.state.products.pop(index)
    log.info("Removed product '%s' (%s)", removed.name, removed.id)
    return removed


def bulk_remove_products(context: RuntimeContext, product_ids: Iterable[str]) -> List[Product]:
    """Delete several products in one step.

    Every identifier is resolved before anything is deleted, so an unknown
    identifier rejects the whole batch. Deletion then runs from the highest
    position to the lowest, keeping the remaining positions valid.

    Returns:
        list[Product]: Removed products in the order their ids were given.

    Raises:
        ProductNotFoundError: If any identifier is unknown.
    """
    unique_ids = list(dict.fromkeys(product_ids))
    with _mutation(context):
        positions = {product_id: _find_product_index(context, product_id) for product_id in unique_ids}
        removed: Dict[str, Product] = {}
        for product_id, index in sorted(positions.items(), key=lambda item: item[1], reverse=True):
            removed[product_id] = context.state.products.pop(index)
    log.info("Bulk removed %d products", len(removed))
    return [removed[product_id] for product_id in unique_ids]


_SORT_KEYS: Dict[SortKey, Callable[[Product], Any]] = {
    SortKey.NAME: lambda product: product.name.lower(),
    SortKey.CATEGORY: lambda product: product.category.lower(),
    SortKey.QUANTITY: lambda product: product.quantity,
    SortKey.PRICE: lambda product: product.price,
    SortKey.VALUE: lambda product: product.value,
}


def list_products(
    context: RuntimeContext,
    *,
    search: str = "",
    category: Optional[str] = None,
    stock_filter: Optional[Union[StockFilter, str]] = None,
    sort_key: Union[SortKey, str] = SortKey.NAME,
    descending: bool = False,
) -> List[Product]:
    """Return products matching every filter, ordered by ``sort_key``.

    ``search`` matches a case-insensitive substring of the name or category;
    ``category`` must match exactly; ``stock_filter`` applies the threshold
    filter from :mod:`stock_ledger.stock_status`. The sort is stable, so ties
    keep inventory order in either direction.
    """
    query = search.lower().strip()
    key = _SORT_KEYS[SortKey(sort_key)]
    with context.lock:
        default_min_stock = context.settings.default_min_stock
        matches = [
            product
            for product in context.state.products
            if (query in product.name.lower() or query in product.category.lower())
            and (not category or product.category == category)
            and matches_stock_filter(product, stock_filter, default_min_stock)
        ]
    log.debug("Listed %d of %d products", len(matches), len(context.state.products))
    return sorted(matches, key=key, reverse=descending)


def list_categories(context: RuntimeContext) -> List[str]:
    with context.lock:
        return sorted({product.category for product in context.state.products})


def stock_tier(context: RuntimeContext, product: Product) -> StockTier:
    """Classify ``product`` against the current default threshold."""
    return classify(product, context.settings.default_min_stock)


def low_stock_alerts(context: RuntimeContext) -> StockAlerts:
    """Split out-of-stock and low-stock products for the alert panel."""
    with context.lock:
        tiers = [(product, stock_tier(context, product)) for product in context.state.products]
    return StockAlerts(
        out_of_stock=[product for product, tier in tiers if tier is StockTier.OUT_OF_STOCK],
        low_stock=[product for product, tier in tiers if tier is StockTier.LOW_STOCK],
    )


def inventory_summary(context: RuntimeContext) -> InventorySummary:
    """Compute the dashboard headline figures and sale log totals."""
    with context.lock:
        products = list(context.state.products)
        sales = list(context.state.sales)
    alerts = low_stock_alerts(context)
    today = reports.todays_sales(sales, _now(context))
    return InventorySummary(
        total_products=len(products),
        total_stock=sum(product.quantity for product in products),
        inventory_value=round2(sum((product.value for product in products), Decimal("0"))),
        low_stock_count=len(alerts.low_stock),
        out_of_stock_count=len(alerts.out_of_stock),
        today_revenue=round2(sum((sale.total for sale in today), Decimal("0"))),
        total_sales=len(sales),
        total_revenue=round2(sum((sale.total for sale in sales), Decimal("0"))),
        total_units_sold=sum(sale.quantity for sale in sales),
        total_discount=round2(sum((sale.discount_applied for sale in sales), Decimal("0"))),
    )


# ---------------------------------------------------------------------------
# Sale transaction engine
# ---------------------------------------------------------------------------


def compute_quote(
    product: Product,
    quantity: Any,
    discount_type: Union[DiscountType, str] = DiscountType.FLAT,
    discount_value: Number = 0,
    rounding_mode: Union[RoundingMode, str] = RoundingMode.NONE,
) -> Quote:
    """Price a sale of ``quantity`` units of ``product``.

    The discount is clamped to the subtotal, so the total never drops below
    zero. The rounding mode is applied to ``subtotal - discount`` before the
    final rounding to two places. Both :func:`preview_sale` and
    :func:`commit_sale` price through this function.

    Raises:
        InvalidQuantityError: If ``quantity`` is not a positive whole number.
        InvalidInputError: If the discount is negative, not numeric, or of an
            unknown type, the rounding mode is unknown, or the amounts are
            too large to price.
    """
    units = require_sale_quantity(quantity)
    value = require_nonnegative_money(discount_value, field_name="Discount")
    try:
        discount_type = DiscountType(discount_type)
        rounding_mode = RoundingMode(rounding_mode)
    except ValueError as exc:
        log.warning("Rejected sale pricing option: %s", exc)
        raise InvalidInputError(str(exc)) from exc

    subtotal = product.price * units
    if discount_type is DiscountType.FLAT:
        discount = min(value, subtotal)
    else:
        discount = min(subtotal * value / 100, subtotal)
    raw_total = subtotal - discount
    try:
        return Quote(
            unit_price=product.price,
            quantity=units,
            subtotal=round2(subtotal),
            discount=round2(discount),
            raw_total=raw_total,
            total=round2(apply_rounding(raw_total, rounding_mode)),
            insufficient_stock=units > product.quantity,
        )
    except ValueError as exc:
        log.warning("Rejected sale of %s x '%s': %s", units, product.name, exc)
        raise InvalidInputError(f"Sale amount out of range for '{product.name}'") from exc


def preview_sale(
    context: RuntimeContext,
    product_id: str,
    quantity: Any,
    discount_type: Union[DiscountType, str] = DiscountType.FLAT,
    discount_value: Number = 0,
    rounding_mode: Union[RoundingMode, str] = RoundingMode.NONE,
) -> Quote:
    """Quote a sale without touching stock or the sale log."""
    product = get_product(context, product_id)
    return compute_quote(product, quantity, discount_type, discount_value, rounding_mode)


def commit_sale(
    context: RuntimeContext,
    product_id: str,
    quantity: Any,
    discount_type: Union[DiscountType, str] = DiscountType.FLAT,
    discount_value: Number = 0,
    rounding_mode: Union[RoundingMode, str] = RoundingMode.NONE,
) -> Sale:
    """Record a sale and take its units out of stock.

    The stock check, the decrement, and the log insert happen under the
    context lock; on any failure neither the product nor the log changes.
    The new sale is placed at the head of the log (newest first).

    Returns:
        Sale: The recorded sale.

    Raises:
        ProductNotFoundError: If ``product_id`` is unknown.
        InvalidQuantityError: If ``quantity`` is not a positive whole number.
        InvalidInputError: If the discount or rounding options are invalid.
        InsufficientStockError: If ``quantity`` exceeds the stock on hand.
    """
    with _mutation(context):
        index = _find_product_index(context, product_id)
        product = context.state.products[index]
        quote = compute_quote(product, quantity, discount_type, discount_value, rounding_mode)
        if quote.insufficient_stock:
            log.warning(
                "Rejected sale of %s '%s': only %s in stock",
                quote.quantity,
                product.name,
                product.quantity,
            )
            raise InsufficientStockError(product.name, product.quantity, quote.quantity)

        now = _now(context)
        sale = Sale(
            id=context.id_factory(),
            date=now,
            product_id=product.id,
            product=product.name,
            quantity=quote.quantity,
            unit_price=quote.unit_price,
            subtotal=quote.subtotal,
            discount_type=DiscountType(discount_type),
            discount_value=round2(discount_value),
            discount_applied=quote.discount,
            total=quote.total,
        )
        context.state.products[index] = replace(
            product,
            quantity=product.quantity - quote.quantity,
            updated_at=now,
        )
        context.state.sales.insert(0, sale)

    log.info(
        "Recorded sale '%s' of %s x '%s' (subtotal=%s, discount=%s, total=%s)",
        sale.id,
        sale.quantity,
        sale.product,
        sale.subtotal,
        sale.discount_applied,
        sale.total,
    )
    return sale


def _find_sale_index(context: RuntimeContext, sale_id: str) -> int:
    for index, sale in enumerate(context.state.sales):
        if sale.id == sale_id:
            return index
    log.warning("Sale lookup failed for id '%s'", sale_id)
    raise SaleNotFoundError(f"Unknown sale id: {sale_id}")


def get_sale(context: RuntimeContext, sale_id: str) -> Sale:
    """Resolve a sale by identifier.

    Raises:
        SaleNotFoundError: If ``sale_id`` is unknown.
    """
    with context.lock:
        return context.state.sales[_find_sale_index(context, sale_id)]


def reverse_sale(context: RuntimeContext, sale_id: str) -> Sale:
    """Delete a sale and put its units back into stock.

    This is a compensating action rather than an undo: stock is restored only
    if the product the sale points at still exists. When it has been deleted
    the restoration is skipped but the sale is removed all the same.

    Returns:
        Sale: The removed sale.

    Raises:
        SaleNotFoundError: If ``sale_id`` is unknown.
    """
    with _mutation(context):
        sale_index = _find_sale_index(context, sale_id)
        sale = context.state.sales[sale_index]
        restored = False
        for index, product in enumerate(context.state.products):
            if product.id == sale.product_id:
                context.state.products[index] = replace(
                    product,
                    quantity=product.quantity + sale.quantity,
                    updated_at=_now(context),
                )
                restored = True
                break
        del context.state.sales[sale_index]

    if restored:
        log.info("Reversed sale '%s' and restored %s x '%s'", sale.id, sale.quantity, sale.product)
    else:
        log.info("Reversed sale '%s'; product '%s' no longer exists", sale.id, sale.product)
    return sale


def list_sales(context: RuntimeContext, limit: Optional[int] = None) -> List[Sale]:
    """Return the sale log newest first, optionally only the latest ``limit``."""
    with context.lock:
        sales = list(context.state.sales)
    return sales if limit is None else sales[:limit]


def top_products(context: RuntimeContext, limit: int = TOP_PRODUCTS_LIMIT) -> List[ProductSales]:
    """Rank products by revenue, grouping sales by their name snapshot."""
    totals: Dict[str, Dict[str, Any]] = {}
    for sale in list_sales(context):
        entry = totals.setdefault(sale.product, {"units": 0, "revenue": Decimal("0"), "orders": 0})
        entry["units"] += sale.quantity
        entry["revenue"] += sale.total
        entry["orders"] += 1
    ranked = sorted(totals.items(), key=lambda item: item[1]["revenue"], reverse=True)
    return [
        ProductSales(name=name, units=entry["units"], revenue=round2(entry["revenue"]), orders=entry["orders"])
        for name, entry in ranked[:limit]
    ]


# ---------------------------------------------------------------------------
# Reports over the live sale log
# ---------------------------------------------------------------------------


def daily_report(context: RuntimeContext, **kwargs: Any) -> reports.Report:
    return reports.daily_report(list_sales(context), _now(context), **kwargs)


def weekly_report(context: RuntimeContext, **kwargs: Any) -> reports.Report:
    return reports.weekly_report(list_sales(context), _now(context), **kwargs)


def monthly_report(context: RuntimeContext, **kwargs: Any) -> reports.Report:
    return reports.monthly_report(list_sales(context), _now(context), **kwargs)


def range_report(context: RuntimeContext, from_date: date, to_date: date, **kwargs: Any) -> reports.Report:
    kwargs.setdefault("tz", _now(context).tzinfo)
    return reports.range_report(list_sales(context), from_date, to_date, **kwargs)


# ---------------------------------------------------------------------------
# Settings, backup, and reset
# ---------------------------------------------------------------------------


def update_settings(
    context: RuntimeContext,
    *,
    default_min_stock: Any = None,
    currency: Optional[str] = None,
    notifications: Optional[bool] = None,
) -> Settings:
    """Change application settings; arguments left as ``None`` are kept.

    Raises:
        InvalidInputError: If ``default_min_stock`` is not a positive whole
            number or ``currency`` is blank.
    """
    changes: Dict[str, Any] = {}
    if default_min_stock is not None:
        try:
            threshold = _as_int(default_min_stock)
        except ValueError as exc:
            log.warning("Default minimum stock validation failed: %r", default_min_stock)
            raise InvalidInputError(f"Default minimum stock must be a whole number, got {default_min_stock!r}") from exc
        if threshold <= 0:
            log.warning("Default minimum stock validation failed: %s", threshold)
            raise InvalidInputError("Default minimum stock must be greater than zero")
        changes["default_min_stock"] = threshold
    if currency is not None:
        if not str(currency).strip():
            log.warning("Currency validation failed: %r", currency)
            raise InvalidInputError("Currency is required")
        changes["currency"] = str(currency).strip()
    if notifications is not None:
        changes["notifications"] = bool(notifications)

    with _mutation(context):
        context.state.settings = replace(context.state.settings, **changes)
    log.info("Updated settings: %s", ", ".join(sorted(changes)) or "-")
    return context.state.settings


def create_backup(context: RuntimeContext) -> Dict[str, Any]:
    """Build a backup bundle of the full ledger state."""
    with context.lock:
        return data_manager.build_backup_payload(context.state, timestamp=_now(context))


def restore_backup(context: RuntimeContext, payload: Mapping[str, Any]) -> None:
    """Replace inventory and sales with a backup's contents.

    Settings from the backup are merged over the current ones. The bundle is
    fully decoded before anything is replaced.

    Raises:
        InvalidInputError: If the bundle lacks ``inventory``/``salesHistory``
            or contains undecodable records.
    """
    with _mutation(context):
        try:
            restored = data_manager.parse_backup_payload(payload, base_settings=context.settings)
        except (KeyError, ValueError, TypeError, ArithmeticError) as exc:
            log.warning("Rejected backup bundle: %s", exc)
            raise InvalidInputError(f"Invalid backup file format: {exc}") from exc
        context.state.products[:] = restored.products
        context.state.sales[:] = restored.sales
        context.state.settings = restored.settings
    log.info(
        "Restored backup with %d products and %d sales",
        len(restored.products),
        len(restored.sales),
    )


def clear_all_data(context: RuntimeContext) -> None:
    """Remove every product and sale and reset settings to defaults."""
    with _mutation(context):
        context.state.products.clear()
        context.state.sales.clear()
        context.state.settings = Settings()
    log.info("Cleared all ledger data")


__all__ = [
    "BusinessRuleViolation",
    "DuplicateNameError",
    "InsufficientStockError",
    "InvalidInputError",
    "InvalidQuantityError",
    "MissingReferenceError",
    "ProductNotFoundError",
    "SaleNotFoundError",
    "RuntimeContext",
    "Quote",
    "StockAlerts",
    "InventorySummary",
    "ProductSales",
    "build_context",
    "load_runtime_context",
    "ensure_schema_version",
    "persist_context",
    "refresh_context",
    "get_product",
    "create_product",
    "update_product",
    "remove_product",
    "bulk_remove_products",
    "list_products",
    "list_categories",
    "stock_tier",
    "low_stock_alerts",
    "inventory_summary",
    "compute_quote",
    "preview_sale",
    "commit_sale",
    "get_sale",
    "reverse_sale",
    "list_sales",
    "top_products",
    "daily_report",
    "weekly_report",
    "monthly_report",
    "range_report",
    "update_settings",
    "create_backup",
    "restore_backup",
    "clear_all_data",
]
