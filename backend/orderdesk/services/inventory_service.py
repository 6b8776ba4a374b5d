# Overview: Service-layer operations for the inventory stock ledger; encapsulates business logic and database work.

# backend/orderdesk/services/inventory_service.py

from __future__ import annotations

from decimal import Decimal
from typing import Callable

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Brand, Category, InventoryItem, Product, StockAdjustment
from ..models.inventory import LOCATIONS, STOCK_LOW, STOCK_OUT, classify_stock
from ..money import ZERO, to_money
from ..validation import (
    BusinessRuleError,
    ConflictError,
    NotFoundError,
    ValidationError,
    field_error,
    require_non_negative,
)
from orderdesk.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_ledger_event
"""
Inventory Stock Ledger Invariants (authoritative)

Stock model:
- One InventoryItem per product_id. Location is an attribute, not identity.
- current_stock is an absolute quantity >= 0; minimum_stock >= 0 (default 10).
- Stock status (in_stock / low_stock / out_of_stock) is derived on every read.

Adjustments:
- adjust_stock() is the only path for physical stock events. It SETS the
  quantity (absolute, not delta) and always records a StockAdjustment with a
  mandatory reason, even when the quantity does not change.
- Adjustments on one SKU are serialized: row lock where the DB supports it,
  plus the version_id optimistic counter. Lock conflicts are retried; an
  absolute set is safe to re-apply.

Edits:
- update_inventory_item() replaces attributes (including current_stock)
  without an audit reason. Callers should prefer adjust_stock() for stock-only
  changes.
"""

LOCATION_CODES = {
    "main_warehouse": "MW",
    "secondary_warehouse": "SW",
    "retail_store": "RS",
    "online_fulfillment": "OF",
}

DUPLICATE_PRODUCT_MESSAGE = "Inventory already exists for this product"


class InventoryError(BusinessRuleError):
    """Raised for inventory operation errors."""
    pass


__all__ = [
    "InventoryError",
    "classify_stock",
    "add_inventory_item",
    "update_inventory_item",
    "delete_inventory_item",
    "adjust_stock",
    "get_inventory_item",
    "get_inventory_item_by_sku",
    "get_available_stock",
    "list_inventory",
    "get_inventory_stats",
    "list_stock_adjustments",
    "decrement_stock_for_order",
]


def _ensure_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def _ensure_unique_product(product_id: int, *, exclude_item_id: int | None = None) -> None:
    query = InventoryItem.query.filter_by(product_id=product_id)
    if exclude_item_id is not None:
        query = query.filter(InventoryItem.id != exclude_item_id)
    if query.first() is not None:
        raise ConflictError(DUPLICATE_PRODUCT_MESSAGE)


def _default_sku(product: Product, location: str) -> str:
    return f"{product.sku}-{LOCATION_CODES.get(location, 'XX')}"


def _validate_stock_fields(patch: dict) -> None:
    require_non_negative(patch, "current_stock", "minimum_stock", "cost_price", "selling_price")
    location = patch.get("location")
    if location is not None and location not in LOCATIONS:
        raise field_error("location", f"not one of: {', '.join(LOCATIONS)}")


def _commit_or_conflict() -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        # Unique constraint race (product_id or sku)
        raise ConflictError("Inventory item conflicts with an existing row (duplicate product or SKU)") from exc


# =============================================================================
# CREATE / EDIT / DELETE
# =============================================================================

def add_inventory_item(patch: dict) -> InventoryItem:
    """
    Create an inventory row for a product.

    The duplicate-product check runs before anything is written; a second row
    for the same product_id is a ConflictError and leaves the store unchanged.

    Args:
        patch: validated fields. Required: product_id, current_stock,
            cost_price, selling_price. minimum_stock defaults to the
            configured DEFAULT_MINIMUM_STOCK; sku defaults to
            "<product sku>-<location code>".

    Raises:
        ValidationError: missing/negative fields
        NotFoundError: product does not exist
        ConflictError: product already has an inventory row, or SKU taken
    """
    missing = [f for f in ("product_id", "current_stock", "cost_price", "selling_price") if patch.get(f) is None]
    if missing:
        raise ValidationError([(f, "required") for f in missing])
    _validate_stock_fields(patch)

    product = _ensure_product(patch["product_id"])
    _ensure_unique_product(product.id)

    location = patch.get("location") or "main_warehouse"
    sku = patch.get("sku") or _default_sku(product, location)
    if InventoryItem.query.filter_by(sku=sku).first() is not None:
        raise ConflictError(f"SKU {sku} already exists")

    minimum_stock = patch.get("minimum_stock")
    if minimum_stock is None:
        minimum_stock = current_app.config.get("DEFAULT_MINIMUM_STOCK", 10)

    item = InventoryItem(
        sku=sku,
        product_id=product.id,
        location=location,
        current_stock=patch["current_stock"],
        minimum_stock=minimum_stock,
        cost_price=patch["cost_price"],
        selling_price=patch["selling_price"],
        color=patch.get("color"),
        shade=patch.get("shade"),
        supplier_name=patch.get("supplier_name"),
        supplier_contact=patch.get("supplier_contact"),
        is_active=patch.get("is_active", True),
    )
    db.session.add(item)
    db.session.flush()

    append_ledger_event(
        event_type="inventory.item_created",
        entity_type="inventory_item",
        entity_id=item.id,
        note=f"{sku} opened with {item.current_stock} units",
    )
    _commit_or_conflict()
    return item


EDITABLE_FIELDS = (
    "product_id",
    "sku",
    "location",
    "current_stock",
    "minimum_stock",
    "cost_price",
    "selling_price",
    "color",
    "shade",
    "supplier_name",
    "supplier_contact",
    "is_active",
)

OPTIONAL_ATTRIBUTES = ("color", "shade", "supplier_name", "supplier_contact")


def update_inventory_item(item_id: int, patch: dict) -> InventoryItem:
    """
    Full-record replace of pricing, attributes, location and stock. Optional
    attributes (color, shade, supplier fields) left out of the patch are
    cleared; sku, location, minimum_stock and is_active keep their values when
    omitted.

    Not an audited stock path: current_stock changes made here carry no
    reason. Changing product_id re-runs the duplicate-product check.
    """
    _validate_stock_fields(patch)

    item = get_inventory_item(item_id)

    if "product_id" in patch and patch["product_id"] != item.product_id:
        _ensure_product(patch["product_id"])
        _ensure_unique_product(patch["product_id"], exclude_item_id=item.id)

    if patch.get("sku") and patch["sku"] != item.sku:
        if InventoryItem.query.filter(InventoryItem.sku == patch["sku"], InventoryItem.id != item.id).first():
            raise ConflictError(f"SKU {patch['sku']} already exists")

    for field in EDITABLE_FIELDS:
        if field in OPTIONAL_ATTRIBUTES:
            setattr(item, field, patch.get(field))
        elif patch.get(field) is not None:
            setattr(item, field, patch[field])

    _commit_or_conflict()
    return item


def delete_inventory_item(item_id: int) -> None:
    item = get_inventory_item(item_id)
    sku = item.sku
    append_ledger_event(
        event_type="inventory.item_deleted",
        entity_type="inventory_item",
        entity_id=item.id,
        note=sku,
    )
    db.session.delete(item)
    db.session.commit()


# =============================================================================
# STOCK ADJUSTMENT
# =============================================================================

def _validate_adjustment(new_quantity, reason) -> str:
    errors = []
    if new_quantity is None:
        errors.append(("new_quantity", "required"))
    elif isinstance(new_quantity, bool) or not isinstance(new_quantity, int):
        errors.append(("new_quantity", "not a valid integer"))
    elif new_quantity < 0:
        errors.append(("new_quantity", "below the minimum of 0"))

    cleaned = (reason or "").strip()
    if not cleaned:
        errors.append(("reason", "required"))
    elif len(cleaned) > 255:
        errors.append(("reason", "longer than the maximum length of 255"))

    if errors:
        raise ValidationError(errors)
    return cleaned


def adjust_stock(
    sku: str,
    new_quantity: int,
    reason: str,
    *,
    order_id: int | None = None,
) -> tuple[InventoryItem, StockAdjustment]:
    """
    Set current_stock for a SKU to an absolute quantity, with an audit reason.

    Idempotent under retry: applying the same (sku, new_quantity) again leaves
    current_stock unchanged and only appends another audit row.

    Returns:
        (inventory item, audit row)

    Raises:
        ValidationError: new_quantity negative/not an int, reason blank
        NotFoundError: unknown SKU
    """
    cleaned_reason = _validate_adjustment(new_quantity, reason)
    return _apply_stock_change(sku, lambda previous: new_quantity, cleaned_reason, order_id=order_id)


def _apply_stock_change(
    sku: str,
    target: Callable[[int], int],
    reason: str,
    *,
    order_id: int | None = None,
) -> tuple[InventoryItem, StockAdjustment]:
    """
    Audited stock write. target maps the locked row's current stock to the new
    quantity, so a retried attempt recomputes from whatever was committed in
    between.
    """

    def _op():
        item = (
            lock_for_update(InventoryItem.query.filter_by(sku=sku))
            .populate_existing()
            .first()
        )
        if item is None:
            raise NotFoundError(f"Inventory item {sku} not found")

        previous = item.current_stock
        new_quantity = target(previous)
        # Unchanged quantity emits no UPDATE, so version_id only moves on real changes
        item.current_stock = new_quantity

        adjustment = StockAdjustment(
            inventory_item_id=item.id,
            sku=item.sku,
            previous_stock=previous,
            new_quantity=new_quantity,
            quantity_delta=new_quantity - previous,
            reason=reason,
            order_id=order_id,
            adjusted_at=utcnow(),
        )
        db.session.add(adjustment)
        db.session.flush()

        append_ledger_event(
            event_type="inventory.stock_adjusted",
            entity_type="inventory_item",
            entity_id=item.id,
            note=reason,
            payload={"sku": item.sku, "previous_stock": previous, "new_quantity": new_quantity},
        )

        db.session.commit()
        return item, adjustment

    item, adjustment = run_with_retry(_op, label=f"stock adjustment {sku}")
    current_app.logger.info(
        "Stock adjusted for %s: %s -> %s (%s)",
        item.sku, adjustment.previous_stock, adjustment.new_quantity, adjustment.reason,
    )
    return item, adjustment


def decrement_stock_for_order(sender, order=None, **extra) -> None:
    """
    order_confirmed receiver (connected only when DECREMENT_STOCK_ON_CONFIRM
    is enabled). Takes each line's quantity off the product's inventory row,
    floored at zero, through the same audited path as adjust_stock(). The
    decrement is applied to the locked row, so a restock committed meanwhile
    is kept. Products without an inventory row are skipped.

    Runs after the confirmation is committed; a failure here does not undo it.
    """
    if order is None:
        return
    for line in order.order_items:
        item = InventoryItem.query.filter_by(product_id=line.product_id).first()
        if item is None:
            current_app.logger.warning(
                "Order %s: no inventory row for product %s, stock not decremented",
                order.order_number, line.product_id,
            )
            continue
        quantity = line.quantity
        _apply_stock_change(
            item.sku,
            lambda previous: max(0, previous - quantity),
            f"Order {order.order_number} confirmed",
            order_id=order.id,
        )


# =============================================================================
# QUERIES
# =============================================================================

def get_inventory_item(item_id: int) -> InventoryItem:
    item = db.session.get(InventoryItem, item_id)
    if item is None:
        raise NotFoundError(f"Inventory item {item_id} not found")
    return item


def get_inventory_item_by_sku(sku: str) -> InventoryItem:
    item = InventoryItem.query.filter_by(sku=sku).first()
    if item is None:
        raise NotFoundError(f"Inventory item {sku} not found")
    return item


def get_available_stock(product_id: int) -> int | None:
    """current_stock for a product, or None when it has no inventory row."""
    value = (
        db.session.query(InventoryItem.current_stock)
        .filter(InventoryItem.product_id == product_id)
        .scalar()
    )
    return int(value) if value is not None else None


def _reference_filter(column_id, column_name, raw: str | int):
    """Brand/category filters accept an id or a name."""
    if isinstance(raw, int) or str(raw).strip().isdigit():
        return column_id == int(raw)
    return func.lower(column_name) == str(raw).strip().lower()


def list_inventory(
    *,
    search: str | None = None,
    brand: str | int | None = None,
    category: str | int | None = None,
    product_id: int | None = None,
    low_stock_only: bool = False,
    out_of_stock_only: bool = False,
    is_active: bool | None = None,
    skip: int = 0,
    limit: int = 100,
) -> tuple[list[InventoryItem], int]:
    """
    Read-only projection over inventory rows.

    low_stock_only matches 0 < current_stock <= minimum_stock;
    out_of_stock_only matches current_stock = 0. Both together match either.
    """
    query = (
        InventoryItem.query.join(Product, InventoryItem.product_id == Product.id)
        .outerjoin(Brand, Product.brand_id == Brand.id)
        .outerjoin(Category, Product.category_id == Category.id)
    )

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                InventoryItem.sku.ilike(pattern),
                Product.name.ilike(pattern),
                InventoryItem.color.ilike(pattern),
                InventoryItem.shade.ilike(pattern),
                InventoryItem.supplier_name.ilike(pattern),
            )
        )
    if brand not in (None, ""):
        query = query.filter(_reference_filter(Brand.id, Brand.name, brand))
    if category not in (None, ""):
        query = query.filter(_reference_filter(Category.id, Category.name, category))
    if product_id is not None:
        query = query.filter(InventoryItem.product_id == product_id)
    if is_active is not None:
        query = query.filter(InventoryItem.is_active.is_(is_active))

    low_clause = (InventoryItem.current_stock > 0) & (InventoryItem.current_stock <= InventoryItem.minimum_stock)
    out_clause = InventoryItem.current_stock == 0
    if low_stock_only and out_of_stock_only:
        query = query.filter(or_(low_clause, out_clause))
    elif low_stock_only:
        query = query.filter(low_clause)
    elif out_of_stock_only:
        query = query.filter(out_clause)

    total = query.count()
    rows = query.order_by(Product.name.asc(), InventoryItem.id.asc()).offset(skip).limit(limit).all()
    return rows, total


def inventory_value(item: InventoryItem) -> Decimal:
    return to_money(item.cost_price) * item.current_stock


def get_inventory_stats() -> dict:
    """
    Dashboard counters. Stock status is classified from current values at
    read time.
    """
    items = InventoryItem.query.all()

    total_value = ZERO
    low = out = active = 0
    for item in items:
        status = classify_stock(item.current_stock, item.minimum_stock)
        if status == STOCK_LOW:
            low += 1
        elif status == STOCK_OUT:
            out += 1
        if item.is_active:
            active += 1
        total_value += inventory_value(item)

    return {
        "total_items": len(items),
        "active_items": active,
        "low_stock_items": low,
        "out_of_stock_items": out,
        "total_stock_value": float(total_value),
        "total_units": sum(item.current_stock for item in items),
    }


def list_stock_adjustments(sku: str, *, limit: int = 200) -> list[StockAdjustment]:
    """Audit history for a SKU, newest first. Survives deletion of the row."""
    rows = (
        StockAdjustment.query.filter_by(sku=sku)
        .order_by(StockAdjustment.adjusted_at.desc(), StockAdjustment.id.desc())
        .limit(limit)
        .all()
    )
    if not rows and InventoryItem.query.filter_by(sku=sku).first() is None:
        raise NotFoundError(f"Inventory item {sku} not found")
    return rows
