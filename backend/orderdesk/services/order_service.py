# Overview: Service-layer operations for the order lifecycle; encapsulates business logic and database work.

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_, update

from ..extensions import db
from ..models import Customer, Order, OrderItem, Product
from ..models.orders import DELIVERY_METHODS, ORDER_SOURCES
from ..money import ZERO, to_money
from ..signals import order_confirmed
from ..validation import (
    BusinessRuleError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    validate_payload,
)
from orderdesk.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .document_service import ORDER_DOCUMENT, next_document_number
from .inventory_service import get_available_stock
from .ledger_service import append_ledger_event
"""
Order Lifecycle Invariants (authoritative)

Status machine:
- pending -> confirmed                      (confirm_order)
- pending | confirmed -> cancelled          (cancel_order, reason required)
- processing / shipped / delivered are set by the fulfillment side and are
  not reachable through this module.
- cancelled and delivered are terminal.

Transitions are compare-and-swap UPDATEs guarded on the current status, so of
two concurrent callers exactly one wins and the other sees
IllegalTransitionError. A rejected transition never changes the row.

Money:
- subtotal = sum(quantity * unit_price) at creation.
- total_amount and outstanding_amount are derived properties on Order.
- amount_paid mirrors the sum of verified payments (record_payment).
  payment_status 'refunded' is never produced here and is preserved.

Line progress:
- 0 <= fulfilled_quantity <= allocated_quantity <= quantity after every write.
- Cancelling does not reverse allocations.
"""


class OrderError(BusinessRuleError):
    """Raised for order operation errors."""
    pass


class IllegalTransitionError(OrderError):
    """Raised when a status transition is not allowed from the current status."""
    pass


ORDER_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "order_source",
        "delivery_method",
        "customer_notes",
        "internal_notes",
        "shipping_address_line1",
        "shipping_address_line2",
        "shipping_city",
        "shipping_state",
        "shipping_postal_code",
        "shipping_country",
    },
    choices={
        "order_source": ORDER_SOURCES,
        "delivery_method": DELIVERY_METHODS,
    },
)

ORDER_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "quantity", "unit_price", "requested_color", "notes"},
    required_on_create={"product_id", "quantity"},
)

CANCELLABLE_STATUSES = ("pending", "confirmed")


# =============================================================================
# QUERIES
# =============================================================================

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def list_orders(
    *,
    page: int = 1,
    size: int = 10,
    status: str | None = None,
    payment_status: str | None = None,
    search: str | None = None,
) -> tuple[list[Order], int]:
    """
    Read-only order listing, newest first.

    search matches order number and customer first name, last name or email
    (case-insensitive substring).
    """
    query = Order.query.join(Customer, Order.customer_id == Customer.id)

    if status:
        query = query.filter(Order.status == status)
    if payment_status:
        query = query.filter(Order.payment_status == payment_status)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Order.order_number.ilike(pattern),
                Customer.first_name.ilike(pattern),
                Customer.last_name.ilike(pattern),
                Customer.email.ilike(pattern),
            )
        )

    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * size)
        .limit(size)
        .all()
    )
    return orders, total


# =============================================================================
# CREATE
# =============================================================================

def _validate_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError([("items", "required")])

    errors: list[tuple[str | None, str]] = []
    cleaned: list[dict] = []
    for index, raw in enumerate(items):
        prefix = f"items[{index}]"
        if not isinstance(raw, dict):
            errors.append((prefix, "not an object"))
            continue
        try:
            line = validate_payload(model=OrderItem, payload=raw, policy=ORDER_ITEM_POLICY, partial=False)
        except ValidationError as exc:
            errors.extend(exc.prefixed(prefix).errors)
            continue

        if line["quantity"] is not None and line["quantity"] <= 0:
            errors.append((f"{prefix}.quantity", "not greater than 0"))
        if line.get("unit_price") is not None and line["unit_price"] < 0:
            errors.append((f"{prefix}.unit_price", "below the minimum of 0"))
        cleaned.append(line)

    if errors:
        raise ValidationError(errors)
    return cleaned


def _availability_warnings(lines: list[OrderItem]) -> list[dict]:
    requested: dict[int, int] = {}
    names: dict[int, str] = {}
    for line in lines:
        requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity
        names[line.product_id] = line.product_name

    warnings = []
    for product_id, quantity in requested.items():
        available = get_available_stock(product_id)
        if available is None:
            message = f"{names[product_id]} has no inventory record"
        elif quantity > available:
            message = f"{names[product_id]}: requested {quantity}, only {available} in stock"
        else:
            continue
        warnings.append({
            "product_id": product_id,
            "product_name": names[product_id],
            "requested_quantity": quantity,
            "available": available,
            "message": message,
        })
    return warnings


def create_order(customer_id: int | None, items, **details) -> tuple[Order, list[dict]]:
    """
    Create a pending order with its line items.

    Each item needs product_id and quantity > 0; unit_price defaults to the
    product's base price. Product name and SKU are copied onto the line.

    Returns:
        (order, warnings) where warnings lists products whose requested
        quantity exceeds current stock or that have no inventory row.
        Warnings never block creation.

    Raises:
        ValidationError: missing customer, empty items, bad item fields
        NotFoundError: unknown customer or product
    """
    errors: list[tuple[str | None, str]] = []
    if customer_id is None or customer_id == "":
        errors.append(("customer_id", "required"))
    elif isinstance(customer_id, bool) or not isinstance(customer_id, int):
        errors.append(("customer_id", "not a valid integer"))

    try:
        header = validate_payload(model=Order, payload=details, policy=ORDER_CREATE_POLICY, partial=True)
    except ValidationError as exc:
        errors.extend(exc.errors)
        header = {}

    try:
        lines = _validate_items(items)
    except ValidationError as exc:
        errors.extend(exc.errors)
        lines = []

    if errors:
        raise ValidationError(errors)

    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found")

    order_items = []
    subtotal = ZERO
    for line in lines:
        product = db.session.get(Product, line["product_id"])
        if product is None:
            raise NotFoundError(f"Product {line['product_id']} not found")

        unit_price = line.get("unit_price")
        if unit_price is None:
            unit_price = to_money(product.base_price)

        item = OrderItem(
            product_id=product.id,
            product_name=product.name,
            product_sku=product.sku,
            quantity=line["quantity"],
            unit_price=unit_price,
            requested_color=line.get("requested_color"),
            notes=line.get("notes"),
            allocated_quantity=0,
            fulfilled_quantity=0,
        )
        subtotal += item.total_price
        order_items.append(item)

    order = Order(
        order_number=next_document_number(document_type=ORDER_DOCUMENT[0], prefix=ORDER_DOCUMENT[1]),
        customer_id=customer.id,
        status="pending",
        payment_status="pending",
        order_source=header.get("order_source") or "manual",
        delivery_method=header.get("delivery_method") or "standard",
        subtotal=subtotal,
        discount_amount=ZERO,
        tax_amount=ZERO,
        shipping_cost=ZERO,
        amount_paid=ZERO,
        order_items=order_items,
    )
    for field in ORDER_CREATE_POLICY.writable_fields - {"order_source", "delivery_method"}:
        if field in header:
            setattr(order, field, header[field])

    db.session.add(order)
    db.session.flush()

    append_ledger_event(
        event_type="order.created",
        entity_type="order",
        entity_id=order.id,
        note=order.order_number,
        payload={"subtotal": str(subtotal), "items": len(order_items)},
    )

    warnings = _availability_warnings(order_items)
    db.session.commit()

    current_app.logger.info(
        "Order %s created for customer %s (%d items, subtotal %s)",
        order.order_number, customer.id, len(order_items), subtotal,
    )
    return order, warnings


# =============================================================================
# TRANSITIONS
# =============================================================================

def _transition(order_id: int, *, action: str, from_statuses: tuple[str, ...], values: dict) -> Order:
    """
    Compare-and-swap the order status. Exactly one concurrent caller can
    match the guard; the others get IllegalTransitionError.
    """
    get_order(order_id)

    stmt = (
        update(Order)
        .where(Order.id == order_id, Order.status.in_(from_statuses))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        db.session.rollback()
        current = get_order(order_id)
        allowed = " or ".join(f"'{s}'" for s in from_statuses)
        raise IllegalTransitionError(
            f"Cannot {action} order {current.order_number}: "
            f"status is '{current.status}', must be {allowed}"
        )

    append_ledger_event(
        event_type=f"order.{values['status']}",
        entity_type="order",
        entity_id=order_id,
        note=values.get("cancellation_reason"),
    )
    db.session.commit()
    # commit expired the identity map, so this reloads the swapped row
    return get_order(order_id)


def confirm_order(order_id: int) -> Order:
    """
    pending -> confirmed. Stamps confirmed_at and emits order_confirmed.

    Raises:
        NotFoundError: unknown order
        IllegalTransitionError: order is not pending
    """
    order = run_with_retry(lambda: _transition(
        order_id,
        action="confirm",
        from_statuses=("pending",),
        values={"status": "confirmed", "confirmed_at": utcnow()},
    ), label=f"confirm order {order_id}")
    current_app.logger.info("Order %s confirmed", order.order_number)

    app = current_app._get_current_object()
    try:
        order_confirmed.send(app, order=order)
    except Exception:
        # Confirmation is already committed; receivers cannot undo it
        current_app.logger.exception("order_confirmed receiver failed for %s", order.order_number)
        db.session.rollback()
    return order


def cancel_order(order_id: int, reason: str | None) -> Order:
    """
    pending | confirmed -> cancelled, with a mandatory reason.

    Allocations on the lines are left as they were.

    Raises:
        ValidationError: reason missing or blank
        NotFoundError: unknown order
        IllegalTransitionError: order is not pending or confirmed
    """
    cleaned = (reason or "").strip()
    if not cleaned:
        raise ValidationError([("reason", "required")])
    if len(cleaned) > 255:
        raise ValidationError([("reason", "longer than the maximum length of 255")])

    order = run_with_retry(lambda: _transition(
        order_id,
        action="cancel",
        from_statuses=CANCELLABLE_STATUSES,
        values={"status": "cancelled", "cancelled_at": utcnow(), "cancellation_reason": cleaned},
    ), label=f"cancel order {order_id}")
    current_app.logger.info("Order %s cancelled: %s", order.order_number, cleaned)
    return order


# =============================================================================
# LINE PROGRESS
# =============================================================================

def _progress_value(name: str, value) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError([(name, "not a valid integer")])
    if value < 0:
        raise ValidationError([(name, "below the minimum of 0")])
    return value


def update_item_progress(
    order_id: int,
    item_id: int,
    *,
    allocated_quantity: int | None = None,
    fulfilled_quantity: int | None = None,
) -> OrderItem:
    """
    Set allocated and/or fulfilled quantity on a line (absolute values).

    The resulting line must satisfy
    0 <= fulfilled_quantity <= allocated_quantity <= quantity.
    Lines on cancelled or delivered orders are frozen.
    """
    allocated = _progress_value("allocated_quantity", allocated_quantity)
    fulfilled = _progress_value("fulfilled_quantity", fulfilled_quantity)
    if allocated is None and fulfilled is None:
        raise ValidationError([
            ("allocated_quantity", "required"),
            ("fulfilled_quantity", "required"),
        ])

    def _op():
        order = lock_for_update(Order.query.filter_by(id=order_id)).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        if order.is_terminal:
            raise OrderError(f"Cannot update items on order {order.order_number}: order is {order.status}")

        item = OrderItem.query.filter_by(id=item_id, order_id=order.id).first()
        if item is None:
            raise NotFoundError(f"Order item {item_id} not found on order {order.order_number}")

        new_allocated = item.allocated_quantity if allocated is None else allocated
        new_fulfilled = item.fulfilled_quantity if fulfilled is None else fulfilled

        errors = []
        if new_allocated > item.quantity:
            errors.append(("allocated_quantity", f"above the ordered quantity of {item.quantity}"))
        if new_fulfilled > new_allocated:
            errors.append(("fulfilled_quantity", f"above the allocated quantity of {new_allocated}"))
        if errors:
            raise ValidationError(errors)

        item.allocated_quantity = new_allocated
        item.fulfilled_quantity = new_fulfilled
        append_ledger_event(
            event_type="order.item_progress",
            entity_type="order",
            entity_id=order.id,
            payload={"item_id": item.id, "allocated": new_allocated, "fulfilled": new_fulfilled},
        )
        db.session.commit()
        return item

    return run_with_retry(_op, label=f"item progress on order {order_id}")


# =============================================================================
# PAYMENT RECONCILIATION
# =============================================================================

def derive_payment_status(current: str, total_amount, amount_paid) -> str:
    if current == "refunded":
        return current
    paid = to_money(amount_paid)
    if paid <= ZERO:
        return "pending"
    if paid < to_money(total_amount):
        return "partial"
    return "paid"


def record_payment(order: Order, verified_total) -> Order:
    """
    Mirror the verified payment total onto the order.

    Does not commit; runs inside the caller's (payment verification)
    transaction.
    """
    order.amount_paid = to_money(verified_total)
    order.payment_status = derive_payment_status(order.payment_status, order.total_amount, order.amount_paid)
    db.session.flush()
    return order
