from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from orderdesk.money import ZERO, money_json, to_money
from orderdesk.time_utils import to_utc_z


ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled")
TERMINAL_ORDER_STATUSES = frozenset({"cancelled", "delivered"})

PAYMENT_STATUSES = ("pending", "paid", "partial", "refunded")

ORDER_SOURCES = ("manual", "instagram", "website", "phone", "whatsapp")
DELIVERY_METHODS = ("standard", "express", "pickup", "same_day")


def compute_total(subtotal, discount_amount, tax_amount, shipping_cost) -> Decimal:
    return to_money(subtotal) - to_money(discount_amount) + to_money(tax_amount) + to_money(shipping_cost)


def compute_outstanding(total_amount, amount_paid) -> Decimal:
    return max(ZERO, to_money(total_amount) - to_money(amount_paid))


class Order(db.Model):
    """
    Customer order (aggregate root: header + order_items).

    LIFECYCLE:
        pending -> confirmed -> processing -> shipped -> delivered
        pending | confirmed -> cancelled

    payment_status is an independent axis (pending, partial, paid, refunded).

    total_amount and outstanding_amount are derived on every read and are
    never stored, so they cannot drift from their inputs.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.CheckConstraint("subtotal >= 0", name="ck_orders_subtotal_nonneg"),
        db.CheckConstraint("amount_paid >= 0", name="ck_orders_amount_paid_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable order number (e.g., "ORD-000123")
    order_number = db.Column(db.String(32), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    order_source = db.Column(db.String(16), nullable=False, default="manual")
    delivery_method = db.Column(db.String(16), nullable=False, default="standard")

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)
    shipping_cost = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)
    # Sum of verified payments
    amount_paid = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)

    customer_notes = db.Column(db.Text, nullable=True)
    internal_notes = db.Column(db.Text, nullable=True)

    shipping_address_line1 = db.Column(db.String(255), nullable=True)
    shipping_address_line2 = db.Column(db.String(255), nullable=True)
    shipping_city = db.Column(db.String(128), nullable=True)
    shipping_state = db.Column(db.String(128), nullable=True)
    shipping_postal_code = db.Column(db.String(32), nullable=True)
    shipping_country = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    order_items = db.relationship(
        "OrderItem",
        backref="order",
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    @property
    def total_amount(self) -> Decimal:
        return compute_total(self.subtotal, self.discount_amount, self.tax_amount, self.shipping_cost)

    @property
    def outstanding_amount(self) -> Decimal:
        return compute_outstanding(self.total_amount, self.amount_paid)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORDER_STATUSES

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status!r}>"

    def to_dict(self, *, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "customer": self.customer.to_summary() if self.customer else None,
            "status": self.status,
            "payment_status": self.payment_status,
            "order_source": self.order_source,
            "delivery_method": self.delivery_method,
            "subtotal": money_json(self.subtotal),
            "discount_amount": money_json(self.discount_amount),
            "tax_amount": money_json(self.tax_amount),
            "shipping_cost": money_json(self.shipping_cost),
            "total_amount": money_json(self.total_amount),
            "amount_paid": money_json(self.amount_paid),
            "outstanding_amount": money_json(self.outstanding_amount),
            "customer_notes": self.customer_notes,
            "internal_notes": self.internal_notes,
            "shipping_address_line1": self.shipping_address_line1,
            "shipping_address_line2": self.shipping_address_line2,
            "shipping_city": self.shipping_city,
            "shipping_state": self.shipping_state,
            "shipping_postal_code": self.shipping_postal_code,
            "shipping_country": self.shipping_country,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "confirmed_at": to_utc_z(self.confirmed_at) if self.confirmed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
        }
        if include_items:
            data["order_items"] = [item.to_dict() for item in self.order_items]
        return data


class OrderItem(db.Model):
    """
    Order line.

    product_name / product_sku are snapshots taken when the order is created
    so later catalog edits do not rewrite history (invoices read them).

    Invariant: 0 <= fulfilled_quantity <= allocated_quantity <= quantity.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        db.CheckConstraint("unit_price >= 0", name="ck_order_items_unit_price_nonneg"),
        db.CheckConstraint(
            "allocated_quantity >= 0 AND allocated_quantity <= quantity",
            name="ck_order_items_allocated_range",
        ),
        db.CheckConstraint(
            "fulfilled_quantity >= 0 AND fulfilled_quantity <= allocated_quantity",
            name="ck_order_items_fulfilled_range",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)

    requested_color = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    allocated_quantity = db.Column(db.Integer, nullable=False, default=0)
    fulfilled_quantity = db.Column(db.Integer, nullable=False, default=0)

    @property
    def total_price(self) -> Decimal:
        return to_money(self.unit_price) * self.quantity

    @property
    def is_fully_allocated(self) -> bool:
        return (self.allocated_quantity or 0) == self.quantity

    @property
    def is_fully_fulfilled(self) -> bool:
        return (self.fulfilled_quantity or 0) == self.quantity

    @property
    def pending_allocation(self) -> int:
        return self.quantity - (self.allocated_quantity or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "quantity": self.quantity,
            "unit_price": money_json(self.unit_price),
            "total_price": money_json(self.total_price),
            "requested_color": self.requested_color,
            "notes": self.notes,
            "allocated_quantity": self.allocated_quantity,
            "fulfilled_quantity": self.fulfilled_quantity,
            "is_fully_allocated": self.is_fully_allocated,
            "is_fully_fulfilled": self.is_fully_fulfilled,
            "pending_allocation": self.pending_allocation,
        }
