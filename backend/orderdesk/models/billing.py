from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from orderdesk.money import ZERO, money_json, to_money
from orderdesk.time_utils import to_utc_z


PAYMENT_METHODS = (
    "cash",
    "bank_transfer",
    "pos",
    "mobile_money",
    "instagram_payment",
    "crypto",
    "other",
)

# Method-specific detail fields; anything else supplied for a method is dropped
PAYMENT_METHOD_FIELDS = {
    "bank_transfer": ("bank_name", "account_number", "transaction_reference"),
    "pos": ("pos_terminal_id", "transaction_reference"),
    "mobile_money": ("mobile_money_number", "transaction_reference"),
}

INVOICE_STATUSES = ("draft", "sent", "paid", "overdue")


class Payment(db.Model):
    """
    Payment submitted against an order.

    LIFECYCLE: unverified -> verified, exactly once. verification_date is
    stamped by the first successful verification and never rewritten.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        db.Index("ix_payments_verified_date", "is_verified", "payment_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    payment_reference = db.Column(db.String(32), nullable=False, unique=True)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, index=True)

    bank_name = db.Column(db.String(128), nullable=True)
    account_number = db.Column(db.String(64), nullable=True)
    pos_terminal_id = db.Column(db.String(64), nullable=True)
    mobile_money_number = db.Column(db.String(32), nullable=True)
    transaction_reference = db.Column(db.String(128), nullable=True)

    is_verified = db.Column(db.Boolean, nullable=False, default=False, index=True)
    verification_date = db.Column(db.DateTime(timezone=True), nullable=True)

    payment_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("payments", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("payments", lazy=True))

    def to_dict(self, *, include_order: bool = False) -> dict:
        data = {
            "id": self.id,
            "payment_reference": self.payment_reference,
            "order_id": self.order_id,
            "customer_id": self.customer_id,
            "customer": self.customer.to_summary() if self.customer else None,
            "amount": money_json(self.amount),
            "payment_method": self.payment_method,
            "bank_name": self.bank_name,
            "account_number": self.account_number,
            "pos_terminal_id": self.pos_terminal_id,
            "mobile_money_number": self.mobile_money_number,
            "transaction_reference": self.transaction_reference,
            "is_verified": self.is_verified,
            "verification_date": to_utc_z(self.verification_date) if self.verification_date else None,
            "payment_date": to_utc_z(self.payment_date),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
        if include_order:
            data["order"] = self.order.to_dict() if self.order else None
        return data


class Invoice(db.Model):
    """
    Invoice document.

    Invoices are snapshots: lines and totals are fixed when the invoice is
    created and are never recomputed from the live order. Only the status
    moves afterwards (draft -> sent -> paid, or overdue).
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_status_due", "status", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(32), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    # Payment the invoice was derived from, if any
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True, unique=True)

    description = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    terms_and_conditions = db.Column(db.Text, nullable=True)
    payment_terms = db.Column(db.String(64), nullable=True)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="draft", index=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)
    amount_paid = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    customer = db.relationship("Customer", backref=db.backref("invoices", lazy=True))
    order = db.relationship("Order", backref=db.backref("invoices", lazy=True))
    payment = db.relationship("Payment", backref=db.backref("invoice", uselist=False, lazy=True))
    invoice_items = db.relationship(
        "InvoiceItem",
        backref="invoice",
        order_by="InvoiceItem.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    @property
    def balance_due(self) -> Decimal:
        return to_money(self.total_amount) - to_money(self.amount_paid)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "customer": self.customer.to_summary() if self.customer else None,
            "order_id": self.order_id,
            "order_number": self.order.order_number if self.order else None,
            "payment_id": self.payment_id,
            "description": self.description,
            "notes": self.notes,
            "terms_and_conditions": self.terms_and_conditions,
            "payment_terms": self.payment_terms,
            "due_date": to_utc_z(self.due_date) if self.due_date else None,
            "status": self.status,
            "invoice_items": [item.to_dict() for item in self.invoice_items],
            "subtotal": money_json(self.subtotal),
            "discount_amount": money_json(self.discount_amount),
            "tax_amount": money_json(self.tax_amount),
            "total_amount": money_json(self.total_amount),
            "amount_paid": money_json(self.amount_paid),
            "balance_due": money_json(self.balance_due),
            "created_at": to_utc_z(self.created_at),
            "sent_at": to_utc_z(self.sent_at) if self.sent_at else None,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
        }


class InvoiceItem(db.Model):
    __tablename__ = "invoice_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_invoice_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)

    description = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price) * self.quantity - to_money(self.discount_amount)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price": money_json(self.unit_price),
            "discount_amount": money_json(self.discount_amount),
            "line_total": money_json(self.line_total),
        }
