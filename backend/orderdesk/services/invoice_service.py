# Overview: Service-layer operations for invoices; derivation from verified payments and status lifecycle.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, Invoice, InvoiceItem, Order, Payment
from ..models.billing import INVOICE_STATUSES
from ..money import ZERO, to_money
from ..validation import (
    BusinessRuleError,
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    validate_payload,
)
from orderdesk.time_utils import invoice_due_date, utcnow
from .document_service import INVOICE_DOCUMENT, next_document_number
from .ledger_service import append_ledger_event
"""
Invoice Invariants (authoritative)

- An invoice is a snapshot. Lines, subtotal, discount, tax, total and
  amount_paid are written once at creation and never recomputed from the
  live order or payment.
- subtotal = sum(quantity * unit_price); discount_amount = sum(line discounts);
  total_amount = subtotal - discount_amount + tax_amount.
- balance_due = total_amount - amount_paid; line_total = quantity * unit_price
  - discount_amount. Both are derived on read.
- Status lifecycle:
    draft   -> sent | paid
    sent    -> paid | overdue
    overdue -> paid
    paid is terminal
- At most one invoice per payment (derive_invoice is idempotent).
"""


class InvoiceError(BusinessRuleError):
    """Raised for invoice operation errors."""
    pass


INVOICE_TRANSITIONS = {
    "draft": ("sent", "paid"),
    "sent": ("paid", "overdue"),
    "overdue": ("paid",),
    "paid": (),
}

INVOICE_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_id",
        "order_id",
        "description",
        "notes",
        "terms_and_conditions",
        "payment_terms",
        "due_date",
        "tax_amount",
        "amount_paid",
    },
    required_on_create={"customer_id"},
)

INVOICE_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"description", "quantity", "unit_price", "discount_amount"},
    required_on_create={"description", "quantity", "unit_price"},
)


def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found")
    return invoice


def _validate_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError([("items", "required")])

    errors: list[tuple[str | None, str]] = []
    cleaned = []
    for index, raw in enumerate(items):
        prefix = f"items[{index}]"
        if not isinstance(raw, dict):
            errors.append((prefix, "not an object"))
            continue
        try:
            line = validate_payload(model=InvoiceItem, payload=raw, policy=INVOICE_ITEM_POLICY, partial=False)
        except ValidationError as exc:
            errors.extend(exc.prefixed(prefix).errors)
            continue
        if line["quantity"] <= 0:
            errors.append((f"{prefix}.quantity", "not greater than 0"))
        if line["unit_price"] < 0:
            errors.append((f"{prefix}.unit_price", "below the minimum of 0"))
        if line.get("discount_amount") is not None and line["discount_amount"] < 0:
            errors.append((f"{prefix}.discount_amount", "below the minimum of 0"))
        cleaned.append(line)

    if errors:
        raise ValidationError(errors)
    return cleaned


def create_invoice(payload: dict, *, payment_id: int | None = None) -> Invoice:
    """
    Create a draft invoice from explicit lines.

    payload: customer_id (required), order_id, description, notes,
    terms_and_conditions, payment_terms, due_date, tax_amount, amount_paid,
    items[] (description, quantity, unit_price, discount_amount).
    payment_terms and terms_and_conditions fall back to the configured
    defaults.
    """
    if payload is None or not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    header_payload = {k: v for k, v in payload.items() if k != "items"}

    errors: list[tuple[str | None, str]] = []
    try:
        header = validate_payload(model=Invoice, payload=header_payload, policy=INVOICE_CREATE_POLICY, partial=False)
    except ValidationError as exc:
        errors.extend(exc.errors)
        header = {}
    try:
        lines = _validate_items(payload.get("items"))
    except ValidationError as exc:
        errors.extend(exc.errors)
        lines = []
    for field in ("tax_amount", "amount_paid"):
        if header.get(field) is not None and header[field] < 0:
            errors.append((field, "below the minimum of 0"))
    if errors:
        raise ValidationError(errors)

    customer = db.session.get(Customer, header["customer_id"])
    if customer is None:
        raise NotFoundError(f"Customer {header['customer_id']} not found")
    if header.get("order_id") is not None and db.session.get(Order, header["order_id"]) is None:
        raise NotFoundError(f"Order {header['order_id']} not found")

    items = [
        InvoiceItem(
            description=line["description"],
            quantity=line["quantity"],
            unit_price=line["unit_price"],
            discount_amount=line.get("discount_amount") or ZERO,
        )
        for line in lines
    ]
    subtotal = sum((to_money(i.unit_price) * i.quantity for i in items), ZERO)
    discount = sum((to_money(i.discount_amount) for i in items), ZERO)
    tax = header.get("tax_amount") or ZERO

    config = current_app.config
    invoice = Invoice(
        invoice_number=next_document_number(document_type=INVOICE_DOCUMENT[0], prefix=INVOICE_DOCUMENT[1]),
        customer_id=customer.id,
        order_id=header.get("order_id"),
        payment_id=payment_id,
        description=header.get("description"),
        notes=header.get("notes"),
        terms_and_conditions=header.get("terms_and_conditions") or config["INVOICE_TERMS_AND_CONDITIONS"],
        payment_terms=header.get("payment_terms") or config["INVOICE_PAYMENT_TERMS"],
        due_date=header.get("due_date") or invoice_due_date(config["INVOICE_DUE_DAYS"]),
        status="draft",
        subtotal=subtotal,
        discount_amount=discount,
        tax_amount=tax,
        total_amount=subtotal - discount + tax,
        amount_paid=header.get("amount_paid") or ZERO,
        invoice_items=items,
    )
    db.session.add(invoice)
    try:
        db.session.flush()
        append_ledger_event(
            event_type="invoice.created",
            entity_type="invoice",
            entity_id=invoice.id,
            note=invoice.invoice_number,
            payload={"total_amount": str(invoice.total_amount), "payment_id": payment_id},
        )
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        # payment_id is unique: a concurrent derivation already invoiced it
        raise ConflictError(f"Payment {payment_id} is already invoiced") from exc

    current_app.logger.info("Invoice %s created (total %s)", invoice.invoice_number, invoice.total_amount)
    return invoice


def build_invoice_items(payment: Payment) -> list[dict]:
    """
    Lines for an invoice derived from a payment.

    Order lines map one-to-one (product name, quantity, unit price, no
    discount). Without an order, or with an order that has no lines, a single
    "Payment - <reference>" line for the payment amount is used.
    """
    order = payment.order
    if order is not None and order.order_items:
        return [
            {
                "description": item.product_name,
                "quantity": item.quantity,
                "unit_price": to_money(item.unit_price),
                "discount_amount": ZERO,
            }
            for item in order.order_items
        ]
    return [{
        "description": f"Payment - {payment.payment_reference}",
        "quantity": 1,
        "unit_price": to_money(payment.amount),
        "discount_amount": ZERO,
    }]


def derive_invoice(payment_id: int) -> tuple[Invoice, bool]:
    """
    Derive a draft invoice from a verified payment.

    Returns:
        (invoice, created). When the payment already has an invoice, that
        invoice is returned unchanged with created=False.

    Raises:
        NotFoundError: unknown payment
        InvoiceError: payment not verified or without a customer
    """
    payment = db.session.get(Payment, payment_id)
    if payment is None:
        raise NotFoundError(f"Payment {payment_id} not found")
    if not payment.is_verified:
        raise InvoiceError(f"Payment {payment.payment_reference} must be verified before invoicing")
    if payment.customer_id is None:
        raise InvoiceError(f"Payment {payment.payment_reference} has no customer to invoice")

    existing = Invoice.query.filter_by(payment_id=payment.id).first()
    if existing is not None:
        return existing, False

    order = payment.order
    order_label = order.order_number if order is not None else payment.order_id
    payload = {
        "customer_id": payment.customer_id,
        "order_id": payment.order_id,
        "description": f"Invoice for Order {order_label} - Payment {payment.payment_reference}",
        "notes": payment.notes or f"Generated from payment {payment.payment_reference}",
        "amount_paid": to_money(payment.amount),
        "items": build_invoice_items(payment),
    }
    invoice = create_invoice(payload, payment_id=payment.id)
    current_app.logger.info(
        "Invoice %s derived from payment %s", invoice.invoice_number, payment.payment_reference
    )
    return invoice, True


def update_invoice_status(invoice_id: int, status: str | None) -> Invoice:
    """
    Move an invoice along its status lifecycle. Setting the current status
    again is a no-op; paid is terminal.
    """
    if not status:
        raise ValidationError([("status", "required")])
    if status not in INVOICE_STATUSES:
        raise ValidationError([("status", f"not one of: {', '.join(INVOICE_STATUSES)}")])

    invoice = get_invoice(invoice_id)
    if invoice.status == status:
        return invoice
    if status not in INVOICE_TRANSITIONS[invoice.status]:
        raise InvoiceError(
            f"Cannot move invoice {invoice.invoice_number} from '{invoice.status}' to '{status}'"
        )

    previous = invoice.status
    invoice.status = status
    now = utcnow()
    if status == "sent":
        invoice.sent_at = now
    elif status == "paid":
        invoice.paid_at = now

    append_ledger_event(
        event_type=f"invoice.{status}",
        entity_type="invoice",
        entity_id=invoice.id,
        payload={"from": previous, "to": status},
    )
    db.session.commit()
    current_app.logger.info("Invoice %s: %s -> %s", invoice.invoice_number, previous, status)
    return invoice


def mark_overdue_invoices(as_of: datetime | None = None) -> list[Invoice]:
    """Move sent invoices whose due date is before as_of to overdue."""
    as_of = as_of or utcnow()
    due = (
        Invoice.query.filter(Invoice.status == "sent", Invoice.due_date < as_of)
        .order_by(Invoice.due_date.asc())
        .all()
    )
    for invoice in due:
        invoice.status = "overdue"
        append_ledger_event(
            event_type="invoice.overdue",
            entity_type="invoice",
            entity_id=invoice.id,
            occurred_at=as_of,
        )
    db.session.commit()
    return due
