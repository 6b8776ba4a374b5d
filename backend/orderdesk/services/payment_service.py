# Overview: Service-layer operations for payments; encapsulates business logic and database work.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_, update

from ..extensions import db
from ..models import Customer, Order, Payment
from ..models.billing import PAYMENT_METHODS, PAYMENT_METHOD_FIELDS
from ..money import ZERO, to_money
from ..validation import (
    BusinessRuleError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    validate_payload,
)
from orderdesk.time_utils import PERIODS, period_start, utcnow
from .concurrency import run_with_retry
from .document_service import PAYMENT_DOCUMENT, next_document_number
from .ledger_service import append_ledger_event
from .order_service import record_payment


class PaymentError(BusinessRuleError):
    """Raised for payment operation errors."""
    pass


DATE_RANGES = PERIODS

METHOD_DETAIL_FIELDS = (
    "bank_name",
    "account_number",
    "pos_terminal_id",
    "mobile_money_number",
    "transaction_reference",
)

PAYMENT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "order_id",
        "customer_id",
        "amount",
        "payment_method",
        "payment_date",
        "notes",
        *METHOD_DETAIL_FIELDS,
    },
    required_on_create={"amount", "payment_method"},
    choices={"payment_method": PAYMENT_METHODS},
)


def get_payment(payment_id: int) -> Payment:
    payment = db.session.get(Payment, payment_id)
    if payment is None:
        raise NotFoundError(f"Payment {payment_id} not found")
    return payment


def create_payment(payload: dict) -> Payment:
    """
    Record a submitted (unverified) payment.

    Rules:
    - amount > 0, payment_method in PAYMENT_METHODS
    - order_id, when given, must reference an existing, non-cancelled order;
      the payment's customer is copied from the order
    - without an order, customer_id is required
    - method detail fields are kept only for the method that uses them
    """
    patch = validate_payload(model=Payment, payload=payload, policy=PAYMENT_CREATE_POLICY, partial=False)

    if patch["amount"] <= ZERO:
        raise ValidationError([("amount", "not greater than 0")])

    order = None
    if patch.get("order_id") is not None:
        order = db.session.get(Order, patch["order_id"])
        if order is None:
            raise NotFoundError(f"Order {patch['order_id']} not found")
        if order.status == "cancelled":
            raise PaymentError(f"Cannot record a payment for cancelled order {order.order_number}")
        customer_id = order.customer_id
    else:
        customer_id = patch.get("customer_id")
        if customer_id is None:
            raise ValidationError([("order_id", "required"), ("customer_id", "required")])
        if db.session.get(Customer, customer_id) is None:
            raise NotFoundError(f"Customer {customer_id} not found")

    kept = PAYMENT_METHOD_FIELDS.get(patch["payment_method"], ())
    details = {field: patch.get(field) for field in METHOD_DETAIL_FIELDS if field in kept}

    payment = Payment(
        payment_reference=next_document_number(document_type=PAYMENT_DOCUMENT[0], prefix=PAYMENT_DOCUMENT[1]),
        order_id=order.id if order else None,
        customer_id=customer_id,
        amount=patch["amount"],
        payment_method=patch["payment_method"],
        is_verified=False,
        payment_date=patch.get("payment_date") or utcnow(),
        notes=patch.get("notes"),
        **details,
    )

    db.session.add(payment)
    db.session.flush()

    append_ledger_event(
        event_type="payment.created",
        entity_type="payment",
        entity_id=payment.id,
        note=payment.payment_reference,
        payload={"amount": str(payment.amount), "method": payment.payment_method, "order_id": payment.order_id},
    )
    db.session.commit()

    current_app.logger.info(
        "Payment %s recorded: %s via %s", payment.payment_reference, payment.amount, payment.payment_method
    )
    return payment


def verified_total_for_order(order_id: int):
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount), 0))
        .filter(Payment.order_id == order_id, Payment.is_verified.is_(True))
        .scalar()
    )
    return to_money(total)


def verify_payment(payment_id: int) -> tuple[Payment, bool]:
    """
    Mark a payment verified.

    Compare-and-swap on is_verified: the first caller flips the flag, stamps
    verification_date and recomputes the order's amount_paid from its verified
    payments; a cancelled order is left unchanged. Any later call (including a
    concurrent loser) returns the stored state unchanged.

    Returns:
        (payment, newly_verified)
    """
    get_payment(payment_id)

    def _op() -> bool:
        stmt = (
            update(Payment)
            .where(Payment.id == payment_id, Payment.is_verified.is_(False))
            .values(is_verified=True, verification_date=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        if result.rowcount != 1:
            db.session.rollback()
            return False

        order_id = db.session.query(Payment.order_id).filter(Payment.id == payment_id).scalar()
        if order_id is not None:
            order = db.session.get(Order, order_id)
            # Cancelled orders are frozen
            if order.status == "cancelled":
                current_app.logger.warning(
                    "Payment %s verified against cancelled order %s; order totals left unchanged",
                    payment_id, order.order_number,
                )
            else:
                record_payment(order, verified_total_for_order(order_id))

        append_ledger_event(
            event_type="payment.verified",
            entity_type="payment",
            entity_id=payment_id,
        )
        db.session.commit()
        return True

    newly_verified = run_with_retry(_op, label=f"verify payment {payment_id}")
    payment = get_payment(payment_id)
    if newly_verified:
        current_app.logger.info("Payment %s verified", payment.payment_reference)
    return payment, newly_verified


def list_payments(
    *,
    search: str | None = None,
    payment_method: str | None = None,
    is_verified: bool | None = None,
    date_range: str | None = None,
    page: int = 1,
    size: int = 10,
) -> tuple[list[Payment], int]:
    """
    Read-only payment listing, newest first.

    date_range is calendar based (this week starts Monday, this quarter at
    the first day of its first month), evaluated in UTC.
    """
    if date_range and date_range not in DATE_RANGES:
        raise ValidationError([("date_range", f"not one of: {', '.join(DATE_RANGES)}")])
    if payment_method and payment_method not in PAYMENT_METHODS:
        raise ValidationError([("payment_method", f"not one of: {', '.join(PAYMENT_METHODS)}")])

    query = (
        Payment.query.outerjoin(Customer, Payment.customer_id == Customer.id)
        .outerjoin(Order, Payment.order_id == Order.id)
    )
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Payment.payment_reference.ilike(pattern),
                Payment.transaction_reference.ilike(pattern),
                Order.order_number.ilike(pattern),
                Customer.first_name.ilike(pattern),
                Customer.last_name.ilike(pattern),
                Customer.email.ilike(pattern),
            )
        )
    if payment_method:
        query = query.filter(Payment.payment_method == payment_method)
    if is_verified is not None:
        query = query.filter(Payment.is_verified.is_(is_verified))
    if date_range:
        query = query.filter(Payment.payment_date >= period_start(date_range, utcnow()))

    total = query.count()
    payments = (
        query.order_by(Payment.payment_date.desc(), Payment.id.desc())
        .offset((page - 1) * size)
        .limit(size)
        .all()
    )
    return payments, total


def get_payment_stats() -> dict:
    rows = (
        db.session.query(
            Payment.payment_method,
            Payment.is_verified,
            func.count(Payment.id),
            func.coalesce(func.sum(Payment.amount), 0),
        )
        .group_by(Payment.payment_method, Payment.is_verified)
        .all()
    )

    total_count = verified_count = 0
    total_amount = verified_amount = ZERO
    methods: dict[str, dict] = {}
    for method, verified, count, amount in rows:
        amount = to_money(amount)
        total_count += count
        total_amount += amount
        if verified:
            verified_count += count
            verified_amount += amount
        bucket = methods.setdefault(method, {"count": 0, "amount": ZERO})
        bucket["count"] += count
        bucket["amount"] += amount

    average = to_money(total_amount / total_count) if total_count else ZERO

    return {
        "total_payments": total_count,
        "total_amount": float(total_amount),
        "verified_payments": verified_count,
        "verified_amount": float(verified_amount),
        "unverified_payments": total_count - verified_count,
        "unverified_amount": float(total_amount - verified_amount),
        "average_payment_amount": float(average),
        "payment_methods": {
            method: {"count": data["count"], "amount": float(data["amount"])}
            for method, data in sorted(methods.items())
        },
    }
