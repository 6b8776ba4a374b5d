# Overview: Flask API routes for payments operations; parses input and returns JSON responses.

# backend/orderdesk/routes/payments.py
"""
Payment API Routes

- Payments are recorded unverified and verified once by an operator.
- Verification is idempotent: verifying again returns the stored state.
- POST /payments/<id>/invoice derives a draft invoice from a verified payment.
"""

from flask import Blueprint, current_app, request

from ..decorators import api_errors
from ..services import invoice_service, payment_service
from ..validation import parse_bool_arg, parse_int_arg


payments_bp = Blueprint("payments", __name__, url_prefix="/api/v1/payments")


# =============================================================================
# PAYMENT CREATION
# =============================================================================

@payments_bp.post("")
@api_errors("Failed to create payment")
def create_payment_route():
    """
    Record a payment.

    Request body:
    {
        "order_id": 12,
        "amount": 45.50,
        "payment_method": "bank_transfer",
        "bank_name": "...",                 (bank_transfer only)
        "account_number": "...",            (bank_transfer only)
        "pos_terminal_id": "...",           (pos only)
        "mobile_money_number": "...",       (mobile_money only)
        "transaction_reference": "...",     (bank_transfer, pos, mobile_money)
        "notes": "..."
    }

    customer_id is required only when no order_id is given.
    """
    payload = request.get_json(silent=True) or {}
    payment = payment_service.create_payment(payload)
    return payment.to_dict(include_order=True), 201


# =============================================================================
# QUERIES
# =============================================================================

@payments_bp.get("")
@api_errors("Failed to list payments")
def list_payments_route():
    """
    Query params: search, payment_method, is_verified, date_range
    (today | week | month | quarter), page, size
    """
    args = request.args
    page = parse_int_arg("page", args.get("page"), minimum=1) or 1
    size = parse_int_arg("size", args.get("size"), minimum=1) or current_app.config["DEFAULT_PAGE_SIZE"]
    size = min(size, current_app.config["MAX_PAGE_SIZE"])

    payments, total = payment_service.list_payments(
        search=args.get("search"),
        payment_method=args.get("payment_method") or None,
        is_verified=parse_bool_arg("is_verified", args.get("is_verified")),
        date_range=args.get("date_range") or None,
        page=page,
        size=size,
    )
    return {
        "payments": [payment.to_dict(include_order=True) for payment in payments],
        "total": total,
        "page": page,
        "size": size,
    }


@payments_bp.get("/stats")
@api_errors("Failed to get payment stats")
def payment_stats_route():
    return payment_service.get_payment_stats()


@payments_bp.get("/<int:payment_id>")
@api_errors("Failed to get payment")
def get_payment_route(payment_id: int):
    return payment_service.get_payment(payment_id).to_dict(include_order=True)


# =============================================================================
# VERIFICATION / INVOICING
# =============================================================================

@payments_bp.post("/<int:payment_id>/verify")
@api_errors("Failed to verify payment")
def verify_payment_route(payment_id: int):
    payment, _ = payment_service.verify_payment(payment_id)
    return payment.to_dict(include_order=True)


@payments_bp.post("/<int:payment_id>/invoice")
@api_errors("Failed to generate invoice")
def derive_invoice_route(payment_id: int):
    """
    Returns:
        201: invoice derived now
        200: payment was already invoiced; the existing invoice is returned
    """
    invoice, created = invoice_service.derive_invoice(payment_id)
    return invoice.to_dict(), 201 if created else 200
