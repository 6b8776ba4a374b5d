# backend/orderdesk/routes/invoices.py
"""
Invoice API Routes

Invoices are snapshots: only the status can change after creation.
"""

from flask import Blueprint, request

from ..decorators import api_errors
from ..services import invoice_service
from ..validation import ValidationError


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/v1/invoices")


@invoices_bp.post("")
@api_errors("Failed to create invoice")
def create_invoice_route():
    """
    Request body:
    {
        "customer_id": 1,
        "order_id": 12,                       (optional)
        "description": "...",
        "notes": "...",
        "terms_and_conditions": "...",        (defaults to configured text)
        "payment_terms": "Net 30",            (defaults to configured terms)
        "due_date": "2026-11-16T00:00:00Z",   (defaults to now + INVOICE_DUE_DAYS)
        "tax_amount": 0,
        "amount_paid": 0,
        "items": [{"description": "...", "quantity": 1, "unit_price": 10.0, "discount_amount": 0}]
    }
    """
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    invoice = invoice_service.create_invoice(payload)
    return invoice.to_dict(), 201


@invoices_bp.get("/<int:invoice_id>")
@api_errors("Failed to get invoice")
def get_invoice_route(invoice_id: int):
    return invoice_service.get_invoice(invoice_id).to_dict()


@invoices_bp.patch("/<int:invoice_id>")
@api_errors("Failed to update invoice")
def update_invoice_route(invoice_id: int):
    """Only {"status": ...} is accepted."""
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = sorted(set(payload) - {"status"})
    if unknown:
        raise ValidationError([(field, "not an allowed field") for field in unknown])
    invoice = invoice_service.update_invoice_status(invoice_id, payload.get("status"))
    return invoice.to_dict()
