# Overview: Flask API routes for the order lifecycle; parses input and returns JSON responses.

# backend/orderdesk/routes/orders.py
"""
Order API Routes

Lifecycle:
- POST /orders                 create (pending); response carries stock warnings
- POST /orders/<id>/confirm    pending -> confirmed
- POST /orders/<id>/cancel     pending | confirmed -> cancelled (reason required)
- POST /orders/<id>/items/<item_id>/progress   allocation / fulfillment counts

Illegal transitions return 400 and leave the order unchanged.
"""

from flask import Blueprint, current_app, request

from ..decorators import api_errors
from ..models.orders import ORDER_STATUSES, PAYMENT_STATUSES
from ..services import order_service
from ..validation import ValidationError, field_error, parse_int_arg


orders_bp = Blueprint("orders", __name__, url_prefix="/api/v1/orders")


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


@orders_bp.get("")
@api_errors("Failed to list orders")
def list_orders_route():
    """
    List orders, newest first.

    Query params: page (1-based), size, status, payment_status, search
    """
    args = request.args
    page = parse_int_arg("page", args.get("page"), minimum=1) or 1
    size = parse_int_arg("size", args.get("size"), minimum=1) or current_app.config["DEFAULT_PAGE_SIZE"]
    size = min(size, current_app.config["MAX_PAGE_SIZE"])

    status = args.get("status") or None
    if status and status not in ORDER_STATUSES:
        raise field_error("status", f"not one of: {', '.join(ORDER_STATUSES)}")
    payment_status = args.get("payment_status") or None
    if payment_status and payment_status not in PAYMENT_STATUSES:
        raise field_error("payment_status", f"not one of: {', '.join(PAYMENT_STATUSES)}")

    orders, total = order_service.list_orders(
        page=page,
        size=size,
        status=status,
        payment_status=payment_status,
        search=args.get("search"),
    )
    return {
        "orders": [order.to_dict() for order in orders],
        "total": total,
        "page": page,
        "size": size,
    }


@orders_bp.post("")
@api_errors("Failed to create order")
def create_order_route():
    """
    Create a pending order.

    Request body:
    {
        "customer_id": 1,
        "items": [{"product_id": 1, "quantity": 2, "unit_price": 15.00}],
        "order_source": "instagram",      (optional)
        "delivery_method": "express",     (optional)
        "customer_notes": "...",          (optional)
        "shipping_city": "..."            (optional, and the other shipping_* fields)
    }

    Returns:
        201: order, plus "warnings" for lines exceeding current stock
    """
    payload = dict(_json_body())
    customer_id = payload.pop("customer_id", None)
    items = payload.pop("items", None)

    order, warnings = order_service.create_order(customer_id, items, **payload)
    body = order.to_dict()
    body["warnings"] = warnings
    return body, 201


@orders_bp.get("/<int:order_id>")
@api_errors("Failed to get order")
def get_order_route(order_id: int):
    return order_service.get_order(order_id).to_dict()


@orders_bp.post("/<int:order_id>/confirm")
@api_errors("Failed to confirm order")
def confirm_order_route(order_id: int):
    return order_service.confirm_order(order_id).to_dict()


@orders_bp.post("/<int:order_id>/cancel")
@api_errors("Failed to cancel order")
def cancel_order_route(order_id: int):
    """
    Cancel an order. The reason comes from ?reason= (as the console sends
    it) or from a JSON body {"reason": "..."}.
    """
    reason = request.args.get("reason")
    if reason is None:
        reason = _json_body().get("reason")
    return order_service.cancel_order(order_id, reason).to_dict()


@orders_bp.post("/<int:order_id>/items/<int:item_id>/progress")
@api_errors("Failed to update order item")
def update_item_progress_route(order_id: int, item_id: int):
    """
    Set allocated and/or fulfilled quantity on an order line.

    Request body: {"allocated_quantity": 2, "fulfilled_quantity": 1}
    """
    payload = _json_body()
    unknown = sorted(set(payload) - {"allocated_quantity", "fulfilled_quantity"})
    if unknown:
        raise ValidationError([(field, "not an allowed field") for field in unknown])

    item = order_service.update_item_progress(
        order_id,
        item_id,
        allocated_quantity=payload.get("allocated_quantity"),
        fulfilled_quantity=payload.get("fulfilled_quantity"),
    )
    return item.to_dict()
