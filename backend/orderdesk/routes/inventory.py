# backend/orderdesk/routes/inventory.py
"""
Inventory management routes.

- Stock levels change through POST /inventory/<sku>/adjust-stock, which
  records a reason-tagged audit row. PUT /inventory/<id> is a plain edit.
- Stock status (in_stock / low_stock / out_of_stock) is derived on every read.
- adjust-stock takes new_quantity and reason as query parameters, matching
  the console client.
"""
from flask import Blueprint, current_app, request

from ..decorators import api_errors
from ..models import InventoryItem
from ..models.inventory import LOCATIONS
from ..services import inventory_service
from ..validation import (
    ModelValidationPolicy,
    parse_bool_arg,
    parse_int_arg,
    validate_payload,
)


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/v1/inventory")

INVENTORY_POLICY = ModelValidationPolicy(
    writable_fields={
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
    },
    required_on_create={"product_id", "current_stock", "cost_price", "selling_price"},
    choices={"location": LOCATIONS},
)


@inventory_bp.get("")
@api_errors("Failed to list inventory")
def list_inventory_route():
    """
    List inventory rows.

    Query params: search, brand, category (id or name), product_id,
    low_stock_only, out_of_stock_only, is_active, skip, limit
    """
    args = request.args
    skip = parse_int_arg("skip", args.get("skip"), minimum=0) or 0
    limit = parse_int_arg("limit", args.get("limit"), minimum=1) or current_app.config["MAX_PAGE_SIZE"]
    limit = min(limit, current_app.config["MAX_PAGE_SIZE"])

    items, total = inventory_service.list_inventory(
        search=args.get("search"),
        brand=args.get("brand"),
        category=args.get("category"),
        product_id=parse_int_arg("product_id", args.get("product_id"), minimum=1),
        low_stock_only=bool(parse_bool_arg("low_stock_only", args.get("low_stock_only"))),
        out_of_stock_only=bool(parse_bool_arg("out_of_stock_only", args.get("out_of_stock_only"))),
        is_active=parse_bool_arg("is_active", args.get("is_active")),
        skip=skip,
        limit=limit,
    )
    return {
        "inventory_items": [item.to_dict() for item in items],
        "total": total,
        "skip": skip,
        "limit": limit,
    }


@inventory_bp.post("")
@api_errors("Failed to create inventory item")
def create_inventory_item_route():
    """
    Create the inventory row for a product.

    Returns:
        201: created row
        409: product already has an inventory row, or SKU taken
        422: invalid fields
    """
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=InventoryItem, payload=payload, policy=INVENTORY_POLICY, partial=False)
    item = inventory_service.add_inventory_item(patch)
    return item.to_dict(), 201


@inventory_bp.get("/stats")
@api_errors("Failed to get inventory stats")
def inventory_stats_route():
    return inventory_service.get_inventory_stats()


@inventory_bp.get("/<int:item_id>")
@api_errors("Failed to get inventory item")
def get_inventory_item_route(item_id: int):
    return inventory_service.get_inventory_item(item_id).to_dict()


@inventory_bp.put("/<int:item_id>")
@api_errors("Failed to update inventory item")
def update_inventory_item_route(item_id: int):
    """Full-record replace. Stock changes made here carry no audit reason."""
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=InventoryItem, payload=payload, policy=INVENTORY_POLICY, partial=False)
    item = inventory_service.update_inventory_item(item_id, patch)
    return item.to_dict()


@inventory_bp.delete("/<int:item_id>")
@api_errors("Failed to delete inventory item")
def delete_inventory_item_route(item_id: int):
    inventory_service.delete_inventory_item(item_id)
    return {"ok": True}, 200


@inventory_bp.post("/<path:sku>/adjust-stock")
@api_errors("Failed to adjust stock")
def adjust_stock_route(sku: str):
    """
    Set current_stock to an absolute quantity.

    Query params:
        new_quantity: target quantity (>= 0), required
        reason: audit text, required

    Re-sending the same new_quantity leaves stock unchanged and appends
    another audit row.
    """
    new_quantity = parse_int_arg("new_quantity", request.args.get("new_quantity"), required=True, minimum=0)
    item, adjustment = inventory_service.adjust_stock(sku, new_quantity, request.args.get("reason"))

    body = item.to_dict()
    body["adjustment"] = adjustment.to_dict()
    return body


@inventory_bp.get("/<path:sku>/adjustments")
@api_errors("Failed to list stock adjustments")
def list_stock_adjustments_route(sku: str):
    adjustments = inventory_service.list_stock_adjustments(sku)
    return {
        "adjustments": [adjustment.to_dict() for adjustment in adjustments],
        "total": len(adjustments),
    }
