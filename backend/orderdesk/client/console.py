# Overview: Console-facing API client; rejects known-illegal actions before any request.

from __future__ import annotations

import logging
from urllib.parse import quote
from typing import Any

import httpx

from .errors import ApiError, ClientPreconditionError, handle_api_error
from .references import normalize_inventory_row, unwrap_list
from .session import ApiSession

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = ("pending", "confirmed")
DUPLICATE_INVENTORY_MESSAGE = "Inventory already exists for this product"


class ConsoleClient:
    """
    One user action per call. Failures surface as ApiError; nothing is
    retried, and steps already persisted by an earlier call are not undone.

    Usage:
        session = ApiSession(base_url="http://localhost:5000/api/v1", token=token)
        with ConsoleClient(session) as client:
            order, warnings = client.create_order(1, [{"product_id": 1, "quantity": 2}])
            client.confirm_order(order)
    """

    def __init__(self, session: ApiSession, transport: httpx.BaseTransport | None = None):
        self.session = session
        self._http = session.build_client(transport=transport)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "ConsoleClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = self._http.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            error = handle_api_error(exc)
            logger.warning("API %s %s failed (%s): %s", method, path, error.status, error.message)
            raise error from exc
        if not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def list_orders(self, **filters) -> tuple[list[dict], int]:
        params = {k: v for k, v in filters.items() if v not in (None, "")}
        return unwrap_list(self._request("GET", "/orders", params=params), "orders")

    def get_order(self, order_id: int) -> dict:
        return self._request("GET", f"/orders/{order_id}")

    def create_order(self, customer_id: int | None, items: list[dict] | None, **details) -> tuple[dict, list[dict]]:
        if not customer_id:
            raise ClientPreconditionError("Please select a customer")
        if not items:
            raise ClientPreconditionError("Please add at least one item to the order")
        body = self._request("POST", "/orders", json={"customer_id": customer_id, "items": items, **details})
        warnings = body.pop("warnings", [])
        return body, warnings

    def confirm_order(self, order: dict) -> dict:
        if order.get("status") != "pending":
            raise ClientPreconditionError(
                f"Only pending orders can be confirmed (order is {order.get('status')})"
            )
        return self._request("POST", f"/orders/{order['id']}/confirm")

    def cancel_order(self, order: dict, reason: str | None) -> dict:
        if order.get("status") not in CANCELLABLE_STATUSES:
            raise ClientPreconditionError(
                f"Only pending or confirmed orders can be cancelled (order is {order.get('status')})"
            )
        if not reason or not reason.strip():
            raise ClientPreconditionError("Please provide a cancellation reason")
        return self._request("POST", f"/orders/{order['id']}/cancel", params={"reason": reason.strip()})

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def list_inventory(self, **filters) -> tuple[list[dict], int]:
        params = {}
        for key, value in filters.items():
            if value in (None, ""):
                continue
            params[key] = str(value).lower() if isinstance(value, bool) else value
        rows, total = unwrap_list(self._request("GET", "/inventory", params=params), "inventory_items")
        return [normalize_inventory_row(row) for row in rows], total

    def add_inventory_item(self, fields: dict) -> dict:
        product_id = fields.get("product_id")
        if not product_id:
            raise ClientPreconditionError("Please select a product")
        existing, _ = self.list_inventory(product_id=product_id)
        if existing:
            raise ClientPreconditionError(DUPLICATE_INVENTORY_MESSAGE)
        return normalize_inventory_row(self._request("POST", "/inventory", json=fields))

    def adjust_stock(self, sku: str, new_quantity: int, reason: str | None) -> dict:
        if new_quantity is None or new_quantity < 0:
            raise ClientPreconditionError("New quantity cannot be negative")
        if not reason or not reason.strip():
            raise ClientPreconditionError("Please provide a reason for the stock adjustment")
        body = self._request(
            "POST",
            f"/inventory/{quote(sku, safe='')}/adjust-stock",
            params={"new_quantity": new_quantity, "reason": reason.strip()},
        )
        return normalize_inventory_row(body)

    def inventory_stats(self) -> dict:
        return self._request("GET", "/inventory/stats")

    # ------------------------------------------------------------------
    # Payments / invoices
    # ------------------------------------------------------------------

    def list_payments(self, **filters) -> tuple[list[dict], int]:
        params = {}
        for key, value in filters.items():
            if value in (None, ""):
                continue
            params[key] = str(value).lower() if isinstance(value, bool) else value
        return unwrap_list(self._request("GET", "/payments", params=params), "payments")

    def create_payment(self, fields: dict) -> dict:
        return self._request("POST", "/payments", json=fields)

    def payment_stats(self) -> dict:
        return self._request("GET", "/payments/stats")

    def verify_payment(self, payment_id: int) -> dict:
        return self._request("POST", f"/payments/{payment_id}/verify")

    def derive_invoice(self, payment: dict) -> dict:
        if not payment.get("is_verified"):
            raise ClientPreconditionError("Only verified payments can be invoiced")
        if not payment.get("customer_id") and not payment.get("order_id"):
            raise ClientPreconditionError("Payment has no customer to invoice")
        return self._request("POST", f"/payments/{payment['id']}/invoice")

    def create_invoice(self, fields: dict) -> dict:
        return self._request("POST", "/invoices", json=fields)

    def get_invoice(self, invoice_id: int) -> dict:
        return self._request("GET", f"/invoices/{invoice_id}")

    def update_invoice_status(self, invoice_id: int, status: str) -> dict:
        return self._request("PATCH", f"/invoices/{invoice_id}", json={"status": status})


__all__ = ["ConsoleClient", "ApiError", "ClientPreconditionError"]
