"""
Order lifecycle tests.

Verifies:
- Derived money fields (total, outstanding)
- confirm only from pending; cancel only from pending/confirmed with a reason
- Line progress invariant: fulfilled <= allocated <= quantity
- Stock warnings on create never block the order
- End-to-end create -> confirm -> cancel over HTTP
"""

from decimal import Decimal

import pytest

from orderdesk.extensions import db
from orderdesk.models import LedgerEvent, Order
from orderdesk.models.orders import compute_outstanding, compute_total
from orderdesk.services import order_service
from orderdesk.services.order_service import IllegalTransitionError, OrderError
from orderdesk.validation import NotFoundError, ValidationError


def _items(*lines):
    return [{"product_id": p, "quantity": q, "unit_price": price} for p, q, price in lines]


@pytest.fixture
def pending_order(customer, products):
    order, _ = order_service.create_order(
        customer.id,
        _items((products[0].id, 2, 15.00), (products[2].id, 1, 5.00)),
    )
    return order


# =============================================================================
# DERIVED MONEY FIELDS
# =============================================================================


class TestDerivedAmounts:

    @pytest.mark.parametrize(
        "subtotal,discount,tax,shipping,expected",
        [
            ("30.00", "0", "0", "0", "30.00"),
            ("100.00", "10.00", "7.50", "5.00", "102.50"),
            ("19.99", "0.99", "0", "2.50", "21.50"),
        ],
    )
    def test_total_amount_formula(self, subtotal, discount, tax, shipping, expected):
        assert compute_total(subtotal, discount, tax, shipping) == Decimal(expected)

    @pytest.mark.parametrize(
        "total,paid,expected",
        [
            ("50.00", "0", "50.00"),
            ("50.00", "20.00", "30.00"),
            ("50.00", "50.00", "0.00"),
            ("50.00", "75.00", "0.00"),
        ],
    )
    def test_outstanding_is_floored_at_zero(self, total, paid, expected):
        assert compute_outstanding(total, paid) == Decimal(expected)

    def test_properties_follow_stored_inputs(self, pending_order):
        pending_order.discount_amount = Decimal("5.00")
        pending_order.tax_amount = Decimal("2.25")
        pending_order.shipping_cost = Decimal("4.00")
        pending_order.amount_paid = Decimal("10.00")
        db.session.commit()

        assert pending_order.subtotal == Decimal("35.00")
        assert pending_order.total_amount == Decimal("36.25")
        assert pending_order.outstanding_amount == Decimal("26.25")

        body = pending_order.to_dict()
        assert body["total_amount"] == 36.25
        assert body["outstanding_amount"] == 26.25


# =============================================================================
# CREATE
# =============================================================================


class TestCreateOrder:

    def test_snapshots_product_and_defaults_price(self, customer, products):
        order, _ = order_service.create_order(
            customer.id, [{"product_id": products[1].id, "quantity": 3}],
        )
        line = order.order_items[0]
        assert line.product_name == "Lip Gloss"
        assert line.product_sku == "GL-LIP-002"
        assert line.unit_price == Decimal("10.00")
        assert order.subtotal == Decimal("30.00")
        assert order.status == "pending"
        assert order.payment_status == "pending"
        assert order.order_number == "ORD-000001"

    def test_order_numbers_are_sequential(self, customer, products):
        first, _ = order_service.create_order(customer.id, _items((products[0].id, 1, 15.00)))
        second, _ = order_service.create_order(customer.id, _items((products[0].id, 1, 15.00)))
        assert (first.order_number, second.order_number) == ("ORD-000001", "ORD-000002")

    def test_missing_customer_and_items_reported_together(self, db_session):
        with pytest.raises(ValidationError) as exc:
            order_service.create_order(None, [])
        fields = [field for field, _ in exc.value.errors]
        assert fields == ["customer_id", "items"]
        assert Order.query.count() == 0

    def test_item_errors_are_keyed_by_position(self, customer, products):
        with pytest.raises(ValidationError) as exc:
            order_service.create_order(
                customer.id,
                [{"product_id": products[0].id, "quantity": 1}, {"product_id": products[1].id, "quantity": 0}],
            )
        assert exc.value.errors == [("items[1].quantity", "not greater than 0")]

    def test_unknown_product(self, customer, products):
        with pytest.raises(NotFoundError):
            order_service.create_order(customer.id, [{"product_id": 9999, "quantity": 1}])
        assert Order.query.count() == 0

    def test_warnings_for_short_and_untracked_stock(self, customer, products, make_inventory):
        make_inventory(products[0], current_stock=1)
        make_inventory(products[1], current_stock=20)

        order, warnings = order_service.create_order(
            customer.id,
            _items((products[0].id, 2, 15.00), (products[1].id, 2, 10.00), (products[2].id, 1, 5.00)),
        )

        assert order.id is not None
        by_product = {w["product_id"]: w for w in warnings}
        assert set(by_product) == {products[0].id, products[2].id}
        assert by_product[products[0].id]["available"] == 1
        assert by_product[products[0].id]["requested_quantity"] == 2
        assert by_product[products[2].id]["available"] is None

    def test_creation_is_recorded_in_ledger(self, pending_order):
        events = LedgerEvent.query.filter_by(entity_type="order", entity_id=pending_order.id).all()
        assert [e.event_type for e in events] == ["order.created"]


# =============================================================================
# TRANSITIONS
# =============================================================================


class TestTransitions:

    def test_confirm_from_pending(self, pending_order):
        order = order_service.confirm_order(pending_order.id)
        assert order.status == "confirmed"
        assert order.confirmed_at is not None

    @pytest.mark.parametrize("status", ["confirmed", "processing", "shipped", "delivered", "cancelled"])
    def test_confirm_rejected_outside_pending(self, pending_order, status):
        pending_order.status = status
        db.session.commit()

        with pytest.raises(IllegalTransitionError):
            order_service.confirm_order(pending_order.id)
        assert order_service.get_order(pending_order.id).status == status

    @pytest.mark.parametrize("status", ["pending", "confirmed"])
    def test_cancel_from_cancellable(self, pending_order, status):
        pending_order.status = status
        db.session.commit()

        order = order_service.cancel_order(pending_order.id, "  customer request ")
        assert order.status == "cancelled"
        assert order.cancellation_reason == "customer request"
        assert order.cancelled_at is not None

    @pytest.mark.parametrize("status", ["processing", "shipped", "delivered", "cancelled"])
    def test_cancel_rejected_outside_cancellable(self, pending_order, status):
        pending_order.status = status
        db.session.commit()

        with pytest.raises(IllegalTransitionError):
            order_service.cancel_order(pending_order.id, "customer request")
        assert order_service.get_order(pending_order.id).status == status

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_cancel_requires_reason(self, pending_order, reason):
        with pytest.raises(ValidationError):
            order_service.cancel_order(pending_order.id, reason)
        assert order_service.get_order(pending_order.id).status == "pending"

    def test_cancel_keeps_allocations(self, pending_order):
        line = pending_order.order_items[0]
        order_service.update_item_progress(pending_order.id, line.id, allocated_quantity=2)

        order_service.cancel_order(pending_order.id, "out of budget")
        assert order_service.get_order(pending_order.id).order_items[0].allocated_quantity == 2

    def test_unknown_order(self, db_session):
        with pytest.raises(NotFoundError):
            order_service.confirm_order(12345)

    def test_transitions_are_recorded_in_ledger(self, pending_order):
        order_service.confirm_order(pending_order.id)
        order_service.cancel_order(pending_order.id, "duplicate order")

        events = (
            LedgerEvent.query.filter_by(entity_type="order", entity_id=pending_order.id)
            .order_by(LedgerEvent.id)
            .all()
        )
        assert [e.event_type for e in events] == ["order.created", "order.confirmed", "order.cancelled"]
        assert events[-1].note == "duplicate order"


# =============================================================================
# LINE PROGRESS
# =============================================================================


class TestItemProgress:

    def test_allocate_then_fulfill(self, pending_order):
        line = pending_order.order_items[0]
        order_service.update_item_progress(pending_order.id, line.id, allocated_quantity=2)
        item = order_service.update_item_progress(pending_order.id, line.id, fulfilled_quantity=1)

        assert (item.allocated_quantity, item.fulfilled_quantity) == (2, 1)
        assert item.is_fully_allocated
        assert not item.is_fully_fulfilled
        assert item.pending_allocation == 0

    @pytest.mark.parametrize(
        "allocated,fulfilled",
        [(3, None), (None, 1), (1, 2), (-1, None)],
    )
    def test_invariant_violations_rejected(self, pending_order, allocated, fulfilled):
        line = pending_order.order_items[0]
        with pytest.raises(ValidationError):
            order_service.update_item_progress(
                pending_order.id, line.id, allocated_quantity=allocated, fulfilled_quantity=fulfilled,
            )

        item = order_service.get_order(pending_order.id).order_items[0]
        assert item.fulfilled_quantity <= item.allocated_quantity <= item.quantity
        assert (item.allocated_quantity, item.fulfilled_quantity) == (0, 0)

    def test_lowering_allocation_below_fulfilled_rejected(self, pending_order):
        line = pending_order.order_items[0]
        order_service.update_item_progress(pending_order.id, line.id, allocated_quantity=2, fulfilled_quantity=2)

        with pytest.raises(ValidationError):
            order_service.update_item_progress(pending_order.id, line.id, allocated_quantity=1)

    def test_frozen_on_terminal_order(self, pending_order):
        order_service.cancel_order(pending_order.id, "customer request")
        line = pending_order.order_items[0]

        with pytest.raises(OrderError):
            order_service.update_item_progress(pending_order.id, line.id, allocated_quantity=1)

    def test_item_must_belong_to_order(self, customer, products, pending_order):
        other, _ = order_service.create_order(customer.id, _items((products[1].id, 1, 10.00)))
        with pytest.raises(NotFoundError):
            order_service.update_item_progress(
                pending_order.id, other.order_items[0].id, allocated_quantity=1,
            )


# =============================================================================
# HTTP
# =============================================================================


class TestOrderRoutes:

    def test_end_to_end_scenario(self, client, customer, products):
        resp = client.post("/api/v1/orders", json={
            "customer_id": customer.id,
            "items": [{"product_id": products[0].id, "quantity": 2, "unit_price": 15.00}],
        })
        assert resp.status_code == 201
        order = resp.get_json()
        assert order["subtotal"] == 30.0
        assert order["total_amount"] == 30.0
        assert order["outstanding_amount"] == 30.0
        order_id = order["id"]

        resp = client.post(f"/api/v1/orders/{order_id}/confirm")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "confirmed"

        resp = client.post(f"/api/v1/orders/{order_id}/cancel")
        assert resp.status_code == 422
        assert client.get(f"/api/v1/orders/{order_id}").get_json()["status"] == "confirmed"

        resp = client.post(f"/api/v1/orders/{order_id}/cancel", query_string={"reason": "customer request"})
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "cancelled"

        resp = client.post(f"/api/v1/orders/{order_id}/confirm")
        assert resp.status_code == 400
        assert "status is 'cancelled'" in resp.get_json()["error"]

    def test_cancel_reason_from_json_body(self, client, pending_order):
        resp = client.post(f"/api/v1/orders/{pending_order.id}/cancel", json={"reason": "wrong shade"})
        assert resp.status_code == 200
        assert resp.get_json()["cancellation_reason"] == "wrong shade"

    def test_create_response_carries_warnings(self, client, customer, products, make_inventory):
        make_inventory(products[0], current_stock=1)
        resp = client.post("/api/v1/orders", json={
            "customer_id": customer.id,
            "items": [{"product_id": products[0].id, "quantity": 5}],
            "order_source": "instagram",
        })
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["order_source"] == "instagram"
        assert len(body["warnings"]) == 1
        assert body["warnings"][0]["available"] == 1

    def test_rejects_unknown_order_source(self, client, customer, products):
        resp = client.post("/api/v1/orders", json={
            "customer_id": customer.id,
            "items": [{"product_id": products[0].id, "quantity": 1}],
            "order_source": "fax",
        })
        assert resp.status_code == 422
        assert resp.get_json()["detail"][0]["loc"] == ["body", "order_source"]

    def test_progress_route(self, client, pending_order):
        line_id = pending_order.order_items[0].id
        resp = client.post(
            f"/api/v1/orders/{pending_order.id}/items/{line_id}/progress",
            json={"allocated_quantity": 1},
        )
        assert resp.status_code == 200
        assert resp.get_json()["allocated_quantity"] == 1

        resp = client.post(
            f"/api/v1/orders/{pending_order.id}/items/{line_id}/progress",
            json={"allocated_quantity": 1, "quantity": 9},
        )
        assert resp.status_code == 422

    def test_list_filters_and_search(self, client, customer, products, pending_order, db_session):
        other = order_service.create_order(customer.id, _items((products[1].id, 1, 10.00)))[0]
        order_service.confirm_order(other.id)

        body = client.get("/api/v1/orders", query_string={"status": "confirmed"}).get_json()
        assert body["total"] == 1
        assert body["orders"][0]["order_number"] == other.order_number

        body = client.get("/api/v1/orders", query_string={"search": "ADA@example"}).get_json()
        assert body["total"] == 2

        body = client.get("/api/v1/orders", query_string={"search": pending_order.order_number}).get_json()
        assert [o["id"] for o in body["orders"]] == [pending_order.id]

        body = client.get("/api/v1/orders", query_string={"page": 2, "size": 1}).get_json()
        assert body["total"] == 2
        assert len(body["orders"]) == 1
        assert body["orders"][0]["id"] == pending_order.id

    def test_list_rejects_unknown_status(self, client, db_session):
        resp = client.get("/api/v1/orders", query_string={"status": "lost"})
        assert resp.status_code == 422

    def test_unknown_order_is_404(self, client, db_session):
        resp = client.get("/api/v1/orders/4040")
        assert resp.status_code == 404
        assert resp.get_json()["detail"] == "Order 4040 not found"
