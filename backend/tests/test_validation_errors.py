"""
Error mapping and input validation tests.

Verifies:
- 422 / 409 / 404 / 400 / 500 response bodies
- validate_payload coercion and collected field errors
- Money rounding
- Health endpoint and CORS headers
"""

import unittest
from decimal import Decimal, InvalidOperation

import pytest
from flask import Flask

from orderdesk.decorators import api_errors
from orderdesk.extensions import db
from orderdesk.models import InventoryItem, OrderItem, Payment
from orderdesk.money import money_json, to_money
from orderdesk.validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    parse_bool_arg,
    parse_int_arg,
    validate_payload,
)
from orderdesk.services.order_service import OrderError


# =============================================================================
# ERROR BODIES
# =============================================================================


class TestErrorBodies:

    def test_validation_error_shape(self, client, customer):
        resp = client.post("/api/v1/orders", json={"customer_id": customer.id, "items": [{"quantity": "two"}]})
        assert resp.status_code == 422
        body = resp.get_json()
        assert body["detail"] == [
            {"loc": ["body", "items[0].product_id"], "msg": "required", "type": "value_error"},
            {"loc": ["body", "items[0].quantity"], "msg": "not a valid integer", "type": "value_error"},
        ]
        assert body["error"] == "items[0].product_id is required, items[0].quantity is not a valid integer"

    def test_conflict_shape(self, client, products, make_inventory):
        make_inventory(products[0])
        resp = client.post("/api/v1/inventory", json={
            "product_id": products[0].id, "current_stock": 1, "cost_price": 1, "selling_price": 1,
        })
        assert resp.status_code == 409
        body = resp.get_json()
        assert body["error"] == body["detail"] == "Inventory already exists for this product"

    def test_not_found_shape(self, client, db_session):
        resp = client.post("/api/v1/inventory/MISSING-SKU/adjust-stock", query_string={
            "new_quantity": 1, "reason": "recount",
        })
        assert resp.status_code == 404
        assert resp.get_json()["detail"] == "Inventory item MISSING-SKU not found"

    def test_non_json_body(self, client, db_session):
        resp = client.post("/api/v1/orders", data="not json", content_type="text/plain")
        assert resp.status_code == 422

    @pytest.mark.parametrize(
        "method,path,query,field",
        [
            ("get", "/api/v1/orders", {"page": "--1"}, "page"),
            ("post", "/api/v1/inventory/ANY-SKU/adjust-stock", {"new_quantity": "\u00b2", "reason": "x"}, "new_quantity"),
        ],
    )
    def test_malformed_integer_query_arg(self, client, db_session, method, path, query, field):
        resp = getattr(client, method)(path, query_string=query)
        assert resp.status_code == 422
        assert resp.get_json()["detail"] == [
            {"loc": ["body", field], "msg": "not a valid integer", "type": "value_error"},
        ]


class DecoratorMappingTests(unittest.TestCase):
    """api_errors on a bare app, one route per exception class."""

    @classmethod
    def setUpClass(cls):
        cls.app = Flask(__name__)
        cls.app.config.update(
            SQLALCHEMY_DATABASE_URI="sqlite:///:memory:",
            SQLALCHEMY_TRACK_MODIFICATIONS=False,
            TESTING=True,
        )
        db.init_app(cls.app)

        failures = {
            "validation": ValidationError([("amount", "required")]),
            "conflict": ConflictError("duplicate"),
            "missing": NotFoundError("gone"),
            "rule": OrderError("not allowed"),
            "crash": RuntimeError("secret internals"),
        }
        for name, exc in failures.items():
            def view(exc=exc):
                raise exc
            cls.app.add_url_rule(f"/{name}", name, api_errors("Operation failed")(view))

        cls.client = cls.app.test_client()

    def test_statuses(self):
        expected = {"validation": 422, "conflict": 409, "missing": 404, "rule": 400, "crash": 500}
        for name, status in expected.items():
            with self.subTest(name=name):
                self.assertEqual(self.client.get(f"/{name}").status_code, status)

    def test_unexpected_errors_hide_details(self):
        with self.assertLogs(self.app.logger, level="ERROR"):
            body = self.client.get("/crash").get_json()
        self.assertEqual(body, {"error": "Operation failed", "detail": "Operation failed"})

    def test_business_rule_message(self):
        body = self.client.get("/rule").get_json()
        self.assertEqual(body["error"], "not allowed")


# =============================================================================
# PAYLOAD VALIDATION
# =============================================================================


ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "quantity", "unit_price", "notes"},
    required_on_create={"product_id", "quantity"},
)


class TestValidatePayload:

    def test_coerces_and_strips(self, app):
        patch = validate_payload(
            model=OrderItem,
            payload={"product_id": "3", "quantity": 2, "unit_price": "15.005", "notes": "  gift wrap "},
            policy=ITEM_POLICY,
            partial=False,
        )
        assert patch == {"product_id": 3, "quantity": 2, "unit_price": Decimal("15.01"), "notes": "gift wrap"}

    @pytest.mark.parametrize("raw", [2.5, "1e3", "12.5", True, ""])
    def test_rejects_non_integers(self, app, raw):
        with pytest.raises(ValidationError):
            validate_payload(
                model=OrderItem, payload={"product_id": 1, "quantity": raw}, policy=ITEM_POLICY, partial=False,
            )

    def test_collects_every_error(self, app):
        with pytest.raises(ValidationError) as exc:
            validate_payload(
                model=OrderItem,
                payload={"quantity": "x", "discount": 5},
                policy=ITEM_POLICY,
                partial=False,
            )
        assert exc.value.errors == [
            ("product_id", "required"),
            ("quantity", "not a valid integer"),
            ("discount", "not an allowed field"),
        ]

    def test_partial_skips_required(self, app):
        assert validate_payload(model=OrderItem, payload={}, policy=ITEM_POLICY, partial=True) == {}

    def test_choices_and_length(self, app):
        policy = ModelValidationPolicy(
            writable_fields={"location", "color"},
            choices={"location": ("main_warehouse",)},
        )
        with pytest.raises(ValidationError) as exc:
            validate_payload(
                model=InventoryItem,
                payload={"location": "attic", "color": "x" * 65},
                policy=policy,
                partial=True,
            )
        assert [field for field, _ in exc.value.errors] == ["location", "color"]

    def test_amount_limits(self, app):
        policy = ModelValidationPolicy(writable_fields={"amount"})
        with pytest.raises(ValidationError):
            validate_payload(model=Payment, payload={"amount": "10000000000"}, policy=policy, partial=True)
        with pytest.raises(ValidationError):
            validate_payload(model=Payment, payload={"amount": "ten"}, policy=policy, partial=True)

    def test_prefixed(self):
        exc = ValidationError([("quantity", "required"), (None, "bad line")]).prefixed("items[2]")
        assert exc.errors == [("items[2].quantity", "required"), ("items[2]", "bad line")]


class TestQueryArgs:

    def test_int_args(self):
        assert parse_int_arg("page", None) is None
        assert parse_int_arg("page", " 3 ") == 3
        with pytest.raises(ValidationError):
            parse_int_arg("page", "three")
        for raw in ("--1", "\u00b2", "1.5", "+-2"):
            with pytest.raises(ValidationError):
                parse_int_arg("page", raw)
        assert parse_int_arg("offset", "-2") == -2
        with pytest.raises(ValidationError):
            parse_int_arg("page", "0", minimum=1)
        with pytest.raises(ValidationError):
            parse_int_arg("new_quantity", "", required=True)

    def test_bool_args(self):
        assert parse_bool_arg("flag", "TRUE") is True
        assert parse_bool_arg("flag", "0") is False
        assert parse_bool_arg("flag", "") is None
        with pytest.raises(ValidationError):
            parse_bool_arg("flag", "maybe")


# =============================================================================
# MONEY
# =============================================================================


class TestMoney:

    @pytest.mark.parametrize(
        "raw,expected",
        [
            (None, "0.00"),
            (0.1, "0.10"),
            ("2.345", "2.35"),
            ("2.344", "2.34"),
            (Decimal("-1.005"), "-1.01"),
            (15, "15.00"),
        ],
    )
    def test_half_up_to_cents(self, raw, expected):
        assert to_money(raw) == Decimal(expected)

    @pytest.mark.parametrize("raw", [True, "NaN", "Infinity", [1]])
    def test_rejects_non_amounts(self, raw):
        with pytest.raises(InvalidOperation):
            to_money(raw)

    def test_json_numbers(self):
        assert money_json(Decimal("30.00")) == 30.0


# =============================================================================
# SYSTEM
# =============================================================================


class TestSystem:

    def test_health(self, client, db_session):
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "ok"
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["checked_at"].endswith("Z")

    def test_cors_allowed_origin(self, client, db_session):
        resp = client.get("/api/v1/health", headers={"Origin": "http://localhost:3000"})
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"

        resp = client.get("/api/v1/health", headers={"Origin": "http://evil.example"})
        assert "Access-Control-Allow-Origin" not in resp.headers

    def test_ledger_for_entity(self, client, customer, products):
        from orderdesk.services import order_service

        order, _ = order_service.create_order(customer.id, [{"product_id": products[0].id, "quantity": 1}])
        order_service.confirm_order(order.id)

        resp = client.get(f"/api/v1/ledger?entity_type=order&entity_id={order.id}")
        assert resp.status_code == 200
        body = resp.get_json()
        assert [e["event_type"] for e in body["events"]] == ["order.created", "order.confirmed"]
        assert body["events"][0]["event_category"] == "order"

    @pytest.mark.parametrize(
        "query,field",
        [("entity_type=shipment&entity_id=1", "entity_type"), ("entity_type=order", "entity_id")],
    )
    def test_ledger_rejects_bad_query(self, client, db_session, query, field):
        resp = client.get(f"/api/v1/ledger?{query}")
        assert resp.status_code == 422
        assert resp.get_json()["detail"][0]["loc"] == ["body", field]
