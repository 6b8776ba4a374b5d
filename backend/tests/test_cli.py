"""
CLI command tests (flask catalog / inventory / invoices / system).
"""

from datetime import timedelta

import pytest

from orderdesk.models import Customer, Product
from orderdesk.services import invoice_service
from orderdesk.time_utils import utcnow


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


def test_seed_is_idempotent(runner, db_session):
    first = runner.invoke(args=["catalog", "seed"])
    assert first.exit_code == 0, first.output
    assert "6 new rows" in first.output

    second = runner.invoke(args=["catalog", "seed"])
    assert second.exit_code == 0, second.output
    assert "0 new rows" in second.output

    assert Product.query.count() == 4
    assert Customer.query.count() == 2
    assert Product.query.filter_by(sku="VC-FACE-001").one().brand.name == "Velvet Co"


def test_low_stock_report(runner, products, make_inventory):
    result = runner.invoke(args=["inventory", "low-stock"])
    assert "No low or out-of-stock items" in result.output

    make_inventory(products[0], current_stock=50)
    make_inventory(products[1], current_stock=3)
    make_inventory(products[2], current_stock=0)

    result = runner.invoke(args=["inventory", "low-stock"])
    assert result.exit_code == 0, result.output
    assert "GL-LIP-002-MW" in result.output
    assert "GL-LIP-003-MW" in result.output
    assert "GL-LIP-001-MW" not in result.output
    assert "2 item(s) need restocking" in result.output


def test_mark_overdue(runner, customer):
    invoice = invoice_service.create_invoice({
        "customer_id": customer.id,
        "due_date": (utcnow() - timedelta(days=3)).isoformat(),
        "items": [{"description": "Lip kit", "quantity": 1, "unit_price": "10.00"}],
    })
    invoice_service.update_invoice_status(invoice.id, "sent")

    result = runner.invoke(args=["invoices", "mark-overdue"])
    assert result.exit_code == 0, result.output
    assert f"OVERDUE {invoice.invoice_number}" in result.output
    assert "1 invoice(s) marked overdue" in result.output
    assert invoice_service.get_invoice(invoice.id).status == "overdue"


def test_mark_overdue_as_of(runner, customer):
    invoice = invoice_service.create_invoice({
        "customer_id": customer.id,
        "items": [{"description": "Lip kit", "quantity": 1, "unit_price": "10.00"}],
    })
    invoice_service.update_invoice_status(invoice.id, "sent")

    result = runner.invoke(args=["invoices", "mark-overdue", "--as-of", "2020-01-01T00:00:00Z"])
    assert "0 invoice(s) marked overdue" in result.output

    result = runner.invoke(args=["invoices", "mark-overdue", "--as-of", "yesterday"])
    assert result.exit_code == 2
    assert "not an ISO-8601 datetime" in result.output


def test_reset_db(runner, customer):
    result = runner.invoke(args=["system", "reset-db", "--yes"])
    assert result.exit_code == 0, result.output
    assert "Database reset complete" in result.output
    assert Customer.query.count() == 0
