"""
Concurrency tests on a file-backed SQLite database.

Each worker thread pushes its own app context, so it gets its own session
and connection.
"""

import os
import tempfile
import threading
import unittest
from decimal import Decimal
from unittest import mock

from sqlalchemy import update
from sqlalchemy.orm.exc import StaleDataError

from orderdesk import create_app
from orderdesk.extensions import db
from orderdesk.models import Customer, InventoryItem, LedgerEvent, Product, StockAdjustment
from orderdesk.services import inventory_service, order_service, payment_service
from orderdesk.services.concurrency import lock_for_update, run_with_retry
from orderdesk.services.inventory_service import decrement_stock_for_order
from orderdesk.services.order_service import IllegalTransitionError
from orderdesk.signals import order_confirmed
from orderdesk.validation import NotFoundError


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "DECREMENT_STOCK_ON_CONFIRM": False,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            customer = Customer(first_name="Concurrent", last_name="Buyer", email="concurrent@example.com")
            product = Product(sku="CONCUR-1", name="Concurrent Lipstick", base_price=Decimal("10.00"))
            db.session.add_all([customer, product])
            db.session.commit()
            self.customer_id = customer.id
            self.product_id = product.id

            db.session.add(InventoryItem(
                sku="CONCUR-1-MW",
                product_id=product.id,
                current_stock=50,
                minimum_stock=10,
                cost_price=Decimal("4.00"),
                selling_price=Decimal("10.00"),
            ))
            db.session.commit()

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _create_order(self):
        with self.app.app_context():
            order, _ = order_service.create_order(
                self.customer_id, [{"product_id": self.product_id, "quantity": 1}],
            )
            return order.id

    def _run(self, target, args_list):
        results = []
        lock = threading.Lock()

        def worker(*args):
            with self.app.app_context():
                try:
                    outcome = target(*args)
                except Exception as exc:
                    outcome = exc
                finally:
                    db.session.remove()
                with lock:
                    results.append(outcome)

        threads = [threading.Thread(target=worker, args=args) for args in args_list]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def test_order_numbers_unique(self):
        def create(_):
            order, _ = order_service.create_order(
                self.customer_id, [{"product_id": self.product_id, "quantity": 1}],
            )
            return order.order_number

        results = self._run(create, [(i,) for i in range(8)])

        errors = [r for r in results if isinstance(r, Exception)]
        self.assertFalse(errors)
        self.assertEqual(len(set(results)), 8)

    def test_concurrent_confirm_single_winner(self):
        order_id = self._create_order()

        def confirm(oid):
            return order_service.confirm_order(oid).status

        results = self._run(confirm, [(order_id,)] * 6)

        self.assertEqual(results.count("confirmed"), 1)
        losers = [r for r in results if r != "confirmed"]
        self.assertTrue(all(isinstance(r, IllegalTransitionError) for r in losers), losers)

        with self.app.app_context():
            self.assertEqual(
                LedgerEvent.query.filter_by(event_type="order.confirmed", entity_id=order_id).count(), 1
            )

    def test_concurrent_cancel_single_winner(self):
        order_id = self._create_order()

        def cancel(oid, reason):
            return order_service.cancel_order(oid, reason).cancellation_reason

        reasons = [f"reason {i}" for i in range(6)]
        results = self._run(cancel, [(order_id, r) for r in reasons])

        winners = [r for r in results if isinstance(r, str)]
        self.assertEqual(len(winners), 1)

        with self.app.app_context():
            order = order_service.get_order(order_id)
            self.assertEqual(order.status, "cancelled")
            self.assertEqual(order.cancellation_reason, winners[0])

    def test_concurrent_verify_counts_once(self):
        order_id = self._create_order()
        with self.app.app_context():
            payment = payment_service.create_payment(
                {"order_id": order_id, "amount": "10.00", "payment_method": "cash"}
            )
            payment_id = payment.id

        def verify(pid):
            return payment_service.verify_payment(pid)[1]

        results = self._run(verify, [(payment_id,)] * 6)

        self.assertFalse([r for r in results if isinstance(r, Exception)])
        self.assertEqual(results.count(True), 1)

        with self.app.app_context():
            order = order_service.get_order(order_id)
            self.assertEqual(order.amount_paid, Decimal("10.00"))
            self.assertEqual(order.payment_status, "paid")
            self.assertEqual(LedgerEvent.query.filter_by(event_type="payment.verified").count(), 1)

    def test_concurrent_adjustments_serialize(self):
        def adjust(quantity):
            item, _ = inventory_service.adjust_stock("CONCUR-1-MW", quantity, f"set {quantity}")
            return item.current_stock

        results = self._run(adjust, [(10,), (20,), (30,)])
        self.assertFalse([r for r in results if isinstance(r, Exception)])

        with self.app.app_context():
            history = StockAdjustment.query.order_by(StockAdjustment.id.asc()).all()
            self.assertEqual(len(history), 3)
            # Every row starts where the previous one left off: no lost update
            previous = 50
            for row in history:
                self.assertEqual(row.previous_stock, previous)
                previous = row.new_quantity
            item = inventory_service.get_inventory_item_by_sku("CONCUR-1-MW")
            self.assertEqual(item.current_stock, history[-1].new_quantity)

    def test_confirm_decrement_keeps_concurrent_restock(self):
        with self.app.app_context():
            order, _ = order_service.create_order(
                self.customer_id, [{"product_id": self.product_id, "quantity": 2}],
            )
            order_id = order.id

        calls = []

        def restock_then_lock(query):
            # Another writer commits a restock after the receiver read the row
            if not calls:
                with db.engine.begin() as conn:
                    conn.execute(
                        update(InventoryItem.__table__)
                        .where(InventoryItem.__table__.c.sku == "CONCUR-1-MW")
                        .values(current_stock=80, version_id=InventoryItem.__table__.c.version_id + 1)
                    )
            calls.append(query)
            return lock_for_update(query)

        with self.app.app_context():
            with mock.patch.object(inventory_service, "lock_for_update", restock_then_lock), \
                    order_confirmed.connected_to(decrement_stock_for_order, sender=self.app):
                order_service.confirm_order(order_id)
            db.session.remove()

            item = inventory_service.get_inventory_item_by_sku("CONCUR-1-MW")
            self.assertEqual(item.current_stock, 78)
            adjustment = StockAdjustment.query.filter_by(order_id=order_id).one()
            self.assertEqual((adjustment.previous_stock, adjustment.new_quantity), (80, 78))

    def test_retry_recovers_from_version_conflict(self):
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise StaleDataError("version mismatch")
            return "done"

        with self.app.app_context():
            with self.assertLogs(self.app.logger, level="WARNING") as logs:
                result = run_with_retry(flaky, backoff_base=0, label="stock adjustment X")

        self.assertEqual(result, "done")
        self.assertEqual(len(attempts), 3)
        self.assertIn("stock adjustment X (attempt 1/3)", logs.output[0])

    def test_retry_gives_up_and_skips_domain_errors(self):
        attempts = []

        def always_stale():
            attempts.append(1)
            raise StaleDataError("version mismatch")

        def missing():
            attempts.append(1)
            raise NotFoundError("gone")

        with self.app.app_context():
            with self.assertRaises(StaleDataError):
                run_with_retry(always_stale, attempts=2, backoff_base=0)
            self.assertEqual(len(attempts), 2)

            with self.assertRaises(NotFoundError):
                run_with_retry(missing, backoff_base=0)
            self.assertEqual(len(attempts), 3)

if __name__ == "__main__":
    unittest.main()
