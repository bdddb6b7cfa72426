# Overview: Threaded concurrency tests for stock and shift safeguards.

"""
Concurrency tests for kasir.

Each test runs real threads against a temporary SQLite file (an in-memory
database would share one connection across threads). Every race must
leave stored totals matching the ledger; each loser gets a typed error.
"""
import tempfile
import threading
import os
import unittest

from kasir import create_app
from kasir.errors import ConflictError, InsufficientStockError, InvalidStateError
from kasir.extensions import db
from kasir.models import ShiftSession, StockMovement
from kasir.services import shift_service, stock_ledger_service, transaction_recorder


COMPANY = "ACME"


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30}},
            "KASIR_RETRY_ATTEMPTS": 10,
            "KASIR_RETRY_BACKOFF_SECONDS": 0.01,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_concurrently(self, *workers):
        results = []
        lock = threading.Lock()
        barrier = threading.Barrier(len(workers))

        def wrap(fn):
            def runner():
                with self.app.app_context():
                    try:
                        barrier.wait()
                        value = fn()
                        with lock:
                            results.append(("ok", value))
                    except Exception as exc:
                        with lock:
                            results.append(("error", exc))
                    finally:
                        db.session.remove()
            return runner

        threads = [threading.Thread(target=wrap(fn)) for fn in workers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def test_concurrent_out_never_oversells(self):
        with self.app.app_context():
            stock_ledger_service.apply_movement(COMPANY, "P-001", "WH-01", "IN", 100, "seed")

        def sell():
            record = stock_ledger_service.apply_movement(COMPANY, "P-001", "WH-01", "OUT", 60, "cashier")
            return record.id

        results = self._run_concurrently(sell, sell)

        successes = [r for r in results if r[0] == "ok"]
        failures = [r[1] for r in results if r[0] == "error"]
        self.assertEqual(len(successes), 1)
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(failures[0], InsufficientStockError)

        with self.app.app_context():
            self.assertEqual(stock_ledger_service.current_quantity(COMPANY, "P-001", "WH-01"), 40)
            self.assertEqual(db.session.query(StockMovement).filter_by(movement_type="OUT").count(), 1)
            self.assertEqual(stock_ledger_service.verify_projection(COMPANY), [])

    def test_concurrent_first_in_on_new_key(self):
        def receive():
            record = stock_ledger_service.apply_movement(COMPANY, "P-NEW", "WH-01", "IN", 5, "receiver")
            return record.id

        results = self._run_concurrently(receive, receive, receive)

        self.assertTrue(all(status == "ok" for status, _ in results), results)
        with self.app.app_context():
            self.assertEqual(stock_ledger_service.current_quantity(COMPANY, "P-NEW", "WH-01"), 15)
            self.assertEqual(stock_ledger_service.verify_projection(COMPANY), [])

    def test_concurrent_open_allows_one_shift(self):
        def open_shift():
            return shift_service.open_shift(COMPANY, "cashier-1", "REG-01", 500000).id

        results = self._run_concurrently(open_shift, open_shift)

        successes = [r for r in results if r[0] == "ok"]
        failures = [r[1] for r in results if r[0] == "error"]
        self.assertEqual(len(successes), 1)
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(failures[0], ConflictError)

        with self.app.app_context():
            self.assertEqual(db.session.query(ShiftSession).filter_by(status="OPEN").count(), 1)

    def test_concurrent_close_has_one_winner(self):
        with self.app.app_context():
            shift_id = shift_service.open_shift(COMPANY, "cashier-1", "REG-01", 500000).id

        def close_balanced():
            return shift_service.close_shift(COMPANY, shift_id, 500000).id

        def close_short():
            return shift_service.close_shift(COMPANY, shift_id, 490000, "Short 10000").id

        results = self._run_concurrently(close_balanced, close_short)

        successes = [r for r in results if r[0] == "ok"]
        failures = [r[1] for r in results if r[0] == "error"]
        self.assertEqual(len(successes), 1)
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(failures[0], InvalidStateError)

        with self.app.app_context():
            shift = shift_service.get_shift(COMPANY, shift_id)
            self.assertEqual(shift.status, "CLOSED")
            self.assertIn(shift.variance, (0, -10000))

    def test_sale_committed_during_close_is_counted(self):
        with self.app.app_context():
            shift_id = shift_service.open_shift(COMPANY, "cashier-1", "REG-01", 500000).id

        sale_errors = []
        feed_calls = []

        def record_sale():
            with self.app.app_context():
                try:
                    transaction_recorder.record_transaction(COMPANY, shift_id, "cashier-1", "cash", 100000)
                except Exception as exc:
                    sale_errors.append(exc)
                finally:
                    db.session.remove()

        def feed_with_late_sale(company_id, session_id):
            sales = transaction_recorder.sales_for_shift(company_id, session_id)
            feed_calls.append(len(sales))
            if len(feed_calls) == 1:
                # Another register commits a sale after this close read the feed
                t = threading.Thread(target=record_sale)
                t.start()
                t.join()
            return sales

        with self.app.app_context():
            closed = shift_service.close_shift(
                COMPANY, shift_id, 600000, "Drawer counted", sales_feed=feed_with_late_sale
            )
            self.assertEqual(closed.status, "CLOSED")
            self.assertEqual(closed.closing_cash, 600000)
            self.assertEqual(closed.variance, 0)

            paid_total = sum(s.amount for s in transaction_recorder.sales_for_shift(COMPANY, shift_id))
            self.assertEqual(paid_total, closed.closing_cash - closed.opening_cash)

        self.assertEqual(sale_errors, [])
        self.assertEqual(feed_calls, [0, 1])

    def test_sale_after_close_commits_is_rejected(self):
        with self.app.app_context():
            shift_id = shift_service.open_shift(COMPANY, "cashier-1", "REG-01", 500000).id

        def close():
            return shift_service.close_shift(COMPANY, shift_id, 500000, "Counted before sale").id

        def sell():
            return transaction_recorder.record_transaction(
                COMPANY, shift_id, "cashier-1", "cash", 100000
            ).id

        results = self._run_concurrently(close, sell)

        closes = [r for r in results if r[0] == "ok"]
        self.assertGreaterEqual(len(closes), 1)
        for status, value in results:
            if status == "error":
                self.assertIsInstance(value, InvalidStateError)

        with self.app.app_context():
            shift = shift_service.get_shift(COMPANY, shift_id)
            paid_total = sum(s.amount for s in transaction_recorder.sales_for_shift(COMPANY, shift_id))
            self.assertEqual(shift.status, "CLOSED")
            self.assertEqual(shift.closing_cash, shift.opening_cash + paid_total)


if __name__ == "__main__":
    unittest.main()
