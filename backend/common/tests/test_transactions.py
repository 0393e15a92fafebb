from unittest import mock

from django.db import OperationalError
from django.test import TestCase

from common.exceptions import InternalError, NotFound
from common.tests.factories import make_store
from common.transactions import is_retryable, run_atomic, run_retryable
from platformapp.models import Store


class RunAtomicTest(TestCase):
    def test_returns_the_callable_result(self):
        self.assertEqual(run_atomic(lambda: 42), 42)

    def test_database_error_is_wrapped_and_rolled_back(self):
        def _fail():
            make_store(name="Half written")
            raise OperationalError("deadlock detected")

        with self.assertRaises(InternalError) as ctx:
            run_atomic(_fail)
        self.assertEqual(ctx.exception.message, "Transaction failed - no changes were committed")
        self.assertIsInstance(ctx.exception.__cause__, OperationalError)
        self.assertFalse(Store.objects.filter(name="Half written").exists())

    def test_application_errors_propagate_unchanged(self):
        def _fail():
            make_store(name="Rolled back")
            raise NotFound("Order not found")

        with self.assertRaises(NotFound):
            run_atomic(_fail)
        self.assertFalse(Store.objects.filter(name="Rolled back").exists())

    def test_rejects_unknown_isolation_level_on_postgres(self):
        with mock.patch("common.transactions.connection") as conn:
            conn.vendor = "postgresql"
            with self.assertRaises(ValueError):
                run_atomic(lambda: None, isolation_level="CHAOS")


class RunRetryableTest(TestCase):
    def test_retries_deadlocks_with_exponential_backoff(self):
        calls = []
        sleep = mock.Mock()

        def _flaky():
            calls.append(1)
            if len(calls) < 3:
                raise OperationalError("deadlock detected")
            return "done"

        self.assertEqual(run_retryable(_flaky, sleep=sleep), "done")
        self.assertEqual(len(calls), 3)
        self.assertEqual([c.args[0] for c in sleep.call_args_list], [0.1, 0.2])

    def test_gives_up_after_max_retries(self):
        sleep = mock.Mock()
        fn = mock.Mock(side_effect=OperationalError("could not serialize access"))
        with self.assertRaises(InternalError):
            run_retryable(fn, max_retries=2, sleep=sleep)
        self.assertEqual(fn.call_count, 3)
        self.assertEqual(sleep.call_count, 2)

    def test_non_retryable_failure_is_not_retried(self):
        sleep = mock.Mock()
        fn = mock.Mock(side_effect=OperationalError("no such table: widgets"))
        with self.assertRaises(InternalError):
            run_retryable(fn, sleep=sleep)
        self.assertEqual(fn.call_count, 1)
        sleep.assert_not_called()

    def test_application_errors_are_not_retried(self):
        fn = mock.Mock(side_effect=NotFound("gone"))
        with self.assertRaises(NotFound):
            run_retryable(fn, sleep=mock.Mock())
        self.assertEqual(fn.call_count, 1)


class IsRetryableTest(TestCase):
    def test_markers(self):
        self.assertTrue(is_retryable(OperationalError("database is locked")))
        self.assertTrue(is_retryable(OperationalError("Deadlock found when trying to get lock")))
        self.assertFalse(is_retryable(OperationalError("syntax error")))
        self.assertFalse(is_retryable(None))
