"""
Completion dispatch, cancellation and scoped access tests.
"""

import os
import sys
import threading
import unittest
from unittest.mock import Mock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core import (
    CancellationToken,
    CompletionQueue,
    InlineDispatcher,
    OperationCancelled,
    UnrestrictedAccess,
    scoped_access,
)
from .test_utils import BaseTestCase


class TestDispatchers(BaseTestCase):
    def test_inline_dispatcher_runs_immediately(self):
        callback = Mock()
        InlineDispatcher().post(callback, 1, "two")
        callback.assert_called_once_with(1, "two")

    def test_queue_holds_callbacks_until_drained(self):
        queue = CompletionQueue()
        callback = Mock()

        queue.post(callback, "a")
        queue.post(callback, "b")

        callback.assert_not_called()
        self.assertEqual(queue.pending(), 2)
        self.assertEqual(queue.process_pending(), 2)
        self.assertEqual([c.args for c in callback.call_args_list], [("a",), ("b",)])

    def test_queue_waits_for_worker_posts(self):
        queue = CompletionQueue()
        results = []
        worker = threading.Thread(target=lambda: queue.post(results.append, 42))
        worker.start()

        processed = queue.process_pending(timeout=5)
        worker.join()

        self.assertEqual(processed, 1)
        self.assertEqual(results, [42])

    def test_only_the_owner_may_drain(self):
        queue = CompletionQueue()
        errors = []

        def drain():
            try:
                queue.process_pending()
            except RuntimeError as e:
                errors.append(e)

        worker = threading.Thread(target=drain)
        worker.start()
        worker.join()

        self.assertEqual(len(errors), 1)

    def test_failing_callback_does_not_stop_the_queue(self):
        queue = CompletionQueue()
        after = Mock()
        queue.post(Mock(side_effect=ValueError("boom")))
        queue.post(after)

        self.assertEqual(queue.process_pending(), 2)
        after.assert_called_once_with()


class TestCancellationToken(unittest.TestCase):
    def test_token_lifecycle(self):
        token = CancellationToken()
        self.assertFalse(token.cancelled)
        token.raise_if_cancelled()

        token.cancel()

        self.assertTrue(token.cancelled)
        with self.assertRaises(OperationCancelled):
            token.raise_if_cancelled()


class TestScopedAccess(unittest.TestCase):
    def test_release_on_normal_exit(self):
        provider = Mock()
        provider.acquire.return_value = True

        with scoped_access(provider, "/tmp/x") as granted:
            self.assertTrue(granted)

        provider.release.assert_called_once()

    def test_release_when_block_raises(self):
        provider = Mock()
        provider.acquire.return_value = True

        with self.assertRaises(ValueError):
            with scoped_access(provider, "/tmp/x"):
                raise ValueError("fail inside")

        provider.release.assert_called_once()

    def test_no_release_without_grant(self):
        provider = Mock()
        provider.acquire.return_value = False

        with scoped_access(provider, "/tmp/x"):
            pass

        provider.release.assert_not_called()

    def test_unrestricted_access_grants_nothing(self):
        self.assertFalse(UnrestrictedAccess().acquire("/anywhere"))


if __name__ == "__main__":
    unittest.main()
