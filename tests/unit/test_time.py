"""
Unit tests for time utilities.
"""

import time
import unittest

from core.time import now_iso, now_ms, now_utc


class TestNowFunctions(unittest.TestCase):
    """Tests for now_* functions."""

    def test_now_utc(self):
        """now_utc returns timezone-aware datetime."""
        dt = now_utc()
        self.assertIsNotNone(dt.tzinfo)

    def test_now_iso(self):
        """now_iso returns ISO string."""
        iso = now_iso()
        self.assertIn("T", iso)
        self.assertIn("+", iso)  # Has timezone

    def test_now_ms(self):
        """now_ms returns integer milliseconds."""
        before = int(time.time() * 1000)
        ms = now_ms()
        after = int(time.time() * 1000)

        self.assertIsInstance(ms, int)
        self.assertGreaterEqual(ms, before)
        self.assertLessEqual(ms, after)


if __name__ == "__main__":
    unittest.main()
