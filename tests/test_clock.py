from __future__ import annotations

import unittest
from datetime import datetime, timezone

from popmart.utils.clock import format_scaled_duration, format_timestamp, from_epoch_seconds, to_epoch_ms, to_iso


class ClockFormattingTestCase(unittest.TestCase):
    def test_scaled_duration(self):
        self.assertEqual(format_scaled_duration(None), "Pending")
        self.assertEqual(format_scaled_duration(0), "Pending")
        self.assertEqual(format_scaled_duration(-1000), "Pending")
        self.assertEqual(format_scaled_duration(5_000), "< 1m")
        self.assertEqual(format_scaled_duration(6_000), "1m")
        self.assertEqual(format_scaled_duration(359_000), "59m")
        self.assertEqual(format_scaled_duration(450_000), "1h 15m")
        self.assertEqual(format_scaled_duration(450_000, scale=1), "7m")

    def test_iso_and_epoch(self):
        moment = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        self.assertEqual(to_iso(moment), "2026-01-02T03:04:05Z")
        self.assertEqual(to_iso(datetime(2026, 1, 2)), "2026-01-02T00:00:00Z")
        self.assertIsNone(to_iso(None))
        self.assertEqual(from_epoch_seconds(to_epoch_ms(moment) / 1000), moment)
        self.assertEqual(format_timestamp(moment), "02 Jan 2026, 03:04 UTC")
        self.assertEqual(format_timestamp(None), "-")


if __name__ == "__main__":
    unittest.main()
