from __future__ import annotations

import importlib
import os
import unittest
from unittest.mock import patch


class ImportsBootTestCase(unittest.TestCase):
    def test_import_create_app(self):
        module = importlib.import_module("popmart")
        create_app = getattr(module, "create_app", None)
        self.assertTrue(callable(create_app))

    def test_import_main_app(self):
        with patch.dict(os.environ, {"SECRET_KEY": "boot-test-secret-key", "CHAIN_PROVIDER": "mock"}, clear=False):
            module = importlib.import_module("main")
        app = getattr(module, "app", None)
        self.assertIsNotNone(app)

    def test_import_segments(self):
        for name in ("segment_session", "segment_cart", "segment_orders_api", "segment_links", "segment_insights"):
            module = importlib.import_module(f"popmart.segments.{name}")
            self.assertIsNotNone(module)


if __name__ == "__main__":
    unittest.main()
