"""Tests for top-level package lazy exports."""

from __future__ import annotations

import unittest

import apex_chat


class PackageExportTests(unittest.TestCase):
    """Ensure __getattr__ and exported symbols behave as expected."""

    def test_lazy_exports_resolve_known_symbols(self) -> None:
        for name in apex_chat.__all__:
            self.assertIsNotNone(getattr(apex_chat, name), name)
        self.assertTrue(callable(apex_chat.load_config))

    def test_unknown_symbol_raises_attribute_error(self) -> None:
        with self.assertRaises(AttributeError):
            getattr(apex_chat, "THIS_DOES_NOT_EXIST")


if __name__ == "__main__":
    unittest.main()
