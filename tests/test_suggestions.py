"""Tests for starter prompt suggestions."""

from __future__ import annotations

import random
import unittest

from apex_chat.suggestions import STARTER_PROMPTS, random_starter_prompts


class SuggestionTests(unittest.TestCase):
    def test_catalogue_has_sixteen_unique_prompts(self) -> None:
        self.assertEqual(len(STARTER_PROMPTS), 16)
        self.assertEqual(len({p.title for p in STARTER_PROMPTS}), 16)

    def test_random_selection_is_distinct(self) -> None:
        picked = random_starter_prompts(4, rng=random.Random(7))
        self.assertEqual(len(picked), 4)
        self.assertEqual(len(set(picked)), 4)
        self.assertTrue(all(p in STARTER_PROMPTS for p in picked))

    def test_count_is_clamped(self) -> None:
        self.assertEqual(len(random_starter_prompts(50)), 16)
        self.assertEqual(random_starter_prompts(-1), [])


if __name__ == "__main__":
    unittest.main()
