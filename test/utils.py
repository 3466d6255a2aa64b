"""
Tests for the internal helpers.

This module verifies:
- The Unset sentinel (singleton, falsy, union support).
- coalesce() only replaces Unset.
- mirror() hands out copies of container state.
- distance() computes the Levenshtein edit distance, case-folded by default.
"""
import unittest
from unittest import TestCase

from arbor.utils import *


class UnsetTest(TestCase):
    """
    Sentinel semantics of Unset.
    """

    def testSingleton(self) -> None:
        self.assertIs(UnsetType(), Unset)

    def testFalsy(self) -> None:
        self.assertFalse(Unset)
        self.assertEqual(repr(Unset), "Unset")

    def testUnion(self) -> None:
        self.assertIsInstance(Unset, str | Unset)
        self.assertIsInstance("name", str | Unset)
        self.assertNotIsInstance(3, str | Unset)

    def testFinal(self) -> None:
        with self.assertRaises(TypeError):
            type("Child", (UnsetType,), {})


class CoalesceTest(TestCase):

    def testReplacesUnset(self) -> None:
        self.assertEqual(coalesce(Unset, "fallback"), "fallback")

    def testKeepsFalsyValues(self) -> None:
        for value in (None, 0, "", []):
            self.assertIs(coalesce(value, "fallback"), value)


class MirrorTest(TestCase):

    def testReturnsCopies(self) -> None:
        class Holder:
            items = mirror("items")

            def __init__(self):
                self._items = ["a", "b"]

        holder = Holder()
        items = holder.items
        items.append("c")
        # the private state is untouched
        self.assertEqual(holder.items, ["a", "b"])


class DistanceTest(TestCase):
    """
    Levenshtein distance as used by command suggestions.
    """

    def testIdentical(self) -> None:
        self.assertEqual(distance("serve", "serve"), 0)

    def testSingleEdits(self) -> None:
        self.assertEqual(distance("srve", "serve"), 1)  # insertion
        self.assertEqual(distance("serrve", "serve"), 1)  # deletion
        self.assertEqual(distance("sarve", "serve"), 1)  # substitution

    def testEmpty(self) -> None:
        self.assertEqual(distance("", "abc"), 3)
        self.assertEqual(distance("abc", ""), 3)

    def testCaseFolding(self) -> None:
        self.assertEqual(distance("SERVE", "serve"), 0)
        self.assertEqual(distance("SERVE", "serve", fold=False), 5)

    def testClassicPair(self) -> None:
        self.assertEqual(distance("kitten", "sitting"), 3)


if __name__ == "__main__":
    unittest.main()
