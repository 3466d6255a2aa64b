"""
Flag group tests (required-together and mutually-exclusive constraints).

Scope
- Validate the violation messages and the reported subsets.
- Validate scanning order and short-circuiting on the first violation.
- Validate groups over persistent flags and groups declared on subcommands.
- Validate the completion adjustment.

Conventions
- Test method names follow CamelCase per project convention.
"""

from __future__ import annotations

import io
import unittest
from unittest import TestCase

from arbor import Command, Flag
from arbor.faults import RequiredTogetherError, MutuallyExclusiveError, FlagGroupError
from arbor.flags import FlagSet
from arbor.groups import *


def noop(command, args):
    pass


def tree():
    """
    root (persistent: p-a, p-b, p-c; local: a, b, c) -> sub (local: sub-a, sub-b)
    """
    root = Command("root", run=noop)
    for name in ("a", "b", "c"):
        root.flags.add(Flag(name))
    for name in ("p-a", "p-b", "p-c"):
        root.persistent_flags.add(Flag(name))
    sub = Command("sub", run=noop, parent=root)
    for name in ("sub-a", "sub-b"):
        sub.flags.add(Flag(name))
    root.set_out(io.StringIO()).set_err(io.StringIO())
    return root, sub


class TestFlagGroup(TestCase):

    def testNeedsTwoDistinctNames(self):
        with self.assertRaises(ValueError):
            FlagGroup(GroupKind.REQUIRED_TOGETHER, ["a"])
        with self.assertRaises(ValueError):
            FlagGroup(GroupKind.MUTUALLY_EXCLUSIVE, ["a", "a"])

    def testStatusIgnoresGroupsWithUndefinedMembers(self):
        flags = FlagSet()
        flags.add(Flag("a"))
        self.assertIsNone(FlagGroup(GroupKind.REQUIRED_TOGETHER, ["a", "b"]).status(flags))

    def testValidateReportsFirstViolationOnly(self):
        flags = FlagSet()
        for name in ("a", "b", "c", "d"):
            flags.add(Flag(name))
        flags.parse(["--a=1", "--c=1", "--d=1"])
        groups = [
            FlagGroup(GroupKind.MUTUALLY_EXCLUSIVE, ["c", "d"]),
            FlagGroup(GroupKind.REQUIRED_TOGETHER, ["a", "b"]),
        ]
        # required-together groups are scanned first
        with self.assertRaises(RequiredTogetherError) as context:
            validate_flag_groups(groups, flags)
        self.assertEqual(context.exception.options["group"], ("a", "b"))
        self.assertEqual(context.exception.options["subset"], ("b",))


class TestFlagGroupsThroughExecute(TestCase):
    """Scenarios run through Command.execute."""

    def testNoFlagsNoError(self):
        root, _ = tree()
        root.mark_flags_required_together("a", "b", "c")
        root.execute([])

    def testRequiredTogetherViolation(self):
        root, _ = tree()
        root.mark_flags_required_together("a", "b", "c")
        with self.assertRaises(RequiredTogetherError) as context:
            root.execute(["--a=x"])
        self.assertEqual(str(context.exception), "flags [a b c] must be set together, but [b c] were not set")
        self.assertIn("Error: flags [a b c] must be set together, but [b c] were not set", root.err.getvalue())

    def testRequiredTogetherSatisfied(self):
        root, _ = tree()
        root.mark_flags_required_together("a", "b", "c")
        root.execute(["--a=x", "--b=y", "--c=z"])

    def testMutuallyExclusiveViolation(self):
        root, _ = tree()
        root.mark_flags_mutually_exclusive("a", "b", "c")
        with self.assertRaises(MutuallyExclusiveError) as context:
            root.execute(["--a=x", "--b=y", "--c=z"])
        self.assertEqual(str(context.exception), "exactly one of the flags [a b c] can be set, but [a b c] were set")

    def testMutuallyExclusiveSingleMember(self):
        root, _ = tree()
        root.mark_flags_mutually_exclusive("a", "b", "c")
        root.execute(["--b=y"])

    def testFlagInSeveralGroups(self):
        root, _ = tree()
        root.mark_flags_required_together("a", "b")
        root.mark_flags_mutually_exclusive("b", "c")
        with self.assertRaises(MutuallyExclusiveError) as context:
            root.execute(["--a=x", "--b=y", "--c=z"])
        self.assertEqual(context.exception.options["subset"], ("b", "c"))

    def testPersistentGroupsApplyToSubcommands(self):
        root, _ = tree()
        root.mark_flags_required_together("p-a", "p-b")
        with self.assertRaises(RequiredTogetherError) as context:
            root.execute(["sub", "--p-a=x"])
        self.assertEqual(str(context.exception), "flags [p-a p-b] must be set together, but [p-b] were not set")

    def testLocalGroupsDoNotApplyToSubcommands(self):
        root, sub = tree()
        # a and b are local to root: the group is ignored while running sub
        root.mark_flags_required_together("a", "b")
        self.assertIs(root.execute(["sub"]), sub)

    def testSubcommandGroupOverInheritedFlags(self):
        root, sub = tree()
        sub.mark_flags_mutually_exclusive("sub-a", "p-a")
        with self.assertRaises(MutuallyExclusiveError) as context:
            root.execute(["sub", "--sub-a=1", "--p-a=2"])
        self.assertEqual(str(context.exception), "exactly one of the flags [sub-a p-a] can be set, but [sub-a p-a] were set")

    def testUnknownMemberIsRejectedAtDeclaration(self):
        root, _ = tree()
        with self.assertRaises(ValueError):
            root.mark_flags_required_together("a", "missing")

    def testErrorsGoThroughFlagErrorFunc(self):
        root, _ = tree()
        root.mark_flags_required_together("a", "b")
        root.set_flag_error_func(lambda command, error: RuntimeError(f"wrapped: {error}"))
        with self.assertRaises(RuntimeError) as context:
            root.execute(["--a=x"])
        self.assertNotIsInstance(context.exception, FlagGroupError)
        self.assertEqual(str(context.exception), "wrapped: flags [a b] must be set together, but [b] were not set")


class TestCompletionAdjustment(TestCase):

    def setUp(self):
        self.flags = FlagSet()
        for name in ("a", "b", "c"):
            self.flags.add(Flag(name))

    def testRequiredTogetherMarksMembersRequired(self):
        self.flags.parse(["--a=1"])
        adjust_for_completion([FlagGroup(GroupKind.REQUIRED_TOGETHER, ["a", "b"])], self.flags)
        self.assertTrue(self.flags.lookup("b").required)
        self.assertFalse(self.flags.lookup("c").required)

    def testMutuallyExclusiveHidesOtherMembers(self):
        self.flags.parse(["--a=1"])
        adjust_for_completion([FlagGroup(GroupKind.MUTUALLY_EXCLUSIVE, ["a", "b", "c"])], self.flags)
        self.assertFalse(self.flags.lookup("a").hidden)
        self.assertTrue(self.flags.lookup("b").hidden)
        self.assertTrue(self.flags.lookup("c").hidden)

    def testUntouchedGroupsAreLeftAlone(self):
        self.flags.parse([])
        adjust_for_completion([FlagGroup(GroupKind.REQUIRED_TOGETHER, ["a", "b"])], self.flags)
        self.assertFalse(self.flags.lookup("a").required)


if __name__ == "__main__":
    unittest.main()
