"""
Tests for the execution context.

This module verifies:
- Values flow from parents to children and never upwards.
- Cancellation of derived contexts does not leak to the parent.
- Command.execute attaches the context to the executed command.
"""
import io
import unittest
from unittest import TestCase

from arbor import Command, Context


class ContextTest(TestCase):

    def testValuesAreInherited(self) -> None:
        parent = Context.background().with_value(user="ada")
        child = parent.with_value(role="admin")
        self.assertEqual(child.value("user"), "ada")
        self.assertEqual(child.value("role"), "admin")
        self.assertIsNone(parent.value("role"))
        self.assertEqual(parent.value("role", "guest"), "guest")

    def testNearestValueWins(self) -> None:
        context = Context.background().with_value(level=1).with_value(level=2)
        self.assertEqual(context.value("level"), 2)
        self.assertEqual(context.parent.value("level"), 1)

    def testCancelIsScoped(self) -> None:
        root = Context.background()
        child = root.with_cancel()
        grandchild = child.with_value(user="ada")
        grandchild.cancel()
        self.assertTrue(child.cancelled)
        self.assertTrue(grandchild.cancelled)
        self.assertFalse(root.cancelled)

    def testParentCancellationReachesChildren(self) -> None:
        root = Context.background()
        child = root.with_cancel()
        root.cancel()
        self.assertTrue(child.cancelled)

    def testInvalidParent(self) -> None:
        with self.assertRaises(TypeError):
            Context("not a context")


class ExecuteContextTest(TestCase):

    def testContextIsAttachedToExecutedCommand(self) -> None:
        seen = []
        root = Command("app")
        Command("serve", parent=root, run=lambda command, args: seen.append(command.context.value("user")))
        root.set_out(io.StringIO()).set_err(io.StringIO())

        executed = root.execute(["serve"], context=Context.background().with_value(user="ada"))

        self.assertEqual(seen, ["ada"])
        self.assertEqual(executed.context.value("user"), "ada")

    def testBackgroundContextByDefault(self) -> None:
        root = Command("app", run=lambda command, args: None)
        root.set_out(io.StringIO()).set_err(io.StringIO())
        executed = root.execute([])
        self.assertIsInstance(executed.context, Context)
        self.assertFalse(executed.context.cancelled)


if __name__ == "__main__":
    unittest.main()
