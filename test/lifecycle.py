"""
Lifecycle pipeline tests (stage order, hook registration, cleanup guarantees).

Scope
- Validate the full stage order across a two-level tree.
- Validate declared vs registered hook ordering per stage.
- Validate that cleanup stages always run and that their failures are fatal.
- Validate cancel_run() from a pre-run stage.

Conventions
- Test method names follow CamelCase per project convention.
- Hooks append labels to a shared journal; assertions compare journals.
"""

from __future__ import annotations

import io
import unittest
from unittest import TestCase

from arbor import Command, FinalizeError
from arbor.lifecycle import HOOK_FIELDS, assemble, hooks


def recorder(journal, label):
    def hook(command, args):
        journal.append(label)
    return hook


def failing(message):
    def hook(command, args):
        raise ValueError(message)
    return hook


def tree(journal):
    """
    root -> child -> leaf, every hook field declared on every level.
    """
    root = Command("root")
    child = Command("child", parent=root)
    leaf = Command("leaf", parent=child)
    for command in (root, child, leaf):
        for field in HOOK_FIELDS:
            setattr(command, field, recorder(journal, f"{command.name}:{field}"))
    root.set_out(io.StringIO()).set_err(io.StringIO())
    return root, child, leaf


class TestStageOrder(TestCase):

    def testFullOrder(self):
        journal = []
        root, _, leaf = tree(journal)
        self.assertIs(root.execute(["child", "leaf"]), leaf)
        self.assertEqual(journal, [
            "root:persistent_initialize",
            "child:persistent_initialize",
            "leaf:persistent_initialize",
            "leaf:initialize",
            "root:persistent_pre_run",
            "child:persistent_pre_run",
            "leaf:persistent_pre_run",
            "leaf:pre_run",
            "leaf:run",
            "leaf:post_run",
            "leaf:persistent_post_run",
            "child:persistent_post_run",
            "root:persistent_post_run",
            "leaf:finalize",
            "leaf:persistent_finalize",
            "child:persistent_finalize",
            "root:persistent_finalize",
        ])

    def testHooksReceivePositionals(self):
        seen = []
        root = Command("root", run=lambda command, args: seen.append(("run", list(args))))
        root.persistent_initialize = lambda command, args: seen.append(("init", list(args)))
        root.set_out(io.StringIO()).set_err(io.StringIO())
        root.execute(["a", "b"])
        # initializers run before flags are parsed
        self.assertEqual(seen, [("init", []), ("run", ["a", "b"])])

    def testAssembleIsPure(self):
        journal = []
        _, _, leaf = tree(journal)
        main, cleanup = assemble(leaf)
        self.assertEqual(journal, [])
        self.assertEqual([stage.name for stage in cleanup], [
            "finalize",
            "persistent_finalize",
            "persistent_finalize",
            "persistent_finalize",
        ])
        self.assertEqual([stage.owner.name for stage in cleanup], ["leaf", "leaf", "child", "root"])
        self.assertIn("flag-groups", [stage.name for stage in main])


class TestRegisteredHooks(TestCase):

    def testDeclaredFirstForPreStages(self):
        journal = []
        root = Command("root", run=recorder(journal, "run"), pre_run=recorder(journal, "declared"))
        root.on_pre_run(recorder(journal, "registered-1"), recorder(journal, "registered-2"))
        root.set_out(io.StringIO()).set_err(io.StringIO())
        root.execute([])
        self.assertEqual(journal, ["declared", "registered-1", "registered-2", "run"])

    def testRegisteredFirstForPostStages(self):
        journal = []
        root = Command("root", run=recorder(journal, "run"), post_run=recorder(journal, "declared"))
        root.on_post_run(recorder(journal, "registered"))
        root.set_out(io.StringIO()).set_err(io.StringIO())
        root.execute([])
        self.assertEqual(journal, ["run", "registered", "declared"])

    def testRegisteredRunMakesCommandRunnable(self):
        journal = []
        root = Command("root")
        self.assertFalse(root.runnable)
        root.on_run(recorder(journal, "run"))
        self.assertTrue(root.runnable)
        root.set_out(io.StringIO()).set_err(io.StringIO())
        root.execute([])
        self.assertEqual(journal, ["run"])

    def testHooksHelper(self):
        journal = []
        declared = recorder(journal, "declared")
        registered = recorder(journal, "registered")
        root = Command("root", persistent_post_run=declared)
        root.on_persistent_post_run(registered)
        self.assertEqual(hooks(root, "persistent_post_run"), [registered, declared])
        self.assertEqual(hooks(root, "finalize"), [])

    def testRegistrationRejectsNonCallables(self):
        with self.assertRaises(TypeError):
            Command("root").on_run("not callable")


class TestFailures(TestCase):

    def testMainFailureStillRunsCleanup(self):
        journal = []
        root = Command(
            "root",
            run=failing("boom"),
            post_run=recorder(journal, "post_run"),
            finalize=recorder(journal, "finalize"),
            persistent_finalize=recorder(journal, "persistent_finalize"),
        )
        root.set_out(io.StringIO()).set_err(io.StringIO())
        with self.assertRaises(ValueError):
            root.execute([])
        self.assertEqual(journal, ["finalize", "persistent_finalize"])

    def testFinalizeFailureIsFatal(self):
        journal = []
        root = Command("root", run=recorder(journal, "run"))
        child = Command(
            "child",
            parent=root,
            run=recorder(journal, "run"),
            finalize=failing("cleanup broke"),
            persistent_finalize=recorder(journal, "child:persistent_finalize"),
        )
        root.persistent_finalize = recorder(journal, "root:persistent_finalize")
        root.set_out(io.StringIO()).set_err(io.StringIO())

        with self.assertRaises(FinalizeError) as context:
            root.execute(["child"])

        # the rest of the cleanup chain is abandoned and nothing is printed
        self.assertEqual(journal, ["run"])
        self.assertIsInstance(context.exception.__cause__, ValueError)
        self.assertIn("finalize hook of 'root child' failed: cleanup broke", str(context.exception))
        self.assertEqual(root.err.getvalue(), "")
        self.assertIs(child.parent, root)

    def testFinalizeFailureWinsOverMainFailure(self):
        root = Command("root", run=failing("main"), finalize=failing("cleanup"))
        root.set_out(io.StringIO()).set_err(io.StringIO())
        with self.assertRaises(FinalizeError):
            root.execute([])

    def testCancelRunFromPreRun(self):
        journal = []
        root = Command(
            "root",
            pre_run=lambda command, args: command.cancel_run(),
            run=recorder(journal, "run"),
            post_run=recorder(journal, "post_run"),
        )
        root.on_run(recorder(journal, "registered run"))
        root.set_out(io.StringIO()).set_err(io.StringIO())
        root.execute([])
        self.assertEqual(journal, ["post_run"])
        self.assertFalse(root.runnable)


class TestDeprecatedCommand(TestCase):

    def testNoticeIsPrinted(self):
        journal = []
        root = Command("root")
        Command("old", parent=root, deprecated="use new instead", run=recorder(journal, "run"))
        out = io.StringIO()
        root.set_out(out).set_err(io.StringIO())
        root.execute(["old"])
        self.assertIn('Command "old" is deprecated, use new instead', out.getvalue())
        self.assertEqual(journal, ["run"])


if __name__ == "__main__":
    unittest.main()
