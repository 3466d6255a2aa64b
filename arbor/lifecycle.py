"""
Arbor lifecycle pipeline (ordered hook stages around a resolved command).

Scope
- Invocation: the per-execute state (raw args, target command, args left
  after flag parsing, attached context). Engine steps read and write it;
  user hooks receive (command, invocation.args).
- Stage: one named step of the pipeline. A stage either wraps an engine step
  or the hooks of one command for one hook field; hook stages resolve their
  callbacks when they run, so cancel_run() from a pre-stage takes effect.
- assemble(command): pure function returning (main, cleanup) stage tuples for
  the target command and its ancestor chain.
- execute(invocation): run the main stages in order, then the cleanup stages
  unconditionally.

Order (main)
  persistent_initialize (root -> target), initialize,
  [install default flags], [parse flags], [help], [version],
  [collect args], [validate args],
  persistent_pre_run (root -> target), pre_run,
  [required flags], [flag groups], run, post_run, persistent_post_run (target -> root)

Order (cleanup, always)
  finalize, persistent_finalize (target -> root)

Hook ordering inside a stage
- declared field first, then registered callbacks, except post_run and
  persistent_post_run where registered callbacks come first.

Failures
- The first exception raised by a main stage aborts the remaining main stages
  and propagates after cleanup.
- A failing cleanup hook raises FinalizeError immediately (chained to the
  original exception) and abandons the rest of the cleanup chain.
"""
import logging
from collections import namedtuple

from .faults import *
from .groups import validate_flag_groups

logger = logging.getLogger(__name__)

HOOK_FIELDS = (
    "persistent_initialize",
    "initialize",
    "persistent_pre_run",
    "pre_run",
    "run",
    "post_run",
    "persistent_post_run",
    "finalize",
    "persistent_finalize",
)

# Fields whose registered callbacks run before the declared hook.
_REGISTERED_FIRST = frozenset(("post_run", "persistent_post_run"))


class Invocation:
    """
    Transient execution state for one Command.execute() call.
    """

    def __init__(self, command, raw, /, *, context=None):
        self.command = command
        self.raw = list(raw)
        self.args = []
        self.context = context

    def __repr__(self):
        return f"Invocation({self.command.command_path!r}, raw={self.raw!r}, args={self.args!r})"


Stage = namedtuple("Stage", ("name", "owner", "step"))
Stage.__doc__ = """
A pipeline step.

- name: stage label (hook field name or engine step name) used in logs.
- owner: the Command whose hooks this stage runs (None for engine steps).
- step: engine callable step(invocation), or None for hook stages.
"""


def hooks(owner, field, /):
    """
    Return the callbacks of owner for field in execution order.
    """
    declared = getattr(owner, field)
    registered = owner._registered_hooks(field)
    if declared is None:
        return list(registered)
    if field in _REGISTERED_FIRST:
        return [*registered, declared]
    return [declared, *registered]


def _run_stage(stage, invocation):
    if stage.step is not None:
        logger.debug("stage %s for %r", stage.name, invocation.command.command_path)
        stage.step(invocation)
        return
    for callback in hooks(stage.owner, stage.name):
        logger.debug("hook %s of %r", stage.name, stage.owner.command_path)
        callback(invocation.command, invocation.args)


# ── Engine steps ───────────────────────────────────────────────────────────
def install_default_flags(invocation):
    invocation.command.init_default_help_flag()
    invocation.command.init_default_version_flag()


def parse_flags(invocation):
    command = invocation.command
    try:
        command.parse_flags(invocation.raw)
    except FlagError as error:
        raise command.flag_error_func(command, error) from None


def check_help(invocation):
    flag = invocation.command.all_flags().lookup("help")
    if flag is not None and flag.toggle and flag.value:
        raise HelpRequested()


def check_version(invocation):
    command = invocation.command
    if not command.version:
        return
    flag = command.all_flags().lookup("version")
    if flag is not None and flag.toggle and flag.value:
        command.print_version()
        raise VersionRequested()


def collect_args(invocation):
    command = invocation.command
    if command.disable_flag_parsing:
        invocation.args = list(invocation.raw)
    else:
        invocation.args = list(command.all_flags().args)


def validate_args(invocation):
    command = invocation.command
    if not command.runnable:
        raise HelpRequested()
    command.validate_args(invocation.args)


def check_required_flags(invocation):
    command = invocation.command
    if command.disable_flag_parsing:
        return
    try:
        command.all_flags().check_required()
    except FlagError as error:
        raise command.flag_error_func(command, error) from None


def check_flag_groups(invocation):
    command = invocation.command
    if command.disable_flag_parsing:
        return
    try:
        validate_flag_groups(command.flag_groups(), command.all_flags())
    except FlagGroupError as error:
        raise command.flag_error_func(command, error) from None


def assemble(command, /):
    """
    Build the (main, cleanup) stage tuples for executing command.
    """
    path = command.path
    main = [
        *(Stage("persistent_initialize", owner, None) for owner in path),
        Stage("initialize", command, None),
        Stage("install-default-flags", None, install_default_flags),
        Stage("parse-flags", None, parse_flags),
        Stage("help", None, check_help),
        Stage("version", None, check_version),
        Stage("collect-args", None, collect_args),
        Stage("validate-args", None, validate_args),
        *(Stage("persistent_pre_run", owner, None) for owner in path),
        Stage("pre_run", command, None),
        Stage("required-flags", None, check_required_flags),
        Stage("flag-groups", None, check_flag_groups),
        Stage("run", command, None),
        Stage("post_run", command, None),
        *(Stage("persistent_post_run", owner, None) for owner in reversed(path)),
    ]
    cleanup = [
        Stage("finalize", command, None),
        *(Stage("persistent_finalize", owner, None) for owner in reversed(path)),
    ]
    return tuple(main), tuple(cleanup)


def execute(invocation, /):
    """
    Run the pipeline for invocation.command.
    """
    command = invocation.command
    if command.deprecated:
        command.print(f'Command "{command.name}" is deprecated, {command.deprecated}')

    main, cleanup = assemble(command)
    try:
        for stage in main:
            _run_stage(stage, invocation)
    finally:
        for stage in cleanup:
            try:
                _run_stage(stage, invocation)
            except Exception as error:
                raise FinalizeError(f"{stage.name} hook of {stage.owner.command_path!r} failed: {error}") from error


__all__ = (
    "HOOK_FIELDS",
    "Invocation",
    "Stage",
    "hooks",
    "assemble",
    "execute",
)
