r"""
Arbor shell completion (candidates for a partially typed command line).

Protocol
- The shell invokes the program as
      prog __complete <args...> <to-complete>
  (or __completeNoDesc to drop descriptions) and reads back one candidate per
  line followed by ":<directive>". A human readable summary of the directive
  goes to the error stream.
- Candidates may carry a description after a tab: "serve\tStart the server".

Overview
- Directive: bitmask telling the shell what to do with the candidates.
- CompletionRegistry: flag -> completion function, shared by a whole tree.
- get_completions(command, args) -> Completions: the engine. It resolves the
  command being completed, decides between flag-name, flag-value and
  positional completion and gathers candidates.
- init_complete_cmd(root, args): installs the hidden __complete command for
  the duration of the invocation that requests it.
- completion_logger(): debug channel for completion functions (the stdout of a
  completion request belongs to the shell).

Completion functions
- Signature: function(command, args, to_complete) -> (candidates, Directive)
- Used as a command's valid_args_function and through
  Command.register_flag_completion(name, function).

Quick example:
    >>> from arbor import Command, Directive
    >>> root = Command("app")
    >>> root.add_command(Command("serve", short="Start the server", run=print))
    >>> root.execute(["__complete", "se"])
    serve	Start the server
    :4
"""
import logging
import os
import threading
from collections import namedtuple
from enum import IntFlag

from rich.console import Console
from rich.logging import RichHandler

from .arguments import minimum_n_args
from .faults import *
from .flags import *
from .groups import adjust_for_completion

logger = logging.getLogger(__name__)

REQUEST_COMMAND = "__complete"
REQUEST_COMMAND_NO_DESCRIPTIONS = "__completeNoDesc"


class Directive(IntFlag):
    """
    Instructions for the completion script, combined with |.

    - ERROR: an error occurred, ignore the candidates.
    - NO_SPACE: do not add a space after the completion.
    - NO_FILE_COMP: do not fall back to file completion.
    - FILTER_FILE_EXT: candidates are file extensions to filter file names with.
    - FILTER_DIRS: complete directory names only (candidate: base directory).
    - KEEP_ORDER: keep the candidates in the given order.
    """
    DEFAULT = 0
    ERROR = 1
    NO_SPACE = 2
    NO_FILE_COMP = 4
    FILTER_FILE_EXT = 8
    FILTER_DIRS = 16
    KEEP_ORDER = 32

    def describe(self):
        """
        Return the names of the active bits ("DEFAULT" when none).
        """
        if self.value >= 64:
            return f"ERROR: unexpected directive value: {self.value}"
        names = [
            member.name for member in (
                Directive.ERROR,
                Directive.NO_SPACE,
                Directive.NO_FILE_COMP,
                Directive.FILTER_FILE_EXT,
                Directive.FILTER_DIRS,
                Directive.KEEP_ORDER,
            )
            if self.value & member.value
        ]
        return ", ".join(names) or "DEFAULT"


def no_file_completions(command, args, to_complete, /):
    """
    Completion function offering nothing, not even file names.
    """
    return [], Directive.NO_FILE_COMP


def fixed_completions(choices, directive=Directive.NO_FILE_COMP, /):
    """
    Build a completion function offering the choices that start with the typed text.
    """
    choices = list(choices)

    def complete(command, args, to_complete, /):
        return [choice for choice in choices if choice.startswith(to_complete)], directive

    return complete


def complete_help_topics(command, args, to_complete, /):
    """
    Completion function of the "help [command]" subcommand.
    """
    try:
        target, _ = command.root.find(args)
    except CommandException:
        return [], Directive.NO_FILE_COMP
    return [
        f"{child.name}\t{child.short}"
        for child in target.commands
        if (child.is_available_command or child is target._help_command) and child.name.startswith(to_complete)
    ], Directive.NO_FILE_COMP


class CompletionRegistry:
    """
    Flag completion functions of one command tree.

    Commands attached to a tree share the registry of its root; attaching a
    subtree merges the subtree's registrations in.
    """

    def __init__(self):
        self._functions = {}
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._functions)

    def register(self, flag, function, /):
        if not callable(function):
            raise TypeError("flag completion function must be callable")
        with self._lock:
            if flag in self._functions:
                raise ValueError(f"register_flag_completion(): flag {flag.name!r} already registered")
            self._functions[flag] = function

    def lookup(self, flag, /):
        with self._lock:
            return self._functions.get(flag)

    def merge(self, other, /):
        with other._lock:
            functions = dict(other._functions)
        with self._lock:
            for flag, function in functions.items():
                self._functions.setdefault(flag, function)


def completion_logger():
    """
    Return the completion debug logger, attaching its handler on first use.

    - BASH_COMP_DEBUG_FILE=<path>: append debug records to that file.
    - BASH_COMP_DEBUG=1: print debug records on stderr through rich.
    - otherwise: records are dropped.
    """
    if logger.handlers:
        return logger
    if path := os.environ.get("BASH_COMP_DEBUG_FILE"):
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        logger.setLevel(logging.DEBUG)
    elif os.environ.get("BASH_COMP_DEBUG", "").lower() in ("1", "t", "true", "yes", "on"):
        handler = RichHandler(console=Console(stderr=True), show_path=False)
        logger.setLevel(logging.DEBUG)
    else:
        handler = logging.NullHandler()
    logger.addHandler(handler)
    return logger


Completions = namedtuple("Completions", ("command", "candidates", "directive", "error"))
Completions.__doc__ = """
Outcome of a completion request.

- command: the command the candidates were computed for.
- candidates: list of "value" or "value\\tdescription" strings.
- directive: Directive for the shell.
- error: CommandException explaining a failed lookup, or None.
"""


def _find_flag(command, name):
    """
    Resolve a long name, or a one-character shorthand, against the command's flags.
    """
    if len(name) == 1:
        flag = command.local_flags().shorthand_lookup(name) or command.inherited_flags().shorthand_lookup(name)
        if flag is None:
            return None
        name = flag.name
    return command.flag(name)


def _flag_name_candidates(flag, to_complete):
    if flag.hidden or flag.deprecated:
        return []
    candidates = []
    if f"--{flag.name}".startswith(to_complete):
        candidates.append(f"--{flag.name}\t{flag.usage}")
    if flag.shorthand and f"-{flag.shorthand}".startswith(to_complete):
        candidates.append(f"-{flag.shorthand}\t{flag.usage}")
    return candidates


def _required_flag_candidates(command, to_complete):
    candidates = []
    for flags in (command.inherited_flags(), command.local_flags()):
        for flag in flags:
            if flag.required and not flag.changed:
                candidates.extend(_flag_name_candidates(flag, to_complete))
    return candidates


def _help_or_version_present(command):
    for name in ("version", "help"):
        flag = command.flag(name)
        if flag is not None and flag.annotations.get(FRAMEWORK_ANNOTATION) and flag.changed:
            return True
    return False


def _check_flag_completion(command, args, to_complete):
    """
    Detect flag-value completion.

    Returns (flag, args, to_complete, error); flag is None for flag-name and
    positional completion. For "--name value" style the flag token is removed
    from args so the incomplete value cannot break the parse.
    """
    if command.disable_flag_parsing:
        return None, args, to_complete, None

    name, trimmed, with_equals, original = "", args, False, to_complete
    if to_complete.startswith("-"):
        head, equals, tail = to_complete.partition("=")
        if not equals:
            return None, args, to_complete, None
        name = head[2:] if head.startswith("--") else head[-1:]
        to_complete, with_equals = tail, True

    if not name and args:
        previous = args[-1]
        if is_flag_argument(previous) and "=" not in previous:
            name = previous[2:] if previous.startswith("--") else previous[-1:]
            trimmed = args[:-1]

    if not name:
        return None, trimmed, to_complete, None

    if (flag := _find_flag(command, name)) is None:
        return None, args, original, FlagCompletionError(
            f"Subcommand '{command.name}' does not support flag '{name}'",
            command=command,
            flag=name
        )

    if not with_equals and not flag.consumes:
        # "--toggle <TAB>": the flag takes no value, complete a positional instead.
        return None, args, to_complete, None
    return flag, trimmed, to_complete, None


def get_completions(command, args, /):
    """
    Compute the candidates for args, the last element being the text being typed.

    command is the __complete command; the command line is resolved from its root.
    """
    root = command.root
    to_complete, trimmed = args[-1], list(args[:-1])

    try:
        if root.traverse_children:
            final, rest = root.traverse(trimmed)
        else:
            if len(root._children) == 1:
                root.remove_command(command)
            final, rest = root.find(trimmed)
    except CommandException as error:
        return Completions(command, [], Directive.DEFAULT, CompletionLookupError(
            f"unable to find a command for arguments: {trimmed}",
            command=command,
            cause=error
        ))
    final._context = command.context

    if not final.disable_flag_parsing:
        final.init_default_help_flag()
        final.init_default_version_flag()

    flag, rest, to_complete, flag_error = _check_flag_completion(final, rest, to_complete)

    # A previous "--" (or a positional with interspersing disabled) turns flag
    # completion off: an extra "--" then counts as a positional.
    flag_completion = True
    try:
        final.parse_flags([*rest, "--"])
    except FlagError:
        pass
    dashed = len(final.all_flags().args)
    try:
        final.parse_flags(rest)
    except FlagError as error:
        return Completions(final, [], Directive.DEFAULT, FlagError(
            f"Error while parsing flags from args {rest}: {error}",
            command=final
        ))
    if dashed > len(final.all_flags().args):
        flag_completion = False

    if flag_error is not None and not (isinstance(flag_error, FlagCompletionError) and not flag_completion):
        return Completions(final, [], Directive.DEFAULT, flag_error)

    if _help_or_version_present(final):
        return Completions(final, [], Directive.NO_FILE_COMP, None)

    if not final.disable_flag_parsing:
        rest = list(final.all_flags().args)

    if flag is not None and flag_completion:
        if extensions := flag.annotations.get(FILENAME_EXTENSIONS_ANNOTATION):
            return Completions(final, list(extensions), Directive.FILTER_FILE_EXT, None)
        if (directories := flag.annotations.get(SUBDIRS_IN_DIR_ANNOTATION)) is not None:
            return Completions(final, list(directories) if len(directories) == 1 else [], Directive.FILTER_DIRS, None)

    candidates = []
    directive = Directive.DEFAULT

    if not final.disable_flag_parsing:
        adjust_for_completion(final.flag_groups(), final.all_flags())

    if flag is None and to_complete.startswith("-") and "=" not in to_complete and flag_completion:
        if not (candidates := _required_flag_candidates(final, to_complete)):
            for flags in (final.inherited_flags(), final.local_flags()):
                for each in flags:
                    if not each.changed or each.multiple:
                        candidates.extend(_flag_name_candidates(each, to_complete))

        directive = Directive.NO_FILE_COMP
        if len(candidates) == 1 and candidates[0].endswith("="):
            directive = Directive.NO_SPACE
        if not final.disable_flag_parsing:
            return Completions(final, candidates, directive, None)

    elif flag is None:
        local_set = False
        if not root.traverse_children:
            local_set = any(each.changed for each in final.local_non_persistent_flags())

        if not rest and not local_set:
            others = [child for child in final._children if child.is_available_command]
            for child in final.commands:
                if child.is_available_command or (child is final._help_command and others):
                    if child.name.startswith(to_complete):
                        candidates.append(f"{child.name}\t{child.short}")
                    directive = Directive.NO_FILE_COMP

        candidates.extend(_required_flag_candidates(final, to_complete))

        if final.valid_args:
            if not rest:
                candidates.extend(value for value in final.valid_args if value.startswith(to_complete))
                directive = Directive.NO_FILE_COMP
                if not candidates:
                    candidates.extend(alias for alias in final.arg_aliases if alias.startswith(to_complete))
            return Completions(final, candidates, directive, None)

    if flag is not None and flag_completion:
        function = final.flag_completion(flag.name)
    else:
        function = final.valid_args_function
    if function is not None:
        found, directive = function(final, rest, to_complete)
        candidates.extend(found)
        directive = Directive(directive)
    return Completions(final, candidates, directive, None)


def _run_complete(command, args, /):
    """
    Run hook of the hidden __complete command: print candidates, then ":<directive>".
    """
    debug = completion_logger()
    root = command.root
    try:
        outcome = get_completions(command, args)
    except Exception as error:
        # A completion function failed; the shell still expects a directive.
        debug.exception("completion failed for %r", args)
        outcome = Completions(root, [], Directive.ERROR, None)
        root.err.write(f"[Error] {error}\n")
    if outcome.error is not None:
        debug.error("%s", outcome.error)
        outcome.command.err.write(f"[Error] {outcome.error}\n")

    descriptions = command.called_as != REQUEST_COMMAND_NO_DESCRIPTIONS
    out = outcome.command.out
    for candidate in outcome.candidates:
        if not descriptions:
            candidate = candidate.split("\t", 1)[0]
        candidate = candidate.split("\n", 1)[0].strip()
        out.write(candidate + "\n")
    out.write(f":{int(outcome.directive)}\n")
    outcome.command.err.write(f"Completion ended with directive: {outcome.directive.describe()}\n")
    debug.debug("completed %r with %d candidate(s), directive %s", args, len(outcome.candidates), outcome.directive.describe())


def init_complete_cmd(root, args, /):
    """
    Attach the hidden __complete command when args invoke it.
    """
    root.remove_command(*(child for child in root.commands if child.name == REQUEST_COMMAND))
    request = type(root)(
        f"{REQUEST_COMMAND} [command-line]",
        aliases=[REQUEST_COMMAND_NO_DESCRIPTIONS],
        hidden=True,
        disable_flag_parsing=True,
        args=minimum_n_args(1),
        short="Request shell completion choices for the specified command-line",
        long=(
            f"{REQUEST_COMMAND} is a special command that is used by the shell completion logic\n"
            "to request completion choices for the specified command-line."
        ),
        run=_run_complete,
    )
    root.add_command(request)
    try:
        found, _ = root.find(args)
    except CommandException:
        found = None
    if found is None or found.name != REQUEST_COMMAND:
        root.remove_command(request)
    return request


__all__ = (
    "REQUEST_COMMAND",
    "REQUEST_COMMAND_NO_DESCRIPTIONS",
    "Directive",
    "no_file_completions",
    "fixed_completions",
    "complete_help_topics",
    "CompletionRegistry",
    "completion_logger",
    "Completions",
    "get_completions",
    "init_complete_cmd",
)
