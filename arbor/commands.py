"""
Arbor commands (the command tree, flag views, resolution and execution).

Scope
- Command: one node of the command tree. It owns a local FlagSet and a
  persistent FlagSet, keeps its children in declaration order and points back
  to its parent.
- Flag views (derived, cached, rebuilt lazily after any structural change):
  • local_flags(): own flags plus own persistent flags (own flags shadow).
  • inherited_flags(): ancestors' persistent flags (nearest ancestor first)
    minus every name already present in local_flags().
  • all_flags(): local_flags() ∪ inherited_flags(); the set flags are parsed into.
  • local_non_persistent_flags(): own flags only.
- Resolution
  • find(args): skip flag tokens, match the first word against children
    (name, alias, then unique prefix when prefix matching is enabled), recurse.
  • traverse(args): parse each ancestor's flags level by level; the flags of
    the command finally returned are left unparsed.
  • suggestions_for(typed): "Did you mean this?" candidates.
- Execution
  • execute(args, context=...): resolve from the root, run the lifecycle
    pipeline (see arbor.lifecycle), print help/version/errors and return the
    executed command. Errors are raised after being printed (or turned into
    sys.exit(1) when the root runs in shell mode).

Runtime options
- prefixes, sorting, colorful and shell are keyword options resolved through
  the ancestor chain while left Unset (the root's choice is the default for
  the whole tree).

Streams
- out / err / input fall back to the parent's streams, then to the process
  streams. print() writes to the configured output or stderr.

Quick example:
    >>> from arbor import Command, Flag
    >>> root = Command("app", short="demo application")
    >>> @root.command()
    ... def serve(command, args):
    ...     \"\"\"Start the server.\"\"\"
    ...     print("serving on", command.flag("port").value)
    >>> serve.flags.add(Flag("port", shorthand="p", type=int, default=8080))
    >>> root.execute(["serve", "-p", "9000"])
"""
import builtins
import inspect
import logging
import sys

from . import lifecycle
from . import rendering
from .arguments import check_valid_args, suggestion_hint
from .completions import CompletionRegistry, init_complete_cmd, complete_help_topics
from .context import Context
from .faults import *
from .flags import *
from .groups import FlagGroup, GroupKind
from .utils import *

logger = logging.getLogger(__name__)


def _consumes(flag):
    """
    Whether "--name value" takes value for this flag (unknown flags do).
    """
    return flag is None or flag.consumes


def _takes_value(token, flags):
    """
    True for "--name" / "-n" tokens (without "=") whose flag expects the next token.
    """
    if "=" in token:
        return False
    if token.startswith("--"):
        return _consumes(flags.lookup(token[2:]))
    if token.startswith("-") and len(token) == 2:
        return _consumes(flags.shorthand_lookup(token[1:]))
    return False


def strip_flags(args, command, /):
    """
    Return the words of args that are neither flags nor flag values.
    """
    if not args:
        return []
    flags = command.all_flags()
    words = []
    rest = list(args)
    while rest:
        token = rest.pop(0)
        if token == "--":
            break
        if _takes_value(token, flags):
            if len(rest) <= 1:
                break
            del rest[0]
            continue
        if token and not token.startswith("-"):
            words.append(token)
    return words


def args_minus_first(args, word, command, /):
    """
    Remove the first occurrence of word from args, never removing a flag value.
    """
    if not args:
        return list(args)
    flags = command.all_flags()
    position = 0
    while position < len(args):
        token = args[position]
        if token == "--":
            break
        if _takes_value(token, flags):
            position += 2
            continue
        if not token.startswith("-") and token == word:
            return [*args[:position], *args[position + 1:]]
        position += 1
    return list(args)


def _registrar(field):
    @rename(f"on_{field}")
    def register(self, *callbacks):
        for callback in callbacks:
            if not builtins.callable(callback):
                raise TypeError(f"on_{field}() arguments must be callables")
        self._hooks[field].extend(callbacks)
        return self

    register.__doc__ = f"Register callbacks for the {field.replace('_', '-')} stage (see arbor.lifecycle)."
    return register


def _default_flag_error(command, error, /):
    return error


def _run_help(command, args, /):
    """
    Run hook of the default "help [command]" subcommand.
    """
    root = command.root
    try:
        target, _ = root.find(args)
    except CommandException:
        target = None

    if target is None:
        command.print("Unknown help topic [%s]" % " ".join(f"`{arg}`" for arg in args))
        root.print_usage()
        return
    target.init_default_help_flag()
    target.print_help()


class Command:
    """
    A node of the command tree.

    Parameters (all keyword-only except use)
    - use: str
      One-line usage; its first word is the command name.
    - aliases, suggest_for: Iterable[str]
      Alternative names, and words that should suggest this command.
    - short, long, example: str
      Help texts.
    - version: str
      Enables the --version flag and the version short-circuit.
    - deprecated: str
      Reason printed when the command runs; deprecated commands are hidden.
    - hidden: bool
      Keep the command out of help and completion.
    - annotations: Mapping[str, str]
    - run and the other hook fields: Callable[[Command, list[str]], None] | None
    - args: positional validator (see arbor.arguments) or None for the
      implicit rule (a command with subcommands rejects unknown words at the root).
    - valid_args, arg_aliases: Iterable[str]
      Accepted positionals ("value\\tdescription" entries allowed) and
      accepted-but-not-completed synonyms.
    - valid_args_function: Callable[[Command, list[str], str], tuple[list[str], Directive]]
    - traverse_children, disable_flag_parsing, disable_suggestions: bool
    - suggestions_minimum_distance: int (default 2)
    - silence_errors, silence_usage, allow_unknown_flags: bool
    - parent: Command | Unset
      Attach the new command under parent right away.
    - prefixes, sorting, colorful, shell: bool | Unset
      Runtime options inherited from the parent while Unset.

    Notes
    - Hooks receive (command, args) where command is the executed command and
      args are its positionals once flags are parsed ([] before that). A hook
      signals failure by raising.
    """

    aliases = mirror("aliases")
    suggest_for = mirror("suggest_for")
    annotations = mirror("annotations")
    valid_args = mirror("valid_args")
    arg_aliases = mirror("arg_aliases")

    def __init__(
            self,
            use,
            /,
            *,
            # ── Identity ───────────────────────────────────────────────────
            aliases=(),
            suggest_for=(),
            # ── Help ───────────────────────────────────────────────────────
            short="",
            long="",
            example="",
            version="",
            deprecated="",
            hidden=False,
            annotations=None,
            # ── Behavior ───────────────────────────────────────────────────
            run=None,
            args=None,
            valid_args=(),
            valid_args_function=None,
            arg_aliases=(),
            traverse_children=False,
            disable_flag_parsing=False,
            disable_suggestions=False,
            suggestions_minimum_distance=2,
            silence_errors=False,
            silence_usage=False,
            allow_unknown_flags=False,
            parent=Unset,
            # ── Hooks ──────────────────────────────────────────────────────
            persistent_initialize=None,
            initialize=None,
            persistent_pre_run=None,
            pre_run=None,
            post_run=None,
            persistent_post_run=None,
            finalize=None,
            persistent_finalize=None,
            # ── Runtime options (inherited while Unset) ────────────────────
            prefixes=Unset,
            sorting=Unset,
            colorful=Unset,
            shell=Unset
    ):
        if not isinstance(use, str) or not use.split():
            raise ValueError(f"command use line must start with a non-empty name, got {use!r}")
        if not isinstance(parent, Command | Unset):
            raise TypeError("command 'parent' must be a command")
        if args is not None and not builtins.callable(args):
            raise TypeError("command 'args' must be a positional validator")
        if valid_args and valid_args_function is not None:
            raise ValueError("command cannot declare both 'valid_args' and 'valid_args_function'")

        self.use = use
        self._aliases = list(aliases)
        self._suggest_for = list(suggest_for)
        self.short = short
        self.long = long
        self.example = example
        self.version = version
        self.deprecated = deprecated
        self.hidden = bool(hidden)
        self._annotations = dict(annotations or {})

        self.run = run
        self.args = args
        self._valid_args = list(valid_args)
        self.valid_args_function = valid_args_function
        self._arg_aliases = list(arg_aliases)
        self.traverse_children = bool(traverse_children)
        self.disable_flag_parsing = bool(disable_flag_parsing)
        self.disable_suggestions = bool(disable_suggestions)
        self.suggestions_minimum_distance = suggestions_minimum_distance
        self.silence_errors = bool(silence_errors)
        self.silence_usage = bool(silence_usage)
        self.allow_unknown_flags = bool(allow_unknown_flags)

        self.persistent_initialize = persistent_initialize
        self.initialize = initialize
        self.persistent_pre_run = persistent_pre_run
        self.pre_run = pre_run
        self.post_run = post_run
        self.persistent_post_run = persistent_post_run
        self.finalize = finalize
        self.persistent_finalize = persistent_finalize
        self._hooks = {field: [] for field in lifecycle.HOOK_FIELDS}

        self._prefixes = prefixes
        self._sorting = sorting
        self._colorful = colorful
        self._shell = shell

        # Tree links and per-tree collaborators
        self._parent = None
        self._children = []
        self._help_command = None
        self._registry = CompletionRegistry()
        self._groups = []

        # Owned flag sets; any change marks the derived views of the subtree stale
        self._normalization = Unset
        self._flags = FlagSet(self.name, watcher=self._invalidate)
        self._persistent_flags = FlagSet(self.name, watcher=self._invalidate)
        self._local = FlagSet(self.name)
        self._inherited = FlagSet(self.name)
        self._local_non_persistent = FlagSet(self.name)
        self._all = FlagSet(self.name)
        self._dirty = True

        # Execution state
        self._args = Unset
        self._out = Unset
        self._err = Unset
        self._in = Unset
        self._flag_error_func = Unset
        self._context = None
        self._called = False
        self._called_as = ""

        if parent:
            parent.add_command(self)

    def __repr__(self):
        return f"Command({self.command_path!r})"

    # ── Identity ───────────────────────────────────────────────────────────
    @property
    def name(self):
        return self.use.split()[0]

    def has_alias(self, name, /):
        return name in self._aliases

    @property
    def name_and_aliases(self):
        return ", ".join([self.name, *self._aliases])

    @property
    def called_as(self):
        """
        The name or alias the command was invoked by ("" when not invoked).
        """
        return self._called_as if self._called else ""

    def _prefix_match(self, prefix):
        if self.name.startswith(prefix):
            return self.name
        for alias in self._aliases:
            if alias.startswith(prefix):
                return alias
        return None

    # ── Runtime options ────────────────────────────────────────────────────
    def _option(self, name, default):
        node = self
        while node is not None:
            if (value := getattr(node, "_" + name)) is not Unset:
                return bool(value)
            node = node._parent
        return default

    @property
    def prefixes(self):
        return self._option("prefixes", False)

    @property
    def sorting(self):
        return self._option("sorting", True)

    @property
    def colorful(self):
        return self._option("colorful", False)

    @property
    def shell(self):
        return self._option("shell", False)

    # ── Tree ───────────────────────────────────────────────────────────────
    @property
    def parent(self):
        return self._parent

    @property
    def root(self):
        """
        Return the topmost command of the tree this command belongs to.
        """
        node = self
        while node._parent is not None:
            node = node._parent
        return node

    @property
    def path(self):
        """
        Return the ancestry from the root to this command as a tuple.
        """
        path = [node := self]
        while node._parent is not None:
            path.append(node := node._parent)
        return tuple(reversed(path))

    @property
    def command_path(self):
        return " ".join(node.name for node in self.path)

    @property
    def use_line(self):
        line = self.use if self._parent is None else f"{self._parent.command_path} {self.use}"
        if self.has_available_flags and "[flags]" not in line:
            line += " [flags]"
        return line

    @property
    def commands(self):
        """
        Children, sorted by name unless sorting is disabled.
        """
        if self.sorting:
            return sorted(self._children, key=lambda child: child.name)
        return list(self._children)

    def visit_parents(self, function, /):
        node = self._parent
        while node is not None:
            function(node)
            node = node._parent

    def _subtree(self):
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(node._children)

    def add_command(self, *children):
        """
        Attach children (in order) under this command.
        """
        for child in children:
            if not isinstance(child, Command):
                raise TypeError("add_command() arguments must be commands")
            if child in self.path:
                raise ValueError(f"command {child.name!r} can't be a child of itself or of its descendants")
            if child._parent is not None:
                child._parent.remove_command(child)

            self._children.append(child)
            child._parent = self
            if self._normalization_function() is not Unset:
                child.set_global_normalization(self._normalization_function())

            registry = self._registry
            for node in child._subtree():
                if node._registry is not registry:
                    registry.merge(node._registry)
                    node._registry = registry
            child._invalidate()
            logger.debug("attached %r", child)
        return self

    def remove_command(self, *children):
        for child in children:
            if child in self._children:
                self._children.remove(child)
                child._parent = None
                child._invalidate()
        return self

    @property
    def has_subcommands(self):
        return len(self._children) > 0

    @property
    def has_available_subcommands(self):
        return any(child.is_available_command for child in self._children)

    @property
    def runnable(self):
        return self.run is not None or bool(self._hooks["run"])

    @property
    def is_available_command(self):
        if self.deprecated or self.hidden:
            return False
        if self._parent is not None and self._parent._help_command is self:
            return False
        return self.runnable or self.has_available_subcommands

    @property
    def is_additional_help_topic_command(self):
        if self.runnable or self.deprecated or self.hidden:
            return False
        return all(child.is_additional_help_topic_command for child in self._children)

    # ── Flags ──────────────────────────────────────────────────────────────
    @property
    def flags(self):
        """
        Flags declared on this command only (not inherited by children).
        """
        return self._flags

    @property
    def persistent_flags(self):
        """
        Flags declared on this command and inherited by every descendant.
        """
        return self._persistent_flags

    def _invalidate(self):
        for node in self._subtree():
            node._dirty = True

    def _normalization_function(self):
        node = self
        while node is not None:
            if node._normalization is not Unset:
                return node._normalization
            node = node._parent
        return Unset

    def set_global_normalization(self, function, /):
        """
        Apply a flag-name folding function to this command and its descendants.
        """
        for node in self._subtree():
            node._normalization = function
            node._flags.normalize = function
            node._persistent_flags.normalize = function
        self._invalidate()
        return self

    def _refresh(self):
        if not self._dirty:
            return
        normalize = self._normalization_function()

        local = FlagSet(self.name, normalize=normalize)
        local.add_flag_set(self._flags).add_flag_set(self._persistent_flags)

        inherited = FlagSet(self.name, normalize=normalize)
        for ancestor in reversed(self.path[:-1]):
            for flag in ancestor._persistent_flags:
                if local.lookup(flag.name) is None:
                    inherited.add_flag_set([flag])

        local_non_persistent = FlagSet(self.name, normalize=normalize)
        local_non_persistent.add_flag_set(self._flags)

        # The merged set is rebuilt in place so parse results survive.
        self._all.clear()
        self._all.normalize = normalize
        self._all.add_flag_set(local).add_flag_set(inherited)

        self._local, self._inherited, self._local_non_persistent = local, inherited, local_non_persistent
        self._dirty = False

    def local_flags(self):
        self._refresh()
        return self._local

    def inherited_flags(self):
        self._refresh()
        return self._inherited

    def all_flags(self):
        self._refresh()
        return self._all

    def local_non_persistent_flags(self):
        self._refresh()
        return self._local_non_persistent

    def flag(self, name, /):
        """
        Look a flag up by long name in the merged flag view (None when missing).
        """
        return self.all_flags().lookup(name)

    @property
    def has_available_flags(self):
        return self.all_flags().has_available_flags()

    @property
    def args_len_at_dash(self):
        return self.all_flags().args_len_at_dash

    def parse_flags(self, tokens, /):
        """
        Parse tokens against all_flags() (no-op when flag parsing is disabled).

        Required flags are not checked here; the lifecycle does it once the
        help and version short-circuits had their chance. Deprecation notices
        are printed only when the parse succeeds.
        """
        if self.disable_flag_parsing:
            return
        flags = self.all_flags()
        flags.interspersed = self._flags.interspersed
        flags.parse(tokens, allow_unknown=self.allow_unknown_flags, allow_missing_required=True)
        for notice in flags.notices:
            self.print(notice)

    def _find_flag(self, flags, name):
        if (flag := flags.lookup(name)) is None:
            raise ValueError(f"no such flag -{name}")
        return flag

    def mark_flag_required(self, name, /):
        self._find_flag(self.local_flags(), name).required = True
        return self

    def mark_persistent_flag_required(self, name, /):
        self._find_flag(self._persistent_flags, name).required = True
        return self

    def mark_flag_filename(self, name, /, *extensions):
        self._find_flag(self.local_flags(), name).annotate(FILENAME_EXTENSIONS_ANNOTATION, extensions)
        return self

    def mark_flag_dirname(self, name, /, *directories):
        self._find_flag(self.local_flags(), name).annotate(SUBDIRS_IN_DIR_ANNOTATION, directories)
        return self

    def _mark_group(self, kind, names):
        flags = self.all_flags()
        for name in names:
            if flags.lookup(name) is None:
                raise ValueError(f"failed to find flag {name!r} and mark it as being part of a {kind.value} flag group")
        self._groups.append(FlagGroup(kind, names))
        return self

    def mark_flags_required_together(self, *names):
        return self._mark_group(GroupKind.REQUIRED_TOGETHER, names)

    def mark_flags_mutually_exclusive(self, *names):
        return self._mark_group(GroupKind.MUTUALLY_EXCLUSIVE, names)

    def flag_groups(self):
        """
        Groups declared on the ancestors (root first) and on this command.
        """
        return [group for node in self.path for group in node._groups]

    def init_default_help_flag(self):
        if self.all_flags().lookup("help") is not None:
            return
        self._flags.add(Flag(
            "help",
            shorthand="h" if self.all_flags().shorthand_lookup("h") is None else Unset,
            type=bool,
            usage=f"help for {self.name}",
            annotations={FRAMEWORK_ANNOTATION: ["true"]},
        ))

    def init_default_version_flag(self):
        if not self.version or self.all_flags().lookup("version") is not None:
            return
        self._flags.add(Flag(
            "version",
            shorthand="v" if self.all_flags().shorthand_lookup("v") is None else Unset,
            type=bool,
            usage=f"version for {self.name}",
            annotations={FRAMEWORK_ANNOTATION: ["true"]},
        ))

    # ── Completion registry ────────────────────────────────────────────────
    def register_flag_completion(self, name, function, /):
        """
        Register function(command, args, to_complete) for completing the value of flag name.
        """
        if (flag := self.flag(name)) is None:
            raise ValueError(f"register_flag_completion(): flag {name!r} does not exist")
        self._registry.register(flag, function)
        return self

    def flag_completion(self, name, /):
        if (flag := self.flag(name)) is None:
            return None
        return self._registry.lookup(flag)

    # ── Hooks ──────────────────────────────────────────────────────────────
    on_persistent_initialize = _registrar("persistent_initialize")
    on_initialize = _registrar("initialize")
    on_persistent_pre_run = _registrar("persistent_pre_run")
    on_pre_run = _registrar("pre_run")
    on_run = _registrar("run")
    on_post_run = _registrar("post_run")
    on_persistent_post_run = _registrar("persistent_post_run")
    on_finalize = _registrar("finalize")
    on_persistent_finalize = _registrar("persistent_finalize")

    def _registered_hooks(self, field, /):
        return tuple(self._hooks[field])

    def cancel_run(self):
        """
        Drop the run hooks; meant to be called from a pre-run stage.
        """
        self.run = None
        self._hooks["run"].clear()

    def command(self, use=Unset, /, **options):
        """
        Decorator building a child command around a run function.

        The function docstring provides short (first line) and long (full text)
        unless given explicitly.
        """
        return command(use, parent=self, **options)

    # ── Positional validation and suggestions ──────────────────────────────
    def validate_args(self, args, /):
        check_valid_args(self, args)
        if self.args is not None:
            self.args(self, args)

    def suggestions_for(self, typed, /):
        """
        Names of the available children close to typed, in declaration order.

        A child is suggested when its name is within suggestions_minimum_distance
        edits of typed, when its name starts with typed, or when typed equals one
        of its aliases or suggest_for words (all case-insensitive).
        """
        minimum = self.suggestions_minimum_distance if self.suggestions_minimum_distance > 0 else 2
        suggestions = []
        for child in self._children:
            if not child.is_available_command:
                continue
            if (
                distance(typed, child.name) <= minimum or
                child.name.lower().startswith(typed.lower()) or
                any(typed.lower() == word.lower() for word in (*child._aliases, *child._suggest_for))
            ):
                suggestions.append(child)
        return [child.name for child in suggestions]

    # ── Resolution ─────────────────────────────────────────────────────────
    def _find_next(self, word):
        matches = []
        for child in self._children:
            if child.name == word or child.has_alias(word):
                child._called_as = word
                return child
            if self.prefixes and (matched := child._prefix_match(word)) is not None:
                matches.append((child, matched))
        if len(matches) == 1:
            child, matched = matches[0]
            child._called_as = matched
            return child
        return None

    def _legacy_args(self, words):
        if not self.has_subcommands or not words or self._parent is not None:
            return
        typed = words[0]
        if self.prefixes and sum(child._prefix_match(typed) is not None for child in self._children) > 1:
            raise AmbiguousCommandError(
                f'ambiguous command "{typed}" for "{self.command_path}"{suggestion_hint(self, typed)}',
                command=self,
                token=typed
            )
        raise UnknownCommandError(
            f'unknown command "{typed}" for "{self.command_path}"{suggestion_hint(self, typed)}',
            command=self,
            token=typed
        )

    def find(self, args, /):
        """
        Resolve args to a command without parsing flags.

        Returns (command, args) where args still contain the flag tokens for the
        found command. Raises UnknownCommandError for an unknown word at a root
        that has children and no positional validator.
        """
        command, rest = self, list(args)
        while words := strip_flags(rest, command):
            if (child := command._find_next(words[0])) is None:
                break
            command, rest = child, args_minus_first(rest, words[0], command)

        if command.args is None:
            command._legacy_args(strip_flags(rest, command))
        return command, rest

    def traverse(self, args, /):
        """
        Resolve args parsing the flags of every ancestor on the way down.

        The flags of the returned command are not parsed.
        """
        command, args = self, list(args)
        while True:
            flags, pending = [], False
            for index, token in enumerate(args):
                if token.startswith("--") and "=" not in token:
                    pending = _consumes(command.all_flags().lookup(token[2:]))
                    flags.append(token)
                    continue
                if token.startswith("-") and "=" not in token and len(token) == 2 and _consumes(command.all_flags().shorthand_lookup(token[1:])):
                    pending = True
                    flags.append(token)
                    continue
                if pending or is_flag_argument(token):
                    pending = False
                    flags.append(token)
                    continue

                if (child := command._find_next(token)) is None:
                    return command, args
                try:
                    command.parse_flags(flags)
                except FlagError as error:
                    raise error.__replace__(command=command) from None
                command, args = child, args[index + 1:]
                break
            else:
                return command, args

    # ── I/O ────────────────────────────────────────────────────────────────
    def set_args(self, args, /):
        self._args = list(args)
        return self

    def set_out(self, stream, /):
        self._out = stream
        return self

    def set_err(self, stream, /):
        self._err = stream
        return self

    def set_in(self, stream, /):
        self._in = stream
        return self

    def _ascend(self, name):
        node = self
        while node is not None:
            if (stream := getattr(node, name)) is not Unset:
                return stream
            node = node._parent
        return Unset

    @property
    def out(self):
        return coalesce(self._ascend("_out"), sys.stdout)

    @property
    def err(self):
        return coalesce(self._ascend("_err"), sys.stderr)

    @property
    def input(self):
        return coalesce(self._ascend("_in"), sys.stdin)

    def _console(self, stream):
        return rendering.console(stream, colorful=self.colorful)

    def print(self, *objects):
        """
        Print to the configured output, falling back to stderr.
        """
        self._console(coalesce(self._ascend("_out"), sys.stderr)).print(*objects)

    def print_err(self, *objects):
        self._console(self.err).print(*objects)

    def print_help(self):
        self._console(self.out).print(rendering.help(self))

    def print_usage(self):
        self.print(rendering.usage(self))

    def print_version(self):
        self._console(self.out).print(rendering.version(self))

    def help_string(self):
        return rendering.help(self).plain

    def usage_string(self):
        return rendering.usage(self).plain

    @property
    def usage_hint(self):
        return f"Run '{self.command_path} --help' for usage."

    # ── Execution ──────────────────────────────────────────────────────────
    @property
    def context(self):
        return self._context

    def set_flag_error_func(self, function, /):
        """
        Set the transform applied to flag and flag-group errors (inherited by children).
        """
        self._flag_error_func = function
        return self

    @property
    def flag_error_func(self):
        return coalesce(self._ascend("_flag_error_func"), _default_flag_error)

    def set_help_command(self, command, /):
        self._help_command = command
        return self

    def init_default_help_cmd(self):
        """
        Attach the "help [command]" subcommand (only on commands with children).
        """
        if not self.has_subcommands:
            return
        if self._help_command is None:
            self._help_command = Command(
                "help [command]",
                short="Help about any command",
                long=(
                    "Help provides help for any command in the application.\n"
                    f"Simply type {self.name} help [path to command] for full details."
                ),
                valid_args_function=complete_help_topics,
                run=_run_help,
            )
        self.remove_command(self._help_command)
        self.add_command(self._help_command)

    def _report(self, error):
        """
        Print an error as the one-line "Error: ..." banner.
        """
        if isinstance(error, CommandException):
            self.print_err(error.__replace__(colorful=self.colorful))
        else:
            self.print_err(f"Error: {error}")

    def _surface(self, error):
        if isinstance(error, CommandException):
            trigger(error, shell=self.shell)
        if self.shell:
            sys.exit(1)
        raise error

    def execute(self, args=Unset, /, *, context=Unset):
        """
        Resolve and run the command designated by args (sys.argv[1:] by default).

        Always runs from the root. Returns the executed command; a failure is
        printed (subject to silence_errors/silence_usage on the command and the
        root) and then raised, or turned into sys.exit(1) in shell mode.
        FinalizeError is never printed nor transformed.
        """
        if self._parent is not None:
            return self.root.execute(args, context=context)

        context = coalesce(context, self._context) or Context.background()
        self._context = context

        self.init_default_help_cmd()
        args = list(coalesce(args, coalesce(self._args, sys.argv[1:])))
        init_complete_cmd(self, args)

        try:
            if self.traverse_children:
                command, flags = self.traverse(args)
            else:
                command, flags = self.find(args)
        except CommandException as error:
            command = error.options.get("command", self)
            if not command.silence_errors:
                command._report(error)
                command.print_err(command.usage_hint)
            self._surface(error.__replace__(command=command))

        command._called = True
        if not command._called_as:
            command._called_as = command.name
        command._context = context

        try:
            lifecycle.execute(lifecycle.Invocation(command, flags, context=context))
        except FinalizeError:
            raise
        except HelpRequested:
            command.print_help()
        except VersionRequested:
            pass
        except Exception as error:
            if not command.silence_errors and not self.silence_errors:
                self._report(error)
            if not command.silence_usage and not self.silence_usage:
                self.print(rendering.usage(command))
            elif not command.silence_errors and not self.silence_errors:
                command.print_err(command.usage_hint)
            self._surface(error)
        return command


def command(use=Unset, /, **options):
    """
    Decorator factory wrapping a function as the run hook of a new command.

    Forms
    - @command                         name from the function (underscores -> dashes)
    - @command("deploy ENV", ...)      explicit use line and options
    """
    if builtins.callable(use):
        return command(**options)(use)

    def wrapper(function, /):
        if not builtins.callable(function):
            raise TypeError("@command() must be applied to a callable")
        doc = inspect.getdoc(function) or ""
        options.setdefault("short", doc.split("\n", 1)[0])
        options.setdefault("long", doc)
        return Command(coalesce(use, function.__name__.replace("_", "-")), run=function, **options)

    return rename(wrapper, "command")


__all__ = (
    "Command",
    "command",
    "strip_flags",
    "args_minus_first",
)
