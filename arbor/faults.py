"""
Arbor faults (errors and control signals) and rendering.

Scope
- FaultCode: canonical, stable numeric identifiers for all user-facing issues.
  Codes are grouped by domain to keep copy consistent and make logs/searches
  predictable.
- CommandException: base type that carries a message + read-only options and
  knows how to render itself as the one-line `Error: ...` banner.
- CommandSignal: non-error control flow (help or version requested) that
  short-circuits the lifecycle pipeline without being reported as a failure.
- FinalizeError: cleanup failure; deliberately NOT a CommandException so that
  nothing in the engine transforms, prints or swallows it.
- trigger(): central entry point to surface a fault (raise, or exit in shell mode).

Integration
- The resolution engine, the flag set and the lifecycle pipeline raise these
  exceptions; Command.execute prints them once (respecting silencing) and then
  hands them to trigger() so shell-mode roots exit with status 1.
"""
import sys
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.text import Text

from .utils import Unset


class FaultCode(IntEnum):
    """
    canonical fault codes used across the engine (stable identifiers).

    grouping (by high-level domain)
    - resolution (211xx)
      • UNKNOWN_COMMAND, AMBIGUOUS_COMMAND
    - flags (212xx)
      • UNKNOWN_FLAG, MISSING_FLAG_VALUE, INVALID_FLAG_VALUE, MISSING_REQUIRED_FLAGS
    - positionals (213xx)
      • INVALID_ARGUMENT, ARGUMENT_COUNT
    - flag groups (214xx)
      • FLAGS_REQUIRED_TOGETHER, FLAGS_MUTUALLY_EXCLUSIVE
    - lifecycle (215xx)
      • HOOK_FAILURE, HELP_REQUESTED, VERSION_REQUESTED
    - completion (216xx)
      • UNSUPPORTED_FLAG, UNRESOLVED_COMMAND
    """
    # --- resolution errors (211xx) ---
    UNKNOWN_COMMAND             = 21101
    AMBIGUOUS_COMMAND           = 21102

    # --- flag errors (212xx) ---
    UNKNOWN_FLAG                = 21201
    MISSING_FLAG_VALUE          = 21202
    INVALID_FLAG_VALUE          = 21203
    MISSING_REQUIRED_FLAGS      = 21204

    # --- positional errors (213xx) ---
    INVALID_ARGUMENT            = 21301
    ARGUMENT_COUNT              = 21302

    # --- flag group errors (214xx) ---
    FLAGS_REQUIRED_TOGETHER     = 21401
    FLAGS_MUTUALLY_EXCLUSIVE    = 21402

    # --- lifecycle (215xx) ---
    HOOK_FAILURE                = 21501
    HELP_REQUESTED              = 21511
    VERSION_REQUESTED           = 21512

    # --- completion (216xx) ---
    UNSUPPORTED_FLAG            = 21601
    UNRESOLVED_COMMAND          = 21602


class CommandException(Exception):
    """
    base class of every recoverable failure surfaced by the engine.

    the message is what gets printed after `Error: `; options carry structured
    context (input token, offending flag names, suggestions...) exposed as a
    read-only mapping so reporters can render richer output.
    """
    code = FaultCode.HOOK_FAILURE

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)

    def __str__(self):
        return "" if self.message is Unset else self.message

    def __rich__(self):
        main = __import__("__main__")

        styles = defaultdict(str, {
            "error-label": "bold #FF4DA6",  # friendly pinky label
            "error-message": "",
        } | getattr(main, "__styles__", {}))

        colorful = self.options.get("colorful", False)

        def styler(style):
            return styles[style] if colorful else ""

        return Text.assemble(("Error:", styler("error-label")), " ", (str(self), styler("error-message")))

    def __trigger__(self):
        if not self.options.get("shell", False):
            raise self
        sys.exit(1)

    def __replace__(self, *unused, **overrides):
        assert not unused, "unused arguments are not allowed"
        replacement = type(self)(self.message, **{**self.options, **overrides})
        replacement.__traceback__ = self.__traceback__
        replacement.__cause__ = self.__cause__
        return replacement


class UnknownCommandError(CommandException):
    code = FaultCode.UNKNOWN_COMMAND


class AmbiguousCommandError(UnknownCommandError):
    code = FaultCode.AMBIGUOUS_COMMAND


class FlagError(CommandException):
    code = FaultCode.UNKNOWN_FLAG


class UnknownFlagError(FlagError):
    code = FaultCode.UNKNOWN_FLAG


class MissingFlagValueError(FlagError):
    code = FaultCode.MISSING_FLAG_VALUE


class InvalidFlagValueError(FlagError):
    code = FaultCode.INVALID_FLAG_VALUE


class MissingRequiredFlagsError(FlagError):
    code = FaultCode.MISSING_REQUIRED_FLAGS


class ArgumentError(CommandException):
    code = FaultCode.INVALID_ARGUMENT


class InvalidArgumentError(ArgumentError):
    code = FaultCode.INVALID_ARGUMENT


class ArgumentCountError(ArgumentError):
    code = FaultCode.ARGUMENT_COUNT


class FlagGroupError(CommandException):
    """
    a declared flag-group constraint was violated.

    options
    - group: tuple[str, ...], the full group in declaration order.
    - subset: tuple[str, ...], the missing (required-together) or the set
      (mutually-exclusive) members, in declaration order.
    """
    code = FaultCode.FLAGS_REQUIRED_TOGETHER


class RequiredTogetherError(FlagGroupError):
    code = FaultCode.FLAGS_REQUIRED_TOGETHER


class MutuallyExclusiveError(FlagGroupError):
    code = FaultCode.FLAGS_MUTUALLY_EXCLUSIVE


class FlagCompletionError(CommandException):
    code = FaultCode.UNSUPPORTED_FLAG


class CompletionLookupError(CommandException):
    code = FaultCode.UNRESOLVED_COMMAND


class CommandSignal(Exception):
    """
    control flow out of the lifecycle pipeline that is not a failure.
    """
    code = FaultCode.HELP_REQUESTED


class HelpRequested(CommandSignal):
    code = FaultCode.HELP_REQUESTED


class VersionRequested(CommandSignal):
    code = FaultCode.VERSION_REQUESTED


class FinalizeError(RuntimeError):
    """
    a finalize or persistent-finalize hook failed.

    treated as a programming error: it escapes Command.execute unchanged, it is
    never passed through the flag error transform and it is never printed by
    the engine. the original exception is chained as __cause__.
    """


def trigger(fault, /, **options):
    """
    surface a fault with the given runtime options.

    contract
    - fault must provide __trigger__ and __replace__ methods (see CommandException).
    - options are merged into the fault via __replace__(**options) before triggering.
    - shell=True exits the process with status 1; otherwise the fault is raised.
    """
    if (
        not hasattr(fault, "__trigger__") or
        not callable(fault.__trigger__) or
        not hasattr(fault, "__replace__") or
        not callable(fault.__replace__)
    ):
        raise TypeError("trigger() argument must have a __trigger__ and __replace__ methods")
    fault.__replace__(**options).__trigger__()


__all__ = (
    "FaultCode",
    "CommandException",
    "UnknownCommandError",
    "AmbiguousCommandError",
    "FlagError",
    "UnknownFlagError",
    "MissingFlagValueError",
    "InvalidFlagValueError",
    "MissingRequiredFlagsError",
    "ArgumentError",
    "InvalidArgumentError",
    "ArgumentCountError",
    "FlagGroupError",
    "RequiredTogetherError",
    "MutuallyExclusiveError",
    "FlagCompletionError",
    "CompletionLookupError",
    "CommandSignal",
    "HelpRequested",
    "VersionRequested",
    "FinalizeError",
    "trigger",
)
