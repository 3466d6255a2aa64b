r"""
Arbor positional-argument validators.

Overview
- A validator is any callable validator(command, args) that raises an
  ArgumentError (see arbor.faults) when the positionals are not acceptable and
  returns None otherwise. Commands take one through their `args` keyword.

- Ready-made validators
  • no_args: reject any positional ("unknown command ...").
  • arbitrary_args: accept anything.
  • only_valid_args: every positional must be listed in valid_args or arg_aliases.
  • minimum_n_args(n), maximum_n_args(n), exact_args(n), range_args(low, high)
  • match_all(*validators): run several validators in order.

- Implicit checks
  • check_valid_args(command, args): applied before the command's own validator
    whenever the command declares valid_args.
  • suggestion_hint(command, typed): the "Did you mean this?" block appended to
    unknown-command and invalid-argument messages.

Quick example:
    >>> from arbor import Command
    >>> from arbor.arguments import match_all, exact_args, only_valid_args
    >>> Command("paint COLOR", valid_args=["red", "blue"], args=match_all(exact_args(1), only_valid_args))
"""
from .faults import *
from .utils import rename


def suggestion_hint(command, typed, /):
    """
    Return the suggestion block for a mistyped token ("" when there is none).

    Suggestions are disabled per command through disable_suggestions.
    """
    if command.disable_suggestions:
        return ""
    if not (suggestions := command.suggestions_for(typed)):
        return ""
    return "\n\nDid you mean this?\n" + "".join(f"\t{name}\n" for name in suggestions)


def _accepted(command):
    """
    valid_args entries without their tab-separated descriptions, plus arg aliases.
    """
    return [value.split("\t", 1)[0] for value in command.valid_args] + list(command.arg_aliases)


def check_valid_args(command, args, /):
    """
    Reject positionals that are not declared in valid_args (when any are declared).
    """
    if not command.valid_args:
        return
    accepted = _accepted(command)
    for arg in args:
        if arg not in accepted:
            raise InvalidArgumentError(
                f'invalid argument "{arg}" for "{command.command_path}"{suggestion_hint(command, args[0])}',
                argument=arg
            )


def no_args(command, args, /):
    if args:
        raise InvalidArgumentError(f'unknown command "{args[0]}" for "{command.command_path}"', argument=args[0])


def arbitrary_args(command, args, /):
    return None


def only_valid_args(command, args, /):
    check_valid_args(command, args)


def minimum_n_args(n, /):
    @rename(f"minimum_n_args({n})")
    def validator(command, args, /):
        if len(args) < n:
            raise ArgumentCountError(f"requires at least {n} arg(s), only received {len(args)}", expected=n)
    return validator


def maximum_n_args(n, /):
    @rename(f"maximum_n_args({n})")
    def validator(command, args, /):
        if len(args) > n:
            raise ArgumentCountError(f"accepts at most {n} arg(s), received {len(args)}", expected=n)
    return validator


def exact_args(n, /):
    @rename(f"exact_args({n})")
    def validator(command, args, /):
        if len(args) != n:
            raise ArgumentCountError(f"accepts {n} arg(s), received {len(args)}", expected=n)
    return validator


def range_args(low, high, /):
    if low > high:
        raise ValueError(f"range_args() lower bound {low} is greater than upper bound {high}")

    @rename(f"range_args({low}, {high})")
    def validator(command, args, /):
        if not low <= len(args) <= high:
            raise ArgumentCountError(
                f"accepts between {low} and {high} arg(s), received {len(args)}",
                expected=(low, high)
            )
    return validator


def match_all(*validators):
    """
    Combine validators; the first failure wins.
    """
    @rename("match_all")
    def validator(command, args, /):
        for each in validators:
            each(command, args)
    return validator


__all__ = (
    "suggestion_hint",
    "check_valid_args",
    "no_args",
    "arbitrary_args",
    "only_valid_args",
    "minimum_n_args",
    "maximum_n_args",
    "exact_args",
    "range_args",
    "match_all",
)
