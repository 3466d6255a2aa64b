"""
Arbor flag groups (required-together and mutually-exclusive constraints).

Scope
- FlagGroup: an ordered tuple of flag names plus a kind. Commands declare
  groups through Command.mark_flags_required_together() and
  Command.mark_flags_mutually_exclusive(); a command sees the groups declared
  on itself and on its ancestors.
- validate_flag_groups(groups, flags): evaluated once per execution, after
  parsing and before the run hooks, against the command's merged flag view.
- adjust_for_completion(groups, flags): nudges the flags so completion favours
  the members still needed by a partially satisfied group.

Rules
- A group is only considered when every member resolves in the flag view
  (a group naming another command's local flag is silently ignored there).
- Required-together: if any member changed, all must have changed.
- Mutually-exclusive: at most one member may have changed.
- Required-together groups are scanned before mutually-exclusive ones, each in
  declaration order; the first violation is the only one reported.
"""
import logging
from enum import Enum

from .faults import *

logger = logging.getLogger(__name__)


class GroupKind(Enum):
    REQUIRED_TOGETHER = "required-together"
    MUTUALLY_EXCLUSIVE = "mutually-exclusive"


class FlagGroup:
    """
    A declared constraint over flag names.
    """

    def __init__(self, kind, names, /):
        if not isinstance(kind, GroupKind):
            raise TypeError("FlagGroup kind must be a GroupKind")
        names = tuple(names)
        if len(names) < 2:
            raise ValueError(f"{kind.value} flag group needs at least two flags, got {list(names)!r}")
        if len(set(names)) != len(names):
            raise ValueError(f"{kind.value} flag group repeats a flag: {list(names)!r}")
        self.kind = kind
        self.names = names

    def status(self, flags, /):
        """
        Map member name -> changed, or None when a member is not defined in flags.
        """
        status = {}
        for name in self.names:
            if (flag := flags.lookup(name)) is None:
                return None
            status[name] = flag.changed
        return status

    def __repr__(self):
        return f"FlagGroup({self.kind.value}, [{' '.join(self.names)}])"


def _bracket(names):
    return "[" + " ".join(names) + "]"


def validate_flag_groups(groups, flags, /):
    """
    Raise the first violated constraint, if any.
    """
    groups = list(groups)

    for group in groups:
        if group.kind is not GroupKind.REQUIRED_TOGETHER or (status := group.status(flags)) is None:
            continue
        unset = [name for name, changed in status.items() if not changed]
        if unset and len(unset) != len(status):
            raise RequiredTogetherError(
                f"flags {_bracket(group.names)} must be set together, but {_bracket(unset)} were not set",
                group=group.names,
                subset=tuple(unset)
            )

    for group in groups:
        if group.kind is not GroupKind.MUTUALLY_EXCLUSIVE or (status := group.status(flags)) is None:
            continue
        set_ = [name for name, changed in status.items() if changed]
        if len(set_) > 1:
            raise MutuallyExclusiveError(
                f"exactly one of the flags {_bracket(group.names)} can be set, but {_bracket(set_)} were set",
                group=group.names,
                subset=tuple(set_)
            )


def adjust_for_completion(groups, flags, /):
    """
    Prepare flags for completion.

    - a required-together group with at least one member set marks every member
      as required, so completion offers the missing ones first;
    - a mutually-exclusive group with a member set hides the other members.
    """
    for group in groups:
        if (status := group.status(flags)) is None or not any(status.values()):
            continue
        match group.kind:
            case GroupKind.REQUIRED_TOGETHER:
                for name in group.names:
                    flags.lookup(name).required = True
            case GroupKind.MUTUALLY_EXCLUSIVE:
                for name, changed in status.items():
                    if not changed:
                        flags.lookup(name).hidden = True
        logger.debug("adjusted %r for completion", group)


__all__ = (
    "GroupKind",
    "FlagGroup",
    "validate_flag_groups",
    "adjust_for_completion",
)
