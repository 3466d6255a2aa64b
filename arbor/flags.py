r"""
Arbor flag sets (named options, change tracking, annotations and parsing).

Overview
- Flag
  • One named option: long name, optional one-character shorthand, converter
    type, default value, usage string and per-flag annotations
    (str -> list[str]).
  • type=bool makes a toggle: it never consumes the following token and
    accepts "--name=false" style explicit values.
  • multiple=True makes a repeatable flag; each occurrence appends one
    converted value, the first occurrence replacing the default.
  • optional is the value used when the flag appears without "=value"; such a
    flag never consumes the following token (toggles use optional="true").
  • changed turns True on the first successful assignment and stays True.

- FlagSet
  • Ordered collection keyed by (normalized) long name, with a shorthand index.
  • lookup / shorthand_lookup / iteration in declaration order / changed().
  • normalize: a name folding function; assigning one re-keys existing flags
    so "FOO" and "foo" resolve to the same Flag when the fold is active.
  • parse(tokens): consumes flag tokens, leaves positionals in .args and
    records in .args_len_at_dash how many positionals preceded "--" (-1 when
    no "--" was seen).

Syntax accepted by parse()
- --name=value, --name value, --toggle, --toggle=false
- -n value, -nvalue, -n=value
- -abc (bundled toggles; only the last one may take a value: -abn value)
- "--" terminates flag parsing; a lone "-" is a positional.
- With interspersed=False the first positional stops flag parsing.

Errors (see arbor.faults)
- UnknownFlagError: "unknown flag: --x" / "unknown shorthand flag: 'x' in -xyz"
- MissingFlagValueError: "flag needs an argument: --x"
- InvalidFlagValueError: 'invalid argument "v" for "-n, --num" flag: ...'
- MissingRequiredFlagsError: 'required flag(s) "a", "b" not set'
- FlagError: "bad flag syntax: ---x"

Quick example:
    >>> flags = FlagSet("serve")
    >>> flags.add(Flag("port", shorthand="p", type=int, default=8080))
    >>> flags.add(Flag("verbose", shorthand="v", type=bool))
    >>> flags.parse(["-vp", "9000", "static"])
    >>> flags.lookup("port").value, flags.args
    (9000, ['static'])
"""
import builtins
import copy
import logging

from .faults import *
from .utils import *

logger = logging.getLogger(__name__)

# Annotation keys understood by the completion engine and the command layer.
FILENAME_EXTENSIONS_ANNOTATION = "arbor_annotation_bash_completion_filename_extensions"
REQUIRED_ANNOTATION = "arbor_annotation_bash_completion_one_required_flag"
SUBDIRS_IN_DIR_ANNOTATION = "arbor_annotation_bash_completion_subdirs_in_dir"
FRAMEWORK_ANNOTATION = "arbor_annotation_flag_set_by_arbor"

_TRUTHY = frozenset(("1", "t", "T", "true", "TRUE", "True"))
_FALSY = frozenset(("0", "f", "F", "false", "FALSE", "False"))


def _boolean(value, /):
    """
    strict boolean converter mirroring the usual command-line spellings.
    """
    if isinstance(value, bool):
        return value
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ValueError(f"invalid syntax for a boolean: {value!r}")


class Flag:
    """
    A single named command-line option.

    Parameters
    - name: str
      Long name (without leading dashes). Must be non-empty and must not start with "-".
    - shorthand: str | Unset (keyword-only)
      One-character alias used as "-x".
    - type: Callable[[str], object] (keyword-only, default str)
      Converter applied to every raw value. bool selects the toggle behavior.
    - default: object | Unset (keyword-only)
      Initial value; toggles default to False and repeatable flags to [].
    - usage: str (keyword-only)
      One-line description shown in help and completion descriptions.
    - multiple: bool (keyword-only)
      Repeatable, list-valued flag.
    - optional: str | Unset (keyword-only)
      Raw value assigned when the flag is given without "=value".
    - hidden: bool, deprecated: str | Unset, required: bool (keyword-only)
      Visibility and validation switches; deprecated holds the reason.
    - annotations: Mapping[str, Iterable[str]] | None (keyword-only)

    Notes
    - value holds the converted current value; changed tells whether the
      command line assigned it.
    - required mirrors the REQUIRED_ANNOTATION annotation.
    """

    name = mirror("name")
    shorthand = mirror("shorthand")
    type = mirror("type")
    default = mirror("default")
    usage = mirror("usage")
    multiple = mirror("multiple")
    optional = mirror("optional")
    annotations = mirror("annotations")

    def __init__(
            self,
            name,
            /,
            *,
            shorthand=Unset,
            type=str,
            default=Unset,
            usage="",
            multiple=False,
            optional=Unset,
            hidden=False,
            deprecated=Unset,
            required=False,
            annotations=None
    ):
        if not isinstance(name, str) or not name or name.startswith("-"):
            raise ValueError(f"flag name must be a non-empty string not starting with '-', got {name!r}")
        if not isinstance(shorthand, str | Unset) or (shorthand and len(shorthand) != 1):
            raise ValueError(f"flag {name!r} shorthand must be a single character, got {shorthand!r}")
        if shorthand == "-":
            raise ValueError(f"flag {name!r} shorthand cannot be '-'")
        if not builtins.callable(type):
            raise TypeError(f"flag {name!r} type must be callable")
        if not isinstance(deprecated, str | Unset) or deprecated == "":
            raise ValueError(f"flag {name!r} deprecation must be a non-empty reason")

        self._name = name
        self._shorthand = shorthand
        self._type = _boolean if type is bool else type
        self._toggle = type is bool
        self._multiple = bool(multiple)
        self._optional = coalesce(optional, "true" if self._toggle else Unset)
        self._usage = usage
        self._annotations = {key: list(values) for key, values in (annotations or {}).items()}

        if self._toggle:
            default = coalesce(default, False)
        elif self._multiple:
            default = list(coalesce(default, []))
        self._default = coalesce(default, None)
        self.value = copy.copy(self._default)
        self.changed = False
        self.hidden = bool(hidden)
        self.deprecated = deprecated
        if required:
            self.required = True

    @property
    def toggle(self):
        """
        True for boolean flags (no trailing value on the command line).
        """
        return self._toggle

    @property
    def consumes(self):
        """
        True when "--name value" takes the next token as the value.
        """
        return self._optional is Unset

    @property
    def required(self):
        return self._annotations.get(REQUIRED_ANNOTATION) == ["true"]

    @required.setter
    def required(self, value):
        if value:
            self._annotations[REQUIRED_ANNOTATION] = ["true"]
        else:
            self._annotations.pop(REQUIRED_ANNOTATION, None)

    @property
    def metavar(self):
        """
        Short type label used in help ("string", "int", "strings"...).
        """
        if self._toggle:
            return ""
        label = {str: "string", _boolean: "bool"}.get(self._type, getattr(self._type, "__name__", "value"))
        return label + "s" if self._multiple else label

    @property
    def display(self):
        """
        "-n, --name" or "--name", as used in error messages.
        """
        if self._shorthand:
            return f"-{self._shorthand}, --{self._name}"
        return f"--{self._name}"

    def annotate(self, key, values, /):
        """
        Set (replace) the annotation list stored under key.
        """
        self._annotations[key] = list(values)
        return self

    def set(self, raw, /):
        """
        Convert and assign one raw command-line value.

        Raises InvalidFlagValueError when the converter rejects the value.
        """
        try:
            value = self._type(raw)
        except (ValueError, TypeError) as error:
            raise InvalidFlagValueError(
                f'invalid argument "{raw}" for "{self.display}" flag: {error}',
                flag=self._name,
                value=raw
            ) from None

        if self._multiple:
            self.value = ([] if not self.changed else list(self.value)) + [value]
        else:
            self.value = value
        self.changed = True

    def __repr__(self):
        return f"Flag({self.display!r}, value={self.value!r}, changed={self.changed!r})"


class FlagSet:
    """
    Ordered set of flags with lookup, normalization and parsing.

    A FlagSet can be "watched": when a flag is added or the normalization
    function changes, the watcher callable is invoked with no arguments. The
    command layer uses this to mark its derived flag views as stale.
    """

    name = mirror("name")

    def __init__(self, name="", /, *, interspersed=True, normalize=Unset, watcher=Unset):
        self._name = name
        self._formal = {}
        self._shorthands = {}
        self._normalize = coalesce(normalize, _identity)
        self._watcher = watcher
        self.interspersed = interspersed
        self.parsed = False
        self.args = []
        self.args_len_at_dash = -1
        self.notices = []

    # ── Collection protocol ────────────────────────────────────────────────
    def __iter__(self):
        return iter(tuple(self._formal.values()))

    def __len__(self):
        return len(self._formal)

    def __contains__(self, name):
        return self.lookup(name) is not None

    def __bool__(self):
        return True

    def __repr__(self):
        return f"FlagSet({self._name!r}, {[flag.name for flag in self]!r})"

    # ── Normalization ──────────────────────────────────────────────────────
    @property
    def normalize(self):
        return self._normalize

    @normalize.setter
    def normalize(self, function):
        function = coalesce(function, _identity) or _identity
        if not builtins.callable(function):
            raise TypeError("flag normalization must be callable")
        self._normalize = function
        # Re-key the existing flags under the new fold.
        formal, self._formal = self._formal, {}
        for flag in formal.values():
            self._formal.setdefault(function(flag.name), flag)
        self._touch()

    def _touch(self):
        if self._watcher:
            self._watcher()

    # ── Definition ─────────────────────────────────────────────────────────
    def add(self, flag, /):
        """
        Add a flag; raises ValueError on a duplicate name or shorthand.
        """
        if not isinstance(flag, Flag):
            raise TypeError("FlagSet.add() argument must be a Flag")
        if (key := self._normalize(flag.name)) in self._formal:
            raise ValueError(f"{self._name or 'flag set'} flag redefined: {flag.name}")
        if flag.shorthand and (used := self._shorthands.get(flag.shorthand)):
            raise ValueError(
                f"unable to redefine {flag.shorthand!r} shorthand in {self._name!r} flagset: "
                f"it's already used for {used.name!r} flag"
            )
        self._formal[key] = flag
        if flag.shorthand:
            self._shorthands[flag.shorthand] = flag
        self._touch()
        return flag

    def add_flag_set(self, other, /):
        """
        Merge every flag of other whose (normalized) name is not present yet.

        A shorthand already claimed in this set stays with its current owner.
        """
        for flag in other:
            if self._normalize(flag.name) in self._formal:
                continue
            self._formal[self._normalize(flag.name)] = flag
            if flag.shorthand:
                self._shorthands.setdefault(flag.shorthand, flag)
        self._touch()
        return self

    def clear(self):
        """
        Drop every flag (keeps the parse results and the normalization).
        """
        self._formal.clear()
        self._shorthands.clear()

    # ── Lookup ─────────────────────────────────────────────────────────────
    def lookup(self, name, /):
        return self._formal.get(self._normalize(name))

    def shorthand_lookup(self, shorthand, /):
        if not shorthand:
            return None
        return self._shorthands.get(shorthand[0])

    def get(self, name, /):
        """
        Return the current value of the named flag.
        """
        if (flag := self.lookup(name)) is None:
            raise KeyError(f"flag accessed but not defined: {name}")
        return flag.value

    def changed(self):
        """
        Flags assigned on the command line, in declaration order.
        """
        return [flag for flag in self if flag.changed]

    def has_available_flags(self):
        return any(not flag.hidden and not flag.deprecated for flag in self)

    # ── Parsing ────────────────────────────────────────────────────────────
    def parse(self, tokens, /, *, allow_unknown=False, allow_missing_required=False):
        """
        Parse the flag tokens, leaving positionals in .args.

        Parameters
        - tokens: Iterable[str]
        - allow_unknown: bool (keyword-only)
          Silently drop unknown flags (and a following bare value for long forms).
        - allow_missing_required: bool (keyword-only)
          Skip the required-flags check at the end of the parse.
        """
        self.parsed = True
        self.args = []
        self.args_len_at_dash = -1
        self.notices = []

        rest = list(tokens)
        while rest:
            token = rest.pop(0)
            if len(token) < 2 or token[0] != "-":
                self.args.append(token)
                if not self.interspersed:
                    self.args.extend(rest)
                    break
                continue

            if token == "--":
                self.args_len_at_dash = len(self.args)
                self.args.extend(rest)
                break

            if token[1] == "-":
                self._parse_long(token, rest, allow_unknown)
            else:
                self._parse_shorts(token, rest, allow_unknown)

        if not allow_missing_required:
            self.check_required()

    def check_required(self):
        """
        Raise MissingRequiredFlagsError naming every required flag left unset.
        """
        if missing := [flag.name for flag in self if flag.required and not flag.changed]:
            raise MissingRequiredFlagsError(
                "required flag(s) %s not set" % ", ".join(f'"{name}"' for name in missing),
                flags=tuple(missing)
            )

    def _parse_long(self, token, rest, allow_unknown):
        name, equals, raw = token[2:].partition("=")
        if not name or name[0] in "-=":
            raise FlagError(f"bad flag syntax: {token}")

        if (flag := self.lookup(name)) is None:
            if not allow_unknown:
                raise UnknownFlagError(f"unknown flag: --{name}", flag=name)
            if not equals and rest and not rest[0].startswith("-"):
                del rest[0]
            logger.debug("ignoring unknown flag --%s", name)
            return

        if equals:
            pass
        elif not flag.consumes:
            raw = flag.optional
        elif rest:
            raw = rest.pop(0)
        else:
            raise MissingFlagValueError(f"flag needs an argument: --{name}", flag=flag.name)
        self._assign(flag, raw)

    def _parse_shorts(self, token, rest, allow_unknown):
        shorthands = token[1:]
        while shorthands:
            shorthands = self._parse_short(shorthands, rest, allow_unknown)

    def _parse_short(self, shorthands, rest, allow_unknown):
        char, remainder = shorthands[0], shorthands[1:]

        if (flag := self._shorthands.get(char)) is None:
            if not allow_unknown:
                raise UnknownFlagError(f"unknown shorthand flag: {char!r} in -{shorthands}", flag=char)
            if remainder.startswith("="):
                remainder = ""
            elif not remainder and rest and not rest[0].startswith("-"):
                del rest[0]
            logger.debug("ignoring unknown shorthand flag -%s", char)
            return remainder

        if remainder.startswith("=") and len(remainder) > 1:
            raw, remainder = remainder[1:], ""
        elif not flag.consumes:
            raw = flag.optional
        elif remainder:
            raw, remainder = remainder, ""
        elif rest:
            raw = rest.pop(0)
        else:
            raise MissingFlagValueError(f"flag needs an argument: {char!r} in -{shorthands}", flag=flag.name)
        self._assign(flag, raw)
        return remainder

    def _assign(self, flag, raw):
        flag.set(raw)
        if flag.deprecated:
            self.notices.append(f"Flag --{flag.name} has been deprecated, {flag.deprecated}")


def _identity(name, /):
    return name


def is_flag_argument(token, /):
    """
    True for "--name..." and "-x..." tokens (a lone "-" or "--" is not a flag).
    """
    return (len(token) >= 3 and token[:2] == "--") or (len(token) >= 2 and token[0] == "-" and token[1] != "-")


__all__ = (
    "FILENAME_EXTENSIONS_ANNOTATION",
    "REQUIRED_ANNOTATION",
    "SUBDIRS_IN_DIR_ANNOTATION",
    "FRAMEWORK_ANNOTATION",
    "Flag",
    "FlagSet",
    "is_flag_argument",
)
