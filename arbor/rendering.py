"""
Arbor rendering (help, usage and version text through Rich).

Scope
- console(stream, colorful=...): a Console bound to one of the command's
  streams. Markup, emoji and highlighting are disabled so user text prints
  literally; soft wrapping keeps lines intact for scripts and tests.
- usage(command) -> Text: "Usage:", aliases, examples, available commands,
  local and global flags, additional help topics.
- help(command) -> Text: long (or short) description followed by usage for
  runnable commands and command groups.
- version(command) -> Text: "<name> version <version>".
- flag_usages(flags) -> Text: aligned one-line-per-flag listing.

Palette
- Define a mapping named __styles__ in __main__ to override any entry below.
- Styles only apply when the command (or an ancestor) is colorful.

Notes
- Hidden and deprecated flags and unavailable commands are never listed.
- Every renderer returns a rich Text; callers print it with console().
"""
import sys
from collections import defaultdict

from rich.console import Console
from rich.text import Text

_PALETTE = {
    "section": "bold #FFFFFF",  # White headers
    "command-name": "bold #36C5F0",  # Sky-blue subcommands
    "use-line": "bold #00E6FF",  # Cyan signature
    "flag-name": "bold #22C55E",  # Green flags
    "metavar": "bold #FFD600",  # Amber parameters
    "description": "#9CA3AF",  # Muted gray
    "version": "bold #FF4D94",  # Magenta brand
}

MINIMUM_NAME_PADDING = 11


def console(stream=None, /, *, colorful=False):
    """
    Build a Console writing to stream (stdout when None).
    """
    return Console(
        file=stream if stream is not None else sys.stdout,
        markup=False,
        emoji=False,
        highlight=False,
        soft_wrap=True,
        no_color=not colorful,
        color_system="auto" if colorful else None,
    )


def _styler(command):
    styles = defaultdict(str, _PALETTE | getattr(__import__("__main__"), "__styles__", {}))
    colorful = command.colorful

    def styler(style):
        return styles[style] if colorful else ""

    return styler


def flag_usages(flags, /, *, colorful=False):
    """
    Render the visible flags of a FlagSet, one per line, descriptions aligned.
    """
    styles = defaultdict(str, _PALETTE | getattr(__import__("__main__"), "__styles__", {}))

    def styler(style):
        return styles[style] if colorful else ""

    rows = []
    for flag in flags:
        if flag.hidden or flag.deprecated:
            continue
        left = Text("  ")
        if flag.shorthand:
            left.append(f"-{flag.shorthand}", styler("flag-name")).append(", ")
        else:
            left.append("    ")
        left.append(f"--{flag.name}", styler("flag-name"))
        if metavar := flag.metavar:
            left.append(" ").append(metavar, styler("metavar"))
        if not flag.toggle and not flag.consumes:
            left.append(f'[="{flag.optional}"]')

        usage = Text(flag.usage, styler("description"))
        if default := _default(flag):
            usage.append(f" (default {default})")
        rows.append((left, usage))

    width = max((len(left) for left, _ in rows), default=0)
    lines = []
    for left, usage in rows:
        line = Text.assemble(left, " " * (width - len(left) + 3), usage)
        line.rstrip()
        lines.append(line)
    return Text("\n").join(lines)


def _default(flag):
    value = flag.default
    if flag.toggle:
        return "true" if value else ""
    if flag.multiple:
        return "[" + ",".join(map(str, value)) + "]" if value else ""
    if value is None or value == "" or value == 0:
        return ""
    if isinstance(value, str):
        return f'"{value}"'
    return str(value)


def usage(command, /):
    """
    Render the usage block of command.
    """
    styler = _styler(command)
    sections = []

    head = Text("Usage:", styler("section"))
    if command.runnable:
        head.append("\n  ").append(command.use_line, styler("use-line"))
    if command.has_available_subcommands:
        head.append("\n  ").append(f"{command.command_path} [command]", styler("use-line"))
    sections.append(head)

    if command.aliases:
        sections.append(Text.assemble(("Aliases:", styler("section")), "\n  ", command.name_and_aliases))

    if command.example:
        sections.append(Text.assemble(("Examples:", styler("section")), "\n", command.example))

    children = command.commands
    if command.has_available_subcommands:
        padding = max([MINIMUM_NAME_PADDING, *(len(child.name) for child in children)])
        block = Text("Available Commands:", styler("section"))
        for child in children:
            if child.is_available_command or child.name == "help":
                block.append("\n  ").append(child.name.ljust(padding), styler("command-name"))
                block.append(" ").append(child.short, styler("description"))
        sections.append(block)

    if (local := command.local_flags()).has_available_flags():
        sections.append(Text.assemble(("Flags:", styler("section")), "\n", flag_usages(local, colorful=command.colorful)))

    if (inherited := command.inherited_flags()).has_available_flags():
        sections.append(Text.assemble(("Global Flags:", styler("section")), "\n", flag_usages(inherited, colorful=command.colorful)))

    if topics := [child for child in children if child.is_additional_help_topic_command]:
        padding = max(len(child.command_path) for child in topics)
        block = Text("Additional help topics:", styler("section"))
        for child in topics:
            block.append("\n  ").append(child.command_path.ljust(padding), styler("command-name"))
            block.append(" ").append(child.short, styler("description"))
        sections.append(block)

    if command.has_available_subcommands:
        sections.append(Text(f'Use "{command.command_path} [command] --help" for more information about a command.'))

    return Text("\n\n").join(sections)


def help(command, /):
    """
    Render the full help of command.
    """
    styler = _styler(command)
    parts = []
    if description := (command.long or command.short).rstrip():
        parts.append(Text(description, styler("description")))
    if command.runnable or command.has_subcommands:
        parts.append(usage(command))
    return Text("\n\n").join(parts)


def version(command, /):
    """
    Render "<name> version <version>".
    """
    styler = _styler(command)
    text = Text()
    if command.name:
        text.append(command.name, styler("command-name")).append(" ")
    return text.append("version ").append(command.version, styler("version"))


__all__ = (
    "MINIMUM_NAME_PADDING",
    "console",
    "flag_usages",
    "usage",
    "help",
    "version",
)
