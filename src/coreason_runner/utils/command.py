# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_runner


"""Quote-aware conversion between command strings and argument vectors."""

from typing import Literal, NamedTuple

ExecutionMode = Literal["simple", "advanced"]

SHELL_OPERATORS = (">", ">>", "<", "|", "&&", "||", ";", "`", "$(")
DEFAULT_SHELL = "/bin/sh"


class Invocation(NamedTuple):
    entrypoint: list[str] | None
    command: list[str]
    shell_wrapped: bool


def tokenize(cmd: str) -> list[str]:
    """Split a command string into arguments.

    Unquoted whitespace separates arguments, double quotes group, and a
    backslash in front of a double quote or another backslash produces that
    character literally. An unterminated quote keeps everything up to the end
    of the string. A pair of empty quotes yields an empty argument.

    Args:
        cmd: The command string.

    Returns:
        list[str]: The argument vector.
    """
    if not cmd:
        return []

    parts: list[str] = []
    current: list[str] = []
    in_quotes = False
    # Tracks whether an argument has begun, so that "" produces an empty argument
    started = False
    i = 0

    while i < len(cmd):
        char = cmd[i]

        if char == "\\" and i + 1 < len(cmd) and cmd[i + 1] in ('"', "\\"):
            current.append(cmd[i + 1])
            started = True
            i += 2
            continue

        if char == '"':
            in_quotes = not in_quotes
            started = True
            i += 1
            continue

        if char.isspace() and not in_quotes:
            if started:
                parts.append("".join(current))
                current = []
                started = False
            i += 1
            continue

        current.append(char)
        started = True
        i += 1

    if started:
        parts.append("".join(current))

    return parts


def _quote(arg: str) -> str:
    if arg == "" or any(c.isspace() or c in ('"', "\\") for c in arg):
        escaped = arg.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return arg


def detokenize(args: list[str]) -> str:
    """Join arguments back into a single command string.

    Arguments containing whitespace, a double quote or a backslash are wrapped
    in double quotes with quotes and backslashes escaped, so that
    ``tokenize(detokenize(args)) == args``.
    """
    return " ".join(_quote(arg) for arg in args)


def needs_shell(cmd: str) -> bool:
    """Return True if the command uses redirection, pipes, chaining or substitution."""
    if not cmd:
        return False
    return any(op in cmd for op in SHELL_OPERATORS)


def build_invocation(
    command: str | None,
    entrypoint: str | None = None,
    mode: ExecutionMode = "simple",
    shell: str = DEFAULT_SHELL,
) -> Invocation:
    """Derive the container entrypoint and command vectors.

    In ``simple`` mode the shell is forced as entrypoint and the raw command is
    passed as a single ``-c`` argument. In ``advanced`` mode a command with
    shell operators and no explicit entrypoint is wrapped as ``<shell> -c``;
    otherwise entrypoint and command are tokenized independently.

    Args:
        command: Raw command string, may be empty.
        entrypoint: Raw entrypoint string, only honoured in advanced mode.
        mode: ``simple`` or ``advanced``.
        shell: Shell binary forced in simple mode. Advanced mode always wraps
            with ``/bin/sh``.

    Returns:
        Invocation: Entrypoint vector (or None to keep the image default),
        command vector and whether shell wrapping was applied.
    """
    if mode == "simple" and command:
        return Invocation([shell], ["-c", command], True)

    if mode == "advanced" and command and not entrypoint and needs_shell(command):
        return Invocation([DEFAULT_SHELL], ["-c", command], True)

    entrypoint_args = tokenize(entrypoint) if entrypoint else None
    command_args = tokenize(command) if command else []
    return Invocation(entrypoint_args, command_args, False)
