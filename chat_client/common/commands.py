"""
Local Command Parsing

Turns one line of user input into a ClientCommand. Lines starting with one
of the reserved verbs are commands; anything else (including unknown
``/``-prefixed words) is chat text.
"""

from dataclasses import dataclass
from typing import Union

HELP_TEXT = (
    "Chat usage:\n"
    "/auth {Username} {Secret} {DisplayName} - Authentication.\n"
    "/join {ChannelID} - Join channel with provided id.\n"
    "/rename {DisplayName} - Rename displayed name.\n"
    "/help - Prints this message."
)

# Characters neither codec can carry inside a field
_FORBIDDEN_CHARS = ("\x00", "\r", "\n")


@dataclass(frozen=True)
class AuthCommand:
    username: str
    secret: str
    display_name: str


@dataclass(frozen=True)
class JoinCommand:
    channel_id: str


@dataclass(frozen=True)
class RenameCommand:
    display_name: str


@dataclass(frozen=True)
class SendCommand:
    text: str


@dataclass(frozen=True)
class HelpCommand:
    pass


@dataclass(frozen=True)
class MalformedCommand:
    """
    Input that could not be parsed.

    Attributes:
        reason: Description shown to the user (and sent to the peer if fatal)
        recoverable: True when the input is only reported locally;
                     False when it is a reserved verb used with the wrong arity
    """
    reason: str
    recoverable: bool = False


ClientCommand = Union[
    AuthCommand, JoinCommand, RenameCommand, SendCommand, HelpCommand, MalformedCommand
]

# verb -> (argument count, usage)
_RESERVED_VERBS = {
    "/auth": (3, "/auth {Username} {Secret} {DisplayName}"),
    "/join": (1, "/join {ChannelID}"),
    "/rename": (1, "/rename {DisplayName}"),
    "/help": (0, "/help"),
}


def _has_forbidden_chars(value: str) -> bool:
    return any(char in value for char in _FORBIDDEN_CHARS)


def parse_command(line: str) -> ClientCommand:
    """
    Parse one line of local input.

    Args:
        line: Raw input line, with or without its trailing newline

    Returns:
        ClientCommand: The parsed command. Never raises; invalid input
        yields a MalformedCommand.
    """
    line = line.rstrip("\r\n")
    if not line.strip():
        return MalformedCommand("Empty input", recoverable=True)

    if _has_forbidden_chars(line):
        return MalformedCommand("Input contains control characters", recoverable=True)

    tokens = line.split()
    verb, args = tokens[0], tokens[1:]
    if verb not in _RESERVED_VERBS:
        return SendCommand(line)

    arity, usage = _RESERVED_VERBS[verb]
    if len(args) != arity:
        return MalformedCommand(f"Invalid {verb} command. Format: {usage}")

    if verb == "/auth":
        username, secret, display_name = args
        return AuthCommand(username=username, secret=secret, display_name=display_name)
    if verb == "/join":
        return JoinCommand(channel_id=args[0])
    if verb == "/rename":
        return RenameCommand(display_name=args[0])
    return HelpCommand()
