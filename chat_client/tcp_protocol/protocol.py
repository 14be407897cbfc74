"""
Text Protocol Implementation

Line-oriented framing used over the stream transport.

Message Format:
    One message per line, terminated by CRLF. Keywords are case-sensitive
    and tokens are separated by single spaces:

    AUTH {username} AS {displayName} USING {secret}
    JOIN {channelId} AS {displayName}
    MSG FROM {displayName} IS {text}
    ERR FROM {displayName} IS {text}
    REPLY {OK|NOK} IS {text}
    BYE

    Only the trailing ``{text}`` field may contain spaces.
"""

from typing import List, Tuple

from chat_client.common.errors import DecodeError, EncodeError
from chat_client.common.messages import (
    AuthMessage, ByeMessage, ChatMessage, ErrorMessage, JoinMessage,
    Message, ReplyMessage,
)

LINE_TERMINATOR = b"\r\n"
ENCODING = "utf-8"


def _token(value: str, field: str) -> str:
    """Validate a single-word field"""
    if not value or any(char.isspace() for char in value) or "\x00" in value:
        raise EncodeError(f"Invalid {field}: {value!r}")
    return value


def _text(value: str) -> str:
    """Validate a free-text field"""
    if "\r" in value or "\n" in value:
        raise EncodeError("Text must not contain line breaks")
    return value


def encode_message(message: Message) -> bytes:
    """
    Encode a message as one CRLF-terminated line.

    Args:
        message: The message to encode

    Returns:
        bytes: The encoded line, terminator included

    Raises:
        EncodeError: If a field cannot be represented or the message
                     type has no text form (CONFIRM)
    """
    if isinstance(message, AuthMessage):
        line = (f"AUTH {_token(message.username, 'username')} "
                f"AS {_token(message.display_name, 'display name')} "
                f"USING {_token(message.secret, 'secret')}")
    elif isinstance(message, JoinMessage):
        line = (f"JOIN {_token(message.channel_id, 'channel')} "
                f"AS {_token(message.display_name, 'display name')}")
    elif isinstance(message, ChatMessage):
        line = f"MSG FROM {_token(message.sender, 'display name')} IS {_text(message.text)}"
    elif isinstance(message, ErrorMessage):
        line = f"ERR FROM {_token(message.sender, 'display name')} IS {_text(message.text)}"
    elif isinstance(message, ReplyMessage):
        line = f"REPLY {'OK' if message.ok else 'NOK'} IS {_text(message.text)}"
    elif isinstance(message, ByeMessage):
        line = "BYE"
    else:
        raise EncodeError(f"{type(message).__name__} has no text encoding")
    return line.encode(ENCODING) + LINE_TERMINATOR


def decode_message(line: bytes) -> Message:
    """
    Decode one line (with or without its terminator).

    Raises:
        DecodeError: If the line is not a well-formed message
    """
    if line.endswith(LINE_TERMINATOR):
        line = line[:-len(LINE_TERMINATOR)]
    try:
        text = line.decode(ENCODING)
    except UnicodeDecodeError as e:
        raise DecodeError(f"Invalid encoding: {e}")

    if text == "BYE":
        return ByeMessage()

    verb = text.split(" ", 1)[0]
    if verb in ("MSG", "ERR"):
        parts = text.split(" ", 4)
        if len(parts) == 5 and parts[1] == "FROM" and parts[3] == "IS" and parts[2]:
            cls = ChatMessage if verb == "MSG" else ErrorMessage
            return cls(sender=parts[2], text=parts[4])
    elif verb == "REPLY":
        parts = text.split(" ", 3)
        if len(parts) == 4 and parts[1] in ("OK", "NOK") and parts[2] == "IS":
            return ReplyMessage(ok=parts[1] == "OK", text=parts[3])
    elif verb == "AUTH":
        parts = text.split(" ")
        if len(parts) == 6 and parts[2] == "AS" and parts[4] == "USING" and all(parts):
            return AuthMessage(username=parts[1], display_name=parts[3], secret=parts[5])
    elif verb == "JOIN":
        parts = text.split(" ")
        if len(parts) == 4 and parts[2] == "AS" and all(parts):
            return JoinMessage(channel_id=parts[1], display_name=parts[3])

    raise DecodeError(f"Unrecognized line: {text!r}")


def split_lines(buffer: bytes) -> Tuple[List[bytes], bytes]:
    """
    Split complete lines off a receive buffer.

    Returns:
        Tuple[List[bytes], bytes]: Complete lines (terminators stripped)
        and the unterminated remainder
    """
    *lines, remainder = buffer.split(LINE_TERMINATOR)
    return lines, remainder
