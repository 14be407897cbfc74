"""
Binary Protocol Implementation

Compact framing used over the datagram transport.

Message Format:
    [type:1][messageId:2][fields...]
    - type: Message type code (1 byte)
    - messageId: Sender-assigned sequence number (2 bytes, unsigned short)
    - fields: Zero or more NUL-terminated UTF-8 strings

    Exceptions to the common layout:
    - CONFIRM: [type:1][refMessageId:2]
    - REPLY:   [type:1][messageId:2][result:1][refMessageId:2][content\\0]

All multi-byte integers use network byte order (big-endian).
"""

import struct
from enum import IntEnum
from typing import List

from chat_client.common.errors import DecodeError, EncodeError
from chat_client.common.messages import (
    AuthMessage, ByeMessage, ChatMessage, ConfirmMessage, ErrorMessage,
    JoinMessage, Message, ReplyMessage,
)

ENCODING = "utf-8"

HEADER = struct.Struct("!BH")
REPLY_HEADER = struct.Struct("!BHBH")


class MessageType(IntEnum):
    """
    Type codes for the binary protocol.

    Types:
        CONFIRM: Acknowledges receipt of a message
        REPLY: Server outcome for AUTH or JOIN
        AUTH: Authentication request
        JOIN: Channel change request
        MSG: Chat message
        ERR: Error notification
        BYE: Session termination
    """
    CONFIRM = 0x00
    REPLY = 0x01
    AUTH = 0x02
    JOIN = 0x03
    MSG = 0x04
    ERR = 0xFE
    BYE = 0xFF


# Number of NUL-terminated string fields following the header
_STRING_FIELDS = {
    MessageType.AUTH: 3,
    MessageType.JOIN: 2,
    MessageType.MSG: 2,
    MessageType.ERR: 2,
    MessageType.BYE: 0,
}


def _pack_strings(*values: str) -> bytes:
    packed = b""
    for value in values:
        if "\x00" in value:
            raise EncodeError(f"Field contains NUL: {value!r}")
        packed += value.encode(ENCODING) + b"\x00"
    return packed


def _unpack_strings(data: bytes, count: int) -> List[str]:
    """
    Read exactly ``count`` NUL-terminated strings spanning all of ``data``.

    Raises:
        DecodeError: On a missing terminator, trailing bytes or bad encoding
    """
    values = []
    pos = 0
    for _ in range(count):
        end = data.find(b"\x00", pos)
        if end == -1:
            raise DecodeError("Missing string terminator")
        try:
            values.append(data[pos:end].decode(ENCODING))
        except UnicodeDecodeError as e:
            raise DecodeError(f"Invalid encoding: {e}")
        pos = end + 1
    if pos != len(data):
        raise DecodeError(f"{len(data) - pos} unexpected trailing bytes")
    return values


def _check_id(value, field: str) -> int:
    if value is None or not 0 <= value <= 0xFFFF:
        raise EncodeError(f"Invalid {field}: {value!r}")
    return value


def encode_message(message: Message) -> bytes:
    """
    Encode a message as one datagram payload.

    Args:
        message: The message to encode; every type except CONFIRM must
                 carry a message_id

    Returns:
        bytes: The encoded datagram

    Raises:
        EncodeError: If the message ID is missing or out of range, or a
                     string field contains NUL
    """
    if isinstance(message, ConfirmMessage):
        return HEADER.pack(MessageType.CONFIRM, _check_id(message.ref_id, "ref id"))

    message_id = _check_id(message.message_id, "message id")
    if isinstance(message, ReplyMessage):
        header = REPLY_HEADER.pack(
            MessageType.REPLY, message_id, int(message.ok), _check_id(message.ref_id, "ref id")
        )
        return header + _pack_strings(message.text)
    if isinstance(message, AuthMessage):
        return HEADER.pack(MessageType.AUTH, message_id) + _pack_strings(
            message.username, message.display_name, message.secret
        )
    if isinstance(message, JoinMessage):
        return HEADER.pack(MessageType.JOIN, message_id) + _pack_strings(
            message.channel_id, message.display_name
        )
    if isinstance(message, ChatMessage):
        return HEADER.pack(MessageType.MSG, message_id) + _pack_strings(message.sender, message.text)
    if isinstance(message, ErrorMessage):
        return HEADER.pack(MessageType.ERR, message_id) + _pack_strings(message.sender, message.text)
    if isinstance(message, ByeMessage):
        return HEADER.pack(MessageType.BYE, message_id)
    raise EncodeError(f"{type(message).__name__} has no binary encoding")


def decode_message(data: bytes) -> Message:
    """
    Decode one datagram payload.

    Raises:
        DecodeError: If the type is unknown or the layout is malformed
    """
    if len(data) < HEADER.size:
        raise DecodeError("Message too short")

    try:
        message_type = MessageType(data[0])
    except ValueError:
        raise DecodeError(f"Invalid message type: {data[0]:#04x}")

    if message_type is MessageType.CONFIRM:
        if len(data) != HEADER.size:
            raise DecodeError("Malformed CONFIRM")
        _, ref_id = HEADER.unpack(data)
        return ConfirmMessage(ref_id=ref_id)

    if message_type is MessageType.REPLY:
        if len(data) < REPLY_HEADER.size:
            raise DecodeError("Truncated REPLY")
        _, message_id, result, ref_id = REPLY_HEADER.unpack_from(data)
        if result not in (0, 1):
            raise DecodeError(f"Invalid REPLY result: {result}")
        (text,) = _unpack_strings(data[REPLY_HEADER.size:], 1)
        return ReplyMessage(ok=result == 1, text=text, ref_id=ref_id, message_id=message_id)

    _, message_id = HEADER.unpack_from(data)
    fields = _unpack_strings(data[HEADER.size:], _STRING_FIELDS[message_type])
    if message_type is MessageType.AUTH:
        return AuthMessage(*fields, message_id=message_id)
    if message_type is MessageType.JOIN:
        return JoinMessage(*fields, message_id=message_id)
    if message_type is MessageType.MSG:
        return ChatMessage(*fields, message_id=message_id)
    if message_type is MessageType.ERR:
        return ErrorMessage(*fields, message_id=message_id)
    return ByeMessage(message_id=message_id)

