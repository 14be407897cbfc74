"""
Chat Protocol Message Model

Both wire codecs (text lines for the stream transport, binary frames for the
datagram transport) encode and decode these types. The session only ever
deals with these objects, never with raw strings or bytes.

Message IDs:
    Only the datagram transport uses ``message_id``. The session builds
    outbound messages without one and the datagram adapter stamps the next
    sequence number just before encoding. Messages decoded from the text
    codec always have ``message_id`` set to None.
"""

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class AuthMessage:
    """AUTH: authenticate with the server"""
    username: str
    display_name: str
    secret: str
    message_id: Optional[int] = None


@dataclass(frozen=True)
class JoinMessage:
    """JOIN: switch to a channel"""
    channel_id: str
    display_name: str
    message_id: Optional[int] = None


@dataclass(frozen=True)
class ChatMessage:
    """MSG: a chat line, in either direction"""
    sender: str
    text: str
    message_id: Optional[int] = None


@dataclass(frozen=True)
class ErrorMessage:
    """ERR: a failure notification, in either direction"""
    sender: str
    text: str
    message_id: Optional[int] = None


@dataclass(frozen=True)
class ByeMessage:
    """BYE: session termination"""
    message_id: Optional[int] = None


@dataclass(frozen=True)
class ReplyMessage:
    """
    REPLY: server outcome for an AUTH or JOIN.

    Attributes:
        ok: True for a positive reply
        text: Human readable outcome description
        ref_id: ID of the message being answered (datagram only)
        message_id: ID of the reply itself (datagram only)
    """
    ok: bool
    text: str
    ref_id: Optional[int] = None
    message_id: Optional[int] = None


@dataclass(frozen=True)
class ConfirmMessage:
    """CONFIRM: datagram acknowledgement naming the confirmed message"""
    ref_id: int


OutboundMessage = Union[AuthMessage, JoinMessage, ChatMessage, ErrorMessage, ByeMessage]

# Inbound application messages, as consumed by the session
ProtocolEvent = Union[ReplyMessage, ChatMessage, ErrorMessage, ByeMessage, ConfirmMessage]

Message = Union[
    AuthMessage, JoinMessage, ChatMessage, ErrorMessage,
    ByeMessage, ReplyMessage, ConfirmMessage,
]
