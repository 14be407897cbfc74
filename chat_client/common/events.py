"""
Session Inbox Signals and Presentation Events

Transport signals are produced by the receive loops next to decoded
protocol messages. Presentation events are what the session emits for a
rendering layer.
"""

from dataclasses import dataclass


# --- Transport signals ------------------------------------------------------

@dataclass(frozen=True)
class DecodeFault:
    """Inbound bytes could not be decoded into a protocol message"""
    reason: str


@dataclass(frozen=True)
class TransportClosed:
    """Peer closed the stream (zero-length read)"""


@dataclass(frozen=True)
class TransportFault:
    """Socket error in the receive loop"""
    reason: str


# --- Presentation events ----------------------------------------------------

@dataclass(frozen=True)
class Info:
    text: str


@dataclass(frozen=True)
class ChatLine:
    sender: str
    text: str


@dataclass(frozen=True)
class ProtocolError:
    text: str


@dataclass(frozen=True)
class Fatal:
    text: str
