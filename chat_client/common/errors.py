"""
Chat Client Error Taxonomy

Every protocol and transport failure is one of these. The session maps each
kind to a state transition, so none of them ever leaves the engine unhandled.
Malformed local input is not an exception: parse_command returns a
MalformedCommand for it.
"""


class ChatClientError(Exception):
    """Base class for all chat client errors"""


class ProtocolViolation(ChatClientError):
    """Inbound message was unrecognized or arrived out of sequence"""


class DecodeError(ProtocolViolation, ValueError):
    """Bytes received from the wire do not form a valid message"""


class EncodeError(ProtocolViolation, ValueError):
    """A message cannot be represented in the chosen wire format"""


class DeliveryFailure(ChatClientError):
    """A confirmable message exhausted its retry budget unconfirmed"""

    def __init__(self, message_id: int, attempts: int):
        super().__init__(f"Message {message_id} not confirmed after {attempts} attempts")
        self.message_id = message_id
        self.attempts = attempts


class DeliveryCancelled(ChatClientError):
    """A confirmation wait was aborted by session termination"""


class TransportFailure(ChatClientError):
    """Socket error or unexpected close of the underlying transport"""
