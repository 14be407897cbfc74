"""
Binary Protocol Unit Tests

Tests the datagram encoding and decoding.
"""

import struct
import unittest

from chat_client.common.errors import DecodeError, EncodeError
from chat_client.common.messages import (
    AuthMessage, ByeMessage, ChatMessage, ConfirmMessage, ErrorMessage,
    JoinMessage, ReplyMessage,
)
from chat_client.udp_protocol import protocol
from chat_client.udp_protocol.protocol import MessageType


class TestBinaryProtocol(unittest.TestCase):
    """Unit tests for binary protocol implementation"""

    def test_encode_layouts(self):
        """Test the exact byte layout of every message type"""
        test_cases = [
            (ConfirmMessage(ref_id=0x0102), b"\x00\x01\x02"),
            (ReplyMessage(ok=True, text="ok", ref_id=5, message_id=9), b"\x01\x00\x09\x01\x00\x05ok\x00"),
            (ReplyMessage(ok=False, text="", ref_id=5, message_id=9), b"\x01\x00\x09\x00\x00\x05\x00"),
            (AuthMessage("alice", "Alice", "pw", message_id=0), b"\x02\x00\x00alice\x00Alice\x00pw\x00"),
            (JoinMessage("general", "bob", message_id=7), b"\x03\x00\x07general\x00bob\x00"),
            (ChatMessage("bob", "hi", message_id=0x1234), b"\x04\x12\x34bob\x00hi\x00"),
            (ErrorMessage("bob", "oops", message_id=1), b"\xfe\x00\x01bob\x00oops\x00"),
            (ByeMessage(message_id=0xFFFF), b"\xff\xff\xff"),
        ]
        for message, expected in test_cases:
            with self.subTest(message=message):
                encoded = protocol.encode_message(message)
                self.assertEqual(encoded, expected)
                self.assertEqual(protocol.decode_message(encoded), message)

    def test_join_round_trip(self):
        """Test that a JOIN with id 7 decodes to the identical fields"""
        message = JoinMessage(channel_id="general", display_name="bob", message_id=7)
        decoded = protocol.decode_message(protocol.encode_message(message))
        self.assertEqual(decoded.channel_id, "general")
        self.assertEqual(decoded.display_name, "bob")
        self.assertEqual(decoded.message_id, 7)

    def test_header_is_big_endian(self):
        """Test that the message id is in network byte order"""
        encoded = protocol.encode_message(ByeMessage(message_id=258))
        self.assertEqual(struct.unpack("!BH", encoded), (MessageType.BYE, 258))

    def test_decode_invalid(self):
        """Test that malformed datagrams raise DecodeError"""
        test_cases = [
            ("empty", b""),
            ("short header", b"\x04\x00"),
            ("unknown type", b"\x42\x00\x01"),
            ("confirm too long", b"\x00\x00\x01\x00"),
            ("reply truncated", b"\x01\x00\x01\x01\x00"),
            ("reply bad result", b"\x01\x00\x01\x07\x00\x00ok\x00"),
            ("missing terminator", b"\x04\x00\x01bob\x00hi"),
            ("missing field", b"\x04\x00\x01bob\x00"),
            ("trailing bytes", b"\xff\x00\x01junk"),
            ("bad utf-8", b"\x04\x00\x01\xff\x00hi\x00"),
        ]
        for name, data in test_cases:
            with self.subTest(name=name):
                with self.assertRaises(DecodeError):
                    protocol.decode_message(data)

    def test_encode_invalid(self):
        """Test that unrepresentable messages raise EncodeError"""
        test_cases = [
            ("no id", ChatMessage("bob", "hi")),
            ("id too large", ByeMessage(message_id=0x10000)),
            ("nul in field", ChatMessage("bob", "a\x00b", message_id=1)),
        ]
        for name, message in test_cases:
            with self.subTest(name=name):
                with self.assertRaises(EncodeError):
                    protocol.encode_message(message)


if __name__ == '__main__':
    unittest.main()
