"""
Stream Transport Integration Tests

Runs a full session against a scripted TCP peer on the loopback interface.
"""

import socket
import unittest

from chat_client.common.events import Fatal, Info
from chat_client.common.session import ChatSession, SessionState
from chat_client.tcp_protocol.client import StreamTransport


def read_line(conn: socket.socket) -> bytes:
    """Read one CRLF-terminated line from the peer socket"""
    data = b""
    while not data.endswith(b"\r\n"):
        chunk = conn.recv(1)
        if not chunk:
            break
        data += chunk
    return data


def read_until_eof(conn: socket.socket) -> bytes:
    data = b""
    while True:
        chunk = conn.recv(4096)
        if not chunk:
            return data
        data += chunk


class TestStreamSession(unittest.TestCase):
    """Integration tests for StreamTransport with ChatSession"""

    def setUp(self):
        """Start a listening socket and a session connected to it"""
        self.listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.listener.bind(("127.0.0.1", 0))
        self.listener.listen(1)
        self.listener.settimeout(5)
        port = self.listener.getsockname()[1]

        self.events = []
        self.session = ChatSession(StreamTransport("127.0.0.1", port), listener=self.events.append)
        self.assertTrue(self.session.start())
        self.conn, _ = self.listener.accept()
        self.conn.settimeout(5)

    def tearDown(self):
        """Clean up sockets and the session"""
        self.session.terminate(timeout=1.0)
        self.conn.close()
        self.listener.close()

    def authenticate(self):
        """Helper to log in as alice"""
        self.session.submit_command("/auth alice s3cret Alice")
        self.assertEqual(read_line(self.conn), b"AUTH alice AS Alice USING s3cret\r\n")
        self.conn.sendall(b"REPLY OK IS Auth success\r\n")

    def test_reply_then_bye(self):
        """Test AUTHENTICATING -> OPEN -> TERMINATED with one AUTH and one BYE sent"""
        with self.assertLogs(level="INFO") as logs:
            self.authenticate()
            self.conn.sendall(b"BYE\r\n")
            self.assertTrue(self.session.wait(5))

        self.assertEqual(read_until_eof(self.conn), b"BYE\r\n")
        self.assertEqual(self.session.state, SessionState.TERMINATED)
        self.assertIn(Info("Success: Auth success"), self.events)
        transitions = [line for line in logs.output if "Session state" in line]
        self.assertTrue(transitions[0].endswith("authenticating -> open"))
        self.assertTrue(transitions[1].endswith("open -> terminated"))

    def test_chat_exchange(self):
        """Test sending a chat line and receiving one"""
        self.authenticate()
        self.session.submit_command("hello world")
        self.assertEqual(read_line(self.conn), b"MSG FROM Alice IS hello world\r\n")

        # Two messages in one segment
        self.conn.sendall(b"MSG FROM bob IS hi alice\r\nMSG FROM bob IS bye now\r\n")
        self.conn.sendall(b"BYE\r\n")
        self.assertTrue(self.session.wait(5))
        chat = [(event.sender, event.text) for event in self.events if hasattr(event, "sender")]
        self.assertEqual(chat, [("bob", "hi alice"), ("bob", "bye now")])

    def test_garbage_from_server(self):
        """Test that an undecodable line sends ERR and BYE"""
        self.authenticate()
        self.conn.sendall(b"WHAT IS THIS\r\n")
        self.assertTrue(self.session.wait(5))
        self.assertEqual(
            read_until_eof(self.conn),
            b"ERR FROM Alice IS unrecognized protocol message\r\nBYE\r\n",
        )
        self.assertIn(Fatal("unrecognized protocol message"), self.events)

    def test_server_closes_connection(self):
        """Test that end of stream is an implicit BYE"""
        self.authenticate()
        self.conn.shutdown(socket.SHUT_WR)
        self.assertTrue(self.session.wait(5))
        self.assertEqual(self.session.state, SessionState.TERMINATED)
        self.assertIsNone(self.session.failure)

    def test_terminate(self):
        """Test process-level termination sends BYE and closes"""
        self.authenticate()
        self.session.terminate(timeout=2.0)
        self.assertTrue(self.session.terminated)
        self.assertTrue(read_until_eof(self.conn).endswith(b"BYE\r\n"))


class TestStreamConnect(unittest.TestCase):
    """Connection failure handling"""

    def test_connection_refused(self):
        """Test that an unreachable server is reported as Fatal"""
        placeholder = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        placeholder.bind(("127.0.0.1", 0))
        port = placeholder.getsockname()[1]
        placeholder.close()

        events = []
        session = ChatSession(StreamTransport("127.0.0.1", port), listener=events.append)
        self.assertFalse(session.start())
        self.assertTrue(session.terminated)
        self.assertIsInstance(events[0], Fatal)


if __name__ == '__main__':
    unittest.main()
