"""
Tests for console rendering
"""

import io
import unittest

from chat_client.common.console import ConsoleRenderer
from chat_client.common.events import ChatLine, Fatal, Info, ProtocolError


class TestConsoleRenderer(unittest.TestCase):
    """Test cases for ConsoleRenderer"""

    def setUp(self):
        self.out = io.StringIO()
        self.err = io.StringIO()
        self.render = ConsoleRenderer(out=self.out, err=self.err, use_color=False)

    def test_streams_and_formats(self):
        """Test that chat goes to stdout and errors to stderr"""
        self.render(ChatLine("bob", "hello"))
        self.render(Info("Success: Auth success"))
        self.render(ProtocolError("ERR FROM server: nope"))
        self.render(Fatal("double auth"))
        self.assertEqual(self.out.getvalue(), "bob: hello\nSuccess: Auth success\n")
        self.assertEqual(self.err.getvalue(), "ERR FROM server: nope\nERR: double auth\n")

    def test_colored_output(self):
        """Test that colour codes wrap the text when enabled"""
        render = ConsoleRenderer(out=self.out, err=self.err, use_color=True)
        render(Fatal("boom"))
        self.assertIn("ERR: boom", self.err.getvalue())
        self.assertIn("\x1b[", self.err.getvalue())


if __name__ == '__main__':
    unittest.main()
