"""
Reliability Layer Unit Tests

Tests confirmation matching, retransmission and cancellation without
sockets: transmissions are recorded by a callback.
"""

import threading
import unittest

from chat_client.common.errors import DeliveryCancelled, DeliveryFailure
from chat_client.udp_protocol.reliability import MessageIdSequence, ReliableSender, SeenMessageIds


class TestMessageIdSequence(unittest.TestCase):
    """Test cases for message ID allocation"""

    def test_monotonic_and_wraps(self):
        """Test that IDs increase by one and wrap at 16 bits"""
        ids = MessageIdSequence(start=0xFFFE)
        self.assertEqual([ids.next() for _ in range(4)], [0xFFFE, 0xFFFF, 0, 1])

    def test_default_start(self):
        ids = MessageIdSequence()
        self.assertEqual(ids.next(), 0)
        self.assertEqual(ids.next(), 1)


class TestReliableSender(unittest.TestCase):
    """Test cases for ReliableSender"""

    def setUp(self):
        """Create a sender recording its transmissions"""
        self.transmitted = []
        self.on_transmit = None
        self.sender = ReliableSender(self.transmit, timeout=0.05, max_retries=3)

    def transmit(self, payload):
        self.transmitted.append(payload)
        if self.on_transmit:
            self.on_transmit(payload)

    def test_retry_exhaustion(self):
        """Test that R retries mean R + 1 identical transmissions, then failure"""
        with self.assertRaises(DeliveryFailure) as ctx:
            self.sender.send(7, b"\x03\x00\x07general\x00bob\x00")
        self.assertEqual(self.transmitted, [b"\x03\x00\x07general\x00bob\x00"] * 4)
        self.assertEqual(ctx.exception.message_id, 7)
        self.assertEqual(ctx.exception.attempts, 4)
        self.assertIsNone(self.sender.pending)

    def test_retry_override(self):
        """Test the per-call retry budget"""
        with self.assertRaises(DeliveryFailure):
            self.sender.send(1, b"x", max_retries=0)
        self.assertEqual(len(self.transmitted), 1)

    def test_confirm_matching_id(self):
        """Test that a CONFIRM with the pending ID resolves the send at once"""
        self.sender.timeout = 5.0
        self.on_transmit = lambda payload: self.sender.confirm(3)
        self.sender.send(3, b"payload")
        self.assertEqual(len(self.transmitted), 1)
        self.assertIsNone(self.sender.pending)

    def test_confirm_other_id_is_ignored(self):
        """Test that a CONFIRM for a different ID is a no-op"""
        results = []
        self.on_transmit = lambda payload: results.append(self.sender.confirm(99))
        with self.assertRaises(DeliveryFailure):
            self.sender.send(3, b"payload")
        self.assertEqual(results, [False] * 4)
        self.assertFalse(self.sender.confirm(3))

    def test_confirm_after_retransmission(self):
        """Test that a CONFIRM arriving during the second attempt succeeds"""
        self.on_transmit = lambda payload: len(self.transmitted) == 2 and self.sender.confirm(4)
        self.sender.send(4, b"payload")
        self.assertEqual(len(self.transmitted), 2)

    def test_confirm_from_other_thread(self):
        """Test that a CONFIRM from another thread wakes the waiting sender early"""
        self.sender.timeout = 5.0
        timer = threading.Timer(0.05, self.sender.confirm, args=(8,))
        timer.start()
        self.sender.send(8, b"payload")
        timer.join()
        self.assertEqual(len(self.transmitted), 1)

    def test_cancel(self):
        """Test that cancel() aborts the wait and refuses later sends"""
        self.sender.timeout = 5.0
        timer = threading.Timer(0.05, self.sender.cancel)
        timer.start()
        with self.assertRaises(DeliveryCancelled):
            self.sender.send(1, b"payload")
        timer.join()
        with self.assertRaises(DeliveryCancelled):
            self.sender.send(2, b"payload")
        self.assertEqual(len(self.transmitted), 1)


class TestSeenMessageIds(unittest.TestCase):
    """Test cases for inbound duplicate tracking"""

    def test_duplicates(self):
        seen = SeenMessageIds(capacity=2)
        self.assertTrue(seen.add(1))
        self.assertFalse(seen.add(1))
        self.assertTrue(seen.add(2))
        self.assertTrue(seen.add(3))
        # Oldest entry was evicted
        self.assertTrue(seen.add(1))


if __name__ == '__main__':
    unittest.main()
