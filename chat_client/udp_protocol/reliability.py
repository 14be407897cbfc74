"""
Datagram Reliability Layer

Turns the unreliable datagram transport into an at-least-once channel:

- Every confirmable message gets a fresh 16-bit message ID.
- The payload is retransmitted byte-for-byte until a CONFIRM naming that
  exact ID arrives, or the retry budget runs out.
- At most one send is pending at a time, so a CONFIRM is matched by its
  ID alone.

The waiting side blocks on a condition variable with a deadline, so a
confirmation arriving early releases the sender immediately.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Optional, Set

from chat_client.common.errors import DeliveryCancelled, DeliveryFailure

MESSAGE_ID_MODULUS = 0x10000


class MessageIdSequence:
    """Monotonic message ID generator wrapping at the 16-bit boundary"""

    def __init__(self, start: int = 0):
        self._next = start % MESSAGE_ID_MODULUS
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            message_id = self._next
            self._next = (self._next + 1) % MESSAGE_ID_MODULUS
            return message_id


@dataclass
class PendingSend:
    """
    A confirmable message awaiting its CONFIRM.

    Attributes:
        message_id: ID the CONFIRM must name
        payload: Exact bytes retransmitted on every attempt
        attempts_left: Transmissions still allowed
        deadline: Monotonic time at which the current attempt expires
        confirmed: Set by the receive loop when the CONFIRM arrives
    """
    message_id: int
    payload: bytes
    attempts_left: int
    deadline: float = 0.0
    confirmed: bool = False


class ReliableSender:
    """
    Confirmation and retransmission for outgoing datagrams.

    send() runs on the session worker; confirm() and cancel() are called
    from other threads.
    """

    def __init__(self, transmit: Callable[[bytes], None], timeout: float, max_retries: int,
                 clock: Callable[[], float] = time.monotonic):
        """
        Args:
            transmit: Sends one datagram to the current remote endpoint
            timeout: Seconds to wait for a CONFIRM after each transmission
            max_retries: Retransmissions after the first attempt
            clock: Monotonic time source
        """
        self._transmit = transmit
        self.timeout = timeout
        self.max_retries = max_retries
        self._clock = clock
        self._cond = threading.Condition()
        self._pending: Optional[PendingSend] = None
        self._cancelled = False

    @property
    def pending(self) -> Optional[PendingSend]:
        return self._pending

    def send(self, message_id: int, payload: bytes, max_retries: Optional[int] = None) -> None:
        """
        Transmit ``payload`` until confirmed.

        Args:
            message_id: ID stamped into payload
            payload: Encoded datagram
            max_retries: Per-call override of the retransmission budget

        Raises:
            DeliveryFailure: All attempts went unconfirmed
            DeliveryCancelled: cancel() was called
            TransportFailure: Propagated from transmit
        """
        retries = self.max_retries if max_retries is None else max_retries
        pending = PendingSend(message_id, payload, attempts_left=retries + 1)
        with self._cond:
            if self._pending is not None:
                raise RuntimeError(f"Message {self._pending.message_id} is still pending")
            self._pending = pending

        try:
            while True:
                with self._cond:
                    if pending.confirmed:
                        return
                    if self._cancelled:
                        raise DeliveryCancelled(f"Message {message_id} cancelled")
                    if pending.attempts_left == 0:
                        logging.warning(f"Message {message_id} not confirmed after {retries + 1} attempts")
                        raise DeliveryFailure(message_id, retries + 1)
                    attempt = retries + 2 - pending.attempts_left
                    pending.attempts_left -= 1
                    pending.deadline = self._clock() + self.timeout

                logging.debug(f"Transmitting message {message_id} (attempt {attempt}/{retries + 1})")
                self._transmit(payload)

                with self._cond:
                    while not pending.confirmed and not self._cancelled:
                        remaining = pending.deadline - self._clock()
                        if remaining <= 0:
                            break
                        self._cond.wait(remaining)
        finally:
            with self._cond:
                self._pending = None

    def confirm(self, ref_id: int) -> bool:
        """
        Resolve the pending send if it carries ``ref_id``.

        Returns:
            bool: True if a pending send was resolved; a CONFIRM for any
            other ID is ignored
        """
        with self._cond:
            if self._pending is None or self._pending.message_id != ref_id:
                logging.debug(f"Ignoring CONFIRM for message {ref_id}")
                return False
            logging.debug(f"Message {ref_id} confirmed")
            self._pending.confirmed = True
            self._cond.notify_all()
            return True

    def cancel(self) -> None:
        """Abort the current wait and refuse any further sends"""
        with self._cond:
            self._cancelled = True
            self._cond.notify_all()


class SeenMessageIds:
    """Bounded memory of inbound message IDs, for duplicate suppression"""

    def __init__(self, capacity: int = 1024):
        self._order: Deque[int] = deque()
        self._ids: Set[int] = set()
        self.capacity = capacity

    def add(self, message_id: int) -> bool:
        """
        Record an inbound ID.

        Returns:
            bool: False if the ID was already seen
        """
        if message_id in self._ids:
            return False
        self._ids.add(message_id)
        self._order.append(message_id)
        if len(self._order) > self.capacity:
            self._ids.discard(self._order.popleft())
        return True
