"""
Transport Adapter Interface

The session is written once against this interface. The stream adapter
implements a confirmable send as a plain write (the stream itself is
reliable); the datagram adapter routes it through its reliability layer.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from chat_client.common.messages import OutboundMessage

# Receives decoded protocol messages and transport signals
Sink = Callable[[Any], None]


class ChatTransport(ABC):
    """
    Base class for transport adapters.

    Attributes:
        address: Remote IPv4 address
        port: Remote port
    """

    def __init__(self, address: str, port: int):
        self.address = address
        self.port = port
        self._running = threading.Event()
        self._receiver: Optional[threading.Thread] = None

    @abstractmethod
    def connect(self) -> None:
        """
        Open the underlying socket.

        Raises:
            TransportFailure: If the socket cannot be opened or connected
        """

    @abstractmethod
    def send_confirmable(self, message: OutboundMessage, max_retries: Optional[int] = None) -> None:
        """
        Send a message that must be delivered.

        Args:
            message: Message to send
            max_retries: Override of the retransmission budget (datagram only)

        Raises:
            DeliveryFailure: No confirmation within the retry budget
            DeliveryCancelled: The wait was aborted by cancel_pending()
            TransportFailure: Socket error while sending
        """

    @abstractmethod
    def send_unconfirmed(self, message: OutboundMessage) -> None:
        """Send a message once, without waiting for any acknowledgement"""

    @abstractmethod
    def _receive_loop(self, sink: Sink) -> None:
        """Blocking receive loop run on the receiver thread"""

    def start_receiving(self, sink: Sink) -> None:
        """
        Start the receiver thread.

        Args:
            sink: Called with each decoded message or transport signal
        """
        self._running.set()
        self._receiver = threading.Thread(
            target=self._receive_loop, args=(sink,), name=f"{type(self).__name__}-rx", daemon=True
        )
        self._receiver.start()

    def cancel_pending(self) -> None:
        """Abort any in-flight confirmation wait"""

    def close(self) -> None:
        """Stop the receiver thread and release the socket"""
        self._running.clear()
        self._release()
        receiver = self._receiver
        if receiver is not None and receiver is not threading.current_thread():
            receiver.join(timeout=1.0)

    @abstractmethod
    def _release(self) -> None:
        """Close the socket so the receive loop unblocks"""
