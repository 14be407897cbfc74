"""
Datagram Transport Adapter

Carries the binary protocol over UDP.

Outbound:
    Every message except BYE goes through the ReliableSender and blocks
    until confirmed. BYE is transmitted once.

Inbound:
    The receive loop resolves CONFIRMs against the pending send directly.
    Every other message is confirmed exactly once and handed to the
    session; repeats of an already seen message ID are dropped.

Endpoint migration:
    The server may answer from a different port than the one the client
    first wrote to. The source of the first datagram received becomes the
    destination of all further traffic, and datagrams from any other
    source are dropped from then on.
"""

import dataclasses
import logging
import socket
import threading
from typing import Optional, Tuple

from chat_client.common.errors import DecodeError, TransportFailure
from chat_client.common.events import DecodeFault, TransportFault
from chat_client.common.messages import ConfirmMessage, OutboundMessage
from chat_client.common.transport import ChatTransport, Sink
from chat_client.udp_protocol import protocol
from chat_client.udp_protocol.reliability import MessageIdSequence, ReliableSender, SeenMessageIds

MAX_DATAGRAM_SIZE = 65535

# Receive loop wakes up this often to notice shutdown
POLL_INTERVAL = 0.1


class DatagramTransport(ChatTransport):
    """
    UDP transport using the binary protocol.

    Attributes:
        remote: Current destination endpoint
        migrated: True once the destination was taken from an inbound datagram
    """

    def __init__(self, address: str, port: int, confirmation_timeout_ms: int = 250,
                 max_retries: int = 3):
        super().__init__(address, port)
        self.sock: Optional[socket.socket] = None
        self.remote: Tuple[str, int] = (address, port)
        self.migrated = False
        self._endpoint_lock = threading.Lock()
        self._ids = MessageIdSequence()
        self._seen = SeenMessageIds()
        self.sender = ReliableSender(self._transmit, confirmation_timeout_ms / 1000.0, max_retries)

    def connect(self) -> None:
        try:
            self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            self.sock.bind(("0.0.0.0", 0))
            self.sock.settimeout(POLL_INTERVAL)
        except OSError as e:
            self._release()
            raise TransportFailure(f"Cannot open datagram socket: {e}")
        logging.info(f"Datagram socket bound on port {self.sock.getsockname()[1]}, "
                     f"server {self.address}:{self.port}")

    def send_confirmable(self, message: OutboundMessage, max_retries: Optional[int] = None) -> None:
        message = dataclasses.replace(message, message_id=self._ids.next())
        payload = protocol.encode_message(message)
        logging.debug(f"Sending {type(message).__name__} id={message.message_id}")
        self.sender.send(message.message_id, payload, max_retries)

    def send_unconfirmed(self, message: OutboundMessage) -> None:
        message = dataclasses.replace(message, message_id=self._ids.next())
        logging.debug(f"Sending {type(message).__name__} id={message.message_id} unconfirmed")
        self._transmit(protocol.encode_message(message))

    def cancel_pending(self) -> None:
        self.sender.cancel()

    def _transmit(self, payload: bytes) -> None:
        if self.sock is None:
            raise TransportFailure("Not connected")
        with self._endpoint_lock:
            remote = self.remote
        try:
            self.sock.sendto(payload, remote)
        except OSError as e:
            raise TransportFailure(f"Send failed: {e}")

    def _accept_source(self, source: Tuple[str, int]) -> bool:
        """Apply endpoint migration; returns False if the datagram must be dropped"""
        with self._endpoint_lock:
            if not self.migrated:
                if source != self.remote:
                    logging.info(f"Server endpoint migrated to {source[0]}:{source[1]}")
                self.remote = source
                self.migrated = True
                return True
            return source == self.remote

    def _receive_loop(self, sink: Sink) -> None:
        while self._running.is_set():
            try:
                data, source = self.sock.recvfrom(MAX_DATAGRAM_SIZE)
            except socket.timeout:
                continue
            except OSError as e:
                if self._running.is_set():
                    logging.error(f"Receive failed: {e}")
                    sink(TransportFault(f"An error occurred while receiving messages: {e}"))
                break

            if not self._accept_source(source):
                logging.debug(f"Dropping datagram from unknown source {source}")
                continue

            try:
                message = protocol.decode_message(data)
            except DecodeError as e:
                sink(DecodeFault(str(e)))
                continue

            if isinstance(message, ConfirmMessage):
                self.sender.confirm(message.ref_id)
                continue

            if not self._seen.add(message.message_id):
                logging.debug(f"Dropping duplicate message {message.message_id}")
                continue

            try:
                self._transmit(protocol.encode_message(ConfirmMessage(ref_id=message.message_id)))
            except TransportFailure as e:
                logging.warning(f"Could not confirm message {message.message_id}: {e}")
            sink(message)

    def _release(self) -> None:
        if self.sock is not None:
            self.sock.close()
