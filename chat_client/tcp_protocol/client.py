"""
Stream Transport Adapter

Carries the text protocol over a TCP connection. The stream is reliable,
so a confirmable send is simply a synchronous write.
"""

import logging
import socket
import threading
from typing import Optional

from chat_client.common.errors import DecodeError, TransportFailure
from chat_client.common.events import DecodeFault, TransportClosed, TransportFault
from chat_client.common.messages import OutboundMessage
from chat_client.common.transport import ChatTransport, Sink
from chat_client.tcp_protocol import protocol

RECV_SIZE = 4096


class StreamTransport(ChatTransport):
    """TCP transport using the text protocol"""

    def __init__(self, address: str, port: int):
        super().__init__(address, port)
        self.sock: Optional[socket.socket] = None
        self._send_lock = threading.Lock()

    def connect(self) -> None:
        try:
            self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            self.sock.connect((self.address, self.port))
        except OSError as e:
            self._release()
            raise TransportFailure(f"Cannot connect to {self.address}:{self.port}: {e}")
        logging.info(f"Connected to {self.address}:{self.port}")

    def send_confirmable(self, message: OutboundMessage, max_retries: Optional[int] = None) -> None:
        self._write(protocol.encode_message(message))

    def send_unconfirmed(self, message: OutboundMessage) -> None:
        self._write(protocol.encode_message(message))

    def _write(self, data: bytes) -> None:
        if self.sock is None:
            raise TransportFailure("Not connected")
        logging.debug(f"Sending {data!r}")
        try:
            with self._send_lock:
                self.sock.sendall(data)
        except OSError as e:
            raise TransportFailure(f"Send failed: {e}")

    def _receive_loop(self, sink: Sink) -> None:
        buffer = b""
        while self._running.is_set():
            try:
                chunk = self.sock.recv(RECV_SIZE)
            except OSError as e:
                if self._running.is_set():
                    logging.error(f"Receive failed: {e}")
                    sink(TransportFault(f"An error occurred while receiving messages: {e}"))
                break

            if not chunk:
                if self._running.is_set():
                    logging.info("Connection closed by peer")
                    sink(TransportClosed())
                break

            lines, buffer = protocol.split_lines(buffer + chunk)
            for line in lines:
                logging.debug(f"Received {line!r}")
                try:
                    sink(protocol.decode_message(line))
                except DecodeError as e:
                    sink(DecodeFault(str(e)))

    def _release(self) -> None:
        if self.sock is None:
            return
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # already disconnected
        self.sock.close()
