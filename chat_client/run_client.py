"""
Chat Client Runner

Starts the chat client over the selected transport and feeds it lines
read from standard input.
"""

import argparse
import logging
import signal
import sys
import threading
from typing import List, Optional, TextIO, Tuple

from chat_client.common.config import (
    DEFAULT_CONFIRMATION_TIMEOUT_MS, DEFAULT_MAX_RETRIES, DEFAULT_PORT,
    ClientConfig, TransportKind, resolve_ipv4,
)
from chat_client.common.console import ConsoleRenderer
from chat_client.common.session import ChatSession
from chat_client.common.transport import ChatTransport
from chat_client.tcp_protocol.client import StreamTransport
from chat_client.udp_protocol.client import DatagramTransport

SHUTDOWN_TIMEOUT = 2.0


def signal_handler(sig, frame):
    """Handle Ctrl+C gracefully"""
    # Unwinds the main thread into the shutdown path in main()
    raise KeyboardInterrupt()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Chat client")
    parser.add_argument("-s", dest="server", required=True, help="Server IP address or hostname")
    parser.add_argument("-p", dest="port", type=int, default=DEFAULT_PORT, help="Server port")
    parser.add_argument(
        "-t",
        dest="transport",
        type=str.lower,
        choices=[kind.value for kind in TransportKind],
        default=TransportKind.STREAM.value,
        help="Transport protocol (default tcp)"
    )
    parser.add_argument(
        "-d",
        dest="timeout",
        type=int,
        default=DEFAULT_CONFIRMATION_TIMEOUT_MS,
        help="UDP confirmation timeout in milliseconds"
    )
    parser.add_argument(
        "-r",
        dest="retries",
        type=int,
        default=DEFAULT_MAX_RETRIES,
        help="Maximum number of UDP retransmissions"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def parse_config(argv: Optional[List[str]] = None) -> Tuple[ClientConfig, bool]:
    """Parse command-line arguments into a validated configuration and the verbose flag"""
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return ClientConfig(
            remote_address=resolve_ipv4(args.server),
            port=args.port,
            transport=TransportKind(args.transport),
            confirmation_timeout_ms=args.timeout,
            max_retries=args.retries,
        ), args.verbose
    except ValueError as e:
        parser.print_usage(sys.stderr)
        parser.exit(1, f"{parser.prog}: error: {e}\n")


def create_transport(config: ClientConfig) -> ChatTransport:
    if config.transport is TransportKind.DATAGRAM:
        return DatagramTransport(
            config.remote_address, config.port,
            confirmation_timeout_ms=config.confirmation_timeout_ms,
            max_retries=config.max_retries,
        )
    return StreamTransport(config.remote_address, config.port)


def pump_input(session: ChatSession, stream: TextIO) -> None:
    """Feed input lines to the session until end of input"""
    for line in stream:
        session.submit_command(line)
    session.close_input()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the chat client"""
    config, verbose = parse_config(argv)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    session = ChatSession(create_transport(config), listener=ConsoleRenderer())
    signal.signal(signal.SIGINT, signal_handler)

    try:
        if not session.start():
            return 1

        reader = threading.Thread(target=pump_input, args=(session, sys.stdin), daemon=True)
        reader.start()

        while not session.wait(0.5):
            pass
    except KeyboardInterrupt:
        print("\nCtrl+C detected. Exiting gracefully...", file=sys.stderr)
        session.terminate(timeout=SHUTDOWN_TIMEOUT)

    return 1 if session.failure else 0


if __name__ == "__main__":
    sys.exit(main())
