"""
Chat Session State Machine

One ChatSession models one authenticate-through-terminate lifecycle.

Concurrency model:
    The receive loop and the command source never touch session state
    directly. They only put items on the session inbox (a queue.Queue).
    A single worker thread consumes the inbox serially and owns every
    mutation of state, identity and pending-reply bookkeeping.

State lifecycle:
    AUTHENTICATING -> OPEN -> ERRORING -> TERMINATED
    AUTHENTICATING/OPEN -> TERMINATED
    ERRORING is left immediately: it sends an ERR to the peer and moves on.
    TERMINATED is absorbing: it sends BYE and releases the transport.
"""

import logging
import queue
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Deque, Optional, Union

from chat_client.common.commands import (
    HELP_TEXT, AuthCommand, ClientCommand, HelpCommand, JoinCommand,
    MalformedCommand, RenameCommand, SendCommand, parse_command,
)
from chat_client.common.errors import (
    ChatClientError, DeliveryCancelled, DeliveryFailure, TransportFailure,
)
from chat_client.common.events import (
    ChatLine, DecodeFault, Fatal, Info, ProtocolError, TransportClosed, TransportFault,
)
from chat_client.common.messages import (
    AuthMessage, ByeMessage, ChatMessage, ErrorMessage, JoinMessage,
    OutboundMessage, ProtocolEvent, ReplyMessage,
)
from chat_client.common.transport import ChatTransport

NOT_AUTHENTICATED = "not authenticated"
DOUBLE_AUTH = "double auth"
NOT_CONFIRMED = "message not confirmed"
UNRECOGNIZED_MESSAGE = "unrecognized protocol message"

# Display name used in ERR messages sent before any /auth
UNKNOWN_DISPLAY_NAME = "unknown"


class SessionState(Enum):
    AUTHENTICATING = "authenticating"
    OPEN = "open"
    ERRORING = "erroring"
    TERMINATED = "terminated"


@dataclass
class Identity:
    """
    Local user identity.

    Attributes:
        username: Login name, fixed once authentication succeeds
        display_name: Name shown to other users, changed by /rename
        secret: Authentication secret, fixed once authentication succeeds
    """
    username: str
    display_name: str
    secret: str


class _EndOfInput:
    """Inbox marker: the local command source is exhausted"""


class _TerminateRequest:
    """Inbox marker: process-level termination"""


class ChatSession:
    """
    Session engine shared by both transports.

    Items on the inbox are raw command lines (str), decoded protocol
    messages, transport signals, or the internal markers above.
    """

    def __init__(self, transport: ChatTransport,
                 listener: Optional[Callable[[Any], None]] = None):
        """
        Initialize the session.

        Args:
            transport: Connected-on-start transport adapter
            listener: Receives presentation events (Info, ChatLine,
                      ProtocolError, Fatal); defaults to discarding them
        """
        self.transport = transport
        self.listener = listener or (lambda event: None)
        self.state = SessionState.AUTHENTICATING
        self.identity: Optional[Identity] = None
        self.failure: Optional[str] = None

        self._inbox: "queue.Queue[Any]" = queue.Queue()
        self._awaiting_reply = False
        self._deferred: Deque[Any] = deque()
        self._worker: Optional[threading.Thread] = None
        self._terminated = threading.Event()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """
        Connect the transport and start the receive loop and worker.

        Returns:
            bool: False if the transport could not be connected
        """
        try:
            self.transport.connect()
        except TransportFailure as e:
            logging.error(f"Connection failed: {e}")
            self.failure = str(e)
            self._emit(Fatal(str(e)))
            self._set_state(SessionState.TERMINATED)
            self._terminated.set()
            return False

        self.transport.start_receiving(self._inbox.put)
        self._worker = threading.Thread(target=self._run, name="session", daemon=True)
        self._worker.start()
        return True

    def submit_command(self, line: str) -> None:
        """Queue one line of local input"""
        self._inbox.put(line)

    def close_input(self) -> None:
        """Signal end of local input; the session ends once queued work is done"""
        self._inbox.put(_EndOfInput())

    def terminate(self, timeout: float = 2.0) -> None:
        """
        Gracefully shut the session down: send BYE and close the transport.

        Any confirmation wait in progress is cancelled. If the worker does
        not finish within ``timeout`` seconds the transport is closed
        forcibly.
        """
        if self._worker is None:
            if not self._terminated.is_set():
                self._terminate()
            return

        self._inbox.put(_TerminateRequest())
        self.transport.cancel_pending()
        if not self._terminated.wait(timeout):
            logging.warning("Session did not shut down in time, closing transport")
            self.transport.close()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the session is terminated; returns False on timeout"""
        return self._terminated.wait(timeout)

    @property
    def terminated(self) -> bool:
        return self._terminated.is_set()

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _run(self) -> None:
        while self.state is not SessionState.TERMINATED:
            self.dispatch(self._inbox.get())
        logging.debug("Session worker finished")

    def dispatch(self, item: Any) -> None:
        """Process one inbox item"""
        if isinstance(item, str):
            self.handle_line(item)
        elif isinstance(item, _EndOfInput):
            self._handle_end_of_input()
        elif isinstance(item, _TerminateRequest):
            self._terminate()
        else:
            self.handle_event(item)

    # ------------------------------------------------------------------
    # Local commands
    # ------------------------------------------------------------------

    def handle_line(self, line: str) -> None:
        """Parse and handle one line of local input"""
        self.handle_command(parse_command(line))

    def handle_command(self, command: ClientCommand) -> None:
        if self.state not in (SessionState.AUTHENTICATING, SessionState.OPEN):
            logging.debug(f"Ignoring {command} in state {self.state.value}")
            return
        if self._awaiting_reply:
            self._deferred.append(command)
            return

        if isinstance(command, MalformedCommand) and command.recoverable:
            self._emit(Info(f"Invalid input: {command.reason}"))
            return

        if self.state is SessionState.AUTHENTICATING:
            self._handle_authenticating_command(command)
        else:
            self._handle_open_command(command)

    def _handle_authenticating_command(self, command: ClientCommand) -> None:
        if isinstance(command, MalformedCommand):
            self._fail(command.reason)
            return
        if not isinstance(command, AuthCommand):
            self._fail(NOT_AUTHENTICATED)
            return

        self.identity = Identity(command.username, command.display_name, command.secret)
        message = AuthMessage(command.username, command.display_name, command.secret)
        if self._send_confirmable(message):
            self._awaiting_reply = True

    def _handle_open_command(self, command: ClientCommand) -> None:
        if isinstance(command, JoinCommand):
            message = JoinMessage(command.channel_id, self.identity.display_name)
            if self._send_confirmable(message):
                self._awaiting_reply = True
        elif isinstance(command, SendCommand):
            self._send_confirmable(ChatMessage(self.identity.display_name, command.text))
        elif isinstance(command, RenameCommand):
            logging.info(f"Display name changed to {command.display_name}")
            self.identity.display_name = command.display_name
        elif isinstance(command, HelpCommand):
            self._emit(Info(HELP_TEXT))
        elif isinstance(command, AuthCommand):
            self._fail(DOUBLE_AUTH)
        elif isinstance(command, MalformedCommand):
            self._fail(command.reason)

    def _handle_end_of_input(self) -> None:
        if self._awaiting_reply:
            self._deferred.append(_EndOfInput())
            return
        logging.info("End of input, closing session")
        self._terminate()

    # ------------------------------------------------------------------
    # Inbound protocol events
    # ------------------------------------------------------------------

    def handle_event(
        self, event: Union[ProtocolEvent, DecodeFault, TransportClosed, TransportFault]
    ) -> None:
        """Handle one decoded protocol message or transport signal"""
        if self.state is SessionState.TERMINATED:
            logging.debug(f"Ignoring {event} after termination")
            return

        if isinstance(event, DecodeFault):
            logging.warning(f"Undecodable message: {event.reason}")
            self._fail(UNRECOGNIZED_MESSAGE)
        elif isinstance(event, TransportClosed):
            self._emit(Info("Connection closed by the remote server."))
            self._terminate()
        elif isinstance(event, TransportFault):
            self._fail(event.reason)
        elif isinstance(event, ErrorMessage):
            self._emit(ProtocolError(f"ERR FROM {event.sender}: {event.text}"))
            self._terminate()
        elif isinstance(event, ByeMessage):
            self._terminate()
        elif isinstance(event, ReplyMessage) and self._awaiting_reply:
            self._handle_reply(event)
        elif isinstance(event, ChatMessage) and self.state is SessionState.OPEN:
            self._emit(ChatLine(event.sender, event.text))
        else:
            logging.warning(f"Unexpected {event} in state {self.state.value}")
            self._fail(UNRECOGNIZED_MESSAGE)

    def _handle_reply(self, reply: ReplyMessage) -> None:
        self._awaiting_reply = False
        if reply.ok:
            self._emit(Info(f"Success: {reply.text}"))
            if self.state is SessionState.AUTHENTICATING:
                self._set_state(SessionState.OPEN)
        else:
            self._emit(ProtocolError(f"Failure: {reply.text}"))
            if self.state is SessionState.AUTHENTICATING:
                self.identity = None

        while self._deferred and not self._awaiting_reply and \
                self.state in (SessionState.AUTHENTICATING, SessionState.OPEN):
            item = self._deferred.popleft()
            if isinstance(item, _EndOfInput):
                self._handle_end_of_input()
            else:
                self.handle_command(item)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _send_confirmable(self, message: OutboundMessage) -> bool:
        try:
            self.transport.send_confirmable(message)
            return True
        except DeliveryFailure as e:
            logging.warning(str(e))
            self._fail(NOT_CONFIRMED, peer_unresponsive=True)
        except DeliveryCancelled:
            self._terminate()
        except ChatClientError as e:
            self._fail(str(e))
        return False

    def _fail(self, reason: str, peer_unresponsive: bool = False) -> None:
        """Enter ERRORING: report, notify the peer with ERR, then terminate"""
        self._set_state(SessionState.ERRORING)
        self.failure = reason
        self._emit(Fatal(reason))

        display_name = self.identity.display_name if self.identity else UNKNOWN_DISPLAY_NAME
        try:
            self.transport.send_confirmable(
                ErrorMessage(display_name, reason),
                max_retries=0 if peer_unresponsive else None,
            )
        except ChatClientError as e:
            logging.warning(f"Could not deliver ERR to peer: {e}")
        self._terminate()

    def _terminate(self) -> None:
        """Enter TERMINATED: best-effort BYE, then release the transport"""
        if self.state is SessionState.TERMINATED:
            return
        self._set_state(SessionState.TERMINATED)
        try:
            self.transport.send_unconfirmed(ByeMessage())
        except ChatClientError as e:
            logging.debug(f"BYE not sent: {e}")
        self.transport.close()
        self._terminated.set()

    def _set_state(self, state: SessionState) -> None:
        logging.info(f"Session state: {self.state.value} -> {state.value}")
        self.state = state

    def _emit(self, event: Any) -> None:
        # A failing listener must not abort a transition halfway
        try:
            self.listener(event)
        except Exception:
            logging.exception(f"Listener failed on {event}")
