"""
Console Presentation

Renders session events on the terminal: chat lines and notices on stdout,
errors on stderr.
"""

import sys
from typing import Any, Optional, TextIO

from colorama import Fore, Style, init

from chat_client.common.events import ChatLine, Fatal, Info, ProtocolError


class ConsoleRenderer:
    """Listener turning presentation events into terminal output"""

    def __init__(self, out: Optional[TextIO] = None, err: Optional[TextIO] = None,
                 use_color: bool = True):
        if use_color:
            # Wraps sys.stdout/sys.stderr; codes are stripped when not a terminal
            init(autoreset=True)
        self.out = out or sys.stdout
        self.err = err or sys.stderr
        self.use_color = use_color

    def _paint(self, color: str, text: str) -> str:
        if not self.use_color:
            return text
        return f"{color}{text}{Style.RESET_ALL}"

    def __call__(self, event: Any) -> None:
        if isinstance(event, ChatLine):
            print(f"{self._paint(Fore.GREEN, event.sender + ':')} {event.text}", file=self.out, flush=True)
        elif isinstance(event, Info):
            print(self._paint(Fore.CYAN, event.text), file=self.out, flush=True)
        elif isinstance(event, ProtocolError):
            print(self._paint(Fore.YELLOW, event.text), file=self.err, flush=True)
        elif isinstance(event, Fatal):
            print(self._paint(Fore.RED, f"ERR: {event.text}"), file=self.err, flush=True)
