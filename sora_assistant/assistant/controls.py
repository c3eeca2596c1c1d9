"""
Manual keyboard controls.

Commands are read line by line from stdin so they work in any terminal,
including over SSH and with screen readers:

    <Enter> or <space>   activate
    s / esc              stop speaking
    l                    toggle voice listening
    q                    quit
"""

import asyncio
import logging
import sys
from enum import Enum
from typing import Awaitable, Callable, Optional, TextIO

logger = logging.getLogger(__name__)


class Command(Enum):
    ACTIVATE = "activate"
    STOP_SPEAKING = "stop_speaking"
    TOGGLE_LISTENING = "toggle_listening"
    QUIT = "quit"


_KEYMAP = {
    "": Command.ACTIVATE,
    "space": Command.ACTIVATE,
    "a": Command.ACTIVATE,
    "s": Command.STOP_SPEAKING,
    "esc": Command.STOP_SPEAKING,
    "\x1b": Command.STOP_SPEAKING,
    "l": Command.TOGGLE_LISTENING,
    "q": Command.QUIT,
    "quit": Command.QUIT,
}

HELP_TEXT = "Enter/space: activate   s/esc: stop speaking   l: toggle listening   q: quit"


def parse_command(line: str) -> Optional[Command]:
    """Map one input line to a command. Returns None for unknown input."""
    key = line.rstrip("\r\n")
    if key.strip() == "" and key != "":
        # One or more spaces
        return Command.ACTIVATE
    return _KEYMAP.get(key.strip().lower())


class KeyboardControls:
    """
    Reads commands from a text stream and hands them to a handler.

    The blocking readline runs in a worker thread so the event loop keeps
    serving recognition and activations while waiting for a key.
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdin

    async def run(self, handler: Callable[[Command], Awaitable[None]]) -> None:
        """Dispatch commands until quit or end of input."""
        while True:
            line = await asyncio.to_thread(self.stream.readline)
            if line == "":
                logger.debug("Keyboard input closed")
                return

            command = parse_command(line)
            if command is None:
                logger.info("Unknown key %r. %s", line.strip(), HELP_TEXT)
                continue

            await handler(command)
            if command is Command.QUIT:
                return
