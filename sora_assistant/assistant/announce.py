"""
Assistive announcement surface and visual notices.

LiveRegion holds the single latest announcement (newer text replaces older,
nothing queues) and tells listeners about each update so a screen reader
bridge or console can mirror it. Notifier shows transient info/error toasts.
"""

import logging
from typing import Callable, Optional

from rich.console import Console

logger = logging.getLogger(__name__)


class LiveRegion:
    """
    Latest-wins announcement holder.

    Usage:
        region = LiveRegion()
        region.add_listener(print)
        region.announce("Sora says: A table is ahead.")
    """

    def __init__(self):
        self.text: str = ""
        self._listeners: list[Callable[[str], None]] = []

    def add_listener(self, listener: Callable[[str], None]) -> None:
        self._listeners.append(listener)

    def announce(self, text: str) -> None:
        """Replace the current announcement."""
        self.text = text
        for listener in self._listeners:
            try:
                listener(text)
            except Exception as e:
                logger.error("Announcement listener error: %s", e)


class ConsoleLiveRegion(LiveRegion):
    """LiveRegion that also prints each announcement to the console."""

    def __init__(self, console: Optional[Console] = None):
        super().__init__()
        self.console = console or Console()

    def announce(self, text: str) -> None:
        super().announce(text)
        self.console.print(f"[bold cyan]>[/bold cyan] {text}", highlight=False)


class Notifier:
    """Transient visual notices (toasts)."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self.history: list[tuple[str, str]] = []

    def info(self, message: str) -> None:
        self.history.append(("info", message))
        self.console.print(f"[green]✓[/green] {message}", highlight=False)

    def error(self, message: str) -> None:
        self.history.append(("error", message))
        self.console.print(f"[red]✗[/red] {message}", highlight=False)
