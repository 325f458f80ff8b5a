"""Concrete implementations for the presentation surface."""

import logging
import textwrap
import threading
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

import click

from .models import USER_ROLE

logger = logging.getLogger(__name__)

QUIT_COMMAND = "/quit"


class Layout(ABC):
    """Interface for the surface that shows turns and emits user submissions."""

    @abstractmethod
    def render_turn(self, role: str, content: str) -> None:
        """Appends one finished turn to the surface."""
        pass

    @abstractmethod
    def render_notice(self, text: str) -> None:
        """Shows an informational line that is not part of the conversation."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Removes every rendered turn, e.g. before showing another conversation."""
        pass

    @abstractmethod
    def start(self, on_submit: Callable[[str], None]) -> None:
        """Begins delivering user submissions to ``on_submit``."""
        pass

    def stop(self) -> None:
        pass


def wrap_text(text: str, width: int) -> List[str]:
    lines = []
    for paragraph in text.splitlines() or [""]:
        lines.extend(textwrap.wrap(paragraph, width) or [""])
    return lines


def format_bubble(title: str, text: str, width: int = 50) -> str:
    """Draws ``text`` inside a box with ``title`` centered in the top border."""
    lines = wrap_text(text, width)
    title = f" {title} "
    inner = max([len(line) for line in lines] + [0]) + 2
    inner = max(inner, len(title))
    left = (inner - len(title)) // 2
    top = "┌" + "─" * left + title + "─" * (inner - len(title) - left) + "┐"
    middle = ["│ " + line.ljust(inner - 1) + "│" for line in lines]
    bottom = "└" + "─" * inner + "┘"
    return "\n".join([top, *middle, bottom])


class Terminal(Layout):
    """Renders turns as colored ASCII bubbles and reads lines from stdin."""

    def __init__(self, assistant_label: str = "assistant", width: int = 50):
        self.assistant_label = assistant_label
        self.width = width
        self._reader: Optional[threading.Thread] = None
        self._stopped = threading.Event()

    def render_turn(self, role: str, content: str) -> None:
        if role == USER_ROLE:
            title, color = "You", "green"
        else:
            title, color = self.assistant_label, "yellow"
        click.secho(format_bubble(title, content, self.width), fg=color)
        click.echo()

    def render_notice(self, text: str) -> None:
        click.secho(text, fg="blue")

    def clear(self) -> None:
        click.clear()

    def start(self, on_submit: Callable[[str], None]) -> None:
        self._reader = threading.Thread(
            target=self._read_lines,
            args=(on_submit,),
            name="chatterm-input",
            daemon=True,
        )
        self._reader.start()

    def stop(self) -> None:
        self._stopped.set()

    def _read_lines(self, on_submit: Callable[[str], None]) -> None:
        while not self._stopped.is_set():
            try:
                line = input()
            except EOFError:
                logger.info("End of input reached")
                on_submit(QUIT_COMMAND)
                return
            on_submit(line)
