from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import Optional, Protocol, TextIO

logger = logging.getLogger(__name__)


@dataclass
class AlarmView:
    title: str
    description: str
    scheduled_text: str
    clock_text: str
    date_text: str
    countdown_text: Optional[str]
    snooze_minutes: int
    actions_enabled: bool
    can_decrement: bool
    busy_text: Optional[str] = None


class AlarmPresenter(Protocol):
    def render(self, view: AlarmView) -> None: ...

    def show_notice(self, message: str) -> None: ...

    def close(self) -> None: ...


class ConsolePresenter:
    """Renders the ringing alarm as a single refreshing status line."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout
        self.closed = False
        self._header_written = False
        self._last_line: Optional[str] = None

    def render(self, view: AlarmView) -> None:
        if self.closed:
            return
        if not self._header_written:
            self._write_header(view)
            self._header_written = True
        parts = [view.clock_text]
        if view.busy_text:
            parts.append(view.busy_text)
        elif view.countdown_text:
            parts.append(view.countdown_text)
        parts.append(f"Snooze {view.snooze_minutes} mins")
        line = " | ".join(parts)
        if line == self._last_line:
            return
        self._last_line = line
        self.stream.write(f"\r{line}   ")
        self.stream.flush()

    def show_notice(self, message: str) -> None:
        if self.closed:
            return
        self.stream.write(f"\n! {message}\n")
        self.stream.flush()
        self._last_line = None

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.stream.write("\n")
        self.stream.flush()

    def _write_header(self, view: AlarmView) -> None:
        lines = ["", f"=== {view.title} ===", view.date_text]
        if view.description:
            lines.append(view.description)
        lines.append(view.scheduled_text)
        lines.append("[d] dismiss  [s N] snooze  [+/-] adjust snooze")
        self.stream.write("\n".join(lines) + "\n")
