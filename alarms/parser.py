from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

DISMISS_WORDS = ("dismiss", "stop", "off", "done", "d")
SNOOZE_WORDS = ("snooze", "later", "s")
INCREMENT_WORDS = ("+", "more", "plus")
DECREMENT_WORDS = ("-", "less", "minus")
STATUS_WORDS = ("status", "?")


@dataclass
class AlarmCommand:
    action: str
    snooze_minutes: Optional[int] = None
    raw_text: str = ""
    parsed_text: Optional[str] = None


def parse_alarm_command(text: str) -> Optional[AlarmCommand]:
    """Parse a typed console command for the ringing alarm."""

    cleaned = text.strip()
    lower = cleaned.lower()
    if not lower:
        return None
    first = lower.split()[0]

    # Snooze: "snooze", "s 15", "snooze for 15 min"
    if first in SNOOZE_WORDS:
        minutes = _extract_minutes(lower)
        return AlarmCommand(
            action="snooze",
            snooze_minutes=minutes,
            raw_text=cleaned,
            parsed_text=f"snooze_{minutes or 'default'}",
        )

    if first in DISMISS_WORDS:
        return AlarmCommand(action="dismiss", raw_text=cleaned, parsed_text="dismiss")

    if lower in INCREMENT_WORDS:
        return AlarmCommand(action="increment", raw_text=cleaned, parsed_text="increment")

    if lower in DECREMENT_WORDS:
        return AlarmCommand(action="decrement", raw_text=cleaned, parsed_text="decrement")

    if lower in STATUS_WORDS:
        return AlarmCommand(action="status", raw_text=cleaned, parsed_text="status")

    return None


def _extract_minutes(text: str) -> Optional[int]:
    match = re.search(r"(\d+)\s*(?:m|min|mins|minutes?)?\b", text)
    if match:
        return int(match.group(1))
    return None
