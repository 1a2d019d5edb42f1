from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .launcher import AlarmLauncher
from .parser import parse_alarm_command

logger = logging.getLogger(__name__)


@dataclass
class IntentResult:
    handled: bool
    response_text: Optional[str] = None
    action: Optional[str] = None


class IntentRouter:
    def __init__(self, launcher: AlarmLauncher):
        self.launcher = launcher

    async def handle_text(self, text: str) -> Optional[IntentResult]:
        parsed = parse_alarm_command(text)
        if not parsed:
            return None
        logger.info("Alarm command detected: %s", parsed)

        session = self.launcher.active_session
        if session is None:
            return IntentResult(handled=True, response_text="Nothing is ringing right now.", action=parsed.action)

        if parsed.action == "dismiss":
            if await session.dismiss():
                resp = f"Dismissed {session.reminder.title}."
            else:
                resp = None
            return IntentResult(handled=True, response_text=resp, action="dismiss")

        if parsed.action == "snooze":
            minutes = parsed.snooze_minutes or session.snooze_minutes
            if minutes < 1:
                return IntentResult(handled=True, response_text="Snooze needs at least 1 minute.", action="snooze")
            if await session.snooze(minutes):
                resp = f"Snoozed {session.reminder.title} for {minutes} minutes."
            else:
                resp = None
            return IntentResult(handled=True, response_text=resp, action="snooze")

        if parsed.action == "increment":
            minutes = session.increment_snooze()
            return IntentResult(handled=True, response_text=f"Snooze set to {minutes} minutes.", action="increment")

        if parsed.action == "decrement":
            minutes = session.decrement_snooze()
            return IntentResult(handled=True, response_text=f"Snooze set to {minutes} minutes.", action="decrement")

        if parsed.action == "status":
            view = session.view()
            parts = [view.title, view.scheduled_text]
            if view.countdown_text:
                parts.append(view.countdown_text)
            return IntentResult(handled=True, response_text=" | ".join(parts), action="status")

        return IntentResult(handled=True, response_text=None, action=parsed.action)
