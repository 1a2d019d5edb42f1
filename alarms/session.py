from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from config import AlarmSettings
from time_utils import format_12h, format_clock, format_date_line, now_in_tz

from .activation import ActivationRegistry
from .presenter import AlarmPresenter, AlarmView
from .storage import Reminder, TimeSlot

logger = logging.getLogger(__name__)


class ResolutionState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    DISMISSING = "dismissing"
    SNOOZING = "snoozing"
    AUTO_SNOOZING = "auto_snoozing"
    RESOLVED = "resolved"


RESOLVING_STATES = (
    ResolutionState.DISMISSING,
    ResolutionState.SNOOZING,
    ResolutionState.AUTO_SNOOZING,
)

_BUSY_TEXT = {
    ResolutionState.DISMISSING: "Dismissing...",
    ResolutionState.SNOOZING: "Snoozing...",
    ResolutionState.AUTO_SNOOZING: "Snoozing...",
}


class AlarmSession:
    """One on-screen presentation of a ringing reminder.

    The session claims the activation registry on ``start()`` and gives it
    back exactly once, either when the alarm is resolved (dismiss, snooze or
    auto-snooze) or when the presentation is disposed. Every resolution path
    moves the state out of ``RUNNING`` before its first await, so a timer
    tick or a second user action arriving meanwhile is rejected.

    Service calls failing during dismiss or a manual snooze are reported via
    the presenter and the session goes back to ``RUNNING``. A failed
    auto-snooze is only logged; the presentation stays open for the user.
    """

    def __init__(
        self,
        reminder: Reminder,
        time_slot_id: Optional[str] = None,
        *,
        registry: ActivationRegistry,
        store,
        scheduler,
        sound,
        presenter: AlarmPresenter,
        timers,
        on_dismissed: Optional[Callable[[], None]] = None,
        on_snoozed: Optional[Callable[[], None]] = None,
        settings: Optional[AlarmSettings] = None,
        now_fn: Optional[Callable[[], datetime]] = None,
    ):
        self.reminder = reminder
        self.time_slot_id = time_slot_id
        self.registry = registry
        self.store = store
        self.scheduler = scheduler
        self.sound = sound
        self.presenter = presenter
        self.timers = timers
        self.on_dismissed = on_dismissed
        self.on_snoozed = on_snoozed
        self.settings = settings or AlarmSettings()
        self._now = now_fn or (lambda: now_in_tz(None))

        self.active_time_slot: Optional[TimeSlot] = None
        self.remaining_seconds = self.settings.countdown_seconds
        self.snooze_minutes = self.settings.default_snooze_minutes

        self._state: Optional[ResolutionState] = None
        self._snooze_adjusted = False
        self._auto_snooze_attempted = False
        self._sound_stopped = False
        self._torn_down = False
        self._countdown = None
        self._clock = None
        self._auto_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> Optional[ResolutionState]:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is ResolutionState.RUNNING and not self._torn_down

    @property
    def torn_down(self) -> bool:
        return self._torn_down

    async def start(self) -> bool:
        if self._state is not None:
            return self.is_running
        if not self.registry.try_acquire(self):
            self._state = ResolutionState.IDLE
            logger.info("Another alarm is active - closing duplicate for reminder %s", self.reminder.id)
            self.presenter.close()
            return False

        self._state = ResolutionState.RUNNING
        self.active_time_slot = self._resolve_time_slot()
        tick = self.settings.tick_seconds
        self._countdown = self.timers.call_every(tick, self._on_countdown_tick, name=f"alarm-countdown-{self.reminder.id}")
        self._clock = self.timers.call_every(tick, self._on_clock_tick, name=f"alarm-clock-{self.reminder.id}")
        self._render()
        logger.info("Alarm activated for: %s (slot=%s)", self.reminder.title, self.time_slot_id)
        await self._load_snooze_config()
        return True

    # user actions

    async def dismiss(self) -> bool:
        if not self.is_running:
            logger.debug("Dismiss ignored in state %s", self._state)
            return False
        self._state = ResolutionState.DISMISSING
        self._render()
        try:
            await self._stop_sound()
            await self.scheduler.cancel(self.reminder.id, self.time_slot_id)
            await self.scheduler.complete(self.reminder, self.time_slot_id)
        except Exception as exc:
            logger.error("Error dismissing alarm for reminder %s", self.reminder.id, exc_info=True)
            self._rollback()
            self._notify(f"Could not dismiss alarm: {exc}")
            return False
        logger.info("Alarm dismissed for reminder %s (slot=%s)", self.reminder.id, self.time_slot_id)
        await self._finish(self.on_dismissed)
        return True

    async def snooze(self, minutes: Optional[int] = None) -> bool:
        if not self.is_running:
            logger.debug("Snooze ignored in state %s", self._state)
            return False
        if minutes is None:
            minutes = self.snooze_minutes
        if minutes < 1:
            raise ValueError("Snooze duration must be at least 1 minute")
        self._state = ResolutionState.SNOOZING
        self._render()
        try:
            await self._stop_sound()
            await self.scheduler.schedule(self.reminder, timedelta(minutes=minutes), self.time_slot_id)
        except Exception as exc:
            logger.error("Error snoozing alarm for reminder %s", self.reminder.id, exc_info=True)
            self._rollback()
            self._notify(f"Could not snooze alarm: {exc}")
            return False
        logger.info("Alarm snoozed for %s minutes (reminder %s)", minutes, self.reminder.id)
        await self._finish(self.on_snoozed)
        return True

    async def auto_snooze(self) -> bool:
        if not self.is_running or self._auto_snooze_attempted:
            return False
        self._auto_snooze_attempted = True
        self._state = ResolutionState.AUTO_SNOOZING
        if self._countdown:
            self._countdown.cancel()
        self._render()
        minutes = self.settings.auto_snooze_minutes
        logger.info("Auto-snoozing alarm after %s seconds", self.settings.countdown_seconds)
        try:
            await self._stop_sound()
            await self.scheduler.schedule(self.reminder, timedelta(minutes=minutes), self.time_slot_id)
        except Exception:
            # Left open so the user can still dismiss or snooze by hand.
            logger.error("Error auto-snoozing alarm for reminder %s", self.reminder.id, exc_info=True)
            self._rollback()
            return False
        logger.info("Auto-snooze completed - closing alarm for reminder %s", self.reminder.id)
        await self._finish(self.on_snoozed)
        return True

    def increment_snooze(self) -> int:
        if not self._torn_down:
            self.snooze_minutes += 1
            self._snooze_adjusted = True
            self._render()
        return self.snooze_minutes

    def decrement_snooze(self) -> int:
        if not self._torn_down and self.snooze_minutes > 1:
            self.snooze_minutes -= 1
            self._snooze_adjusted = True
            self._render()
        return self.snooze_minutes

    async def dispose(self) -> None:
        """Tear the presentation down; safe to call any number of times."""
        if self._torn_down:
            return
        self._torn_down = True
        if self._state in (None, ResolutionState.IDLE):
            return
        if self._auto_task is not None and self._state is ResolutionState.RUNNING:
            # not started yet; one already resolving runs to completion
            self._auto_task.cancel()
        for handle in (self._countdown, self._clock):
            if handle:
                handle.cancel()
        try:
            await self._stop_sound()
        except Exception:
            logger.error("Failed to stop alarm sound during teardown", exc_info=True)
        self.registry.release(self)
        logger.info("Alarm session disposed for reminder %s", self.reminder.id)

    def view(self) -> AlarmView:
        now = self._now()
        slot = self.active_time_slot
        if slot is not None and slot.description:
            description = slot.description
        else:
            description = self.reminder.description or ""
        if slot is not None:
            scheduled_text = f"Scheduled for {slot.formatted_time}"
        else:
            scheduled_text = f"Scheduled for {format_12h(self.reminder.scheduled_time)}"
        countdown_text = None
        if self._state is ResolutionState.RUNNING and not self._auto_snooze_attempted:
            countdown_text = f"Auto-snooze in {self.remaining_seconds}s"
        return AlarmView(
            title=self.reminder.title,
            description=description,
            scheduled_text=scheduled_text,
            clock_text=format_clock(now),
            date_text=format_date_line(now),
            countdown_text=countdown_text,
            snooze_minutes=self.snooze_minutes,
            actions_enabled=self._state is ResolutionState.RUNNING,
            can_decrement=self.snooze_minutes > 1,
            busy_text=_BUSY_TEXT.get(self._state),
        )

    # internals

    def _resolve_time_slot(self) -> Optional[TimeSlot]:
        if self.time_slot_id is None:
            return None
        if not self.reminder.has_multiple_times:
            logger.debug("Reminder %s has no time slots, ignoring slot %s", self.reminder.id, self.time_slot_id)
            return None
        slot = self.reminder.find_time_slot(self.time_slot_id)
        if slot is None:
            logger.warning("Time slot not found: %s", self.time_slot_id)
        return slot

    async def _load_snooze_config(self) -> None:
        try:
            config = await self.store.get_snooze_configuration()
        except Exception:
            logger.error("Failed to load snooze configuration, keeping %s minutes", self.snooze_minutes, exc_info=True)
            return
        if self._snooze_adjusted or self._torn_down:
            return
        if config.use_custom:
            self.snooze_minutes = max(1, int(config.custom_minutes))
        else:
            self.snooze_minutes = self.settings.default_snooze_minutes
        self._render()

    def _on_countdown_tick(self) -> None:
        if self._torn_down or self._state is not ResolutionState.RUNNING:
            return
        self.remaining_seconds -= 1
        if self.remaining_seconds <= 0:
            self.remaining_seconds = 0
            if self._countdown:
                self._countdown.cancel()
            self._auto_task = asyncio.get_running_loop().create_task(self.auto_snooze())
        self._render()

    def _on_clock_tick(self) -> None:
        if not self._torn_down:
            self._render()

    async def _stop_sound(self) -> None:
        if self._sound_stopped:
            return
        self._sound_stopped = True
        try:
            await self.sound.stop()
        except Exception:
            self._sound_stopped = False
            raise

    def _rollback(self) -> None:
        if self._state in RESOLVING_STATES:
            self._state = ResolutionState.RUNNING
        self._render()

    async def _finish(self, callback: Optional[Callable[[], None]]) -> None:
        self._state = ResolutionState.RESOLVED
        if callback:
            try:
                callback()
            except Exception:
                logger.error("Alarm completion callback failed", exc_info=True)
        self.registry.release(self)
        if not self._torn_down:
            self.presenter.close()
        await self.dispose()

    def _notify(self, message: str) -> None:
        if not self._torn_down:
            self.presenter.show_notice(message)

    def _render(self) -> None:
        if self._torn_down or self._state in (None, ResolutionState.IDLE):
            return
        self.presenter.render(self.view())
