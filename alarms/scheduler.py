from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Union

from time_utils import ensure_tz, next_occurrence, next_time_of_day

from .storage import Reminder, ReminderStore, TimeSlot, Trigger, load_triggers, save_triggers

logger = logging.getLogger(__name__)

TriggerCallback = Callable[[Reminder, Optional[str]], Union[Awaitable[object], object]]


class SchedulingError(RuntimeError):
    pass


class ReminderScheduler:
    """Keeps pending alarm triggers and fires them when they become due.

    An ``on_trigger`` callback returning ``False`` declines the alarm (for
    example while another one is on screen); the trigger is then put back
    and offered again after ``check_interval``.
    """

    def __init__(
        self,
        storage_path,
        store: ReminderStore,
        check_interval: float = 0.8,
        on_trigger: Optional[TriggerCallback] = None,
        timezone=None,
    ):
        self.storage_path = Path(storage_path)
        self.store = store
        self.check_interval = max(0.2, check_interval)
        self.on_trigger = on_trigger
        self.tzinfo = timezone or datetime.now().astimezone().tzinfo

        self._triggers: List[Trigger] = []
        self._task: Optional[asyncio.Task] = None

    def load(self) -> None:
        self._triggers = sorted(load_triggers(self.storage_path), key=lambda t: t.fire_at)
        logger.info("Loaded %s pending triggers from %s", len(self._triggers), self.storage_path)

    async def start(self) -> None:
        self.load()
        self._task = asyncio.get_running_loop().create_task(self._loop(), name="alarm-scheduler")

    async def shutdown(self) -> None:
        if self._task:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

    def list_triggers(self) -> List[Trigger]:
        return list(sorted(self._triggers, key=lambda t: t.fire_at))

    async def schedule_reminder(self, reminder: Reminder) -> List[Trigger]:
        """Queue the regular trigger(s) of a reminder, replacing pending ones."""
        self._triggers = [t for t in self._triggers if t.reminder_id != reminder.id]
        if not reminder.is_notification_enabled:
            self._persist()
            logger.info("Notifications disabled for reminder %s, nothing scheduled", reminder.id)
            return []

        now = datetime.now(self.tzinfo)
        created: List[Trigger] = []
        if reminder.has_multiple_times:
            for slot in reminder.time_slots:
                if slot.status == "completed" and not reminder.is_repeating:
                    continue
                created.append(self._add(reminder.id, next_time_of_day(now, slot.time), slot.id))
        else:
            fire_at = ensure_tz(reminder.scheduled_time, self.tzinfo)
            if fire_at <= now and reminder.is_repeating:
                while fire_at <= now:
                    fire_at = next_occurrence(fire_at, reminder.repeat_type)
            if fire_at > now:
                created.append(self._add(reminder.id, fire_at, None))
            else:
                logger.info("Reminder %s is in the past, nothing scheduled", reminder.id)
        self._persist()
        return created

    async def schedule(self, reminder: Reminder, delay: timedelta, time_slot_id: Optional[str] = None) -> Trigger:
        if delay <= timedelta(0):
            raise SchedulingError("Snooze delay must be positive")
        if await self.store.get_reminder(reminder.id) is None:
            raise SchedulingError(f"Reminder {reminder.id} no longer exists")
        previous = self._take(reminder.id, time_slot_id)
        fire_at = datetime.now(self.tzinfo) + delay
        trigger = self._add(
            reminder.id,
            fire_at,
            time_slot_id,
            snoozed_from=previous[0].id if previous else None,
        )
        self._persist()
        logger.info(
            "Reminder %s (slot=%s) rescheduled for %s",
            reminder.id,
            time_slot_id,
            fire_at.isoformat(),
        )
        return trigger

    async def cancel(self, reminder_id: str, time_slot_id: Optional[str] = None) -> int:
        removed = self._take(reminder_id, time_slot_id)
        if removed:
            self._persist()
            logger.info("Cancelled %s trigger(s) for reminder %s (slot=%s)", len(removed), reminder_id, time_slot_id)
        return len(removed)

    async def complete(self, reminder: Reminder, time_slot_id: Optional[str] = None) -> None:
        """Record a dismissal: advance repeating reminders, complete one-shots."""
        stored = await self.store.get_reminder(reminder.id)
        if stored is None:
            logger.warning("Reminder %s no longer exists, nothing to complete", reminder.id)
            return
        slot = stored.find_time_slot(time_slot_id)
        now = datetime.now(self.tzinfo)

        if stored.is_repeating:
            if slot is not None:
                fire_at = self._next_slot_occurrence(now, slot, stored.repeat_type)
                self._take(stored.id, slot.id)
                self._add(stored.id, fire_at, slot.id)
            else:
                fire_at = ensure_tz(stored.scheduled_time, self.tzinfo)
                while fire_at <= now:
                    fire_at = next_occurrence(fire_at, stored.repeat_type)
                await self.store.update_reminder(replace(stored, scheduled_time=fire_at))
                self._take(stored.id, None)
                self._add(stored.id, fire_at, None)
            self._persist()
            logger.info("Repeating reminder %s next fires at %s", stored.id, fire_at.isoformat())
            return

        if slot is not None:
            slots = [replace(s, status="completed") if s.id == slot.id else s for s in stored.time_slots]
            status = "completed" if all(s.status == "completed" for s in slots) else stored.status
            await self.store.update_reminder(replace(stored, time_slots=slots, status=status))
        else:
            await self.store.update_reminder(replace(stored, status="completed"))
        logger.info("Reminder %s (slot=%s) marked completed", stored.id, time_slot_id)

    async def run_due(self) -> int:
        fired = 0
        while True:
            trigger = self._pop_due_trigger()
            if trigger is None:
                return fired
            if await self._fire(trigger):
                fired += 1

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_due()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Scheduler pass failed")
            await asyncio.sleep(self.check_interval)

    def _pop_due_trigger(self) -> Optional[Trigger]:
        now = datetime.now(self.tzinfo)
        if not self._triggers:
            return None
        self._triggers.sort(key=lambda t: t.fire_at)
        next_trigger = self._triggers[0]
        if next_trigger.fire_at <= now:
            self._triggers = self._triggers[1:]
            self._persist()
            return next_trigger
        return None

    async def _fire(self, trigger: Trigger) -> bool:
        reminder = await self.store.get_reminder(trigger.reminder_id)
        if reminder is None:
            logger.warning("Dropping trigger %s for missing reminder %s", trigger.id, trigger.reminder_id)
            return True
        logger.info("Trigger fired for reminder %s (slot=%s)", reminder.id, trigger.time_slot_id)
        if not self.on_trigger:
            return True
        try:
            result = self.on_trigger(reminder, trigger.time_slot_id)
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            logger.error("on_trigger callback failed", exc_info=True)
            return True
        if result is False:
            self._defer(trigger)
            return False
        return True

    def _defer(self, trigger: Trigger) -> None:
        fire_at = datetime.now(self.tzinfo) + timedelta(seconds=self.check_interval)
        self._triggers.append(replace(trigger, fire_at=fire_at))
        self._triggers.sort(key=lambda t: t.fire_at)
        self._persist()
        logger.info("Reminder %s not presented, retrying at %s", trigger.reminder_id, fire_at.isoformat())

    def _next_slot_occurrence(self, now: datetime, slot: TimeSlot, repeat_type: str) -> datetime:
        fire_at = now.replace(hour=slot.time.hour, minute=slot.time.minute, second=0, microsecond=0)
        while fire_at <= now:
            fire_at = next_occurrence(fire_at, repeat_type)
        return fire_at

    def _add(
        self,
        reminder_id: str,
        fire_at: datetime,
        time_slot_id: Optional[str],
        snoozed_from: Optional[str] = None,
    ) -> Trigger:
        trigger = Trigger(
            id=f"tr_{uuid.uuid4().hex[:8]}",
            reminder_id=reminder_id,
            fire_at=ensure_tz(fire_at, self.tzinfo),
            time_slot_id=time_slot_id,
            snoozed_from=snoozed_from,
        )
        self._triggers.append(trigger)
        self._triggers.sort(key=lambda t: t.fire_at)
        return trigger

    def _take(self, reminder_id: str, time_slot_id: Optional[str]) -> List[Trigger]:
        taken = [t for t in self._triggers if t.reminder_id == reminder_id and t.time_slot_id == time_slot_id]
        if taken:
            self._triggers = [t for t in self._triggers if t not in taken]
        return taken

    def _persist(self) -> None:
        save_triggers(self.storage_path, self._triggers)
