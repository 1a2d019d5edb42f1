from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, time
from pathlib import Path
from typing import List, Optional

from time_utils import format_12h

logger = logging.getLogger(__name__)

REPEAT_TYPES = ("none", "daily", "weekly", "monthly")
STATUSES = ("pending", "completed", "overdue")


@dataclass
class TimeSlot:
    id: str
    time: time
    description: Optional[str] = None
    status: str = "pending"

    @property
    def formatted_time(self) -> str:
        return format_12h(self.time)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "time": self.time.strftime("%H:%M"),
            "description": self.description,
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TimeSlot":
        raw_time = data.get("time")
        if not raw_time:
            raise ValueError("Time slot payload missing time field")
        return cls(
            id=str(data.get("id") or uuid.uuid4().hex[:8]),
            time=time.fromisoformat(raw_time),
            description=data.get("description"),
            status=str(data.get("status") or "pending"),
        )


@dataclass
class Reminder:
    id: str
    title: str
    scheduled_time: datetime
    description: Optional[str] = None
    time_slots: List[TimeSlot] = field(default_factory=list)
    repeat_type: str = "none"
    status: str = "pending"
    is_notification_enabled: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def has_multiple_times(self) -> bool:
        return bool(self.time_slots)

    @property
    def is_repeating(self) -> bool:
        return self.repeat_type != "none"

    def find_time_slot(self, slot_id: Optional[str]) -> Optional[TimeSlot]:
        if slot_id is None:
            return None
        for slot in self.time_slots:
            if slot.id == slot_id:
                return slot
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "scheduled_time": self.scheduled_time.isoformat(),
            "time_slots": [slot.to_dict() for slot in self.time_slots],
            "repeat_type": self.repeat_type,
            "status": self.status,
            "is_notification_enabled": self.is_notification_enabled,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Reminder":
        scheduled_raw = data.get("scheduled_time")
        if not scheduled_raw or not data.get("title"):
            raise ValueError("Reminder payload missing title/scheduled_time fields")
        repeat_type = str(data.get("repeat_type") or "none")
        if repeat_type not in REPEAT_TYPES:
            raise ValueError(f"Unknown repeat type: {repeat_type}")
        created_raw = data.get("created_at")
        updated_raw = data.get("updated_at")
        return cls(
            id=str(data.get("id") or uuid.uuid4().hex),
            title=str(data["title"]),
            description=data.get("description"),
            scheduled_time=datetime.fromisoformat(scheduled_raw),
            time_slots=[TimeSlot.from_dict(item) for item in data.get("time_slots") or []],
            repeat_type=repeat_type,
            status=str(data.get("status") or "pending"),
            is_notification_enabled=bool(data.get("is_notification_enabled", True)),
            created_at=datetime.fromisoformat(created_raw) if created_raw else None,
            updated_at=datetime.fromisoformat(updated_raw) if updated_raw else None,
        )


@dataclass
class SnoozeConfig:
    use_custom: bool = False
    custom_minutes: int = 10

    def to_dict(self) -> dict:
        return {"use_custom": self.use_custom, "custom_minutes": self.custom_minutes}

    @classmethod
    def from_dict(cls, data: dict) -> "SnoozeConfig":
        minutes = int(data.get("custom_minutes", 10))
        return cls(use_custom=bool(data.get("use_custom", False)), custom_minutes=max(1, minutes))


def _read_json(path: Path):
    if not path.exists():
        return None
    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except Exception as exc:  # pragma: no cover - corrupted file
        logger.error("Failed to load %s: %s", path, exc)
        return None


def _write_json(path: Path, payload) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)


def load_reminders(path: Path) -> List[Reminder]:
    payload = _read_json(path)
    reminders: List[Reminder] = []
    for item in payload or []:
        try:
            reminders.append(Reminder.from_dict(item))
        except Exception as exc:
            logger.warning("Skipping reminder item due to parse error: %s", exc)
    return reminders


def save_reminders(path: Path, reminders: List[Reminder]) -> None:
    _write_json(path, [r.to_dict() for r in reminders])


def load_settings(path: Path) -> dict:
    payload = _read_json(path)
    return payload if isinstance(payload, dict) else {}


def save_settings(path: Path, settings: dict) -> None:
    _write_json(path, settings)


class ReminderStore:
    """JSON-backed reminder and settings store.

    Methods are coroutines so callers on the event loop can await them the
    same way they await the scheduler and sound services.
    """

    def __init__(self, reminders_path: Path, settings_path: Path):
        self.reminders_path = Path(reminders_path)
        self.settings_path = Path(settings_path)

    async def get_snooze_configuration(self) -> SnoozeConfig:
        settings = load_settings(self.settings_path)
        return SnoozeConfig.from_dict(settings.get("snooze") or {})

    async def set_snooze_configuration(self, snooze: SnoozeConfig) -> None:
        settings = load_settings(self.settings_path)
        settings["snooze"] = snooze.to_dict()
        save_settings(self.settings_path, settings)

    async def get_reminders(self) -> List[Reminder]:
        return load_reminders(self.reminders_path)

    async def get_reminder(self, reminder_id: str) -> Optional[Reminder]:
        for reminder in load_reminders(self.reminders_path):
            if reminder.id == reminder_id:
                return reminder
        return None

    async def add_reminder(self, reminder: Reminder) -> Reminder:
        reminders = load_reminders(self.reminders_path)
        now = datetime.now().astimezone()
        reminder = replace(reminder, created_at=reminder.created_at or now, updated_at=now)
        reminders.append(reminder)
        save_reminders(self.reminders_path, reminders)
        logger.info("Reminder %s added (title=%s)", reminder.id, reminder.title)
        return reminder

    async def update_reminder(self, reminder: Reminder) -> Reminder:
        reminders = load_reminders(self.reminders_path)
        updated = replace(reminder, updated_at=datetime.now().astimezone())
        for idx, existing in enumerate(reminders):
            if existing.id == reminder.id:
                reminders[idx] = updated
                break
        else:
            raise KeyError(f"Reminder {reminder.id} not found")
        save_reminders(self.reminders_path, reminders)
        return updated


@dataclass
class Trigger:
    id: str
    reminder_id: str
    fire_at: datetime
    time_slot_id: Optional[str] = None
    snoozed_from: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reminder_id": self.reminder_id,
            "fire_at": self.fire_at.isoformat(),
            "time_slot_id": self.time_slot_id,
            "snoozed_from": self.snoozed_from,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Trigger":
        fire_at_raw = data.get("fire_at")
        if not fire_at_raw or not data.get("reminder_id"):
            raise ValueError("Trigger payload missing reminder_id/fire_at fields")
        return cls(
            id=str(data.get("id") or f"tr_{uuid.uuid4().hex[:8]}"),
            reminder_id=str(data["reminder_id"]),
            fire_at=datetime.fromisoformat(fire_at_raw),
            time_slot_id=data.get("time_slot_id"),
            snoozed_from=data.get("snoozed_from"),
        )


def load_triggers(path: Path) -> List[Trigger]:
    payload = _read_json(path)
    triggers: List[Trigger] = []
    for item in payload or []:
        try:
            triggers.append(Trigger.from_dict(item))
        except Exception as exc:
            logger.warning("Skipping trigger item due to parse error: %s", exc)
    return triggers


def save_triggers(path: Path, triggers: List[Trigger]) -> None:
    _write_json(path, [t.to_dict() for t in triggers])
