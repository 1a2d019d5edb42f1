from __future__ import annotations

import logging
from typing import Callable, Optional

from config import AlarmSettings

from .activation import ActivationRegistry
from .presenter import AlarmPresenter
from .session import AlarmSession
from .storage import Reminder

logger = logging.getLogger(__name__)


class AlarmLauncher:
    """Entry point the scheduler calls when a reminder becomes due."""

    def __init__(
        self,
        registry: ActivationRegistry,
        store,
        scheduler,
        sound,
        presenter_factory: Callable[[], AlarmPresenter],
        timers,
        settings: Optional[AlarmSettings] = None,
        speaker=None,
    ):
        self.registry = registry
        self.store = store
        self.scheduler = scheduler
        self.sound = sound
        self.presenter_factory = presenter_factory
        self.timers = timers
        self.settings = settings or AlarmSettings()
        self.speaker = speaker
        self.current: Optional[AlarmSession] = None

    async def present(
        self,
        reminder: Reminder,
        time_slot_id: Optional[str] = None,
        on_dismissed: Optional[Callable[[], None]] = None,
        on_snoozed: Optional[Callable[[], None]] = None,
    ) -> Optional[AlarmSession]:
        session = AlarmSession(
            reminder,
            time_slot_id,
            registry=self.registry,
            store=self.store,
            scheduler=self.scheduler,
            sound=self.sound,
            presenter=self.presenter_factory(),
            timers=self.timers,
            on_dismissed=on_dismissed,
            on_snoozed=on_snoozed,
            settings=self.settings,
        )
        previous, self.current = self.current, session
        if not await session.start():
            self.current = previous
            return None
        if not session.is_running:
            logger.info("Alarm for reminder %s resolved before its sound started", reminder.id)
            return session
        try:
            await self.sound.play()
        except Exception:
            logger.error("Failed to start alarm sound for reminder %s", reminder.id, exc_info=True)
        if self.speaker is not None and self.speaker.available:
            self.speaker.speak_async(f"Reminder: {reminder.title}")
        return session

    @property
    def active_session(self) -> Optional[AlarmSession]:
        if self.current is not None and self.current.torn_down:
            self.current = None
        return self.current

    async def close_active(self) -> None:
        session = self.active_session
        if session is not None:
            await session.dispose()
            self.current = None
