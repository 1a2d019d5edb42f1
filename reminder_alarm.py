import asyncio
import logging
import signal
import sys
from threading import Thread

from alarms.activation import ActivationRegistry
from alarms.intent_router import IntentRouter
from alarms.launcher import AlarmLauncher
from alarms.presenter import ConsolePresenter
from alarms.scheduler import ReminderScheduler
from alarms.sounds import AlarmSoundPlayer, LocalSpeaker
from alarms.storage import ReminderStore
from alarms.timers import AsyncioTimers
from config import Config, load_config, setup_logging
from time_utils import resolve_timezone

logger = logging.getLogger("reminder_alarm")


def graceful_exit(signum, frame) -> None:  # pragma: no cover - signal handler
    logger.info("Shutting down (signal %s)", signum)
    raise KeyboardInterrupt()


class ReminderRuntime:
    def __init__(self, config: Config):
        self.config = config
        self.tzinfo = resolve_timezone(config.timezone)
        self.registry = ActivationRegistry()
        self.store = ReminderStore(config.reminders_path, config.settings_path)
        self.sound_player = AlarmSoundPlayer(config.alarm_sound_path)
        self.scheduler = ReminderScheduler(
            storage_path=config.triggers_path,
            store=self.store,
            check_interval=max(0.2, config.alarm_check_interval_ms / 1000.0),
            timezone=self.tzinfo,
        )
        self.launcher = AlarmLauncher(
            registry=self.registry,
            store=self.store,
            scheduler=self.scheduler,
            sound=self.sound_player,
            presenter_factory=ConsolePresenter,
            timers=AsyncioTimers(),
            settings=config.alarm_settings,
            speaker=LocalSpeaker() if config.announce_alarms else None,
        )
        self.scheduler.on_trigger = self._on_trigger
        self.intent_router = IntentRouter(self.launcher)

    async def start(self) -> None:
        await self.scheduler.start()
        pending = {t.reminder_id for t in self.scheduler.list_triggers()}
        for reminder in await self.store.get_reminders():
            if reminder.status == "pending" and reminder.id not in pending:
                await self.scheduler.schedule_reminder(reminder)
        logger.info("Scheduler running with %s pending triggers", len(self.scheduler.list_triggers()))

    async def shutdown(self) -> None:
        await self.launcher.close_active()
        await self.scheduler.shutdown()
        self.sound_player.stop_loop()

    async def _on_trigger(self, reminder, time_slot_id) -> bool:
        session = await self.launcher.present(reminder, time_slot_id)
        if session is None:
            logger.info("Alarm for %s deferred, another alarm is on screen", reminder.title)
            return False
        return True

    async def command_loop(self) -> None:
        loop = asyncio.get_running_loop()
        lines: "asyncio.Queue[str | None]" = asyncio.Queue()

        def reader() -> None:
            for line in sys.stdin:
                loop.call_soon_threadsafe(lines.put_nowait, line)
            loop.call_soon_threadsafe(lines.put_nowait, None)

        Thread(target=reader, name="stdin-reader", daemon=True).start()
        while True:
            line = await lines.get()
            if line is None:
                logger.info("stdin closed, alarms keep running without console commands")
                await asyncio.Event().wait()
            result = await self.intent_router.handle_text(line)
            if result is None:
                print("Commands: d (dismiss), s [minutes] (snooze), + / - (adjust snooze), status")
            elif result.response_text:
                print(result.response_text)


async def run(config: Config) -> None:
    runtime = ReminderRuntime(config)
    await runtime.start()
    try:
        await runtime.command_loop()
    finally:
        await runtime.shutdown()


def main() -> None:
    config = load_config()
    setup_logging(config.log_level)
    signal.signal(signal.SIGINT, graceful_exit)
    logger.info("Starting reminder alarm runtime (reminders=%s)", config.reminders_path)
    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")


if __name__ == "__main__":
    main()
