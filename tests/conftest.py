import asyncio
from datetime import datetime, time, timezone
from types import SimpleNamespace

import pytest

from alarms.activation import ActivationRegistry
from alarms.scheduler import SchedulingError
from alarms.session import AlarmSession
from alarms.storage import Reminder, SnoozeConfig, TimeSlot
from config import AlarmSettings


class ManualTimer:
    def __init__(self, interval, callback, name):
        self.interval = interval
        self.callback = callback
        self.name = name
        self.cancelled = False
        self.calls = 0

    def cancel(self):
        self.cancelled = True

    def fire(self, times=1):
        for _ in range(times):
            if self.cancelled:
                return
            self.calls += 1
            self.callback()


class ManualTimers:
    def __init__(self):
        self.created = []

    def call_every(self, interval, callback, name="timer"):
        timer = ManualTimer(interval, callback, name)
        self.created.append(timer)
        return timer

    def named(self, prefix):
        return [t for t in self.created if t.name.startswith(prefix)][-1]


class FakeStore:
    def __init__(self, snooze=None, fail=False, gate=None):
        self.snooze = snooze or SnoozeConfig()
        self.fail = fail
        self.gate = gate

    async def get_snooze_configuration(self):
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise OSError("settings unreadable")
        return self.snooze


class FakeScheduler:
    def __init__(self):
        self.calls = []
        self.schedule_failures = 0
        self.cancel_failures = 0

    async def cancel(self, reminder_id, time_slot_id=None):
        self.calls.append(("cancel", reminder_id, time_slot_id))
        if self.cancel_failures:
            self.cancel_failures -= 1
            raise SchedulingError("notification backend unavailable")
        return 1

    async def complete(self, reminder, time_slot_id=None):
        self.calls.append(("complete", reminder.id, time_slot_id))

    async def schedule(self, reminder, delay, time_slot_id=None):
        self.calls.append(("schedule", reminder.id, delay, time_slot_id))
        if self.schedule_failures:
            self.schedule_failures -= 1
            raise SchedulingError("could not reschedule")

    def actions(self):
        return [c[0] for c in self.calls]


class FakeSound:
    def __init__(self):
        self.stop_calls = 0
        self.play_calls = 0

    async def play(self):
        self.play_calls += 1

    async def stop(self):
        self.stop_calls += 1


class FakePresenter:
    def __init__(self):
        self.views = []
        self.notices = []
        self.close_calls = 0

    @property
    def closed(self):
        return self.close_calls > 0

    def render(self, view):
        self.views.append(view)

    def show_notice(self, message):
        self.notices.append(message)

    def close(self):
        self.close_calls += 1


def make_reminder(**overrides):
    data = dict(
        id="rem-1",
        title="Take pills",
        description="Two tablets with water",
        scheduled_time=datetime(2025, 1, 1, 7, 30, tzinfo=timezone.utc),
    )
    data.update(overrides)
    return Reminder(**data)


def two_slot_reminder():
    return make_reminder(
        id="rem-2",
        time_slots=[
            TimeSlot(id="a", time=time(8, 0), description="Morning dose"),
            TimeSlot(id="b", time=time(20, 0), description="Evening dose"),
        ],
    )


async def settle(rounds=10):
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def env():
    ns = SimpleNamespace(
        registry=ActivationRegistry(),
        store=FakeStore(),
        scheduler=FakeScheduler(),
        sound=FakeSound(),
        timers=ManualTimers(),
        presenters=[],
        dismissed=[],
        snoozed=[],
    )

    def make_session(reminder=None, time_slot_id=None, **kwargs):
        presenter = FakePresenter()
        ns.presenters.append(presenter)
        kwargs.setdefault("on_dismissed", lambda: ns.dismissed.append(True))
        kwargs.setdefault("on_snoozed", lambda: ns.snoozed.append(True))
        kwargs.setdefault("settings", AlarmSettings())
        kwargs.setdefault("now_fn", lambda: datetime(2025, 1, 1, 7, 30, tzinfo=timezone.utc))
        return AlarmSession(
            reminder or make_reminder(),
            time_slot_id,
            registry=ns.registry,
            store=ns.store,
            scheduler=ns.scheduler,
            sound=ns.sound,
            presenter=presenter,
            timers=ns.timers,
            **kwargs,
        )

    ns.make_session = make_session
    return ns
