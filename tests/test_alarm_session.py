import asyncio
from datetime import timedelta

import pytest

from alarms.session import ResolutionState
from alarms.storage import SnoozeConfig
from conftest import FakeStore, make_reminder, settle, two_slot_reminder


def test_second_session_is_rejected_while_one_is_active(env):
    async def scenario():
        first = env.make_session()
        second = env.make_session(make_reminder(id="rem-other", title="Other"))
        assert await first.start()
        assert not await second.start()

        assert second.state is ResolutionState.IDLE
        assert env.presenters[1].closed
        assert env.presenters[1].views == []
        assert len(env.timers.created) == 2
        assert env.sound.stop_calls == 0
        assert env.registry.owner is first
        assert first.state is ResolutionState.RUNNING

        await second.dispose()
        assert env.registry.owner is first
        assert env.sound.stop_calls == 0
        assert env.dismissed == [] and env.snoozed == []

    asyncio.run(scenario())


def test_countdown_runs_out_into_single_auto_snooze(env):
    async def scenario():
        session = env.make_session()
        await session.start()
        countdown = env.timers.named("alarm-countdown")

        countdown.fire(29)
        await settle()
        assert session.remaining_seconds == 1
        assert session.view().countdown_text == "Auto-snooze in 1s"
        assert "schedule" not in env.scheduler.actions()

        countdown.fire(1)
        assert session.remaining_seconds == 0
        await settle()

        assert env.scheduler.calls == [("schedule", "rem-1", timedelta(minutes=10), None)]
        assert env.snoozed == [True]
        assert env.dismissed == []
        assert session.state is ResolutionState.RESOLVED
        assert not env.registry.active
        assert env.sound.stop_calls == 1
        assert env.presenters[0].close_calls == 1
        assert countdown.cancelled
        assert env.timers.named("alarm-clock").cancelled

        countdown.fire(5)
        await settle()
        assert env.scheduler.actions().count("schedule") == 1

    asyncio.run(scenario())


def test_dismiss_cancels_completes_and_releases(env):
    async def scenario():
        session = env.make_session()
        await session.start()
        assert await session.dismiss()

        assert env.scheduler.calls == [("cancel", "rem-1", None), ("complete", "rem-1", None)]
        assert env.dismissed == [True]
        assert env.snoozed == []
        assert env.sound.stop_calls == 1
        assert not env.registry.active
        assert env.presenters[0].close_calls == 1
        assert all(t.cancelled for t in env.timers.created)

        await session.dispose()
        assert env.sound.stop_calls == 1

    asyncio.run(scenario())


def test_manual_snooze_uses_custom_minutes_from_settings(env):
    env.store.snooze = SnoozeConfig(use_custom=True, custom_minutes=15)

    async def scenario():
        session = env.make_session()
        await session.start()
        assert session.snooze_minutes == 15
        assert await session.snooze()
        assert env.scheduler.calls == [("schedule", "rem-1", timedelta(minutes=15), None)]
        assert env.snoozed == [True]
        assert not env.registry.active

    asyncio.run(scenario())


def test_snooze_defaults_to_ten_minutes_without_custom_setting(env):
    env.store.snooze = SnoozeConfig(use_custom=False, custom_minutes=25)

    async def scenario():
        session = env.make_session()
        await session.start()
        assert session.snooze_minutes == 10

    asyncio.run(scenario())


def test_late_snooze_config_does_not_override_user_choice(env):
    async def scenario():
        gate = asyncio.Event()
        env.store = FakeStore(snooze=SnoozeConfig(use_custom=True, custom_minutes=30), gate=gate)
        session = env.make_session()
        start_task = asyncio.create_task(session.start())
        await settle()
        assert session.state is ResolutionState.RUNNING

        session.increment_snooze()
        gate.set()
        assert await start_task
        assert session.snooze_minutes == 11

    asyncio.run(scenario())


def test_snooze_config_failure_keeps_default(env):
    env.store = FakeStore(fail=True)

    async def scenario():
        session = env.make_session()
        assert await session.start()
        assert session.snooze_minutes == 10
        assert session.is_running

    asyncio.run(scenario())


def test_dismiss_and_snooze_in_same_tick_resolve_once(env):
    async def scenario():
        session = env.make_session()
        await session.start()
        results = await asyncio.gather(session.dismiss(), session.snooze(5))

        assert results == [True, False]
        assert "schedule" not in env.scheduler.actions()
        assert env.dismissed == [True]
        assert env.snoozed == []
        assert env.sound.stop_calls == 1

    asyncio.run(scenario())


def test_snooze_minutes_floor_and_no_ceiling(env):
    async def scenario():
        session = env.make_session()
        await session.start()
        for _ in range(50):
            session.decrement_snooze()
        assert session.snooze_minutes == 1
        assert not session.view().can_decrement
        for _ in range(200):
            session.increment_snooze()
        assert session.snooze_minutes == 201

    asyncio.run(scenario())


def test_reminder_without_slots_falls_back_to_own_details(env):
    async def scenario():
        session = env.make_session(time_slot_id=None)
        await session.start()
        view = session.view()

        assert session.active_time_slot is None
        assert view.description == "Two tablets with water"
        assert view.scheduled_text == "Scheduled for 7:30 AM"
        assert view.clock_text == "07:30"
        assert view.date_text == "Wednesday, January 1"

    asyncio.run(scenario())


def test_slot_id_resolves_and_dismiss_targets_that_slot(env):
    async def scenario():
        session = env.make_session(two_slot_reminder(), time_slot_id="b")
        await session.start()

        assert session.active_time_slot.id == "b"
        view = session.view()
        assert view.scheduled_text == "Scheduled for 8:00 PM"
        assert view.description == "Evening dose"

        await session.dismiss()
        assert env.scheduler.calls[0] == ("cancel", "rem-2", "b")

    asyncio.run(scenario())


def test_unknown_slot_id_is_not_fatal(env):
    async def scenario():
        session = env.make_session(two_slot_reminder(), time_slot_id="zzz")
        assert await session.start()
        assert session.active_time_slot is None
        assert session.view().description == "Two tablets with water"

    asyncio.run(scenario())


def test_failed_manual_snooze_can_be_retried(env):
    env.scheduler.schedule_failures = 1

    async def scenario():
        session = env.make_session()
        await session.start()

        assert not await session.snooze(10)
        assert session.state is ResolutionState.RUNNING
        assert env.registry.owner is session
        assert not env.presenters[0].closed
        assert len(env.presenters[0].notices) == 1
        assert env.snoozed == []

        assert await session.snooze(5)
        assert env.scheduler.calls[-1] == ("schedule", "rem-1", timedelta(minutes=5), None)
        assert env.snoozed == [True]
        assert not env.registry.active
        assert env.sound.stop_calls == 1

    asyncio.run(scenario())


def test_failed_dismiss_rolls_back(env):
    env.scheduler.cancel_failures = 1

    async def scenario():
        session = env.make_session()
        await session.start()

        assert not await session.dismiss()
        assert session.is_running
        assert env.presenters[0].notices
        assert env.dismissed == []

        assert await session.dismiss()
        assert env.dismissed == [True]

    asyncio.run(scenario())


def test_failed_auto_snooze_leaves_alarm_open(env):
    env.scheduler.schedule_failures = 1

    async def scenario():
        session = env.make_session()
        await session.start()
        countdown = env.timers.named("alarm-countdown")
        countdown.fire(30)
        await settle()

        assert countdown.cancelled
        assert session.state is ResolutionState.RUNNING
        assert env.registry.owner is session
        assert not env.presenters[0].closed
        assert env.presenters[0].notices == []
        assert env.snoozed == []
        assert session.view().countdown_text is None

        countdown.fire(3)
        await settle()
        assert session.remaining_seconds == 0
        assert env.scheduler.actions().count("schedule") == 1

        assert await session.dismiss()
        assert not env.registry.active

    asyncio.run(scenario())


def test_dispose_without_resolution_cleans_up(env):
    async def scenario():
        session = env.make_session()
        await session.start()
        await session.dispose()
        await session.dispose()

        assert all(t.cancelled for t in env.timers.created)
        assert env.sound.stop_calls == 1
        assert not env.registry.active
        assert env.dismissed == [] and env.snoozed == []
        assert not await session.snooze()

        follow_up = env.make_session()
        assert await follow_up.start()

    asyncio.run(scenario())


def test_countdown_pauses_while_resolving(env):
    async def scenario():
        gate = asyncio.Event()
        real_schedule = env.scheduler.schedule

        async def slow_schedule(reminder, delay, time_slot_id=None):
            await gate.wait()
            await real_schedule(reminder, delay, time_slot_id)

        env.scheduler.schedule = slow_schedule
        session = env.make_session()
        await session.start()
        snooze_task = asyncio.create_task(session.snooze(3))
        await settle()
        assert session.state is ResolutionState.SNOOZING
        assert session.view().countdown_text is None

        env.timers.named("alarm-countdown").fire(40)
        assert session.remaining_seconds == 30

        gate.set()
        assert await snooze_task
        assert env.snoozed == [True]

    asyncio.run(scenario())


def test_snooze_rejects_zero_minutes(env):
    async def scenario():
        session = env.make_session()
        await session.start()
        with pytest.raises(ValueError):
            await session.snooze(0)
        assert session.is_running

    asyncio.run(scenario())


def test_callback_errors_do_not_escape(env):
    def broken():
        raise RuntimeError("listener blew up")

    async def scenario():
        session = env.make_session(on_dismissed=broken)
        await session.start()
        assert await session.dismiss()
        assert not env.registry.active
        assert env.presenters[0].closed

    asyncio.run(scenario())


def test_dispose_during_dismiss_lets_resolution_finish(env):
    async def scenario():
        gate = asyncio.Event()
        real_cancel = env.scheduler.cancel

        async def slow_cancel(reminder_id, time_slot_id=None):
            await gate.wait()
            return await real_cancel(reminder_id, time_slot_id)

        env.scheduler.cancel = slow_cancel
        session = env.make_session()
        await session.start()
        dismiss_task = asyncio.create_task(session.dismiss())
        await settle()
        assert session.state is ResolutionState.DISMISSING

        await session.dispose()
        assert not env.registry.active
        assert env.sound.stop_calls == 1
        assert all(t.cancelled for t in env.timers.created)

        follow_up = env.make_session(make_reminder(id="rem-3"))
        assert await follow_up.start()

        gate.set()
        assert await dismiss_task
        assert env.scheduler.actions() == ["cancel", "complete"]
        assert env.dismissed == [True]
        assert env.sound.stop_calls == 1
        assert env.presenters[0].close_calls <= 1
        assert session.state is ResolutionState.RESOLVED
        assert env.registry.owner is follow_up

    asyncio.run(scenario())


def test_dispose_before_auto_snooze_starts_skips_it(env):
    async def scenario():
        session = env.make_session()
        await session.start()
        env.timers.named("alarm-countdown").fire(30)
        await session.dispose()
        await settle()

        assert "schedule" not in env.scheduler.actions()
        assert env.snoozed == []
        assert not env.registry.active

    asyncio.run(scenario())


def test_dispose_during_auto_snooze_lets_it_finish(env):
    async def scenario():
        gate = asyncio.Event()
        real_schedule = env.scheduler.schedule

        async def slow_schedule(reminder, delay, time_slot_id=None):
            await gate.wait()
            await real_schedule(reminder, delay, time_slot_id)

        env.scheduler.schedule = slow_schedule
        session = env.make_session()
        await session.start()
        env.timers.named("alarm-countdown").fire(30)
        await settle()
        assert session.state is ResolutionState.AUTO_SNOOZING

        await session.dispose()
        assert not env.registry.active

        gate.set()
        await settle()
        assert env.scheduler.actions() == ["schedule"]
        assert env.snoozed == [True]
        assert env.sound.stop_calls == 1
        assert env.presenters[0].close_calls <= 1

    asyncio.run(scenario())


def test_snooze_after_resolution_ignores_bad_minutes(env):
    async def scenario():
        session = env.make_session()
        await session.start()
        assert await session.dismiss()
        assert not await session.snooze(0)
        assert "schedule" not in env.scheduler.actions()

    asyncio.run(scenario())
