"""Alarm subsystem for the reminder runtime."""

from .activation import ActivationRegistry
from .launcher import AlarmLauncher
from .parser import AlarmCommand, parse_alarm_command
from .scheduler import ReminderScheduler, SchedulingError
from .session import AlarmSession, ResolutionState
