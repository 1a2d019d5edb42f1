import logging
import logging.handlers
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _get_env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip() in {"1", "true", "True", "yes", "YES", "y"}


def _get_env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return int(val)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _get_env_float(name: str, default: float) -> float:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return float(val)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a float") from exc


DEFAULT_COUNTDOWN_SECONDS = 30
DEFAULT_SNOOZE_MINUTES = 10
AUTO_SNOOZE_MINUTES = 10


@dataclass
class AlarmSettings:
    countdown_seconds: int = DEFAULT_COUNTDOWN_SECONDS
    default_snooze_minutes: int = DEFAULT_SNOOZE_MINUTES
    auto_snooze_minutes: int = AUTO_SNOOZE_MINUTES
    tick_seconds: float = 1.0


@dataclass
class Config:
    reminders_path: Path
    settings_path: Path
    triggers_path: Path
    alarm_sound_path: Path
    alarm_check_interval_ms: int
    alarm_countdown_seconds: int
    alarm_auto_snooze_min: int
    alarm_default_snooze_min: int
    announce_alarms: bool
    timezone: Optional[str]
    debug: bool
    log_level: str

    @property
    def alarm_settings(self) -> AlarmSettings:
        return AlarmSettings(
            countdown_seconds=self.alarm_countdown_seconds,
            default_snooze_minutes=self.alarm_default_snooze_min,
            auto_snooze_minutes=self.alarm_auto_snooze_min,
        )


def load_config(env_path: Optional[Path] = None) -> Config:
    if env_path is None:
        env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    reminders_path = Path(os.getenv("REMINDERS_PATH", "data/reminders.json"))
    settings_path = Path(os.getenv("SETTINGS_PATH", "data/settings.json"))
    triggers_path = Path(os.getenv("TRIGGERS_PATH", "data/triggers.json"))
    alarm_sound_path = Path(os.getenv("ALARM_SOUND_PATH", "data/alarm.wav"))
    alarm_check_interval_ms = _get_env_int("ALARM_CHECK_INTERVAL_MS", 800)
    alarm_countdown_seconds = _get_env_int("ALARM_COUNTDOWN_SECONDS", DEFAULT_COUNTDOWN_SECONDS)
    alarm_auto_snooze_min = _get_env_int("ALARM_AUTO_SNOOZE_MIN", AUTO_SNOOZE_MINUTES)
    alarm_default_snooze_min = _get_env_int("ALARM_DEFAULT_SNOOZE_MIN", DEFAULT_SNOOZE_MINUTES)
    announce_alarms = _get_env_bool("ANNOUNCE_ALARMS", False)
    timezone = os.getenv("TIMEZONE") or None
    debug = _get_env_bool("DEBUG", False)
    log_level = os.getenv("LOG_LEVEL", "DEBUG" if debug else "INFO").upper()

    if alarm_countdown_seconds < 1:
        raise ValueError("ALARM_COUNTDOWN_SECONDS must be at least 1")
    if alarm_auto_snooze_min < 1 or alarm_default_snooze_min < 1:
        raise ValueError("Snooze durations must be at least 1 minute")

    return Config(
        reminders_path=reminders_path,
        settings_path=settings_path,
        triggers_path=triggers_path,
        alarm_sound_path=alarm_sound_path,
        alarm_check_interval_ms=alarm_check_interval_ms,
        alarm_countdown_seconds=alarm_countdown_seconds,
        alarm_auto_snooze_min=alarm_auto_snooze_min,
        alarm_default_snooze_min=alarm_default_snooze_min,
        announce_alarms=announce_alarms,
        timezone=timezone,
        debug=debug,
        log_level=log_level,
    )


def setup_logging(log_level: str = "INFO") -> None:
    logs_dir = Path("logs")
    logs_dir.mkdir(exist_ok=True)

    log_path = logs_dir / "reminder_alarm.log"
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        handlers=[file_handler, console_handler],
    )
