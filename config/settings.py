"""
Outreach agent configuration

Explicit, validated settings for callback retries, outbound calling and the
check-in scheduler. Values come from environment variables (a local .env file
is honoured) with defaults matching the clinic dashboard.
"""
import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

import pytz
from dotenv import load_dotenv

# Product constants. These are deliberate product decisions rather than
# tuning knobs, so the defaults below mirror them.
CHECK_IN_HOUR = 9
DEDUP_WINDOW = timedelta(minutes=5)
HORIZON_DAYS = 90
DISPATCH_INTERVAL_SECONDS = 60
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_REDIAL_INTERVAL_MINUTES = 60
OUTBOUND_CALL_TIMEOUT_SECONDS = 30

PRIORITIES = ("high", "medium", "low")

# How long after creation a callback task becomes due, by priority
PRIORITY_DUE_OFFSETS = {
    "high": timedelta(hours=1),
    "medium": timedelta(hours=24),
    "low": timedelta(hours=48),
}

ELEVENLABS_OUTBOUND_CALL_URL = "https://api.elevenlabs.io/v1/convai/twilio/outbound-call"


class ConfigurationError(ValueError):
    """Raised when a settings value is missing or out of range"""


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


@dataclass
class CallbackSettings:
    """Retry policy for callback tasks"""
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    redial_interval_minutes: int = DEFAULT_REDIAL_INTERVAL_MINUTES
    auto_create_on_escalation: bool = True
    auto_create_on_voicemail: bool = True
    auto_create_on_no_answer: bool = True
    priority_by_default: str = "medium"

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.redial_interval_minutes < 1:
            raise ConfigurationError(
                f"redial_interval_minutes must be at least 1, got {self.redial_interval_minutes}"
            )
        if self.priority_by_default not in PRIORITIES:
            raise ConfigurationError(f"Unknown default priority: {self.priority_by_default!r}")

    @property
    def redial_interval(self) -> timedelta:
        return timedelta(minutes=self.redial_interval_minutes)


@dataclass
class OutboundCallSettings:
    """Outbound voice agent provider settings"""
    clinic_name: str = ""
    agent_id: Optional[str] = None
    outbound_agent_id: Optional[str] = None
    phone_number_id: Optional[str] = None
    api_key: Optional[str] = field(default=None, repr=False)
    api_url: str = ELEVENLABS_OUTBOUND_CALL_URL
    timeout_seconds: int = OUTBOUND_CALL_TIMEOUT_SECONDS

    def __post_init__(self):
        if self.timeout_seconds <= 0:
            raise ConfigurationError(f"timeout_seconds must be positive, got {self.timeout_seconds}")

    @property
    def effective_agent_id(self) -> Optional[str]:
        """The outbound agent if one is set, otherwise the inbound agent"""
        return self.outbound_agent_id or self.agent_id

    @property
    def is_configured(self) -> bool:
        return bool(self.effective_agent_id and self.phone_number_id)


@dataclass
class SchedulerSettings:
    """Check-in scheduling and dispatch loop settings"""
    poll_interval_seconds: int = DISPATCH_INTERVAL_SECONDS
    check_in_hour: int = CHECK_IN_HOUR
    dedup_window_minutes: int = int(DEDUP_WINDOW.total_seconds() // 60)
    horizon_days: int = HORIZON_DAYS
    clinic_timezone: str = "UTC"
    owner: str = "default"

    def __post_init__(self):
        if self.poll_interval_seconds <= 0:
            raise ConfigurationError("poll_interval_seconds must be positive")
        if not 0 <= self.check_in_hour <= 23:
            raise ConfigurationError(f"check_in_hour must be 0-23, got {self.check_in_hour}")
        if self.dedup_window_minutes < 0:
            raise ConfigurationError("dedup_window_minutes cannot be negative")
        if self.horizon_days < 1:
            raise ConfigurationError("horizon_days must be at least 1")
        if self.clinic_timezone not in pytz.all_timezones_set:
            raise ConfigurationError(f"Unknown clinic timezone: {self.clinic_timezone!r}")

    @property
    def dedup_window(self) -> timedelta:
        return timedelta(minutes=self.dedup_window_minutes)


@dataclass
class AgentConfig:
    """Complete configuration for the outreach agent"""
    callbacks: CallbackSettings = field(default_factory=CallbackSettings)
    outbound: OutboundCallSettings = field(default_factory=OutboundCallSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)


def load_agent_config(env_file: Optional[str] = None) -> AgentConfig:
    """
    Build an AgentConfig from environment variables

    Args:
        env_file: Optional path to a .env file (defaults to searching upwards)

    Returns:
        Validated AgentConfig

    Raises:
        ConfigurationError: If any value is malformed or out of range
    """
    load_dotenv(env_file)

    callbacks = CallbackSettings(
        max_attempts=_env_int("CALLBACK_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS),
        redial_interval_minutes=_env_int("CALLBACK_REDIAL_INTERVAL_MINUTES", DEFAULT_REDIAL_INTERVAL_MINUTES),
        auto_create_on_escalation=_env_bool("CALLBACK_AUTO_CREATE_ON_ESCALATION", True),
        auto_create_on_voicemail=_env_bool("CALLBACK_AUTO_CREATE_ON_VOICEMAIL", True),
        auto_create_on_no_answer=_env_bool("CALLBACK_AUTO_CREATE_ON_NO_ANSWER", True),
        priority_by_default=os.getenv("CALLBACK_DEFAULT_PRIORITY", "medium"),
    )
    outbound = OutboundCallSettings(
        clinic_name=os.getenv("CLINIC_NAME", ""),
        agent_id=os.getenv("ELEVENLABS_AGENT_ID") or None,
        outbound_agent_id=os.getenv("ELEVENLABS_OUTBOUND_AGENT_ID") or None,
        phone_number_id=os.getenv("ELEVENLABS_PHONE_NUMBER_ID") or None,
        api_key=os.getenv("ELEVENLABS_API_KEY") or None,
        api_url=os.getenv("ELEVENLABS_OUTBOUND_CALL_URL", ELEVENLABS_OUTBOUND_CALL_URL),
        timeout_seconds=_env_int("OUTBOUND_CALL_TIMEOUT_SECONDS", OUTBOUND_CALL_TIMEOUT_SECONDS),
    )
    scheduler = SchedulerSettings(
        poll_interval_seconds=_env_int("OUTREACH_POLL_INTERVAL_SECONDS", DISPATCH_INTERVAL_SECONDS),
        check_in_hour=_env_int("OUTREACH_CHECK_IN_HOUR", CHECK_IN_HOUR),
        dedup_window_minutes=_env_int("OUTREACH_DEDUP_WINDOW_MINUTES", int(DEDUP_WINDOW.total_seconds() // 60)),
        horizon_days=_env_int("OUTREACH_HORIZON_DAYS", HORIZON_DAYS),
        clinic_timezone=os.getenv("CLINIC_TIMEZONE", "UTC"),
        owner=os.getenv("OUTREACH_OWNER", "default"),
    )
    return AgentConfig(callbacks=callbacks, outbound=outbound, scheduler=scheduler)
