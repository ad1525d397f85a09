"""
Data models for the clinic outreach scheduler
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional, Dict, Any, List
import uuid

from utils.time_utils import now_utc, parse_iso_to_utc, parse_optional, isoformat_or_none

from .exceptions import InvalidOutcomeError


class Channel(Enum):
    """How a check-in step reaches the patient"""
    CALL = "call"
    SMS = "sms"


class CheckInStatus(Enum):
    """Status of a scheduled check-in"""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


class Priority(Enum):
    """Callback task priority"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class CallbackOutcome(Enum):
    """Outcome of one attempt to reach a patient for a callback task"""
    ANSWERED = "answered"
    VOICEMAIL = "voicemail"
    NO_ANSWER = "no_answer"
    BUSY = "busy"
    WRONG_NUMBER = "wrong_number"

    @classmethod
    def parse(cls, value) -> "CallbackOutcome":
        """
        Convert a raw outcome value to a CallbackOutcome

        Unlike free-text fields, the outcome set is closed: anything that is
        not exactly one of the five values is rejected.

        Raises:
            InvalidOutcomeError: If the value is not a known outcome
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidOutcomeError(value) from None


class CallbackStatus(Enum):
    """Derived lifecycle status of a callback task"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    MAX_ATTEMPTS_REACHED = "max_attempts_reached"


def _parse_date(value) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, date):
        return value
    # Accept both plain dates and full timestamps
    if len(value) == 10:
        return date.fromisoformat(value)
    return parse_iso_to_utc(value).date()


@dataclass
class Patient:
    """
    A clinic patient as seen by the scheduler.

    Owned and edited elsewhere; the scheduler only reads it.
    """
    id: str
    name: str = ""
    phone: str = ""
    tags: List[str] = field(default_factory=list)
    fitting_date: Optional[date] = None
    proactive_check_ins_enabled: bool = False
    # When set, overrides tag-based sequence matching
    selected_sequence_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "tags": list(self.tags),
            "fitting_date": self.fitting_date.isoformat() if self.fitting_date else None,
            "proactive_check_ins_enabled": self.proactive_check_ins_enabled,
            "selected_sequence_ids": list(self.selected_sequence_ids),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Patient":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            phone=data.get("phone", ""),
            tags=list(data.get("tags") or []),
            fitting_date=_parse_date(data.get("fitting_date")),
            proactive_check_ins_enabled=bool(data.get("proactive_check_ins_enabled", False)),
            selected_sequence_ids=list(data.get("selected_sequence_ids") or []),
        )


@dataclass
class SequenceStep:
    """One touchpoint of an outreach sequence, relative to the fitting date"""
    day: int
    channel: Channel = Channel.CALL
    goal: str = ""
    script: str = ""
    questions: List[str] = field(default_factory=list)
    triggers: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.day < 1:
            raise ValueError(f"Sequence step day must be at least 1, got {self.day}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "day": self.day,
            "channel": self.channel.value,
            "goal": self.goal,
            "script": self.script,
            "questions": list(self.questions),
            "triggers": list(self.triggers),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SequenceStep":
        return cls(
            day=int(data["day"]),
            channel=Channel(data.get("channel", "call")),
            goal=data.get("goal", ""),
            script=data.get("script", ""),
            questions=list(data.get("questions") or []),
            triggers=list(data.get("triggers") or []),
        )


@dataclass
class ProactiveSequence:
    """An ordered outreach template applied to patients after their fitting"""
    id: str
    name: str = ""
    audience_tag: str = ""
    steps: List[SequenceStep] = field(default_factory=list)
    active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "audience_tag": self.audience_tag,
            "steps": [step.to_dict() for step in self.steps],
            "active": self.active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProactiveSequence":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            audience_tag=data.get("audience_tag", ""),
            steps=[SequenceStep.from_dict(step) for step in data.get("steps") or []],
            active=bool(data.get("active", True)),
        )


@dataclass
class ScheduledCheckIn:
    """
    A concrete check-in produced by expanding a sequence step for a patient.

    The id is derived from (patient, sequence, step day), so recomputing the
    schedule always yields the same ids for the same inputs.
    """
    id: str
    patient_id: str
    sequence_id: str
    step_day: int
    scheduled_for: datetime
    patient_name: str = ""
    phone: str = ""
    sequence_name: str = ""
    channel: Channel = Channel.CALL
    goal: str = ""
    script: str = ""
    questions: List[str] = field(default_factory=list)
    status: CheckInStatus = CheckInStatus.SCHEDULED
    triggered_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completed_call_id: Optional[str] = None
    conversation_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "patient_name": self.patient_name,
            "phone": self.phone,
            "sequence_id": self.sequence_id,
            "sequence_name": self.sequence_name,
            "step_day": self.step_day,
            "scheduled_for": self.scheduled_for.isoformat(),
            "channel": self.channel.value,
            "goal": self.goal,
            "script": self.script,
            "questions": list(self.questions),
            "status": self.status.value,
            "triggered_at": isoformat_or_none(self.triggered_at),
            "completed_at": isoformat_or_none(self.completed_at),
            "completed_call_id": self.completed_call_id,
            "conversation_id": self.conversation_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScheduledCheckIn":
        """Create from dictionary"""
        return cls(
            id=data["id"],
            patient_id=data["patient_id"],
            patient_name=data.get("patient_name", ""),
            phone=data.get("phone", ""),
            sequence_id=data["sequence_id"],
            sequence_name=data.get("sequence_name", ""),
            step_day=int(data["step_day"]),
            scheduled_for=parse_iso_to_utc(data["scheduled_for"]),
            channel=Channel(data.get("channel", "call")),
            goal=data.get("goal", ""),
            script=data.get("script", ""),
            questions=list(data.get("questions") or []),
            status=CheckInStatus(data.get("status", "scheduled")),
            triggered_at=parse_optional(data.get("triggered_at")),
            completed_at=parse_optional(data.get("completed_at")),
            completed_call_id=data.get("completed_call_id") or None,
            conversation_id=data.get("conversation_id") or None,
        )


@dataclass(frozen=True)
class CallbackAttempt:
    """One recorded outcome of trying to reach a patient. Never edited."""
    attempt_number: int
    timestamp: datetime
    outcome: CallbackOutcome
    notes: Optional[str] = None
    duration_sec: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt_number": self.attempt_number,
            "timestamp": self.timestamp.isoformat(),
            "outcome": self.outcome.value,
            "notes": self.notes,
            "duration_sec": self.duration_sec,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CallbackAttempt":
        duration = data.get("duration_sec")
        return cls(
            attempt_number=int(data["attempt_number"]),
            timestamp=parse_iso_to_utc(data["timestamp"]),
            outcome=CallbackOutcome.parse(data["outcome"]),
            notes=data.get("notes") or None,
            duration_sec=int(duration) if duration is not None else None,
        )


@dataclass
class CallbackTask:
    """
    A bounded-retry obligation to call a patient back.

    There is no stored status: ``status`` is recomputed from ``attempts`` and
    ``max_attempts`` on every read.
    """
    id: str = field(default_factory=lambda: f"task-{uuid.uuid4()}")
    patient_id: str = ""
    patient_name: str = ""
    phone: str = ""
    call_reason: str = ""
    call_goal: str = ""
    priority: Priority = Priority.MEDIUM
    created_at: datetime = field(default_factory=now_utc)
    due_at: Optional[datetime] = None
    max_attempts: int = 3
    next_attempt_at: Optional[datetime] = None
    attempts: List[CallbackAttempt] = field(default_factory=list)

    # The call that caused this task, if any
    call_id: Optional[str] = None

    # Correlation id and time of the last successful dispatch
    conversation_id: Optional[str] = None
    triggered_at: Optional[datetime] = None

    @property
    def status(self) -> CallbackStatus:
        from .callbacks import derive_status
        return derive_status(self.attempts, self.max_attempts)

    @property
    def has_answered(self) -> bool:
        return any(a.outcome == CallbackOutcome.ANSWERED for a in self.attempts)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary; ``status`` is included for readers only"""
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "patient_name": self.patient_name,
            "phone": self.phone,
            "call_reason": self.call_reason,
            "call_goal": self.call_goal,
            "priority": self.priority.value,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "due_at": isoformat_or_none(self.due_at),
            "max_attempts": self.max_attempts,
            "next_attempt_at": isoformat_or_none(self.next_attempt_at),
            "attempts": [attempt.to_dict() for attempt in self.attempts],
            "call_id": self.call_id,
            "conversation_id": self.conversation_id,
            "triggered_at": isoformat_or_none(self.triggered_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CallbackTask":
        """Create from dictionary. Any stored ``status`` is ignored."""
        attempts = [CallbackAttempt.from_dict(a) for a in data.get("attempts") or []]
        return cls(
            id=data["id"],
            patient_id=data.get("patient_id", ""),
            patient_name=data.get("patient_name", ""),
            phone=data.get("phone", ""),
            call_reason=data.get("call_reason", ""),
            call_goal=data.get("call_goal", ""),
            priority=Priority(data.get("priority", "medium")),
            created_at=parse_iso_to_utc(data["created_at"]),
            due_at=parse_optional(data.get("due_at")),
            max_attempts=int(data.get("max_attempts", 3)),
            next_attempt_at=parse_optional(data.get("next_attempt_at")),
            attempts=sorted(attempts, key=lambda a: a.attempt_number),
            call_id=data.get("call_id") or None,
            conversation_id=data.get("conversation_id") or None,
            triggered_at=parse_optional(data.get("triggered_at")),
        )
