"""
Proactive outreach scheduling for the clinic

Pure scheduling core (sequence expansion, reconciliation, callback retry
state, due-item selection, outcome ingestion). Redis persistence, RQ jobs
and the dispatcher live in their own modules and are imported explicitly.
"""

from .callbacks import (
    calculate_due_at,
    create_callback_from_call,
    create_callback_task,
    derive_status,
    log_attempt,
    reopen_task,
    should_auto_create_callback,
)
from .exceptions import (
    CallbackTaskClosedError,
    ConfigurationError,
    InvalidOutcomeError,
    OutboundCallError,
    OutreachError,
)
from .expander import check_in_id, expand
from .ingestion import complete_check_in, record_callback_outcome
from .models import (
    CallbackAttempt,
    CallbackOutcome,
    CallbackStatus,
    CallbackTask,
    Channel,
    CheckInStatus,
    Patient,
    Priority,
    ProactiveSequence,
    ScheduledCheckIn,
    SequenceStep,
)
from .reconciler import clear_future_check_ins, recalculate, reconcile
from .selector import due_callback_tasks, due_check_ins

__all__ = [
    "calculate_due_at",
    "create_callback_from_call",
    "create_callback_task",
    "derive_status",
    "log_attempt",
    "reopen_task",
    "should_auto_create_callback",
    "CallbackTaskClosedError",
    "ConfigurationError",
    "InvalidOutcomeError",
    "OutboundCallError",
    "OutreachError",
    "check_in_id",
    "expand",
    "complete_check_in",
    "record_callback_outcome",
    "CallbackAttempt",
    "CallbackOutcome",
    "CallbackStatus",
    "CallbackTask",
    "Channel",
    "CheckInStatus",
    "Patient",
    "Priority",
    "ProactiveSequence",
    "ScheduledCheckIn",
    "SequenceStep",
    "clear_future_check_ins",
    "recalculate",
    "reconcile",
    "due_callback_tasks",
    "due_check_ins",
]
