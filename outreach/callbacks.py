"""
CallbackRetryStateMachine - status derivation and attempt logging for
callback tasks
"""
import logging
from datetime import datetime
from typing import List, Optional, Sequence

from config.settings import CallbackSettings, PRIORITY_DUE_OFFSETS

from .exceptions import CallbackTaskClosedError
from .models import CallbackAttempt, CallbackOutcome, CallbackStatus, CallbackTask, Priority

logger = logging.getLogger("outreach-callbacks")

TERMINAL_STATUSES = {
    CallbackStatus.COMPLETED,
    CallbackStatus.CANCELLED,
    CallbackStatus.MAX_ATTEMPTS_REACHED,
}

# Outcomes that leave the task open for another redial
REDIAL_OUTCOMES = {
    CallbackOutcome.VOICEMAIL,
    CallbackOutcome.NO_ANSWER,
    CallbackOutcome.BUSY,
}


def derive_status(attempts: Sequence[CallbackAttempt], max_attempts: int) -> CallbackStatus:
    """
    Status of a callback task as a pure function of its attempt history

    A wrong number cancels the task even when attempts remain.
    """
    outcomes = {attempt.outcome for attempt in attempts}

    if CallbackOutcome.ANSWERED in outcomes:
        return CallbackStatus.COMPLETED
    if CallbackOutcome.WRONG_NUMBER in outcomes:
        return CallbackStatus.CANCELLED
    if len(attempts) >= max_attempts:
        return CallbackStatus.MAX_ATTEMPTS_REACHED
    if attempts:
        return CallbackStatus.IN_PROGRESS
    return CallbackStatus.PENDING


def calculate_due_at(created_at: datetime, priority: Priority) -> datetime:
    """When a new task becomes due: 1h for high, 24h for medium, 48h for low"""
    return created_at + PRIORITY_DUE_OFFSETS[Priority(priority).value]


def create_callback_task(
    patient_id: str,
    call_reason: str,
    call_goal: str,
    now: datetime,
    settings: Optional[CallbackSettings] = None,
    priority: Optional[Priority] = None,
    max_attempts: Optional[int] = None,
    patient_name: str = "",
    phone: str = "",
    call_id: Optional[str] = None,
) -> CallbackTask:
    """
    Create a new pending callback task

    Args:
        patient_id: Patient to call back
        call_reason: Why the call is being made (passed to the voice agent)
        call_goal: What the call should achieve (passed to the voice agent)
        now: Creation time
        settings: Callback settings supplying defaults
        priority: Overrides the default priority
        max_attempts: Overrides the default attempt ceiling

    Returns:
        The new task, due according to its priority
    """
    settings = settings or CallbackSettings()
    call_reason = call_reason.strip()
    call_goal = call_goal.strip()
    if not call_reason or not call_goal:
        raise ValueError("A callback task needs both a call reason and a call goal")

    priority = Priority(priority) if priority else Priority(settings.priority_by_default)
    max_attempts = max_attempts if max_attempts is not None else settings.max_attempts
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    task = CallbackTask(
        patient_id=patient_id,
        patient_name=patient_name,
        phone=phone,
        call_reason=call_reason,
        call_goal=call_goal,
        priority=priority,
        created_at=now,
        due_at=calculate_due_at(now, priority),
        max_attempts=max_attempts,
        call_id=call_id,
    )
    logger.info(f"Created {priority.value} priority callback task {task.id} for patient {patient_id}")
    return task


def create_callback_from_call(
    call_id: str,
    patient_id: str,
    call_reason: str,
    call_goal: str,
    escalated: bool,
    now: datetime,
    settings: Optional[CallbackSettings] = None,
    patient_name: str = "",
    phone: str = "",
) -> CallbackTask:
    """Create a callback task for an inbound call; escalated calls are high priority"""
    settings = settings or CallbackSettings()
    priority = Priority.HIGH if escalated else Priority(settings.priority_by_default)
    return create_callback_task(
        patient_id=patient_id,
        call_reason=call_reason,
        call_goal=call_goal,
        now=now,
        settings=settings,
        priority=priority,
        patient_name=patient_name,
        phone=phone,
        call_id=call_id,
    )


def should_auto_create_callback(settings: CallbackSettings, outcome: str, escalated: bool = False) -> bool:
    """
    Whether a finished inbound call should spawn a callback task automatically

    Args:
        settings: Callback settings with the auto-create flags
        outcome: Call outcome as reported by the call log (e.g. "voicemail")
        escalated: Whether the call was escalated to staff
    """
    if escalated and settings.auto_create_on_escalation:
        return True
    if outcome == "voicemail":
        return settings.auto_create_on_voicemail
    if outcome == "no_answer":
        return settings.auto_create_on_no_answer
    return False


def log_attempt(
    task: CallbackTask,
    outcome,
    now: datetime,
    settings: Optional[CallbackSettings] = None,
    notes: Optional[str] = None,
    duration_sec: Optional[int] = None,
) -> CallbackTask:
    """
    Append an attempt to a task and schedule the next redial if one is allowed

    The outcome is validated before anything changes, so a rejected call
    leaves the task exactly as it was.

    Args:
        task: Task to update in place
        outcome: One of the five attempt outcomes (enum or its string value)
        now: Time of the attempt
        settings: Supplies the redial interval
        notes: Optional free-text notes
        duration_sec: Optional call duration

    Returns:
        The updated task

    Raises:
        InvalidOutcomeError: If the outcome is not recognised
        CallbackTaskClosedError: If the task is already terminal
    """
    outcome = CallbackOutcome.parse(outcome)
    settings = settings or CallbackSettings()

    current = task.status
    if current in TERMINAL_STATUSES:
        raise CallbackTaskClosedError(task.id, current.value)

    attempt = CallbackAttempt(
        attempt_number=len(task.attempts) + 1,
        timestamp=now,
        outcome=outcome,
        notes=notes or None,
        duration_sec=duration_sec,
    )
    task.attempts = task.attempts + [attempt]

    if outcome in REDIAL_OUTCOMES and len(task.attempts) < task.max_attempts:
        task.next_attempt_at = now + settings.redial_interval
    else:
        task.next_attempt_at = None

    logger.info(
        f"Logged attempt {attempt.attempt_number}/{task.max_attempts} for task {task.id}: "
        f"{outcome.value} -> {task.status.value}"
    )
    return task


def reopen_task(task: CallbackTask) -> CallbackTask:
    """
    Reopen a completed task by dropping its answered attempts

    This is the one operation that removes history; it exists for staff who
    marked a call answered by mistake.
    """
    remaining = [a for a in task.attempts if a.outcome != CallbackOutcome.ANSWERED]
    removed = len(task.attempts) - len(remaining)
    task.attempts = remaining
    if removed:
        logger.warning(f"Reopened task {task.id}: removed {removed} answered attempt(s)")
    return task


def summarize_statuses(tasks: List[CallbackTask]) -> dict:
    """Count tasks by derived status"""
    counts = {status.value: 0 for status in CallbackStatus}
    for task in tasks:
        counts[task.status.value] += 1
    return counts
