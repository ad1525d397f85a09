"""
Outcome ingestion - applies the real-world result of a placed call back onto
the task or check-in it was dispatched for, keyed by correlation id
"""
import logging
from datetime import datetime
from typing import Iterable, Optional

from config.settings import CallbackSettings

from .callbacks import log_attempt
from .models import CallbackTask, CheckInStatus, ScheduledCheckIn

logger = logging.getLogger("outreach-ingestion")


def find_task_by_conversation(tasks: Iterable[CallbackTask], conversation_id: str) -> Optional[CallbackTask]:
    for task in tasks:
        if task.conversation_id and task.conversation_id == conversation_id:
            return task
    return None


def find_check_in_by_conversation(
    check_ins: Iterable[ScheduledCheckIn], conversation_id: str
) -> Optional[ScheduledCheckIn]:
    for check_in in check_ins:
        if check_in.conversation_id and check_in.conversation_id == conversation_id:
            return check_in
    return None


def record_callback_outcome(
    tasks: Iterable[CallbackTask],
    conversation_id: str,
    outcome,
    now: datetime,
    settings: Optional[CallbackSettings] = None,
    notes: Optional[str] = None,
    duration_sec: Optional[int] = None,
) -> Optional[CallbackTask]:
    """
    Log the outcome of a dispatched callback call

    Returns:
        The updated task, or None if no task carries the conversation id

    Raises:
        InvalidOutcomeError: If the outcome is not recognised
        CallbackTaskClosedError: If the matching task is already terminal
    """
    task = find_task_by_conversation(tasks, conversation_id)
    if task is None:
        logger.warning(f"No callback task found for conversation {conversation_id}")
        return None
    return log_attempt(task, outcome, now, settings=settings, notes=notes, duration_sec=duration_sec)


def complete_check_in(
    check_ins: Iterable[ScheduledCheckIn],
    conversation_id: str,
    now: datetime,
    call_id: Optional[str] = None,
) -> Optional[ScheduledCheckIn]:
    """
    Mark the check-in dispatched under ``conversation_id`` as completed

    Returns:
        The updated check-in, or None if no check-in carries the conversation id
    """
    check_in = find_check_in_by_conversation(check_ins, conversation_id)
    if check_in is None:
        logger.warning(f"No check-in found for conversation {conversation_id}")
        return None

    check_in.status = CheckInStatus.COMPLETED
    check_in.completed_at = now
    check_in.completed_call_id = call_id
    logger.info(f"Check-in {check_in.id} completed (conversation {conversation_id})")
    return check_in
