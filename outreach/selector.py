"""
DueItemSelector - finds callback tasks and check-ins that are ready to dispatch
"""
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from config.settings import DEDUP_WINDOW

from .models import CallbackStatus, CallbackTask, CheckInStatus, ScheduledCheckIn


def _recently_triggered(triggered_at: Optional[datetime], now: datetime, window: timedelta) -> bool:
    return triggered_at is not None and now - triggered_at < window


def is_callback_task_due(task: CallbackTask, now: datetime, dedup_window: timedelta = DEDUP_WINDOW) -> bool:
    """
    A task is due when it is still pending and either its due time or its
    next-attempt time has arrived

    A task dispatched within the dedup window is held back until its
    outcome has had a chance to arrive.
    """
    if task.status != CallbackStatus.PENDING:
        return False
    if _recently_triggered(task.triggered_at, now, dedup_window):
        return False
    if task.due_at and task.due_at <= now:
        return True
    if task.next_attempt_at and task.next_attempt_at <= now:
        return True
    return False


def is_check_in_due(check_in: ScheduledCheckIn, now: datetime, dedup_window: timedelta = DEDUP_WINDOW) -> bool:
    """
    A check-in is due when it is scheduled, its time has arrived and it was
    not triggered within the dedup window
    """
    if check_in.status != CheckInStatus.SCHEDULED:
        return False
    if check_in.scheduled_for > now:
        return False
    return not _recently_triggered(check_in.triggered_at, now, dedup_window)


def due_callback_tasks(
    tasks: Iterable[CallbackTask],
    now: datetime,
    dedup_window: timedelta = DEDUP_WINDOW,
) -> List[CallbackTask]:
    """Pending callback tasks whose due or next-attempt time has arrived"""
    return [task for task in tasks if is_callback_task_due(task, now, dedup_window)]


def due_check_ins(
    check_ins: Iterable[ScheduledCheckIn],
    now: datetime,
    dedup_window: timedelta = DEDUP_WINDOW,
) -> List[ScheduledCheckIn]:
    """Scheduled check-ins whose time has arrived, outside the dedup window"""
    return [ci for ci in check_ins if is_check_in_due(ci, now, dedup_window)]
