"""
ScheduleReconciler - merges freshly expanded check-ins with the persisted set
"""
import logging
from datetime import datetime, timedelta
from typing import Iterable, List

from config.settings import CHECK_IN_HOUR, HORIZON_DAYS

from .expander import expand
from .models import Patient, ProactiveSequence, ScheduledCheckIn, CheckInStatus

logger = logging.getLogger("outreach-reconciler")

# Existing items in these states are carried over verbatim when re-expanded
PRESERVED_STATUSES = {
    CheckInStatus.SCHEDULED,
    CheckInStatus.IN_PROGRESS,
    CheckInStatus.COMPLETED,
}


def reconcile(
    patients: Iterable[Patient],
    sequences: List[ProactiveSequence],
    existing_check_ins: Iterable[ScheduledCheckIn],
    now: datetime,
    horizon_days: int = HORIZON_DAYS,
    check_in_hour: int = CHECK_IN_HOUR,
    clinic_timezone: str = "UTC",
) -> List[ScheduledCheckIn]:
    """
    Recompute the check-in set for all patients

    Pure function over a snapshot: persistence of the result is up to the
    caller. Running it twice with the same clock yields the same set.

    - An expanded item whose id already exists keeps the existing record
      (status, triggered_at and conversation_id survive).
    - A new item is only materialized if it is strictly in the future, so a
      schedule change never makes the dispatcher fire a backlog at once.
    - Items for patients that are gone, or further out than the horizon,
      are dropped.

    Args:
        patients: Every current patient
        sequences: The full sequence library
        existing_check_ins: Previously persisted check-ins
        now: Current time
        horizon_days: Rolling horizon beyond which items are dropped

    Returns:
        The reconciled check-ins, ordered by time then id
    """
    patients = list(patients)
    existing_by_id = {
        ci.id: ci for ci in existing_check_ins
        if ci.status in PRESERVED_STATUSES
    }

    reconciled = []
    seen_ids = set()
    kept = created = skipped_past = 0

    for patient in patients:
        for check_in in expand(patient, sequences, now, check_in_hour, clinic_timezone):
            if check_in.id in seen_ids:
                continue
            seen_ids.add(check_in.id)

            existing = existing_by_id.get(check_in.id)
            if existing is not None:
                reconciled.append(existing)
                kept += 1
            elif check_in.scheduled_for > now:
                reconciled.append(check_in)
                created += 1
            else:
                skipped_past += 1

    patient_ids = {p.id for p in patients}
    horizon = now + timedelta(days=horizon_days)
    result = [
        ci for ci in reconciled
        if ci.patient_id in patient_ids and ci.scheduled_for <= horizon
    ]

    logger.info(
        f"Reconciled check-ins: {kept} kept, {created} new, {skipped_past} past steps skipped, "
        f"{len(reconciled) - len(result)} beyond horizon"
    )
    return sorted(result, key=lambda ci: (ci.scheduled_for, ci.id))


def clear_future_check_ins(check_ins: Iterable[ScheduledCheckIn], now: datetime) -> List[ScheduledCheckIn]:
    """
    Drop every ``scheduled`` check-in that is strictly in the future

    History (completed, cancelled), in-flight calls (in_progress) and
    past-due scheduled items are kept. Run this before ``reconcile`` when
    patients or sequences change.
    """
    kept = []
    removed = 0
    for ci in check_ins:
        if ci.status == CheckInStatus.SCHEDULED and ci.scheduled_for > now:
            removed += 1
            continue
        kept.append(ci)

    if removed:
        logger.info(f"Cleared {removed} future scheduled check-ins")
    return kept


def recalculate(
    patients: Iterable[Patient],
    sequences: List[ProactiveSequence],
    existing_check_ins: Iterable[ScheduledCheckIn],
    now: datetime,
    **options,
) -> List[ScheduledCheckIn]:
    """Clear future scheduled items, then reconcile; the change-event path"""
    cleared = clear_future_check_ins(existing_check_ins, now)
    return reconcile(patients, sequences, cleared, now, **options)
