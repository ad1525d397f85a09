"""
SequenceExpander - turns a patient's fitting date and the sequence library
into the check-ins that should exist for that patient
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from config.settings import CHECK_IN_HOUR
from utils.time_utils import at_local_hour, local_date

from .models import Patient, ProactiveSequence, ScheduledCheckIn, CheckInStatus

logger = logging.getLogger("outreach-expander")


def check_in_id(patient_id: str, sequence_id: str, step_day: int) -> str:
    """Deterministic check-in id; recomputing a schedule reuses the same ids"""
    return f"checkin-{patient_id}-{sequence_id}-{step_day}"


def applicable_sequences(patient: Patient, sequences: List[ProactiveSequence]) -> List[ProactiveSequence]:
    """
    Active sequences that apply to a patient

    An explicit per-patient selection wins over tag matching, which lets
    staff override automatic targeting for one patient.
    """
    if patient.selected_sequence_ids:
        selected = set(patient.selected_sequence_ids)
        return [seq for seq in sequences if seq.active and seq.id in selected]

    tags = set(patient.tags)
    return [seq for seq in sequences if seq.active and seq.audience_tag in tags]


def expand(
    patient: Patient,
    sequences: List[ProactiveSequence],
    now: Optional[datetime] = None,
    check_in_hour: int = CHECK_IN_HOUR,
    clinic_timezone: str = "UTC",
) -> List[ScheduledCheckIn]:
    """
    Expand every step of every applicable sequence into a check-in

    Steps whose time has already passed are still emitted; deciding whether
    a past item may be materialized is the reconciler's job.

    Args:
        patient: Patient to expand
        sequences: The full sequence library
        now: Current time (accepted for interface symmetry, not used for filtering)
        check_in_hour: Wall-clock hour all check-ins land on
        clinic_timezone: Timezone of that wall clock

    Returns:
        Check-ins in status ``scheduled``, ordered by time then id
    """
    if not patient.proactive_check_ins_enabled or not patient.fitting_date:
        return []

    fitting_day = local_date(patient.fitting_date, clinic_timezone)
    check_ins = []

    for sequence in applicable_sequences(patient, sequences):
        for step in sequence.steps:
            scheduled_for = at_local_hour(
                fitting_day + timedelta(days=step.day), check_in_hour, clinic_timezone
            )
            check_ins.append(ScheduledCheckIn(
                id=check_in_id(patient.id, sequence.id, step.day),
                patient_id=patient.id,
                patient_name=patient.name,
                phone=patient.phone,
                sequence_id=sequence.id,
                sequence_name=sequence.name,
                step_day=step.day,
                scheduled_for=scheduled_for,
                channel=step.channel,
                goal=step.goal,
                script=step.script,
                questions=list(step.questions),
                status=CheckInStatus.SCHEDULED,
            ))

    logger.debug(f"Expanded {len(check_ins)} check-ins for patient {patient.id}")
    return sorted(check_ins, key=lambda ci: (ci.scheduled_for, ci.id))
