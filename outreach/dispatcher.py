"""
Dispatcher - hands due callback tasks and check-ins to the outbound caller
"""
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from config.settings import AgentConfig
from followup.outbound_caller import CallVariables, OutboundCaller
from utils.time_utils import Clock, SystemClock

from .models import CallbackTask, Channel, CheckInStatus, ScheduledCheckIn
from .selector import due_callback_tasks, due_check_ins

logger = logging.getLogger("outreach-dispatcher")

DEFAULT_CHECK_IN_REASON = "Proactive check-in"
DEFAULT_CHECK_IN_GOAL = "Follow up on hearing aid usage"


class SingleFlight:
    """
    Acquire-or-skip guard: a second caller never waits, it is told to skip
    """

    def __init__(self):
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def try_acquire(self):
        acquired = self._lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                self._lock.release()


@dataclass
class DispatchReport:
    """What one dispatch cycle did"""
    due_tasks: int = 0
    due_check_ins: int = 0
    skipped_unconfigured: bool = False
    triggered_tasks: List[CallbackTask] = field(default_factory=list)
    triggered_check_ins: List[ScheduledCheckIn] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)

    @property
    def triggered_count(self) -> int:
        return len(self.triggered_tasks) + len(self.triggered_check_ins)

    def to_dict(self) -> dict:
        return {
            "due_tasks": self.due_tasks,
            "due_check_ins": self.due_check_ins,
            "skipped_unconfigured": self.skipped_unconfigured,
            "triggered_tasks": [t.id for t in self.triggered_tasks],
            "triggered_check_ins": [ci.id for ci in self.triggered_check_ins],
            "failures": list(self.failures),
        }


class Dispatcher:
    """
    Single-flight dispatcher for due outreach work.

    Each cycle selects due items against the clock and asks the outbound
    caller to dial them. Successful dispatches are recorded on the items
    themselves (correlation id, trigger time) and listed in the report so
    the host can persist them. Outcomes are not logged here; they arrive
    later through outcome ingestion.

    Usage:
        dispatcher = Dispatcher(caller=ElevenLabsOutboundCaller(...), config=load_agent_config())
        report = dispatcher.run_once(callback_tasks, check_ins)
        if report is None:
            ...  # previous cycle still running
    """

    def __init__(self, caller: OutboundCaller, config: AgentConfig, clock: Optional[Clock] = None):
        self.caller = caller
        self.config = config
        self.clock = clock or SystemClock()
        self.guard = SingleFlight()

    def run_once(
        self,
        callback_tasks: Iterable[CallbackTask],
        check_ins: Iterable[ScheduledCheckIn],
    ) -> Optional[DispatchReport]:
        """
        Run one dispatch cycle unless one is already running

        Returns:
            The cycle's report, or None if the cycle was skipped because the
            previous one has not finished
        """
        with self.guard.try_acquire() as acquired:
            if not acquired:
                logger.info("Previous dispatch cycle still running, skipping this tick")
                return None
            return self._dispatch(list(callback_tasks), list(check_ins))

    def _dispatch(self, callback_tasks: List[CallbackTask], check_ins: List[ScheduledCheckIn]) -> DispatchReport:
        now = self.clock.now()
        window = self.config.scheduler.dedup_window
        tasks = due_callback_tasks(callback_tasks, now, window)
        due = due_check_ins(check_ins, now, window)
        report = DispatchReport(due_tasks=len(tasks), due_check_ins=len(due))

        if not tasks and not due:
            logger.debug("No due callback tasks or check-ins")
            return report

        outbound = self.config.outbound
        if not outbound.is_configured:
            logger.warning(
                f"Outbound agent not configured; skipping {len(tasks)} callback tasks "
                f"and {len(due)} check-ins"
            )
            report.skipped_unconfigured = True
            return report

        logger.info(f"Dispatching {len(tasks)} callback tasks and {len(due)} check-ins")

        for task in tasks:
            self._dispatch_task(task, report)

        for check_in in due:
            self._dispatch_check_in(check_in, report)

        logger.info(
            f"Dispatch cycle finished: {report.triggered_count} triggered, {len(report.failures)} failed"
        )
        return report

    def _place_call(self, phone: str, variables: CallVariables) -> str:
        outbound = self.config.outbound
        result = self.caller.trigger(
            phone,
            outbound.effective_agent_id,
            outbound.phone_number_id,
            variables,
        )
        if not result.success or not result.conversation_id:
            raise RuntimeError(result.error_message or "Outbound caller returned no conversation id")
        return result.conversation_id

    def _dispatch_task(self, task: CallbackTask, report: DispatchReport):
        if task.has_answered:
            return

        variables = CallVariables(
            patient_name=task.patient_name,
            clinic_name=self.config.outbound.clinic_name,
            call_reason=task.call_reason,
            call_goal=task.call_goal,
        )
        try:
            conversation_id = self._place_call(task.phone, variables)
        except Exception as e:
            logger.error(f"Failed to trigger callback call for task {task.id}: {e}", exc_info=True)
            report.failures.append(task.id)
            return

        task.conversation_id = conversation_id
        task.triggered_at = self.clock.now()
        report.triggered_tasks.append(task)
        logger.info(f"Triggered callback call for task {task.id} (conversation {conversation_id})")

    def _dispatch_check_in(self, check_in: ScheduledCheckIn, report: DispatchReport):
        # SMS steps are never sent automatically
        if check_in.channel != Channel.CALL or check_in.status != CheckInStatus.SCHEDULED:
            return

        variables = CallVariables(
            patient_name=check_in.patient_name,
            clinic_name=self.config.outbound.clinic_name,
            call_reason=check_in.goal or DEFAULT_CHECK_IN_REASON,
            call_goal=check_in.goal or DEFAULT_CHECK_IN_GOAL,
        )
        try:
            conversation_id = self._place_call(check_in.phone, variables)
        except Exception as e:
            logger.error(f"Failed to trigger check-in call {check_in.id}: {e}", exc_info=True)
            report.failures.append(check_in.id)
            return

        check_in.status = CheckInStatus.IN_PROGRESS
        check_in.triggered_at = self.clock.now()
        check_in.conversation_id = conversation_id
        report.triggered_check_ins.append(check_in)
        logger.info(f"Triggered check-in call {check_in.id} (conversation {conversation_id})")
