"""
RQ tasks for recomputing check-in schedules and dispatching due outreach
"""
import logging
from typing import Optional

from rq.decorators import job

from config.redis import create_redis_connection
from config.settings import AgentConfig, load_agent_config
from followup.outbound_caller import ElevenLabsOutboundCaller
from utils.time_utils import Clock, SystemClock

from .dispatcher import Dispatcher, DispatchReport
from .ingestion import complete_check_in, record_callback_outcome
from .reconciler import recalculate
from .store import OutreachStore

logger = logging.getLogger("outreach-tasks")

QUEUE_NAME = "outreach"

# RQ pickles job payloads, so its connection must not decode responses
redis_conn = create_redis_connection(decode_responses=False)
store_conn = create_redis_connection()

# Cached per process. The forking RQ Worker runs each job in a fresh
# work-horse, so in worker mode this guard never sees an overlapping cycle and
# queued ticks run back to back. Use the daemon mode for skip-if-busy ticks.
_dispatcher: Optional[Dispatcher] = None


def recalculate_for_owner(
    store: OutreachStore,
    owner: str,
    config: AgentConfig,
    clock: Optional[Clock] = None,
) -> int:
    """
    Clear future scheduled check-ins, reconcile, and persist the result

    Returns:
        Number of check-ins stored
    """
    now = (clock or SystemClock()).now()
    patients = store.load_patients(owner)
    sequences = store.load_sequences(owner)
    existing = store.load_check_ins(owner)

    scheduler = config.scheduler
    check_ins = recalculate(
        patients,
        sequences,
        existing,
        now,
        horizon_days=scheduler.horizon_days,
        check_in_hour=scheduler.check_in_hour,
        clinic_timezone=scheduler.clinic_timezone,
    )
    return store.replace_check_ins(owner, check_ins)


def dispatch_due_items(dispatcher: Dispatcher, store: OutreachStore, owner: str) -> Optional[DispatchReport]:
    """
    Run one dispatch cycle against the stored snapshot and persist what changed

    Returns:
        The cycle's report, or None if a cycle was already running
    """
    tasks = store.load_callback_tasks(owner)
    check_ins = store.load_check_ins(owner)

    report = dispatcher.run_once(tasks, check_ins)
    if report is None:
        return None

    if report.triggered_tasks:
        store.save_callback_tasks(owner, report.triggered_tasks)
    if report.triggered_check_ins:
        store.save_check_ins(owner, report.triggered_check_ins)
    return report


def get_dispatcher(config: AgentConfig) -> Dispatcher:
    global _dispatcher
    if _dispatcher is None:
        caller = ElevenLabsOutboundCaller.from_settings(config.outbound)
        _dispatcher = Dispatcher(caller=caller, config=config)
    return _dispatcher


@job(QUEUE_NAME, connection=redis_conn, timeout=180)
def recalculate_check_ins(owner: Optional[str] = None) -> str:
    """
    RQ task to recompute the check-in projection after a patient or
    sequence change

    Args:
        owner: Owner whose collections to recompute (defaults to the configured owner)

    Returns:
        Status message
    """
    try:
        config = load_agent_config()
        owner = owner or config.scheduler.owner
        count = recalculate_for_owner(OutreachStore(store_conn), owner, config)
        result_msg = f"Recalculated check-ins for {owner}: {count} stored"
        logger.info(result_msg)
        return result_msg

    except Exception as e:
        error_msg = f"Exception recalculating check-ins: {str(e)}"
        logger.error(error_msg, exc_info=True)
        return error_msg


@job(QUEUE_NAME, connection=redis_conn, timeout=300)
def process_due_items(owner: Optional[str] = None) -> str:
    """
    RQ task to dispatch every due callback task and check-in.
    This is typically run by the scheduler on a fixed interval.

    Returns:
        Status message with the number of calls triggered
    """
    try:
        config = load_agent_config()
        owner = owner or config.scheduler.owner

        if not config.outbound.api_key:
            result_msg = "Outbound call API key not configured; skipping dispatch"
            logger.warning(result_msg)
            return result_msg

        report = dispatch_due_items(get_dispatcher(config), OutreachStore(store_conn), owner)
        if report is None:
            return "Previous dispatch cycle still running"

        result_msg = (
            f"Processed {report.due_tasks} due tasks and {report.due_check_ins} due check-ins, "
            f"triggered {report.triggered_count}, {len(report.failures)} failed"
        )
        logger.info(result_msg)
        return result_msg

    except Exception as e:
        error_msg = f"Exception processing due items: {str(e)}"
        logger.error(error_msg, exc_info=True)
        return error_msg


@job(QUEUE_NAME, connection=redis_conn, timeout=60)
def record_outcome(
    conversation_id: str,
    outcome: str,
    owner: Optional[str] = None,
    notes: Optional[str] = None,
    duration_sec: Optional[int] = None,
    call_id: Optional[str] = None,
) -> str:
    """
    RQ task to apply a call outcome reported by the provider

    A callback task dispatched under the conversation id gets an attempt
    logged; otherwise a check-in dispatched under it is marked completed.
    """
    try:
        config = load_agent_config()
        owner = owner or config.scheduler.owner
        store = OutreachStore(store_conn)
        now = SystemClock().now()

        task = record_callback_outcome(
            store.load_callback_tasks(owner), conversation_id, outcome, now,
            settings=config.callbacks, notes=notes, duration_sec=duration_sec,
        )
        if task is not None:
            store.save_callback_tasks(owner, [task])
            return f"Logged {outcome} for callback task {task.id} ({task.status.value})"

        check_in = complete_check_in(store.load_check_ins(owner), conversation_id, now, call_id=call_id)
        if check_in is not None:
            store.save_check_ins(owner, [check_in])
            return f"Completed check-in {check_in.id}"

        return f"No outreach item found for conversation {conversation_id}"

    except Exception as e:
        error_msg = f"Exception recording outcome for {conversation_id}: {str(e)}"
        logger.error(error_msg, exc_info=True)
        return error_msg
