"""
RQ worker and dispatch daemon for the outreach scheduler
"""
import logging
import signal
import sys
import threading
import time
from typing import List, Optional

import redis
from rq import Worker, Queue
from rq_scheduler import Scheduler

from config.redis import check_redis_connection, create_redis_connection
from config.settings import AgentConfig, load_agent_config
from utils.time_utils import now_utc

from .dispatcher import Dispatcher
from .store import OutreachStore
from .tasks import QUEUE_NAME, dispatch_due_items, process_due_items, recalculate_check_ins

logger = logging.getLogger("outreach-worker")

# Schedules are recomputed on change events; this periodic pass only keeps
# the rolling horizon moving forward
RECALCULATION_INTERVAL_SECONDS = 6 * 60 * 60


class OutreachWorker:
    """
    Runs RQ workers for outreach jobs and registers the recurring ones
    """

    def __init__(self, redis_host: str = "localhost", redis_port: int = 6379):
        self.redis_conn = redis.Redis(host=redis_host, port=redis_port)
        self.queue = Queue(QUEUE_NAME, connection=self.redis_conn)
        self.scheduler = Scheduler(queue=self.queue, connection=self.redis_conn)
        self.worker: Optional[Worker] = None
        self.running = False

    def start_worker(self, worker_name: Optional[str] = None):
        """
        Start the RQ worker to process outreach jobs

        Args:
            worker_name: Optional name for the worker (defaults to a timestamped name)
        """
        if self.running:
            logger.warning("Worker is already running")
            return

        logger.info("Starting outreach worker...")
        self.worker = Worker(
            [self.queue],
            connection=self.redis_conn,
            name=worker_name or f"outreach-worker-{int(time.time())}"
        )
        self.running = True

        try:
            self.worker.work(with_scheduler=True, logging_level=logging.INFO)
        except KeyboardInterrupt:
            logger.info("Worker interrupted by user")
        finally:
            self.running = False
            logger.info("Worker stopped")

    def schedule_recurring_jobs(self, owner: str, check_interval: int = 60):
        """
        Register the periodic dispatch and recalculation jobs

        Args:
            owner: Owner whose outreach to process
            check_interval: Seconds between dispatch cycles
        """
        for scheduled in self.scheduler.get_jobs():
            if scheduled.func_name in (process_due_items.__module__ + ".process_due_items",
                                       recalculate_check_ins.__module__ + ".recalculate_check_ins"):
                self.scheduler.cancel(scheduled)

        self.scheduler.schedule(
            scheduled_time=now_utc(),
            func=process_due_items,
            kwargs={"owner": owner},
            interval=check_interval,
            repeat=None,
        )
        self.scheduler.schedule(
            scheduled_time=now_utc(),
            func=recalculate_check_ins,
            kwargs={"owner": owner},
            interval=RECALCULATION_INTERVAL_SECONDS,
            repeat=None,
        )
        logger.info(f"Scheduled dispatch every {check_interval}s for {owner}")

    def stop(self):
        """Stop the worker gracefully"""
        if self.worker and self.running:
            logger.info("Stopping worker...")
            self.worker.request_stop(signal.SIGTERM, None)
            self.running = False
        else:
            logger.info("Worker not running")

    def get_worker_stats(self) -> dict:
        """Get statistics about the worker and queue"""
        return {
            "queue_size": len(self.queue),
            "failed_jobs": len(self.queue.failed_job_registry),
            "finished_jobs": len(self.queue.finished_job_registry),
            "started_jobs": len(self.queue.started_job_registry),
            "scheduled_jobs": len(self.queue.scheduled_job_registry),
            "worker_count": len(Worker.all(connection=self.redis_conn)),
            "is_running": self.running,
        }


class DispatcherDaemon:
    """
    Fixed-interval dispatch loop running in the current process.

    Every period a cycle is started on a background thread. A cycle that
    outlives the period is not interrupted; the next tick finds the
    dispatcher busy and does nothing.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        store: OutreachStore,
        owner: str,
        check_interval: float = 60,
    ):
        self.dispatcher = dispatcher
        self.store = store
        self.owner = owner
        self.check_interval = check_interval
        self._stop_event = threading.Event()
        self._cycles: List[threading.Thread] = []
        self.running = False

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals gracefully"""
        logger.info(f"Dispatcher daemon received signal {signum}, shutting down...")
        self.stop()

    def tick(self):
        """One dispatch cycle; never raises"""
        try:
            report = dispatch_due_items(self.dispatcher, self.store, self.owner)
            if report is None:
                logger.debug("Dispatch tick skipped, previous cycle still running")
        except Exception as e:
            logger.error(f"Error in dispatch tick: {e}", exc_info=True)

    def run(self, max_ticks: Optional[int] = None):
        """
        Run the loop until stopped

        Args:
            max_ticks: Stop after this many ticks (for tests and one-off runs)
        """
        if threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGINT, self._signal_handler)
            signal.signal(signal.SIGTERM, self._signal_handler)

        logger.info(f"Starting dispatcher daemon for {self.owner} (every {self.check_interval}s)")
        self.running = True
        self._stop_event.clear()
        ticks = 0

        while self.running:
            self._start_cycle()
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            if self._stop_event.wait(self.check_interval):
                break

        self.running = False
        self._join_cycles()
        logger.info("Dispatcher daemon stopped")

    def _start_cycle(self):
        self._cycles = [cycle for cycle in self._cycles if cycle.is_alive()]
        cycle = threading.Thread(target=self.tick, name="outreach-dispatch", daemon=True)
        cycle.start()
        self._cycles.append(cycle)

    def _join_cycles(self):
        for cycle in self._cycles:
            if cycle.is_alive():
                logger.info("Waiting for in-flight dispatch cycle to finish")
            cycle.join()
        self._cycles = []

    def stop(self):
        self.running = False
        self._stop_event.set()


def build_daemon(config: AgentConfig, redis_host: str, redis_port: int) -> DispatcherDaemon:
    from followup.outbound_caller import ElevenLabsOutboundCaller

    store = OutreachStore(redis.Redis(host=redis_host, port=redis_port, decode_responses=True))
    dispatcher = Dispatcher(
        caller=ElevenLabsOutboundCaller.from_settings(config.outbound),
        config=config,
    )
    return DispatcherDaemon(
        dispatcher, store, config.scheduler.owner, check_interval=config.scheduler.poll_interval_seconds
    )


def main():
    """
    Main function for running the RQ worker or the in-process dispatcher daemon
    """
    import argparse

    parser = argparse.ArgumentParser(description="Clinic outreach scheduling worker")
    parser.add_argument(
        "mode",
        choices=["worker", "daemon"],
        help="Mode to run: worker (RQ jobs on a schedule) or daemon (in-process dispatch loop)"
    )
    parser.add_argument("--redis-host", default="localhost", help="Redis host (default: localhost)")
    parser.add_argument("--redis-port", type=int, default=6379, help="Redis port (default: 6379)")
    parser.add_argument("--worker-name", help="Name for the worker process")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    config = load_agent_config()

    if not check_redis_connection(create_redis_connection(host=args.redis_host, port=args.redis_port)):
        logger.error(f"Redis at {args.redis_host}:{args.redis_port} is not reachable; exiting")
        sys.exit(1)

    if args.mode == "worker":
        worker = OutreachWorker(redis_host=args.redis_host, redis_port=args.redis_port)
        worker.schedule_recurring_jobs(config.scheduler.owner, config.scheduler.poll_interval_seconds)
        worker.start_worker(worker_name=args.worker_name)
    else:
        build_daemon(config, args.redis_host, args.redis_port).run()


if __name__ == "__main__":
    main()
