#!/usr/bin/env python3
"""
Outreach CLI Tool

Management and inspection commands for the proactive outreach scheduler.
Useful for previewing schedules, checking what is due, logging attempts by
hand and running a single dispatch cycle against the mock caller.

Usage:
    python tools/outreach_cli.py preview-schedule
    python tools/outreach_cli.py list-check-ins --status scheduled --limit 20
    python tools/outreach_cli.py list-due
    python tools/outreach_cli.py list-tasks --status pending
    python tools/outreach_cli.py recalculate
    python tools/outreach_cli.py clear-future --confirm
    python tools/outreach_cli.py log-attempt <task-id> no_answer --notes "Left no message"
    python tools/outreach_cli.py dispatch-once --mock
"""

import logging

import click
from dotenv import load_dotenv
from tabulate import tabulate

from config.redis import create_redis_connection
from config.settings import load_agent_config
from followup.outbound_caller import ElevenLabsOutboundCaller, MockOutboundCaller
from outreach.callbacks import log_attempt, summarize_statuses
from outreach.dispatcher import Dispatcher
from outreach.exceptions import OutreachError
from outreach.models import CallbackOutcome, CallbackStatus, CheckInStatus
from outreach.reconciler import clear_future_check_ins, reconcile
from outreach.selector import due_callback_tasks, due_check_ins
from outreach.store import OutreachStore
from outreach.tasks import dispatch_due_items, recalculate_for_owner
from utils.time_utils import SystemClock

DATE_FORMAT = "%Y-%m-%d %H:%M"


def _fmt(dt):
    return dt.strftime(DATE_FORMAT) if dt else "-"


def _check_in_rows(check_ins):
    return [
        [ci.id, ci.patient_name or ci.patient_id, ci.sequence_name or ci.sequence_id,
         ci.step_day, ci.channel.value, _fmt(ci.scheduled_for), ci.status.value]
        for ci in check_ins
    ]


CHECK_IN_HEADERS = ["ID", "Patient", "Sequence", "Day", "Channel", "Scheduled (UTC)", "Status"]


def _task_rows(tasks):
    return [
        [task.id, task.patient_name or task.patient_id, task.priority.value, task.status.value,
         f"{len(task.attempts)}/{task.max_attempts}", _fmt(task.due_at), _fmt(task.next_attempt_at)]
        for task in tasks
    ]


TASK_HEADERS = ["ID", "Patient", "Priority", "Status", "Attempts", "Due (UTC)", "Next attempt"]


# CLI Commands
@click.group()
@click.option('--redis-host', default=None, help='Redis host (default: REDIS_HOST or localhost)')
@click.option('--redis-port', default=None, type=int, help='Redis port (default: REDIS_PORT or 6379)')
@click.option('--owner', default=None, help='Owner whose outreach to manage (default: OUTREACH_OWNER)')
@click.option('--verbose', is_flag=True, help='Show scheduler log output')
@click.pass_context
def cli(ctx, redis_host, redis_port, owner, verbose):
    """Clinic Outreach Scheduler Management CLI"""
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    config = load_agent_config()
    ctx.ensure_object(dict)
    ctx.obj['config'] = config
    ctx.obj['owner'] = owner or config.scheduler.owner
    ctx.obj['store'] = OutreachStore(create_redis_connection(host=redis_host, port=redis_port))


@cli.command()
@click.pass_context
def preview_schedule(ctx):
    """Show what a reconcile would produce right now, without saving it"""
    store, owner, config = ctx.obj['store'], ctx.obj['owner'], ctx.obj['config']

    try:
        scheduler = config.scheduler
        check_ins = reconcile(
            store.load_patients(owner),
            store.load_sequences(owner),
            store.load_check_ins(owner),
            SystemClock().now(),
            horizon_days=scheduler.horizon_days,
            check_in_hour=scheduler.check_in_hour,
            clinic_timezone=scheduler.clinic_timezone,
        )

        if not check_ins:
            click.echo("📋 No check-ins would be scheduled")
            return

        click.echo(f"📅 {len(check_ins)} check-ins within the next {scheduler.horizon_days} days:")
        click.echo(tabulate(_check_in_rows(check_ins), headers=CHECK_IN_HEADERS, tablefmt="grid"))

    except Exception as e:
        click.echo(f"❌ Error previewing schedule: {e}")


@cli.command()
@click.option('--status', type=click.Choice([s.value for s in CheckInStatus]), help="Filter by status")
@click.option('--limit', default=50, help="Maximum number of check-ins to show")
@click.pass_context
def list_check_ins(ctx, status, limit):
    """List stored check-ins ordered by time"""
    store, owner = ctx.obj['store'], ctx.obj['owner']

    try:
        check_ins = store.load_check_ins(owner)
        if status:
            check_ins = [ci for ci in check_ins if ci.status.value == status]

        if not check_ins:
            click.echo("📋 No check-ins found")
            return

        click.echo(f"📊 Found {len(check_ins)} check-ins:")
        click.echo(tabulate(_check_in_rows(check_ins[:limit]), headers=CHECK_IN_HEADERS, tablefmt="grid"))

    except Exception as e:
        click.echo(f"❌ Error listing check-ins: {e}")


@cli.command()
@click.pass_context
def list_due(ctx):
    """List callback tasks and check-ins the next dispatch cycle would pick up"""
    store, owner, config = ctx.obj['store'], ctx.obj['owner'], ctx.obj['config']

    try:
        now = SystemClock().now()
        window = config.scheduler.dedup_window
        tasks = due_callback_tasks(store.load_callback_tasks(owner), now, window)
        check_ins = due_check_ins(store.load_check_ins(owner), now, window)

        click.echo(f"⏰ Due now: {len(tasks)} callback tasks, {len(check_ins)} check-ins")
        if tasks:
            click.echo(tabulate(_task_rows(tasks), headers=TASK_HEADERS, tablefmt="grid"))
        if check_ins:
            click.echo(tabulate(_check_in_rows(check_ins), headers=CHECK_IN_HEADERS, tablefmt="grid"))

    except Exception as e:
        click.echo(f"❌ Error listing due items: {e}")


@cli.command()
@click.option('--status', type=click.Choice([s.value for s in CallbackStatus]), help="Filter by derived status")
@click.option('--limit', default=50, help="Maximum number of tasks to show")
@click.pass_context
def list_tasks(ctx, status, limit):
    """List callback tasks, newest first"""
    store, owner = ctx.obj['store'], ctx.obj['owner']

    try:
        tasks = store.load_callback_tasks(owner)
        counts = summarize_statuses(tasks)
        if status:
            tasks = [task for task in tasks if task.status.value == status]

        if not tasks:
            click.echo("📋 No callback tasks found")
            return

        click.echo(f"📞 Found {len(tasks)} callback tasks:")
        click.echo(tabulate(_task_rows(tasks[:limit]), headers=TASK_HEADERS, tablefmt="grid"))
        click.echo("\n" + ", ".join(f"{name}: {count}" for name, count in counts.items() if count))

    except Exception as e:
        click.echo(f"❌ Error listing callback tasks: {e}")


@cli.command()
@click.pass_context
def recalculate(ctx):
    """Clear future scheduled check-ins and reconcile against current patients"""
    store, owner, config = ctx.obj['store'], ctx.obj['owner'], ctx.obj['config']

    try:
        count = recalculate_for_owner(store, owner, config)
        click.echo(f"✅ Recalculated schedule for {owner}: {count} check-ins stored")
    except Exception as e:
        click.echo(f"❌ Error recalculating schedule: {e}")


@cli.command()
@click.option('--confirm', is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def clear_future(ctx, confirm):
    """Delete every scheduled check-in that lies in the future"""
    store, owner = ctx.obj['store'], ctx.obj['owner']

    if not confirm:
        click.echo("🗑️ This will remove all future scheduled check-ins")
        click.echo("   Completed, in-progress and past items are kept")
        if not click.confirm("Continue?"):
            click.echo("❌ Operation cancelled")
            return

    try:
        existing = store.load_check_ins(owner)
        kept = clear_future_check_ins(existing, SystemClock().now())
        store.replace_check_ins(owner, kept)
        click.echo(f"✅ Removed {len(existing) - len(kept)} future check-ins")
    except Exception as e:
        click.echo(f"❌ Error clearing check-ins: {e}")


@cli.command(name="log-attempt")
@click.argument('task_id')
@click.argument('outcome', type=click.Choice([o.value for o in CallbackOutcome]))
@click.option('--notes', help="Free-text notes for the attempt")
@click.option('--duration', type=int, help="Call duration in seconds")
@click.pass_context
def log_attempt_cmd(ctx, task_id, outcome, notes, duration):
    """Record the outcome of a call attempt against a callback task"""
    store, owner, config = ctx.obj['store'], ctx.obj['owner'], ctx.obj['config']

    task = store.get_callback_task(owner, task_id)
    if task is None:
        click.echo(f"❌ Callback task '{task_id}' not found")
        click.echo("   Use 'list-tasks' to see available task IDs")
        return

    try:
        log_attempt(task, outcome, SystemClock().now(), settings=config.callbacks,
                    notes=notes, duration_sec=duration)
    except OutreachError as e:
        click.echo(f"❌ {e}")
        return

    store.save_callback_tasks(owner, [task])
    click.echo(f"✅ Logged {outcome} for {task.id}: {len(task.attempts)}/{task.max_attempts} attempts")
    click.echo(f"   Status: {task.status.value}")
    if task.next_attempt_at:
        click.echo(f"   Next attempt: {_fmt(task.next_attempt_at)}")


@cli.command()
@click.option('--mock', is_flag=True, help="Use the mock caller (no real calls are placed, nothing is saved)")
@click.pass_context
def dispatch_once(ctx, mock):
    """Run a single dispatch cycle"""
    store, owner, config = ctx.obj['store'], ctx.obj['owner'], ctx.obj['config']

    try:
        if mock:
            # Dry run: mock results must never reach the stored items
            click.echo("🧪 Mock dispatch mode, nothing will be saved")
            dispatcher = Dispatcher(caller=MockOutboundCaller(), config=config)
            report = dispatcher.run_once(store.load_callback_tasks(owner), store.load_check_ins(owner))
        else:
            caller = ElevenLabsOutboundCaller.from_settings(config.outbound)
            report = dispatch_due_items(Dispatcher(caller=caller, config=config), store, owner)

        click.echo(f"📞 Due: {report.due_tasks} callback tasks, {report.due_check_ins} check-ins")
        if report.skipped_unconfigured:
            click.echo("⚠️  Outbound agent not configured; nothing was dialed")
            return
        click.echo(f"✅ Triggered {report.triggered_count} calls")
        for item_id in report.failures:
            click.echo(f"   ❌ Failed: {item_id}")

    except Exception as e:
        click.echo(f"❌ Error running dispatch cycle: {e}")


if __name__ == '__main__':
    cli()
