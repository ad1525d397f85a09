"""
Tests for the single-flight dispatcher
"""
from datetime import timedelta

from config.settings import AgentConfig, OutboundCallSettings
from outreach.callbacks import create_callback_task, log_attempt
from outreach.dispatcher import DEFAULT_CHECK_IN_GOAL, DEFAULT_CHECK_IN_REASON, Dispatcher, SingleFlight
from outreach.models import Channel, CheckInStatus, Priority, ScheduledCheckIn
from utils.time_utils import FixedClock

from conftest import utc

T = utc(2024, 1, 1, 10, 0)


def _due_task(patient_id="p1", phone="+15550000001"):
    return create_callback_task(
        patient_id, "Missed appointment", "Reschedule", T,
        priority=Priority.HIGH, patient_name="Jane", phone=phone,
    )


def _due_check_in(id="c1", channel=Channel.CALL, goal="Check comfort", phone="+15550000002"):
    return ScheduledCheckIn(
        id=id,
        patient_id="p2",
        sequence_id="s1",
        step_day=1,
        scheduled_for=T,
        patient_name="John",
        phone=phone,
        channel=channel,
        goal=goal,
    )


def _dispatcher(mock_caller, config, now=None):
    return Dispatcher(caller=mock_caller, config=config, clock=FixedClock(now or T + timedelta(hours=2)))


class TestSingleFlight:

    def test_second_acquire_is_refused(self):
        guard = SingleFlight()
        with guard.try_acquire() as first:
            assert first
            assert guard.busy
            with guard.try_acquire() as second:
                assert not second
        assert not guard.busy


class TestDispatcher:

    def test_triggers_due_task_and_records_correlation(self, mock_caller, agent_config):
        task = _due_task()
        dispatcher = _dispatcher(mock_caller, agent_config)

        report = dispatcher.run_once([task], [])

        assert report.triggered_tasks == [task]
        assert task.conversation_id == "mock-conversation-1"
        assert task.triggered_at == T + timedelta(hours=2)
        # Outcomes arrive later; dispatch does not log an attempt
        assert task.attempts == []

        call = mock_caller.calls_placed[0]
        assert call["phone_number"] == "+15550000001"
        assert call["agent_id"] == "agent-outbound"
        assert call["phone_number_id"] == "phone-1"
        assert call["variables"] == {
            "patient_name": "Jane",
            "clinic_name": "Sound Clinic",
            "call_reason": "Missed appointment",
            "call_goal": "Reschedule",
        }

    def test_falls_back_to_inbound_agent(self, mock_caller, agent_config):
        agent_config.outbound.outbound_agent_id = None
        _dispatcher(mock_caller, agent_config).run_once([_due_task()], [])

        assert mock_caller.calls_placed[0]["agent_id"] == "agent-inbound"

    def test_triggers_due_check_in(self, mock_caller, agent_config):
        check_in = _due_check_in()

        report = _dispatcher(mock_caller, agent_config).run_once([], [check_in])

        assert report.triggered_check_ins == [check_in]
        assert check_in.status == CheckInStatus.IN_PROGRESS
        assert check_in.conversation_id == "mock-conversation-1"
        assert check_in.triggered_at == T + timedelta(hours=2)

    def test_check_in_without_goal_uses_default_variables(self, mock_caller, agent_config):
        _dispatcher(mock_caller, agent_config).run_once([], [_due_check_in(goal="")])

        variables = mock_caller.calls_placed[0]["variables"]
        assert variables["call_reason"] == DEFAULT_CHECK_IN_REASON
        assert variables["call_goal"] == DEFAULT_CHECK_IN_GOAL

    def test_sms_check_ins_are_not_dialed(self, mock_caller, agent_config):
        check_in = _due_check_in(channel=Channel.SMS)

        report = _dispatcher(mock_caller, agent_config).run_once([], [check_in])

        assert report.due_check_ins == 1
        assert report.triggered_count == 0
        assert report.failures == []
        assert check_in.status == CheckInStatus.SCHEDULED
        assert mock_caller.calls_placed == []

    def test_answered_task_is_not_dialed(self, mock_caller, agent_config):
        task = _due_task()
        log_attempt(task, "answered", T)

        report = _dispatcher(mock_caller, agent_config).run_once([task], [])

        assert report.triggered_count == 0
        assert mock_caller.calls_placed == []

    def test_unconfigured_agent_skips_the_cycle(self, mock_caller):
        config = AgentConfig(outbound=OutboundCallSettings(api_key="key"))
        task = _due_task()
        check_in = _due_check_in()

        report = _dispatcher(mock_caller, config).run_once([task], [check_in])

        assert report.skipped_unconfigured
        assert report.due_tasks == 1
        assert report.due_check_ins == 1
        assert mock_caller.calls_placed == []
        assert task.triggered_at is None
        assert check_in.status == CheckInStatus.SCHEDULED

    def test_one_failure_does_not_stop_the_batch(self, mock_caller, agent_config):
        failing = _due_task(patient_id="p1", phone="+15559999999")
        ok = _due_task(patient_id="p3", phone="+15550000003")
        check_in = _due_check_in()
        mock_caller.fail_for_numbers.add("+15559999999")

        report = _dispatcher(mock_caller, agent_config).run_once([failing, ok], [check_in])

        assert report.failures == [failing.id]
        assert report.triggered_tasks == [ok]
        assert report.triggered_check_ins == [check_in]
        assert failing.conversation_id is None
        assert failing.triggered_at is None

    def test_failed_check_in_stays_scheduled(self, mock_caller, agent_config):
        check_in = _due_check_in()
        mock_caller.should_fail = True

        report = _dispatcher(mock_caller, agent_config).run_once([], [check_in])

        assert report.failures == [check_in.id]
        assert check_in.status == CheckInStatus.SCHEDULED

    def test_item_is_not_dispatched_twice_in_the_window(self, mock_caller, agent_config):
        task = _due_task()
        clock = FixedClock(T + timedelta(hours=2))
        dispatcher = Dispatcher(caller=mock_caller, config=agent_config, clock=clock)

        dispatcher.run_once([task], [])
        clock.advance(minutes=1)
        report = dispatcher.run_once([task], [])

        assert report.due_tasks == 0
        assert len(mock_caller.calls_placed) == 1

    def test_nothing_due_places_no_calls(self, mock_caller, agent_config):
        report = _dispatcher(mock_caller, agent_config, now=T).run_once([_due_task()], [])

        assert report.due_tasks == 0
        assert report.to_dict()["triggered_tasks"] == []
        assert mock_caller.calls_placed == []

    def test_overlapping_cycle_is_skipped(self, mock_caller, agent_config):
        dispatcher = _dispatcher(mock_caller, agent_config)

        with dispatcher.guard.try_acquire():
            assert dispatcher.run_once([_due_task()], []) is None

        assert mock_caller.calls_placed == []
        assert dispatcher.run_once([_due_task()], []) is not None

    def test_report_to_dict(self, mock_caller, agent_config):
        task = _due_task()
        report = _dispatcher(mock_caller, agent_config).run_once([task], [])

        assert report.to_dict() == {
            "due_tasks": 1,
            "due_check_ins": 0,
            "skipped_unconfigured": False,
            "triggered_tasks": [task.id],
            "triggered_check_ins": [],
            "failures": [],
        }
