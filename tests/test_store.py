"""
Tests for Redis persistence of outreach collections
"""
import json
from datetime import date
from unittest.mock import Mock

import pytest

from outreach.callbacks import create_callback_task, log_attempt
from outreach.models import CallbackStatus, CheckInStatus, Patient
from outreach.reconciler import reconcile
from outreach.store import OutreachStore

from conftest import utc


@pytest.fixture
def store(fake_redis):
    return OutreachStore(fake_redis)


class TestOutreachStore:

    def test_key_layout(self, mock_redis):
        store = OutreachStore(mock_redis)
        assert store.key("clinic-a", "check_ins") == "outreach:clinic-a:check_ins"
        assert OutreachStore(mock_redis, key_prefix="test").key("x", "patients") == "test:x:patients"

    def test_patients_and_sequences(self, store, sample_patient, sample_sequence):
        store.save_patients("clinic-a", [sample_patient])
        store.save_sequences("clinic-a", [sample_sequence])

        assert store.load_patients("clinic-a") == [sample_patient]
        assert store.load_sequences("clinic-a") == [sample_sequence]
        assert store.load_patients("clinic-b") == []

        assert store.delete_patient("clinic-a", sample_patient.id)
        assert store.load_patients("clinic-a") == []

    def test_check_ins_load_in_time_order(self, store, clock, sample_patient, sample_sequence):
        check_ins = reconcile([sample_patient], [sample_sequence], [], clock.now())
        store.save_check_ins("clinic-a", reversed(check_ins))

        assert store.load_check_ins("clinic-a") == check_ins

    def test_replace_check_ins_drops_stale_items(self, store, clock, sample_patient, sample_sequence):
        check_ins = reconcile([sample_patient], [sample_sequence], [], clock.now())
        store.save_check_ins("clinic-a", check_ins)

        assert store.replace_check_ins("clinic-a", check_ins[:1]) == 1
        assert [ci.id for ci in store.load_check_ins("clinic-a")] == [check_ins[0].id]

    def test_replace_with_nothing_empties_the_collection(self, store, clock, sample_patient, sample_sequence):
        store.save_check_ins("clinic-a", reconcile([sample_patient], [sample_sequence], [], clock.now()))

        assert store.replace_check_ins("clinic-a", []) == 0
        assert store.load_check_ins("clinic-a") == []

    def test_replace_runs_in_one_transaction(self, mock_redis, clock, sample_patient, sample_sequence):
        pipeline = Mock()
        mock_redis.pipeline.return_value = pipeline
        check_ins = reconcile([sample_patient], [sample_sequence], [], clock.now())

        OutreachStore(mock_redis).replace_check_ins("clinic-a", check_ins)

        mock_redis.pipeline.assert_called_once_with(transaction=True)
        pipeline.delete.assert_called_once_with("outreach:clinic-a:check_ins")
        mapping = pipeline.hset.call_args.kwargs["mapping"]
        assert set(mapping) == {ci.id for ci in check_ins}
        pipeline.execute.assert_called_once()

    def test_callback_tasks_keep_attempts_and_derive_status(self, store):
        task = create_callback_task("p1", "Reason", "Goal", utc(2024, 1, 1, 10))
        log_attempt(task, "no_answer", utc(2024, 1, 2, 10))
        store.save_callback_tasks("clinic-a", [task])

        loaded = store.get_callback_task("clinic-a", task.id)

        assert loaded.status == CallbackStatus.IN_PROGRESS
        assert loaded.attempts == task.attempts
        assert loaded.next_attempt_at == task.next_attempt_at

    def test_callback_tasks_load_newest_first(self, store):
        older = create_callback_task("p1", "Reason", "Goal", utc(2024, 1, 1))
        newer = create_callback_task("p2", "Reason", "Goal", utc(2024, 1, 5))
        store.save_callback_tasks("clinic-a", [older, newer])

        assert [t.id for t in store.load_callback_tasks("clinic-a")] == [newer.id, older.id]

    def test_missing_and_deleted_tasks(self, store):
        task = create_callback_task("p1", "Reason", "Goal", utc(2024, 1, 1))
        store.save_callback_tasks("clinic-a", [task])

        assert store.get_callback_task("clinic-a", "task-missing") is None
        assert store.delete_callback_task("clinic-a", task.id)
        assert store.get_callback_task("clinic-a", task.id) is None

    def test_corrupt_items_are_skipped(self, fake_redis, store):
        good = Patient(id="good", fitting_date=date(2024, 1, 1))
        store.save_patients("clinic-a", [good])
        fake_redis.hset("outreach:clinic-a:patients", mapping={"bad": "{not json"})

        assert store.load_patients("clinic-a") == [good]

    def test_status_is_written_for_readers(self, fake_redis, store):
        task = create_callback_task("p1", "Reason", "Goal", utc(2024, 1, 1))
        store.save_callback_tasks("clinic-a", [task])

        raw = json.loads(fake_redis.hget("outreach:clinic-a:callback_tasks", task.id))
        assert raw["status"] == "pending"

    def test_check_in_dispatch_state_survives(self, store, clock, sample_patient, sample_sequence):
        check_in = reconcile([sample_patient], [sample_sequence], [], clock.now())[0]
        check_in.status = CheckInStatus.IN_PROGRESS
        check_in.conversation_id = "conv-1"
        check_in.triggered_at = clock.now()
        store.save_check_ins("clinic-a", [check_in])

        assert store.load_check_ins("clinic-a") == [check_in]
