"""
Tests for sequence expansion
"""
from datetime import date

from outreach.expander import applicable_sequences, check_in_id, expand
from outreach.models import CheckInStatus, Patient, ProactiveSequence, SequenceStep

from conftest import utc


class TestApplicableSequences:

    def test_matches_on_audience_tag(self, sample_patient, sample_sequence):
        other = ProactiveSequence(id="seq-2", audience_tag="renewal", steps=[SequenceStep(day=3)])
        assert applicable_sequences(sample_patient, [sample_sequence, other]) == [sample_sequence]

    def test_explicit_selection_overrides_tags(self, sample_patient, sample_sequence):
        other = ProactiveSequence(id="seq-2", audience_tag="renewal", steps=[SequenceStep(day=3)])
        sample_patient.selected_sequence_ids = ["seq-2"]

        assert applicable_sequences(sample_patient, [sample_sequence, other]) == [other]

    def test_inactive_sequences_never_apply(self, sample_patient, sample_sequence):
        sample_sequence.active = False
        assert applicable_sequences(sample_patient, [sample_sequence]) == []

        sample_patient.selected_sequence_ids = [sample_sequence.id]
        assert applicable_sequences(sample_patient, [sample_sequence]) == []


class TestExpand:

    def test_steps_land_at_nine_on_fitting_plus_day(self, sample_patient, sample_sequence):
        check_ins = expand(sample_patient, [sample_sequence])

        assert [ci.scheduled_for for ci in check_ins] == [
            utc(2024, 1, 2, 9, 0),
            utc(2024, 1, 8, 9, 0),
        ]
        assert [ci.id for ci in check_ins] == [
            "checkin-patient-1-seq-1-1",
            "checkin-patient-1-seq-1-7",
        ]
        assert all(ci.status == CheckInStatus.SCHEDULED for ci in check_ins)

    def test_denormalizes_patient_and_step(self, sample_patient, sample_sequence):
        first = expand(sample_patient, [sample_sequence])[0]

        assert first.patient_name == "Jane Doe"
        assert first.phone == "+15550000001"
        assert first.sequence_name == "New fitting follow-up"
        assert first.goal == "Check comfort after fitting"

    def test_disabled_patient_gets_nothing(self, sample_patient, sample_sequence):
        sample_patient.proactive_check_ins_enabled = False
        assert expand(sample_patient, [sample_sequence]) == []

    def test_patient_without_fitting_date_gets_nothing(self, sample_patient, sample_sequence):
        sample_patient.fitting_date = None
        assert expand(sample_patient, [sample_sequence]) == []

    def test_past_steps_are_still_emitted(self, sample_patient, sample_sequence):
        check_ins = expand(sample_patient, [sample_sequence], now=utc(2024, 6, 1))
        assert len(check_ins) == 2

    def test_clinic_timezone_sets_the_wall_clock(self, sample_patient, sample_sequence):
        check_ins = expand(sample_patient, [sample_sequence], clinic_timezone="America/New_York")
        # 09:00 EST
        assert check_ins[0].scheduled_for == utc(2024, 1, 2, 14, 0)

    def test_results_are_ordered_across_sequences(self, sample_patient, sample_sequence):
        early = ProactiveSequence(id="seq-0", audience_tag="new-fit", steps=[SequenceStep(day=3)])
        check_ins = expand(sample_patient, [sample_sequence, early])

        assert [ci.step_day for ci in check_ins] == [1, 3, 7]

    def test_ids_are_deterministic(self):
        patient = Patient(id="p9", tags=["t"], fitting_date=date(2024, 2, 1),
                          proactive_check_ins_enabled=True)
        sequence = ProactiveSequence(id="s9", audience_tag="t", steps=[SequenceStep(day=14)])

        assert expand(patient, [sequence])[0].id == check_in_id("p9", "s9", 14) == "checkin-p9-s9-14"
