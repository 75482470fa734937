"""Tests for meter reading plausibility checks and forklift history."""

from uuid import uuid4

import pytest
from hypothesis import given
from hypothesis import strategies as st

from jobflow.domain.jobs.entities import Forklift
from jobflow.domain.jobs.services import HourmeterRules, HourmeterValidator
from jobflow.domain.jobs.value_objects import HourmeterFlagReason, HourmeterSource
from jobflow.domain.shared.exceptions import ValidationError
from jobflow.tests.factories import NOW, TECHNICIAN


@pytest.fixture
def forklift() -> Forklift:
    return Forklift(serial_number="FL-0042", hourmeter=1000, avg_daily_usage_hours=8.0)


class TestHourmeterValidator:
    def test_reading_without_history(self):
        validator = HourmeterValidator()
        fresh = Forklift(serial_number="FL-NEW")

        result = validator.validate_reading(fresh, 37)

        assert result.flags == (HourmeterFlagReason.NO_HISTORY,)
        assert result.is_valid
        assert result.previous_reading is None

    def test_lower_reading_is_flagged(self, forklift):
        result = HourmeterValidator().validate_reading(forklift, 999)

        assert result.failure_flags == [HourmeterFlagReason.LOWER_THAN_PREVIOUS]
        assert result.previous_reading == 1000

    def test_equal_reading_is_valid(self, forklift):
        assert HourmeterValidator().validate_reading(forklift, 1000).flags == ()

    def test_jump_threshold_from_average_usage(self, forklift):
        validator = HourmeterValidator(HourmeterRules(jump_window_days=30))

        # 8 hours/day over 30 days
        assert validator.validate_reading(forklift, 1240).is_valid
        jumped = validator.validate_reading(forklift, 1241)
        assert jumped.failure_flags == [HourmeterFlagReason.EXCESSIVE_JUMP]

    def test_fixed_jump_threshold_wins(self, forklift):
        validator = HourmeterValidator(HourmeterRules(jump_threshold_hours=50))

        assert validator.validate_reading(forklift, 1050).is_valid
        assert not validator.validate_reading(forklift, 1051).is_valid

    def test_negative_reading_raises(self, forklift):
        with pytest.raises(ValidationError) as exc_info:
            HourmeterValidator().validate_reading(forklift, -5)
        assert exc_info.value.field_name == "hourmeter_reading"

    @given(reading=st.integers(min_value=0, max_value=10_000))
    def test_at_most_one_flag(self, reading):
        forklift = Forklift(serial_number="FL-1", hourmeter=1000)

        result = HourmeterValidator().validate_reading(forklift, reading)

        assert len(result.flags) <= 1
        assert result.is_valid == (1000 <= reading <= 1240)


class TestForkliftHistory:
    def test_first_reading_sets_hourmeter(self):
        forklift = Forklift(serial_number="FL-NEW")

        entry = forklift.record_reading(120, TECHNICIAN, now=NOW)

        assert forklift.hourmeter == 120
        assert entry.previous_reading is None
        assert entry.recorded_by_id == TECHNICIAN.id

    def test_hourmeter_never_moves_backwards(self, forklift):
        job_id = uuid4()

        forklift.record_reading(
            900,
            TECHNICIAN,
            job_id=job_id,
            flag_reasons=(HourmeterFlagReason.LOWER_THAN_PREVIOUS,),
            now=NOW,
        )

        assert forklift.hourmeter == 1000
        assert forklift.history[-1].reading == 900
        assert forklift.history[-1].flag_reasons == (
            HourmeterFlagReason.LOWER_THAN_PREVIOUS,
        )

    def test_higher_reading_advances_hourmeter(self, forklift):
        forklift.record_reading(
            1010, TECHNICIAN, source=HourmeterSource.READING_UPDATE, now=NOW
        )
        assert forklift.hourmeter == 1010
        assert forklift.history[-1].source == HourmeterSource.READING_UPDATE

    def test_invalidate_job_readings(self, forklift):
        job_id = uuid4()
        forklift.record_reading(1005, TECHNICIAN, job_id=job_id, now=NOW)
        forklift.record_reading(1006, TECHNICIAN, job_id=uuid4(), now=NOW)
        forklift.record_reading(1007, TECHNICIAN, job_id=job_id, now=NOW)

        assert forklift.invalidate_job_readings(job_id, NOW) == 2
        assert forklift.invalidate_job_readings(job_id, NOW) == 0
        assert [e.invalidated for e in forklift.history] == [True, False, True]
