"""Unit tests for case flagging.

Covers:
- Positive evidence from diagnoses and PCR results
- Borderline and negative evidence
- Sticky-positive precedence
- Reporting period bounds
- Inpatient stays following a positive outpatient contact
"""

import pytest
from datetime import datetime

from epidash_src.config import CodeSettings
from epidash_src.flagging import CaseFlagger, lab_result_of
from epidash_src.models import (
    CaseClass,
    CaseFlag,
    Condition,
    Encounter,
    LabObservation,
    LabResult,
)

PCR = "94306-8"
POSITIVE = "10828004"
NEGATIVE = "260385009"
INCONCLUSIVE = "419984006"


def encounter(case_id: str, patient_id: str = "P1", case_class=CaseClass.INPATIENT,
              start: datetime | None = datetime(2021, 3, 1), end=None) -> Encounter:
    return Encounter(id=case_id, patient_id=patient_id, case_class=case_class, start=start, end=end)


def pcr(obs_id: str, case_id: str, effective: datetime, result: str | None,
        interpretation: str | None = None) -> LabObservation:
    return LabObservation(
        id=obs_id, code=PCR, effective=effective, case_id=case_id,
        result_code=result, interpretation_code=interpretation,
    )


class TestLabResults:
    """Test qualitative result mapping."""

    @pytest.fixture
    def settings(self):
        return CodeSettings()

    def test_value_code(self, settings):
        """Value codes map to outcomes."""
        assert lab_result_of(pcr("o", "C", datetime(2021, 3, 1), POSITIVE), settings) == LabResult.POSITIVE
        assert lab_result_of(pcr("o", "C", datetime(2021, 3, 1), NEGATIVE), settings) == LabResult.NEGATIVE
        assert lab_result_of(pcr("o", "C", datetime(2021, 3, 1), INCONCLUSIVE), settings) == LabResult.BORDERLINE

    def test_interpretation_fallback(self, settings):
        """Interpretation is used when the value code is missing."""
        obs = pcr("o", "C", datetime(2021, 3, 1), None, interpretation="260373001")
        assert lab_result_of(obs, settings) == LabResult.POSITIVE

    def test_unknown_code(self, settings):
        """Unrecognised codes are unknown."""
        assert lab_result_of(pcr("o", "C", datetime(2021, 3, 1), "999"), settings) == LabResult.UNKNOWN


class TestCaseFlagging:
    """Test flag precedence and evidence sources."""

    @pytest.fixture
    def flagger(self):
        return CaseFlagger(CodeSettings())

    @pytest.fixture
    def now(self):
        return datetime(2021, 6, 30)

    def test_sticky_positive(self, flagger, now):
        """A later negative test does not clear an earlier positive one."""
        c1 = encounter("C1")
        observations = [
            pcr("o1", "C1", datetime(2021, 3, 1), POSITIVE),
            pcr("o2", "C1", datetime(2021, 3, 3), NEGATIVE),
        ]
        result = flagger.flag([c1], [], observations, now)

        assert result.positive == {"C1"}
        assert result.negative == set()
        assert CaseFlag.POSITIVE in c1.flags
        assert CaseFlag.NEGATIVE not in c1.flags

    def test_confirmed_diagnosis_positive(self, flagger, now):
        """U07.1 without reliability marker is positive."""
        c1 = encounter("C1")
        result = flagger.flag([c1], [Condition("d1", "U07.1", case_id="C1")], [], now)
        assert result.flag_of("C1") == CaseFlag.POSITIVE

    def test_confirmed_diagnosis_marked_confirmed(self, flagger, now):
        """U07.1 with reliability G is positive."""
        c1 = encounter("C1")
        result = flagger.flag([c1], [Condition("d1", "U07.1", case_id="C1", reliability="G")], [], now)
        assert result.flag_of("C1") == CaseFlag.POSITIVE

    def test_confirmed_diagnosis_suspected(self, flagger, now):
        """U07.1 with reliability V is only borderline."""
        c1 = encounter("C1")
        result = flagger.flag([c1], [Condition("d1", "U07.1", case_id="C1", reliability="V")], [], now)
        assert result.flag_of("C1") == CaseFlag.BORDERLINE

    def test_excluded_diagnosis_negative(self, flagger, now):
        """Reliability A excludes the diagnosis."""
        c1 = encounter("C1")
        c2 = encounter("C2")
        conditions = [
            Condition("d1", "U07.1", case_id="C1", reliability="A"),
            Condition("d2", "U07.2", case_id="C2", reliability="A"),
        ]
        result = flagger.flag([c1, c2], conditions, [], now)
        assert result.negative == {"C1", "C2"}

    def test_suspected_code_borderline(self, flagger, now):
        """U07.2 is borderline."""
        c1 = encounter("C1")
        result = flagger.flag([c1], [Condition("d1", "U07.2", case_id="C1", reliability="G")], [], now)
        assert result.borderline == {"C1"}
        assert CaseFlag.BORDERLINE in c1.flags

    def test_inconclusive_lab_borderline(self, flagger, now):
        """Inconclusive PCR without confirmation is borderline."""
        c1 = encounter("C1")
        result = flagger.flag([c1], [], [pcr("o1", "C1", datetime(2021, 3, 2), INCONCLUSIVE)], now)
        assert result.borderline == {"C1"}

    def test_positive_beats_borderline(self, flagger, now):
        """Confirmed diagnosis wins over an inconclusive result."""
        c1 = encounter("C1")
        result = flagger.flag(
            [c1],
            [Condition("d1", "U07.1", case_id="C1")],
            [pcr("o1", "C1", datetime(2021, 3, 2), INCONCLUSIVE)],
            now,
        )
        assert result.positive == {"C1"}
        assert result.borderline == set()

    def test_sets_are_disjoint(self, flagger, now):
        """No case appears in more than one set."""
        encounters = [encounter(f"C{i}") for i in range(4)]
        observations = [
            pcr("o0", "C0", datetime(2021, 3, 1), POSITIVE),
            pcr("o1", "C0", datetime(2021, 3, 2), INCONCLUSIVE),
            pcr("o2", "C1", datetime(2021, 3, 1), INCONCLUSIVE),
            pcr("o3", "C1", datetime(2021, 3, 2), NEGATIVE),
            pcr("o4", "C2", datetime(2021, 3, 1), NEGATIVE),
        ]
        result = flagger.flag(encounters, [], observations, now)

        assert result.positive == {"C0"}
        assert result.borderline == {"C1"}
        assert result.negative == {"C2"}
        assert result.flag_of("C3") is None
        assert not (result.positive & result.borderline)
        assert not (result.positive & result.negative)
        assert not (result.borderline & result.negative)

    def test_result_before_qualifying_date_ignored(self, flagger, now):
        """Positive results before the reporting period do not count."""
        c1 = encounter("C1")
        result = flagger.flag([c1], [], [pcr("o1", "C1", datetime(2019, 12, 1), POSITIVE)], now)
        assert result.positive == set()

    def test_result_after_now_ignored(self, flagger, now):
        """Results after the evaluation date do not count."""
        c1 = encounter("C1")
        result = flagger.flag([c1], [], [pcr("o1", "C1", datetime(2021, 7, 5), POSITIVE)], now)
        assert result.positive == set()

    def test_non_pcr_code_ignored(self, flagger, now):
        """Only accepted PCR codes are evaluated."""
        c1 = encounter("C1")
        obs = LabObservation("o1", "12345-6", datetime(2021, 3, 1), case_id="C1", result_code=POSITIVE)
        result = flagger.flag([c1], [], [obs], now)
        assert result.positive == set()

    def test_unknown_case_skipped(self, flagger, now):
        """Records for unknown cases are skipped, not fatal."""
        c1 = encounter("C1")
        result = flagger.flag(
            [c1],
            [Condition("d1", "U07.1", case_id="C99")],
            [pcr("o1", None, datetime(2021, 3, 1), POSITIVE)],
            now,
        )
        assert result.skipped_records == 2
        assert result.positive == set()

    def test_reflagging_is_idempotent(self, flagger, now):
        """Running twice yields identical flags."""
        c1 = encounter("C1")
        observations = [pcr("o1", "C1", datetime(2021, 3, 1), POSITIVE)]
        flagger.flag([c1], [], observations, now)
        first = set(c1.flags)
        flagger.flag([c1], [], observations, now)
        assert c1.flags == first


class TestOutpatientRule:
    """Test inpatient stays following a positive outpatient contact."""

    @pytest.fixture
    def flagger(self):
        return CaseFlagger(CodeSettings())

    @pytest.fixture
    def now(self):
        return datetime(2021, 6, 30)

    @pytest.fixture
    def outpatient(self):
        return encounter("O1", case_class=CaseClass.OUTPATIENT, start=datetime(2021, 3, 1, 8))

    @pytest.fixture
    def positive_outpatient_condition(self):
        return Condition("d1", "U07.1", case_id="O1")

    def test_inpatient_within_window_positive(self, flagger, now, outpatient, positive_outpatient_condition):
        """Inpatient stay 9 days later inherits the positive flag."""
        inpatient = encounter("I1", start=datetime(2021, 3, 10))
        result = flagger.flag([outpatient, inpatient], [positive_outpatient_condition], [], now)

        assert CaseFlag.POSITIVE in inpatient.flags
        assert CaseFlag.TWELVE_DAYS_LOGIC in inpatient.flags
        assert result.positive == {"O1", "I1"}
        assert result.twelve_days == {"I1"}

    def test_window_boundary_inclusive(self, flagger, now, outpatient, positive_outpatient_condition):
        """Exactly 12 calendar days still counts."""
        inpatient = encounter("I1", start=datetime(2021, 3, 13, 23))
        flagger.flag([outpatient, inpatient], [positive_outpatient_condition], [], now)
        assert CaseFlag.POSITIVE in inpatient.flags

    def test_outside_window(self, flagger, now, outpatient, positive_outpatient_condition):
        """Thirteen days later is too late."""
        inpatient = encounter("I1", start=datetime(2021, 3, 14))
        result = flagger.flag([outpatient, inpatient], [positive_outpatient_condition], [], now)
        assert inpatient.flags == set()
        assert result.positive == {"O1"}

    def test_same_day_later(self, flagger, now, outpatient, positive_outpatient_condition):
        """Admission later on the same day counts."""
        inpatient = encounter("I1", start=datetime(2021, 3, 1, 18))
        flagger.flag([outpatient, inpatient], [positive_outpatient_condition], [], now)
        assert CaseFlag.TWELVE_DAYS_LOGIC in inpatient.flags

    def test_inpatient_before_outpatient(self, flagger, now, outpatient, positive_outpatient_condition):
        """Stays before the outpatient contact are not affected."""
        inpatient = encounter("I1", start=datetime(2021, 2, 25))
        flagger.flag([outpatient, inpatient], [positive_outpatient_condition], [], now)
        assert inpatient.flags == set()

    def test_other_patient_not_affected(self, flagger, now, outpatient, positive_outpatient_condition):
        """Only stays of the same patient inherit the flag."""
        inpatient = encounter("I1", patient_id="P2", start=datetime(2021, 3, 5))
        flagger.flag([outpatient, inpatient], [positive_outpatient_condition], [], now)
        assert inpatient.flags == set()

    def test_negative_inpatient_upgraded(self, flagger, now, outpatient, positive_outpatient_condition):
        """A negative inpatient stay becomes positive and leaves the negative set."""
        inpatient = encounter("I1", start=datetime(2021, 3, 5))
        result = flagger.flag(
            [outpatient, inpatient],
            [positive_outpatient_condition],
            [pcr("o1", "I1", datetime(2021, 3, 5), NEGATIVE)],
            now,
        )
        assert result.negative == set()
        assert CaseFlag.NEGATIVE not in inpatient.flags
        assert CaseFlag.POSITIVE in inpatient.flags
