"""Case flagging: positive, borderline and negative cases.

Decision hierarchy per case:
1. Any positive evidence -> POSITIVE (never downgraded by later results)
   - confirmed diagnosis code with missing or trusted reliability
   - positive PCR result inside the reporting period
2. Otherwise any borderline evidence -> BORDERLINE
   - confirmed code with suspected reliability, suspected code
   - inconclusive PCR result
3. Otherwise any negative evidence -> NEGATIVE
   - diagnosis with excluded reliability, negative PCR result

Afterwards inpatient stays that start within a few days after a positive
outpatient contact of the same patient inherit the positive flag.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from .config import CodeSettings
from .criteria import normalize_code, normalize_icd_code
from .models import CaseFlag, Condition, Encounter, LabObservation, LabResult

logger = logging.getLogger(__name__)


@dataclass
class FlaggingResult:
    """Disjoint case id sets produced by the flagger."""
    positive: set[str] = field(default_factory=set)
    borderline: set[str] = field(default_factory=set)
    negative: set[str] = field(default_factory=set)
    twelve_days: set[str] = field(default_factory=set)
    skipped_records: int = 0

    def flag_of(self, case_id: str) -> CaseFlag | None:
        if case_id in self.positive:
            return CaseFlag.POSITIVE
        if case_id in self.borderline:
            return CaseFlag.BORDERLINE
        if case_id in self.negative:
            return CaseFlag.NEGATIVE
        return None

    def counts(self) -> dict[str, int]:
        return {
            CaseFlag.POSITIVE.value: len(self.positive),
            CaseFlag.BORDERLINE.value: len(self.borderline),
            CaseFlag.NEGATIVE.value: len(self.negative),
        }


def lab_result_of(observation: LabObservation, settings: CodeSettings) -> LabResult:
    """Qualitative outcome from the value code, falling back to the interpretation."""
    for code in (observation.result_code, observation.interpretation_code):
        code = normalize_code(code)
        if code is None:
            continue
        if code in settings.positive_result_codes:
            return LabResult.POSITIVE
        if code in settings.borderline_result_codes:
            return LabResult.BORDERLINE
        if code in settings.negative_result_codes:
            return LabResult.NEGATIVE
    return LabResult.UNKNOWN


def is_in_reporting_period(t: datetime | None, now: datetime, settings: CodeSettings) -> bool:
    if t is None:
        return False
    return settings.qualifying_date <= t.date() and t <= now


class CaseFlagger:
    """Flags cases from diagnoses and lab results.

    Attaches the resulting ``CaseFlag`` to each encounter; that is the only
    mutation the engine performs on input records.
    """

    def __init__(self, settings: CodeSettings):
        self.settings = settings

    def flag(
        self,
        encounters: list[Encounter],
        conditions: list[Condition],
        observations: list[LabObservation],
        now: datetime,
    ) -> FlaggingResult:
        """Flag all encounters and return the case id sets.

        Args:
            encounters: All encounters of the run
            conditions: Diagnoses linked by case id
            observations: Lab results linked by case id
            now: Evaluation date, upper bound of the reporting period

        Returns:
            FlaggingResult with disjoint positive/borderline/negative sets
        """
        known_cases = {e.id for e in encounters}
        result = FlaggingResult()
        # Flags are derived per run; start from a clean slate
        for encounter in encounters:
            encounter.flags.clear()
        evidence: dict[str, set[CaseFlag]] = {}

        for condition in conditions:
            flag = self._flag_condition(condition)
            if flag is None:
                continue
            if condition.case_id not in known_cases:
                logger.debug(f"Skipping condition {condition.id}: unknown case {condition.case_id}")
                result.skipped_records += 1
                continue
            evidence.setdefault(condition.case_id, set()).add(flag)

        for observation in observations:
            flag = self._flag_observation(observation, now)
            if flag is None:
                continue
            if observation.case_id not in known_cases:
                logger.debug(
                    f"Skipping observation {observation.id}: unknown case {observation.case_id}"
                )
                result.skipped_records += 1
                continue
            evidence.setdefault(observation.case_id, set()).add(flag)

        for case_id, flags in evidence.items():
            if CaseFlag.POSITIVE in flags:
                result.positive.add(case_id)
            elif CaseFlag.BORDERLINE in flags:
                result.borderline.add(case_id)
            else:
                result.negative.add(case_id)

        for encounter in encounters:
            flag = result.flag_of(encounter.id)
            if flag is not None:
                encounter.flags.add(flag)

        self._apply_outpatient_rule(encounters, result)

        if result.skipped_records:
            logger.warning(f"Skipped {result.skipped_records} records referencing unknown cases")
        logger.info(
            f"Flagged {len(result.positive)} positive, {len(result.borderline)} borderline, "
            f"{len(result.negative)} negative cases"
        )
        return result

    def _flag_condition(self, condition: Condition) -> CaseFlag | None:
        code = normalize_icd_code(condition.code)
        if code is None:
            return None
        reliability = normalize_code(condition.reliability)
        if reliability is not None:
            reliability = reliability.upper()

        if code in self.settings.confirmed_icd_codes:
            if reliability in self.settings.excluded_reliability_codes:
                return CaseFlag.NEGATIVE
            if reliability in self.settings.suspected_reliability_codes:
                return CaseFlag.BORDERLINE
            return CaseFlag.POSITIVE

        if code in self.settings.suspected_icd_codes:
            if reliability in self.settings.excluded_reliability_codes:
                return CaseFlag.NEGATIVE
            return CaseFlag.BORDERLINE

        return None

    def _flag_observation(self, observation: LabObservation, now: datetime) -> CaseFlag | None:
        if normalize_code(observation.code) not in self.settings.pcr_test_codes:
            return None
        if not is_in_reporting_period(observation.effective, now, self.settings):
            logger.debug(f"Observation {observation.id} outside reporting period")
            return None

        outcome = lab_result_of(observation, self.settings)
        if outcome == LabResult.POSITIVE:
            return CaseFlag.POSITIVE
        if outcome == LabResult.BORDERLINE:
            return CaseFlag.BORDERLINE
        if outcome == LabResult.NEGATIVE:
            return CaseFlag.NEGATIVE
        return None

    def _apply_outpatient_rule(self, encounters: list[Encounter], result: FlaggingResult) -> None:
        """Flag inpatient stays following a positive outpatient contact."""
        max_days = self.settings.days_after_outpatient_stay
        positive_outpatient_starts: dict[str, list[datetime]] = {}
        for encounter in encounters:
            if encounter.is_outpatient and encounter.id in result.positive and encounter.start:
                positive_outpatient_starts.setdefault(encounter.patient_id, []).append(
                    encounter.start
                )

        for encounter in encounters:
            if not encounter.is_inpatient or encounter.start is None:
                continue
            for outpatient_start in positive_outpatient_starts.get(encounter.patient_id, []):
                if outpatient_start >= encounter.start:
                    continue
                days = (encounter.start.date() - outpatient_start.date()).days
                if days > max_days:
                    continue
                encounter.flags.add(CaseFlag.TWELVE_DAYS_LOGIC)
                result.twelve_days.add(encounter.id)
                if encounter.id not in result.positive:
                    logger.debug(
                        f"Inpatient case {encounter.id} marked positive after positive "
                        f"outpatient contact {days} days earlier"
                    )
                    result.positive.add(encounter.id)
                    result.borderline.discard(encounter.id)
                    result.negative.discard(encounter.id)
                    encounter.flags -= {CaseFlag.BORDERLINE, CaseFlag.NEGATIVE}
                    encounter.flags.add(CaseFlag.POSITIVE)
                break
