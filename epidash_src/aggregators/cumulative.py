"""Cumulative aggregator.

Counts positive patients over the whole observation period. A patient is
counted once: at the highest treatment level reached over all positive
encounters, represented by the first encounter reaching it. Age is taken
at admission of the patient's first positive encounter.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from ..config import CodeSettings
from ..data_items import DataItem
from ..flagging import is_in_reporting_period
from ..models import (
    ICU_LEVELS,
    ClassifiedEncounter,
    Gender,
    Patient,
    TreatmentLevel,
    VitalStatus,
)
from .base import (
    AggregationContext,
    Aggregator,
    age_key,
    age_keys,
    empty_counts,
    gender_keys,
    highest,
    level_keys,
    positive,
    variant_bucket,
    variant_keys,
)

logger = logging.getLogger(__name__)

NULL_ZIP_CODE = "null"

CUMULATIVE_LEVELS = [
    TreatmentLevel.OUTPATIENT,
    TreatmentLevel.NORMAL_WARD,
    TreatmentLevel.ICU,
    TreatmentLevel.ICU_WITH_VENTILATION,
    TreatmentLevel.ICU_WITH_ECMO,
]

AGE_BY_MAX_LEVEL = {
    TreatmentLevel.OUTPATIENT: DataItem.CUMULATIVE_AGE_MAX_OUTPATIENT,
    TreatmentLevel.NORMAL_WARD: DataItem.CUMULATIVE_AGE_MAX_NORMAL_WARD,
    TreatmentLevel.ICU: DataItem.CUMULATIVE_AGE_MAX_ICU,
    TreatmentLevel.ICU_WITH_VENTILATION: DataItem.CUMULATIVE_AGE_MAX_ICU_VENTILATION,
    TreatmentLevel.ICU_WITH_ECMO: DataItem.CUMULATIVE_AGE_MAX_ICU_ECMO,
}

CASENRS_BY_MAX_LEVEL = {
    TreatmentLevel.OUTPATIENT: DataItem.CUMULATIVE_CASENRS_OUTPATIENT,
    TreatmentLevel.NORMAL_WARD: DataItem.CUMULATIVE_CASENRS_NORMAL_WARD,
    TreatmentLevel.ICU: DataItem.CUMULATIVE_CASENRS_ICU,
    TreatmentLevel.ICU_WITH_VENTILATION: DataItem.CUMULATIVE_CASENRS_ICU_VENTILATION,
    TreatmentLevel.ICU_WITH_ECMO: DataItem.CUMULATIVE_CASENRS_ICU_ECMO,
}


def _admission_key(item: ClassifiedEncounter) -> tuple:
    start = item.encounter.start
    return (start is None, start or datetime.min)


@dataclass
class PatientSummary:
    """All positive encounters of one patient."""
    patient_id: str
    encounters: list[ClassifiedEncounter] = field(default_factory=list)

    @property
    def patient(self) -> Patient | None:
        return self.encounters[0].patient

    @property
    def gender(self) -> Gender:
        return self.encounters[0].gender

    @property
    def max_level(self) -> TreatmentLevel:
        return highest(e.max_level for e in self.encounters)

    @property
    def representative(self) -> ClassifiedEncounter:
        """First encounter by admission that reached the maximal level."""
        level = self.max_level
        reaching = [e for e in self.encounters if e.max_level == level]
        return min(reaching, key=_admission_key)

    @property
    def first(self) -> ClassifiedEncounter:
        return min(self.encounters, key=_admission_key)

    @property
    def age(self) -> int | None:
        return self.first.age

    @property
    def vital_status(self) -> VitalStatus:
        """Dead if any encounter ended in death, else the latest known status."""
        if any(e.vital_status == VitalStatus.DEAD for e in self.encounters):
            return VitalStatus.DEAD
        return max(self.encounters, key=_admission_key).vital_status

    @property
    def is_inpatient(self) -> bool:
        return any(e.encounter.is_inpatient for e in self.encounters)


def summarize_patients(classified: list[ClassifiedEncounter]) -> list[PatientSummary]:
    """Group positive encounters by patient, in order of first appearance."""
    summaries: dict[str, PatientSummary] = {}
    for item in positive(classified):
        summary = summaries.get(item.patient_id)
        if summary is None:
            summary = summaries[item.patient_id] = PatientSummary(item.patient_id)
        summary.encounters.append(item)
    return list(summaries.values())


def zip_code_of(patient: Patient | None, settings: CodeSettings) -> str:
    """Postal code for domestic patients, 'null' for missing or foreign ones."""
    if patient is None or not patient.postal_code or not patient.postal_code.strip():
        return NULL_ZIP_CODE
    if patient.country and patient.country.strip().upper() != settings.home_country.upper():
        return NULL_ZIP_CODE
    return patient.postal_code.strip()


class CumulativeAggregator(Aggregator):
    """Cumulative counts and distributions of positive patients."""

    name = "cumulative"

    def aggregate(self, classified, context: AggregationContext) -> dict[DataItem, object]:
        settings = context.settings
        patients = summarize_patients(classified)
        logger.debug(f"Cumulative aggregation over {len(patients)} positive patients")

        genders = gender_keys()
        ages = age_keys(settings)
        result: dict[DataItem, object] = {
            DataItem.CUMULATIVE_RESULTS: context.flagging.counts(),
            DataItem.CUMULATIVE_GENDER: empty_counts(genders),
            DataItem.CUMULATIVE_GENDER_ALIVE: empty_counts(genders),
            DataItem.CUMULATIVE_GENDER_DEAD: empty_counts(genders),
            DataItem.CUMULATIVE_AGE: empty_counts(ages),
            DataItem.CUMULATIVE_AGE_ALIVE: empty_counts(ages),
            DataItem.CUMULATIVE_AGE_DEAD: empty_counts(ages),
            DataItem.CUMULATIVE_INPATIENT_GENDER: empty_counts(genders),
            DataItem.CUMULATIVE_OUTPATIENT_GENDER: empty_counts(genders),
            DataItem.CUMULATIVE_INPATIENT_AGE: empty_counts(ages),
            DataItem.CUMULATIVE_OUTPATIENT_AGE: empty_counts(ages),
            DataItem.CUMULATIVE_MAX_TREATMENT_LEVEL: empty_counts(level_keys(CUMULATIVE_LEVELS)),
            DataItem.CUMULATIVE_AGE_MAX_ICU_UNDIFFERENTIATED: empty_counts(ages),
        }
        for item in AGE_BY_MAX_LEVEL.values():
            result[item] = empty_counts(ages)
        for item in CASENRS_BY_MAX_LEVEL.values():
            result[item] = []

        for summary in patients:
            gender = summary.gender.value
            age = age_key(summary.first, settings)
            status = summary.vital_status
            level = summary.max_level

            result[DataItem.CUMULATIVE_GENDER][gender] += 1
            result[DataItem.CUMULATIVE_AGE][age] += 1
            if status == VitalStatus.ALIVE:
                result[DataItem.CUMULATIVE_GENDER_ALIVE][gender] += 1
                result[DataItem.CUMULATIVE_AGE_ALIVE][age] += 1
            elif status == VitalStatus.DEAD:
                result[DataItem.CUMULATIVE_GENDER_DEAD][gender] += 1
                result[DataItem.CUMULATIVE_AGE_DEAD][age] += 1

            if summary.is_inpatient:
                result[DataItem.CUMULATIVE_INPATIENT_GENDER][gender] += 1
                result[DataItem.CUMULATIVE_INPATIENT_AGE][age] += 1
            else:
                result[DataItem.CUMULATIVE_OUTPATIENT_GENDER][gender] += 1
                result[DataItem.CUMULATIVE_OUTPATIENT_AGE][age] += 1

            result[DataItem.CUMULATIVE_MAX_TREATMENT_LEVEL][level.value] += 1
            result[AGE_BY_MAX_LEVEL[level]][age] += 1
            if level in ICU_LEVELS:
                result[DataItem.CUMULATIVE_AGE_MAX_ICU_UNDIFFERENTIATED][age] += 1
            result[CASENRS_BY_MAX_LEVEL[level]].append(summary.representative.case_id)

        result[DataItem.CUMULATIVE_ZIPCODE] = self._zip_codes(patients, settings)
        result[DataItem.CUMULATIVE_VARIANT_TEST_RESULTS] = self._variants(context)
        return result

    def _zip_codes(self, patients: list[PatientSummary], settings: CodeSettings) -> dict[str, int]:
        counts: dict[str, int] = {}
        for summary in patients:
            key = zip_code_of(summary.patient, settings)
            counts[key] = counts.get(key, 0) + 1
        ordered = {k: counts[k] for k in sorted(k for k in counts if k != NULL_ZIP_CODE)}
        ordered[NULL_ZIP_CODE] = counts.get(NULL_ZIP_CODE, 0)
        return ordered

    def _variants(self, context: AggregationContext) -> dict[str, int]:
        counts = empty_counts(variant_keys())
        for observation in context.records.observations:
            bucket = variant_bucket(observation, context.settings)
            if bucket is None:
                continue
            if not is_in_reporting_period(observation.effective, context.now, context.settings):
                continue
            counts[bucket] += 1
        return counts
