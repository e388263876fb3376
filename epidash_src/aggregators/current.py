"""Current-snapshot aggregator.

Restricted to positive inpatient encounters that are still open at the
evaluation date. Uses the classifier's current level as-is, so the
single-value counts and the crosstab always agree.
"""

import logging

from ..data_items import DataItem
from ..models import ICU_LEVELS, INPATIENT_LEVELS, ClassifiedEncounter, TreatmentLevel
from .base import (
    AggregationContext,
    Aggregator,
    age_key,
    age_keys,
    empty_counts,
    gender_keys,
    level_keys,
    positive,
)

logger = logging.getLogger(__name__)

AGE_BY_MAX_LEVEL = {
    TreatmentLevel.NORMAL_WARD: DataItem.CURRENT_AGE_MAX_NORMAL_WARD,
    TreatmentLevel.ICU: DataItem.CURRENT_AGE_MAX_ICU,
    TreatmentLevel.ICU_WITH_VENTILATION: DataItem.CURRENT_AGE_MAX_ICU_VENTILATION,
    TreatmentLevel.ICU_WITH_ECMO: DataItem.CURRENT_AGE_MAX_ICU_ECMO,
}

CASENRS_BY_LEVEL = {
    TreatmentLevel.NORMAL_WARD: DataItem.CURRENT_CASENRS_NORMAL_WARD,
    TreatmentLevel.ICU: DataItem.CURRENT_CASENRS_ICU,
    TreatmentLevel.ICU_WITH_VENTILATION: DataItem.CURRENT_CASENRS_ICU_VENTILATION,
    TreatmentLevel.ICU_WITH_ECMO: DataItem.CURRENT_CASENRS_ICU_ECMO,
}


def crosstab_key(level: TreatmentLevel, gender: str) -> str:
    return f"{level.value}.{gender}"


def current_encounters(classified: list[ClassifiedEncounter]) -> list[ClassifiedEncounter]:
    """Open positive inpatient encounters with a level at the evaluation date."""
    return [
        c for c in positive(classified)
        if c.encounter.is_inpatient
        and c.encounter.is_current
        and c.current_level in INPATIENT_LEVELS
    ]


class CurrentAggregator(Aggregator):
    """Snapshot of currently hospitalised positive cases."""

    name = "current"

    def aggregate(self, classified, context: AggregationContext) -> dict[DataItem, object]:
        settings = context.settings
        current = current_encounters(classified)
        logger.debug(f"Current snapshot over {len(current)} open encounters")

        levels = level_keys(INPATIENT_LEVELS)
        ages = age_keys(settings)
        genders = gender_keys()
        result: dict[DataItem, object] = {
            DataItem.CURRENT_CASES: len(current),
            DataItem.CURRENT_TREATMENT_LEVEL: empty_counts(levels),
            DataItem.CURRENT_MAX_TREATMENT_LEVEL: empty_counts(levels),
            DataItem.CURRENT_AGE_MAX_ICU_UNDIFFERENTIATED: empty_counts(ages),
            DataItem.CURRENT_TREATMENT_LEVEL_CROSSTAB: empty_counts(
                crosstab_key(level, gender) for level in INPATIENT_LEVELS for gender in genders
            ),
        }
        for item in AGE_BY_MAX_LEVEL.values():
            result[item] = empty_counts(ages)
        for item in CASENRS_BY_LEVEL.values():
            result[item] = []

        for item in current:
            level = item.current_level
            age = age_key(item, settings)
            result[DataItem.CURRENT_TREATMENT_LEVEL][level.value] += 1
            result[DataItem.CURRENT_MAX_TREATMENT_LEVEL][item.max_level.value] += 1
            result[AGE_BY_MAX_LEVEL[item.max_level]][age] += 1
            if item.max_level in ICU_LEVELS:
                result[DataItem.CURRENT_AGE_MAX_ICU_UNDIFFERENTIATED][age] += 1
            result[DataItem.CURRENT_TREATMENT_LEVEL_CROSSTAB][
                crosstab_key(level, item.gender.value)
            ] += 1
            result[CASENRS_BY_LEVEL[level]].append(item.case_id)

        return result
