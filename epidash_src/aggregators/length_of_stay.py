"""Length-of-stay calculator.

Durations are whole hours, ``ceil(seconds / 3600)``. Only closed positive
inpatient encounters contribute; open ones are never imputed with the
evaluation date. ICU time is the union of all ICU intervals of an
encounter, so overlapping location records are counted once.
"""

import logging
from dataclasses import dataclass, field

from ..data_items import DataItem
from ..models import ClassifiedEncounter, TreatmentLevel, VitalStatus
from .base import AggregationContext, Aggregator, positive

logger = logging.getLogger(__name__)

HOSPITAL_BY_MAX_LEVEL = {
    TreatmentLevel.NORMAL_WARD: DataItem.LOS_HOSPITAL_NORMAL_WARD,
    TreatmentLevel.ICU: DataItem.LOS_HOSPITAL_ICU,
    TreatmentLevel.ICU_WITH_VENTILATION: DataItem.LOS_HOSPITAL_ICU_VENTILATION,
    TreatmentLevel.ICU_WITH_ECMO: DataItem.LOS_HOSPITAL_ICU_ECMO,
}


@dataclass
class PatientStay:
    """Summed length of stay of one patient across encounters."""
    patient_id: str
    hours: int = 0
    case_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"hours": self.hours, "case_ids": list(self.case_ids)}


def closed_inpatient(classified: list[ClassifiedEncounter]) -> list[ClassifiedEncounter]:
    """Positive inpatient encounters with a valid, closed period."""
    return [
        c for c in positive(classified)
        if c.encounter.is_inpatient
        and c.encounter.period is not None
        and not c.encounter.period.is_open
    ]


def patient_length_of_stay(
    classified: list[ClassifiedEncounter],
    icu: bool = False,
) -> dict[str, PatientStay]:
    """Hours per patient, summed over all closed positive inpatient stays.

    Args:
        classified: Classified encounters of the run
        icu: Sum ICU hours instead of hospital hours

    Returns:
        Dict of patient id to PatientStay, in order of first appearance
    """
    stays: dict[str, PatientStay] = {}
    for item in closed_inpatient(classified):
        hours = item.icu_hours if icu else item.hospital_hours
        if icu and not item.icu_intervals:
            continue
        stay = stays.setdefault(item.patient_id, PatientStay(item.patient_id))
        stay.hours += hours
        stay.case_ids.append(item.case_id)
    return stays


class LengthOfStayAggregator(Aggregator):
    """Hospital and ICU durations by vital status, treatment level and patient."""

    name = "length_of_stay"

    def aggregate(self, classified, context: AggregationContext) -> dict[DataItem, object]:
        result: dict[DataItem, object] = {
            DataItem.LOS_HOSPITAL: [],
            DataItem.LOS_HOSPITAL_ALIVE: [],
            DataItem.LOS_HOSPITAL_DEAD: [],
            DataItem.LOS_ICU: [],
            DataItem.LOS_ICU_ALIVE: [],
            DataItem.LOS_ICU_DEAD: [],
        }
        for item in HOSPITAL_BY_MAX_LEVEL.values():
            result[item] = []

        stays = closed_inpatient(classified)
        for item in stays:
            status = item.vital_status
            hours = item.hospital_hours
            result[DataItem.LOS_HOSPITAL].append(hours)
            if status == VitalStatus.ALIVE:
                result[DataItem.LOS_HOSPITAL_ALIVE].append(hours)
            elif status == VitalStatus.DEAD:
                result[DataItem.LOS_HOSPITAL_DEAD].append(hours)
            if item.max_level in HOSPITAL_BY_MAX_LEVEL:
                result[HOSPITAL_BY_MAX_LEVEL[item.max_level]].append(hours)

            if not item.icu_intervals:
                continue
            icu_hours = item.icu_hours
            result[DataItem.LOS_ICU].append(icu_hours)
            if status == VitalStatus.ALIVE:
                result[DataItem.LOS_ICU_ALIVE].append(icu_hours)
            elif status == VitalStatus.DEAD:
                result[DataItem.LOS_ICU_DEAD].append(icu_hours)

        result[DataItem.LOS_HOSPITAL_PATIENT] = {
            pid: stay.to_dict() for pid, stay in patient_length_of_stay(classified).items()
        }
        result[DataItem.LOS_ICU_PATIENT] = {
            pid: stay.to_dict() for pid, stay in patient_length_of_stay(classified, icu=True).items()
        }

        logger.debug(f"Length of stay over {len(stays)} closed inpatient encounters")
        return result
