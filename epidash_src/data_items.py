"""Closed enumeration of report data items and their value shapes.

The identifiers and shapes are a stable contract for downstream reporting.
"""

from enum import Enum


class ValueShape(str, Enum):
    """Type of value a data item carries."""
    SCALAR = "scalar"            # int
    MAPPING = "mapping"          # dict[str, int]
    CASE_LIST = "case_list"      # list[str] of case ids
    HOURS_LIST = "hours_list"    # list[int] of whole hours
    TIME_SERIES = "time_series"  # list[tuple[date, int]], contiguous days
    PATIENT_STAYS = "patient_stays"  # dict[str, {"hours": int, "case_ids": list[str]}]


class DataItem(str, Enum):
    """Report leaves."""
    # --- Cumulative ---
    CUMULATIVE_RESULTS = "cumulative.results"
    CUMULATIVE_GENDER = "cumulative.gender"
    CUMULATIVE_GENDER_ALIVE = "cumulative.gender.alive"
    CUMULATIVE_GENDER_DEAD = "cumulative.gender.dead"
    CUMULATIVE_AGE = "cumulative.age"
    CUMULATIVE_AGE_ALIVE = "cumulative.age.alive"
    CUMULATIVE_AGE_DEAD = "cumulative.age.dead"
    CUMULATIVE_INPATIENT_GENDER = "cumulative.inpatient.gender"
    CUMULATIVE_OUTPATIENT_GENDER = "cumulative.outpatient.gender"
    CUMULATIVE_INPATIENT_AGE = "cumulative.inpatient.age"
    CUMULATIVE_OUTPATIENT_AGE = "cumulative.outpatient.age"
    CUMULATIVE_MAX_TREATMENT_LEVEL = "cumulative.maxtreatmentlevel"
    CUMULATIVE_AGE_MAX_OUTPATIENT = "cumulative.age.maxtreatmentlevel.outpatient"
    CUMULATIVE_AGE_MAX_NORMAL_WARD = "cumulative.age.maxtreatmentlevel.normal_ward"
    CUMULATIVE_AGE_MAX_ICU = "cumulative.age.maxtreatmentlevel.icu"
    CUMULATIVE_AGE_MAX_ICU_VENTILATION = "cumulative.age.maxtreatmentlevel.icu_with_ventilation"
    CUMULATIVE_AGE_MAX_ICU_ECMO = "cumulative.age.maxtreatmentlevel.icu_with_ecmo"
    CUMULATIVE_AGE_MAX_ICU_UNDIFFERENTIATED = "cumulative.age.maxtreatmentlevel.icu_undifferentiated"
    CUMULATIVE_CASENRS_OUTPATIENT = "cumulative.maxtreatmentlevel.casenrs.outpatient"
    CUMULATIVE_CASENRS_NORMAL_WARD = "cumulative.maxtreatmentlevel.casenrs.normal_ward"
    CUMULATIVE_CASENRS_ICU = "cumulative.maxtreatmentlevel.casenrs.icu"
    CUMULATIVE_CASENRS_ICU_VENTILATION = "cumulative.maxtreatmentlevel.casenrs.icu_with_ventilation"
    CUMULATIVE_CASENRS_ICU_ECMO = "cumulative.maxtreatmentlevel.casenrs.icu_with_ecmo"
    CUMULATIVE_ZIPCODE = "cumulative.zipcode"
    CUMULATIVE_VARIANT_TEST_RESULTS = "cumulative.varianttestresults"

    # --- Length of stay ---
    LOS_HOSPITAL = "cumulative.lengthofstay.hospital"
    LOS_HOSPITAL_ALIVE = "cumulative.lengthofstay.hospital.alive"
    LOS_HOSPITAL_DEAD = "cumulative.lengthofstay.hospital.dead"
    LOS_HOSPITAL_NORMAL_WARD = "cumulative.lengthofstay.hospital.normal_ward"
    LOS_HOSPITAL_ICU = "cumulative.lengthofstay.hospital.icu"
    LOS_HOSPITAL_ICU_VENTILATION = "cumulative.lengthofstay.hospital.icu_with_ventilation"
    LOS_HOSPITAL_ICU_ECMO = "cumulative.lengthofstay.hospital.icu_with_ecmo"
    LOS_ICU = "cumulative.lengthofstay.icu"
    LOS_ICU_ALIVE = "cumulative.lengthofstay.icu.alive"
    LOS_ICU_DEAD = "cumulative.lengthofstay.icu.dead"
    LOS_HOSPITAL_PATIENT = "cumulative.lengthofstay.hospital.patient"
    LOS_ICU_PATIENT = "cumulative.lengthofstay.icu.patient"

    # --- Current ---
    CURRENT_CASES = "current.cases"
    CURRENT_TREATMENT_LEVEL = "current.treatmentlevel"
    CURRENT_MAX_TREATMENT_LEVEL = "current.maxtreatmentlevel"
    CURRENT_AGE_MAX_NORMAL_WARD = "current.age.maxtreatmentlevel.normal_ward"
    CURRENT_AGE_MAX_ICU = "current.age.maxtreatmentlevel.icu"
    CURRENT_AGE_MAX_ICU_VENTILATION = "current.age.maxtreatmentlevel.icu_with_ventilation"
    CURRENT_AGE_MAX_ICU_ECMO = "current.age.maxtreatmentlevel.icu_with_ecmo"
    CURRENT_AGE_MAX_ICU_UNDIFFERENTIATED = "current.age.maxtreatmentlevel.icu_undifferentiated"
    CURRENT_TREATMENT_LEVEL_CROSSTAB = "current.treatmentlevel.crosstab"
    CURRENT_CASENRS_NORMAL_WARD = "current.treatmentlevel.casenrs.normal_ward"
    CURRENT_CASENRS_ICU = "current.treatmentlevel.casenrs.icu"
    CURRENT_CASENRS_ICU_VENTILATION = "current.treatmentlevel.casenrs.icu_with_ventilation"
    CURRENT_CASENRS_ICU_ECMO = "current.treatmentlevel.casenrs.icu_with_ecmo"

    # --- Timeline ---
    TIMELINE_DEATHS = "timeline.deaths"
    TIMELINE_TESTS = "timeline.tests"
    TIMELINE_TEST_POSITIVE = "timeline.test.positive"
    TIMELINE_TRANSITIONS_OUTPATIENT = "timeline.transitions.outpatient"
    TIMELINE_TRANSITIONS_NORMAL_WARD = "timeline.transitions.normal_ward"
    TIMELINE_TRANSITIONS_ICU = "timeline.transitions.icu"
    TIMELINE_TRANSITIONS_ICU_VENTILATION = "timeline.transitions.icu_with_ventilation"
    TIMELINE_TRANSITIONS_ICU_ECMO = "timeline.transitions.icu_with_ecmo"
    TIMELINE_VARIANT_ALPHA = "timeline.varianttestresults.alpha"
    TIMELINE_VARIANT_BETA = "timeline.varianttestresults.beta"
    TIMELINE_VARIANT_GAMMA = "timeline.varianttestresults.gamma"
    TIMELINE_VARIANT_DELTA = "timeline.varianttestresults.delta"
    TIMELINE_VARIANT_OMICRON = "timeline.varianttestresults.omicron"
    TIMELINE_VARIANT_OTHER_VOC = "timeline.varianttestresults.othervoc"
    TIMELINE_VARIANT_NON_VOC = "timeline.varianttestresults.nonvoc"
    TIMELINE_VARIANT_UNKNOWN = "timeline.varianttestresults.unknown"

    @property
    def shape(self) -> ValueShape:
        return DATA_ITEM_SHAPES[self]


def _shape_of(item: DataItem) -> ValueShape:
    name = item.value
    if item == DataItem.CURRENT_CASES:
        return ValueShape.SCALAR
    if name.startswith("timeline."):
        return ValueShape.TIME_SERIES
    if ".casenrs." in name:
        return ValueShape.CASE_LIST
    if name.startswith("cumulative.lengthofstay.") and name.endswith(".patient"):
        return ValueShape.PATIENT_STAYS
    if name.startswith("cumulative.lengthofstay."):
        return ValueShape.HOURS_LIST
    return ValueShape.MAPPING


DATA_ITEM_SHAPES: dict[DataItem, ValueShape] = {item: _shape_of(item) for item in DataItem}
