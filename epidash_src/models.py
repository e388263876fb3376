"""Data models for the epidemic dashboard engine.

Input records are handed over already typed by the ingesting layer. The
engine only ever mutates ``Encounter.flags``.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from .intervals import Interval


class CaseClass(str, Enum):
    """Encounter class."""
    INPATIENT = "inpatient"
    OUTPATIENT = "outpatient"
    UNKNOWN = "unknown"


class VitalStatus(str, Enum):
    """Vital status at discharge."""
    ALIVE = "alive"
    DEAD = "dead"
    UNKNOWN = "unknown"  # Never coerced to alive or dead


class Gender(str, Enum):
    """Administrative gender."""
    MALE = "male"
    FEMALE = "female"
    DIVERSE = "diverse"
    UNKNOWN = "unknown"


class CaseFlag(str, Enum):
    """Derived case classification attached to encounters."""
    POSITIVE = "positive"
    BORDERLINE = "borderline"
    NEGATIVE = "negative"
    TWELVE_DAYS_LOGIC = "twelve_days_logic"  # Inherited from a preceding outpatient contact


class LabResult(str, Enum):
    """Qualitative lab outcome."""
    POSITIVE = "positive"
    NEGATIVE = "negative"
    BORDERLINE = "borderline"
    UNKNOWN = "unknown"


class LocationCategory(str, Enum):
    """Classification of a location for treatment levels."""
    ICU = "icu"
    NORMAL_WARD = "normal_ward"
    OTHER = "other"


class TreatmentLevel(str, Enum):
    """Clinical severity state of an encounter.

    Ordered by ``rank``; DEAD is a display state and never a maximum.
    """
    OUTPATIENT = "outpatient"
    NORMAL_WARD = "normal_ward"
    ICU = "icu"
    ICU_WITH_VENTILATION = "icu_with_ventilation"
    ICU_WITH_ECMO = "icu_with_ecmo"
    DEAD = "dead"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]

    @property
    def is_icu(self) -> bool:
        return self in ICU_LEVELS

    @classmethod
    def ranked(cls) -> list["TreatmentLevel"]:
        """Levels that take part in precedence, lowest first."""
        return sorted(_LEVEL_RANK, key=_LEVEL_RANK.get)


_LEVEL_RANK = {
    TreatmentLevel.OUTPATIENT: 0,
    TreatmentLevel.NORMAL_WARD: 1,
    TreatmentLevel.ICU: 2,
    TreatmentLevel.ICU_WITH_VENTILATION: 3,
    TreatmentLevel.ICU_WITH_ECMO: 4,
}

ICU_LEVELS = (
    TreatmentLevel.ICU,
    TreatmentLevel.ICU_WITH_VENTILATION,
    TreatmentLevel.ICU_WITH_ECMO,
)

INPATIENT_LEVELS = (TreatmentLevel.NORMAL_WARD,) + ICU_LEVELS


# ============================================================================
# Input records
# ============================================================================

@dataclass
class LocationStay:
    """A stay at one location during an encounter."""
    location_id: str
    start: datetime | None
    end: datetime | None = None

    def to_interval(self) -> Interval | None:
        return Interval.between(self.start, self.end)


@dataclass
class Location:
    """A ward, room or bed."""
    id: str
    type_code: str | None = None  # e.g. "ICU"
    physical_type_code: str | None = None  # e.g. "wa" for ward
    name: str | None = None


@dataclass
class Encounter:
    """One hospital stay or outpatient contact (case)."""
    id: str
    patient_id: str
    case_class: CaseClass
    start: datetime | None
    end: datetime | None = None
    vital_status: VitalStatus = VitalStatus.UNKNOWN
    location_stays: list[LocationStay] = field(default_factory=list)
    flags: set[CaseFlag] = field(default_factory=set)

    @property
    def is_current(self) -> bool:
        return self.end is None

    @property
    def is_inpatient(self) -> bool:
        return self.case_class == CaseClass.INPATIENT

    @property
    def is_outpatient(self) -> bool:
        return self.case_class == CaseClass.OUTPATIENT

    @property
    def is_positive(self) -> bool:
        return CaseFlag.POSITIVE in self.flags

    @property
    def period(self) -> Interval | None:
        """Stay period; None without start or with end before start."""
        return Interval.between(self.start, self.end)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "case_class": self.case_class.value,
            "start": self.start.isoformat() if self.start else None,
            "end": self.end.isoformat() if self.end else None,
            "vital_status": self.vital_status.value,
            "flags": sorted(f.value for f in self.flags),
        }


@dataclass
class Procedure:
    """Ventilation or ECMO episode."""
    id: str
    code: str | None
    start: datetime | None
    end: datetime | None = None
    case_id: str | None = None
    patient_id: str | None = None
    status: str = "completed"

    def to_interval(self) -> Interval | None:
        return Interval.between(self.start, self.end)


@dataclass
class LabObservation:
    """Lab test result with qualitative outcome and optional variant."""
    id: str
    code: str | None
    effective: datetime | None
    case_id: str | None = None
    patient_id: str | None = None
    result_code: str | None = None
    interpretation_code: str | None = None
    variant_code: str | None = None
    variant_display: str | None = None


@dataclass
class Condition:
    """ICD-10 diagnosis with reliability marker."""
    id: str
    code: str | None
    case_id: str | None = None
    patient_id: str | None = None
    reliability: str | None = None  # A, G, V or Z
    recorded: datetime | None = None


@dataclass
class Patient:
    """Demographic anchor for encounters."""
    id: str
    birth_date: date | None = None
    gender: Gender = Gender.UNKNOWN
    postal_code: str | None = None
    country: str | None = None
    city: str | None = None


@dataclass
class ClinicalRecords:
    """The record collections of one report run."""
    encounters: list[Encounter] = field(default_factory=list)
    conditions: list[Condition] = field(default_factory=list)
    observations: list[LabObservation] = field(default_factory=list)
    procedures: list[Procedure] = field(default_factory=list)
    locations: list[Location] = field(default_factory=list)
    patients: list[Patient] = field(default_factory=list)

    def patients_by_id(self) -> dict[str, Patient]:
        return {p.id: p for p in self.patients}

    def locations_by_id(self) -> dict[str, Location]:
        return {loc.id: loc for loc in self.locations}


# ============================================================================
# Derived views
# ============================================================================

@dataclass(frozen=True)
class LevelSegment:
    """A maximal stretch of time spent at one treatment level."""
    level: TreatmentLevel
    interval: Interval

    @property
    def start(self) -> datetime:
        return self.interval.start


@dataclass(frozen=True)
class ClassifiedEncounter:
    """Encounter enriched with its treatment levels, age and durations.

    Created per report run and discarded afterwards.
    """
    encounter: Encounter
    patient: Patient | None
    max_level: TreatmentLevel
    current_level: TreatmentLevel | None = None
    segments: tuple[LevelSegment, ...] = ()
    icu_intervals: tuple[Interval, ...] = ()
    age: int | None = None

    @property
    def case_id(self) -> str:
        return self.encounter.id

    @property
    def patient_id(self) -> str:
        return self.encounter.patient_id

    @property
    def gender(self) -> Gender:
        return self.patient.gender if self.patient else Gender.UNKNOWN

    @property
    def vital_status(self) -> VitalStatus:
        return self.encounter.vital_status

    @property
    def display_level(self) -> TreatmentLevel:
        """Level shown on the dashboard; death overrides the maximum."""
        if self.encounter.vital_status == VitalStatus.DEAD:
            return TreatmentLevel.DEAD
        return self.max_level

    @property
    def hospital_hours(self) -> int | None:
        """Whole hours in hospital, None while open or without start."""
        period = self.encounter.period
        if period is None or period.is_open:
            return None
        return period.hours()

    @property
    def icu_hours(self) -> int | None:
        """Whole hours on ICU over the union of all ICU stays."""
        period = self.encounter.period
        if period is None or period.is_open:
            return None
        return Interval.union_hours(self.icu_intervals)

    def transitions(self) -> list[tuple[date, TreatmentLevel]]:
        """Day and level of every segment start."""
        return [(s.start.date(), s.level) for s in self.segments]

    def to_dict(self) -> dict:
        return {
            "case_id": self.case_id,
            "patient_id": self.patient_id,
            "max_level": self.max_level.value,
            "current_level": self.current_level.value if self.current_level else None,
            "display_level": self.display_level.value,
            "age": self.age,
            "hospital_hours": self.hospital_hours,
            "icu_hours": self.icu_hours,
        }
