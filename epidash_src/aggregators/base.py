"""Base class and shared helpers for aggregators."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from ..config import CodeSettings
from ..criteria import VARIANT_BUCKETS, normalize_code
from ..data_items import DataItem
from ..flagging import FlaggingResult
from ..models import (
    ClassifiedEncounter,
    ClinicalRecords,
    Gender,
    LabObservation,
    TreatmentLevel,
)

UNKNOWN_AGE = "unknown"


@dataclass(frozen=True)
class AggregationContext:
    """Read-only inputs shared by all aggregators of one report run."""
    settings: CodeSettings
    now: datetime
    records: ClinicalRecords
    flagging: FlaggingResult


class Aggregator(ABC):
    """Turns classified encounters into report data items.

    Implementations must not mutate their inputs; several aggregators may
    run concurrently over the same list.
    """

    name: str = "aggregator"

    @abstractmethod
    def aggregate(
        self,
        classified: list[ClassifiedEncounter],
        context: AggregationContext,
    ) -> dict[DataItem, object]:
        """Compute this aggregator's data items."""
        pass


def empty_counts(keys) -> dict[str, int]:
    """Zero-initialised counter with a fixed key order."""
    return {key: 0 for key in keys}


def gender_keys() -> list[str]:
    return [g.value for g in Gender]


def age_keys(settings: CodeSettings) -> list[str]:
    return settings.age_bucket_labels + [UNKNOWN_AGE]


def level_keys(levels) -> list[str]:
    return [level.value for level in levels]


def age_key(item: ClassifiedEncounter, settings: CodeSettings) -> str:
    return settings.age_bucket(item.age) or UNKNOWN_AGE


def positive(classified: list[ClassifiedEncounter]) -> list[ClassifiedEncounter]:
    return [c for c in classified if c.encounter.is_positive]


def variant_bucket(observation: LabObservation, settings: CodeSettings) -> str | None:
    """Reported variant bucket of a variant observation.

    Returns None for observations that are not variant tests. Unmapped
    answers are matched against the configured displays, then Unknown.
    """
    if normalize_code(observation.code) not in settings.variant_test_codes:
        return None
    variant = settings.variant_answer_codes.get(normalize_code(observation.variant_code) or "")
    if variant is not None:
        return variant
    display = (observation.variant_display or "").lower()
    if display:
        if any(d.lower() in display for d in settings.other_voc_displays):
            return "OtherVOC"
        if any(d.lower() in display for d in settings.non_voc_displays):
            return "NonVOC"
    return "Unknown"


def variant_keys() -> list[str]:
    return list(VARIANT_BUCKETS)


def highest(levels) -> TreatmentLevel:
    return max(levels, key=lambda lv: lv.rank)
