"""Treatment-level classifier.

For every encounter the classifier collects the intervals that raise the
treatment level:

    NORMAL_WARD            whole inpatient stay
    ICU                    ICU location stays
    ICU_WITH_VENTILATION   ventilation procedure  AND  ICU stay
    ICU_WITH_ECMO          ECMO procedure         AND  ICU stay

and sweeps over all interval boundaries. Each slice gets the highest ranked
level covering it; adjacent slices with the same level form one segment.
A ventilation or ECMO procedure outside any ICU stay does not raise the
level.
"""

import logging
from datetime import datetime

from .config import CodeSettings
from .criteria import calculate_age, normalize_code
from .intervals import Interval
from .models import (
    CaseClass,
    ClassifiedEncounter,
    Encounter,
    LevelSegment,
    Location,
    LocationCategory,
    Patient,
    Procedure,
    TreatmentLevel,
)

logger = logging.getLogger(__name__)

# Procedure states that never count
IGNORED_PROCEDURE_STATUSES = {"entered-in-error", "not-done", "preparation"}


def categorize_location(location: Location, settings: CodeSettings) -> LocationCategory:
    """Classify a location; rooms and beds are OTHER."""
    physical_type = normalize_code(location.physical_type_code)
    if physical_type is not None and physical_type not in settings.ward_physical_type_codes:
        return LocationCategory.OTHER
    if normalize_code(location.type_code) in settings.icu_location_type_codes:
        return LocationCategory.ICU
    return LocationCategory.NORMAL_WARD


def resolve_segments(
    level_intervals: list[tuple[TreatmentLevel, Interval]],
) -> list[LevelSegment]:
    """Max-by-rank fold over overlapping level intervals.

    Returns non-overlapping segments in chronological order. Adjacent
    slices with the same level are merged.
    """
    if not level_intervals:
        return []

    boundaries = sorted(
        {i.start for _, i in level_intervals}
        | {i.end for _, i in level_intervals if i.end is not None}
    )
    has_open = any(i.is_open for _, i in level_intervals)

    slices: list[Interval] = [
        Interval(a, b) for a, b in zip(boundaries, boundaries[1:])
    ]
    if has_open:
        slices.append(Interval(boundaries[-1], None))

    segments: list[LevelSegment] = []
    for piece in slices:
        covering = [level for level, i in level_intervals if i.contains(piece.start)]
        if not covering:
            continue
        level = max(covering, key=lambda lv: lv.rank)
        if segments and segments[-1].level == level and segments[-1].interval.end == piece.start:
            previous = segments[-1]
            segments[-1] = LevelSegment(level, Interval(previous.interval.start, piece.end))
        else:
            segments.append(LevelSegment(level, piece))
    return segments


class TreatmentLevelClassifier:
    """Computes maximal and current treatment levels per encounter."""

    def __init__(
        self,
        settings: CodeSettings,
        locations: list[Location],
        patients: list[Patient],
        procedures: list[Procedure],
    ):
        self.settings = settings
        self.location_categories = {
            loc.id: categorize_location(loc, settings) for loc in locations
        }
        self.patients = {p.id: p for p in patients}
        self.procedures = [p for p in procedures if self._is_relevant_procedure(p)]

    def classify_all(self, encounters: list[Encounter], now: datetime) -> list[ClassifiedEncounter]:
        """Classify encounters in input order."""
        linked = self.link_procedures(encounters)
        classified = [self.classify(e, now, linked.get(e.id, [])) for e in encounters]
        logger.info(f"Classified {len(classified)} encounters")
        return classified

    def link_procedures(self, encounters: list[Encounter]) -> dict[str, list[Procedure]]:
        """Assign procedures to encounters.

        Case id first; otherwise by patient id and temporal overlap with the
        encounter period. Procedures matching neither are skipped.
        """
        by_case = {e.id: e for e in encounters}
        by_patient: dict[str, list[Encounter]] = {}
        for encounter in encounters:
            by_patient.setdefault(encounter.patient_id, []).append(encounter)

        linked: dict[str, list[Procedure]] = {}
        skipped = 0
        for procedure in self.procedures:
            if procedure.case_id in by_case:
                linked.setdefault(procedure.case_id, []).append(procedure)
                continue

            interval = procedure.to_interval()
            matches = []
            if interval is not None:
                for encounter in by_patient.get(procedure.patient_id, []):
                    period = encounter.period
                    if period is not None and period.overlaps(interval):
                        matches.append(encounter)
            if not matches:
                logger.debug(
                    f"Skipping procedure {procedure.id}: no encounter for case "
                    f"{procedure.case_id} / patient {procedure.patient_id}"
                )
                skipped += 1
                continue
            for encounter in matches:
                linked.setdefault(encounter.id, []).append(procedure)

        if skipped:
            logger.warning(f"Skipped {skipped} procedures without matching encounter")
        return linked

    def classify(
        self,
        encounter: Encounter,
        now: datetime,
        procedures: list[Procedure] | None = None,
    ) -> ClassifiedEncounter:
        patient = self.patients.get(encounter.patient_id)
        if patient is None:
            logger.debug(f"Encounter {encounter.id}: unknown patient {encounter.patient_id}")
        age = calculate_age(patient.birth_date if patient else None, encounter.start)

        base_level = (
            TreatmentLevel.NORMAL_WARD if encounter.is_inpatient else TreatmentLevel.OUTPATIENT
        )
        period = encounter.period
        if period is None:
            if Interval.is_inverted(encounter.start, encounter.end):
                logger.warning(
                    f"Encounter {encounter.id}: end {encounter.end} before start "
                    f"{encounter.start}, skipping period"
                )
            else:
                logger.debug(f"Encounter {encounter.id} has no period start")
            return ClassifiedEncounter(
                encounter=encounter,
                patient=patient,
                max_level=base_level,
                age=age,
            )

        icu_intervals: list[Interval] = []
        level_intervals: list[tuple[TreatmentLevel, Interval]] = [(base_level, period)]
        if encounter.case_class == CaseClass.INPATIENT:
            icu_intervals = self._icu_intervals(encounter, period)
            level_intervals += [(TreatmentLevel.ICU, i) for i in icu_intervals]
            level_intervals += self._support_intervals(procedures or [], period, icu_intervals)

        segments = resolve_segments(level_intervals)

        reached = [s.level for s in segments if s.start <= now]
        max_level = max(reached, key=lambda lv: lv.rank) if reached else base_level

        current_level = None
        if encounter.is_current:
            for segment in segments:
                if segment.interval.contains(now):
                    current_level = segment.level
                    break

        return ClassifiedEncounter(
            encounter=encounter,
            patient=patient,
            max_level=max_level,
            current_level=current_level,
            segments=tuple(segments),
            icu_intervals=tuple(icu_intervals),
            age=age,
        )

    def _icu_intervals(self, encounter: Encounter, period: Interval) -> list[Interval]:
        """Merged ICU stays clipped to the encounter period."""
        intervals = []
        for stay in encounter.location_stays:
            category = self.location_categories.get(stay.location_id)
            if category is None:
                logger.debug(f"Encounter {encounter.id}: unknown location {stay.location_id}")
                continue
            if category != LocationCategory.ICU:
                continue
            interval = stay.to_interval()
            if interval is None:
                if Interval.is_inverted(stay.start, stay.end):
                    logger.warning(
                        f"Encounter {encounter.id}: skipping stay at {stay.location_id} "
                        f"ending before it starts"
                    )
                continue
            clipped = interval.clip(period.start, period.end)
            if clipped is not None:
                intervals.append(clipped)
        return Interval.merge(intervals)

    def _support_intervals(
        self,
        procedures: list[Procedure],
        period: Interval,
        icu_intervals: list[Interval],
    ) -> list[tuple[TreatmentLevel, Interval]]:
        """Ventilation and ECMO intervals, restricted to ICU time."""
        result = []
        for procedure in procedures:
            level = self._support_level(procedure)
            interval = procedure.to_interval()
            if level is None:
                continue
            if interval is None:
                if Interval.is_inverted(procedure.start, procedure.end):
                    logger.warning(f"Skipping procedure {procedure.id} ending before it starts")
                continue
            interval = interval.clip(period.start, period.end)
            if interval is None:
                continue
            for icu in icu_intervals:
                overlap = interval.intersection(icu)
                if overlap is not None:
                    result.append((level, overlap))
        return result

    def _support_level(self, procedure: Procedure) -> TreatmentLevel | None:
        code = normalize_code(procedure.code)
        if code in self.settings.ecmo_procedure_codes:
            return TreatmentLevel.ICU_WITH_ECMO
        if code in self.settings.ventilation_procedure_codes:
            return TreatmentLevel.ICU_WITH_VENTILATION
        return None

    def _is_relevant_procedure(self, procedure: Procedure) -> bool:
        if procedure.status in IGNORED_PROCEDURE_STATUSES:
            return False
        return self._support_level(procedure) is not None
