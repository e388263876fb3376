"""Dashboard report generation.

Pipeline per run:
1. Flag cases (positive / borderline / negative)
2. Classify treatment levels of every encounter
3. Run the cumulative, current, timeline and length-of-stay aggregators
4. Merge their results into one report keyed by DataItem
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, datetime

from .aggregators import (
    AggregationContext,
    Aggregator,
    CumulativeAggregator,
    CurrentAggregator,
    LengthOfStayAggregator,
    TimelineAggregator,
)
from .classifier import TreatmentLevelClassifier
from .config import CodeSettings, config
from .data_items import DATA_ITEM_SHAPES, DataItem, ValueShape
from .flagging import CaseFlagger
from .models import ClassifiedEncounter, ClinicalRecords

logger = logging.getLogger(__name__)


def _matches_shape(value, shape: ValueShape) -> bool:
    if shape == ValueShape.SCALAR:
        return isinstance(value, int)
    if shape == ValueShape.MAPPING:
        return isinstance(value, dict) and all(isinstance(v, int) for v in value.values())
    if shape == ValueShape.CASE_LIST:
        return isinstance(value, list) and all(isinstance(v, str) for v in value)
    if shape == ValueShape.HOURS_LIST:
        return isinstance(value, list) and all(isinstance(v, int) for v in value)
    if shape == ValueShape.TIME_SERIES:
        return isinstance(value, list) and all(
            isinstance(day, date) and isinstance(n, int) for day, n in value
        )
    if shape == ValueShape.PATIENT_STAYS:
        return isinstance(value, dict) and all(
            isinstance(stay, dict)
            and isinstance(stay.get("hours"), int)
            and isinstance(stay.get("case_ids"), list)
            for stay in value.values()
        )
    return False


@dataclass
class DashboardReport:
    """Values of all data items for one evaluation date."""
    generated_at: datetime
    items: dict[DataItem, object] = field(default_factory=dict)

    def __getitem__(self, item: DataItem):
        return self.items[item]

    def validate(self) -> None:
        """Raise ValueError if an item is missing or has the wrong shape."""
        missing = [item.value for item in DataItem if item not in self.items]
        if missing:
            raise ValueError(f"Report is missing data items: {', '.join(missing)}")
        for item, value in self.items.items():
            shape = DATA_ITEM_SHAPES[item]
            if not _matches_shape(value, shape):
                raise ValueError(f"Data item {item.value} does not match shape {shape.value}")

    def to_dict(self) -> dict:
        """Plain dict in DataItem order with ISO formatted days."""
        result = {}
        for item in DataItem:
            value = self.items.get(item)
            if DATA_ITEM_SHAPES[item] == ValueShape.TIME_SERIES and value is not None:
                value = [[day.isoformat(), n] for day, n in value]
            elif DATA_ITEM_SHAPES[item] == ValueShape.PATIENT_STAYS and value is not None:
                value = {pid: dict(stay) for pid, stay in value.items()}
            elif isinstance(value, dict):
                value = dict(value)
            elif isinstance(value, list):
                value = list(value)
            result[item.value] = value
        return {
            "generated_at": self.generated_at.isoformat(),
            "items": result,
        }


class DashboardReportGenerator:
    """Runs the full pipeline and merges the aggregator results."""

    def __init__(self, settings: CodeSettings | None = None, max_workers: int | None = None):
        self.settings = settings or config.get_code_settings()
        self.max_workers = max_workers or config.REPORT_MAX_WORKERS
        self.aggregators: list[Aggregator] = [
            CumulativeAggregator(),
            CurrentAggregator(),
            TimelineAggregator(),
            LengthOfStayAggregator(),
        ]

    def classify(self, records: ClinicalRecords, now: datetime) -> tuple:
        """Flag and classify all encounters.

        Returns:
            Tuple of (FlaggingResult, list of ClassifiedEncounter)
        """
        flagging = CaseFlagger(self.settings).flag(
            records.encounters, records.conditions, records.observations, now
        )
        classifier = TreatmentLevelClassifier(
            self.settings, records.locations, records.patients, records.procedures
        )
        classified = classifier.classify_all(records.encounters, now)
        return flagging, classified

    def generate(self, records: ClinicalRecords, now: datetime) -> DashboardReport:
        logger.info(
            f"Generating dashboard report for {now.isoformat()} "
            f"({len(records.encounters)} encounters)"
        )
        flagging, classified = self.classify(records, now)
        context = AggregationContext(
            settings=self.settings, now=now, records=records, flagging=flagging
        )

        report = DashboardReport(generated_at=now)
        for partial in self._run_aggregators(classified, context):
            report.items.update(partial)
        report.validate()

        logger.info(f"Report complete: {len(report.items)} data items")
        return report

    def _run_aggregators(
        self,
        classified: list[ClassifiedEncounter],
        context: AggregationContext,
    ) -> list[dict[DataItem, object]]:
        """Run all aggregators; results come back in aggregator order."""
        if self.max_workers <= 1:
            return [a.aggregate(classified, context) for a in self.aggregators]

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [
                executor.submit(a.aggregate, classified, context) for a in self.aggregators
            ]
            return [f.result() for f in futures]


def generate_report(
    records: ClinicalRecords,
    now: datetime,
    settings: CodeSettings | None = None,
    max_workers: int | None = None,
) -> DashboardReport:
    """Generate a dashboard report with a fresh generator."""
    return DashboardReportGenerator(settings, max_workers).generate(records, now)
