"""Timeline aggregator.

Buckets events by calendar day. All series share one contiguous day range
from the earliest to the latest event day of the run; days without events
are filled with zero.
"""

import logging
from datetime import date

import pandas as pd

from ..criteria import normalize_code
from ..data_items import DataItem
from ..flagging import is_in_reporting_period, lab_result_of
from ..models import LabResult, TreatmentLevel, VitalStatus
from .base import AggregationContext, Aggregator, positive, variant_bucket

logger = logging.getLogger(__name__)

TRANSITION_ITEMS = {
    TreatmentLevel.OUTPATIENT: DataItem.TIMELINE_TRANSITIONS_OUTPATIENT,
    TreatmentLevel.NORMAL_WARD: DataItem.TIMELINE_TRANSITIONS_NORMAL_WARD,
    TreatmentLevel.ICU: DataItem.TIMELINE_TRANSITIONS_ICU,
    TreatmentLevel.ICU_WITH_VENTILATION: DataItem.TIMELINE_TRANSITIONS_ICU_VENTILATION,
    TreatmentLevel.ICU_WITH_ECMO: DataItem.TIMELINE_TRANSITIONS_ICU_ECMO,
}

VARIANT_ITEMS = {
    "Alpha": DataItem.TIMELINE_VARIANT_ALPHA,
    "Beta": DataItem.TIMELINE_VARIANT_BETA,
    "Gamma": DataItem.TIMELINE_VARIANT_GAMMA,
    "Delta": DataItem.TIMELINE_VARIANT_DELTA,
    "Omicron": DataItem.TIMELINE_VARIANT_OMICRON,
    "OtherVOC": DataItem.TIMELINE_VARIANT_OTHER_VOC,
    "NonVOC": DataItem.TIMELINE_VARIANT_NON_VOC,
    "Unknown": DataItem.TIMELINE_VARIANT_UNKNOWN,
}

TIMELINE_ITEMS = (
    [DataItem.TIMELINE_DEATHS, DataItem.TIMELINE_TESTS, DataItem.TIMELINE_TEST_POSITIVE]
    + list(TRANSITION_ITEMS.values())
    + list(VARIANT_ITEMS.values())
)


def build_series(events: list[tuple[DataItem, date]], items) -> dict[DataItem, list[tuple[date, int]]]:
    """Daily counts per item over one shared, zero-filled day range.

    Args:
        events: (item, day) pairs, one per counted event
        items: All items to produce, including those without events

    Returns:
        Dict of item to ordered (day, count) pairs; empty lists if there
        are no events at all
    """
    if not events:
        return {item: [] for item in items}

    df = pd.DataFrame([(item.value, day) for item, day in events], columns=["item", "day"])
    df["day"] = pd.to_datetime(df["day"])
    days = pd.date_range(start=df["day"].min(), end=df["day"].max(), freq="D")

    table = (
        df.groupby(["day", "item"]).size()
        .unstack(fill_value=0)
        .reindex(index=days, columns=[item.value for item in items], fill_value=0)
    )
    return {
        item: [(ts.date(), int(n)) for ts, n in table[item.value].items()]
        for item in items
    }


class TimelineAggregator(Aggregator):
    """Daily series of deaths, tests, level transitions and variants."""

    name = "timeline"

    def aggregate(self, classified, context: AggregationContext) -> dict[DataItem, object]:
        events = self.collect_events(classified, context)
        logger.debug(f"Timeline over {len(events)} events")
        return build_series(events, TIMELINE_ITEMS)

    def collect_events(self, classified, context: AggregationContext) -> list[tuple[DataItem, date]]:
        settings = context.settings
        events: list[tuple[DataItem, date]] = []

        for item in positive(classified):
            encounter = item.encounter
            if encounter.period is None:
                continue
            if (
                encounter.is_inpatient
                and encounter.vital_status == VitalStatus.DEAD
                and encounter.end is not None
            ):
                events.append((DataItem.TIMELINE_DEATHS, encounter.end.date()))
            for segment in item.segments:
                if segment.start <= context.now:
                    events.append((TRANSITION_ITEMS[segment.level], segment.start.date()))

        for observation in context.records.observations:
            if not is_in_reporting_period(observation.effective, context.now, settings):
                continue
            day = observation.effective.date()
            if normalize_code(observation.code) in settings.pcr_test_codes:
                events.append((DataItem.TIMELINE_TESTS, day))
                if lab_result_of(observation, settings) == LabResult.POSITIVE:
                    events.append((DataItem.TIMELINE_TEST_POSITIVE, day))
            variant = variant_bucket(observation, settings)
            if variant in VARIANT_ITEMS:
                events.append((VARIANT_ITEMS[variant], day))

        return events
