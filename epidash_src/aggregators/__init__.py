"""Aggregators turning classified encounters into report data items."""

from .base import AggregationContext, Aggregator
from .cumulative import CumulativeAggregator, summarize_patients
from .current import CurrentAggregator, current_encounters
from .length_of_stay import LengthOfStayAggregator, patient_length_of_stay
from .timeline import TimelineAggregator, build_series

__all__ = [
    "AggregationContext",
    "Aggregator",
    "CumulativeAggregator",
    "CurrentAggregator",
    "LengthOfStayAggregator",
    "TimelineAggregator",
    "build_series",
    "current_encounters",
    "patient_length_of_stay",
    "summarize_patients",
]
