"""Treatment-level classification and aggregation engine for epidemic dashboards."""

from .classifier import TreatmentLevelClassifier, categorize_location, resolve_segments
from .config import CodeSettings, Config, config, setup_logging
from .data_items import DATA_ITEM_SHAPES, DataItem, ValueShape
from .export import crosstab_frame, export_crosstab_csv
from .flagging import CaseFlagger, FlaggingResult
from .intervals import Interval
from .models import (
    CaseClass,
    CaseFlag,
    ClassifiedEncounter,
    ClinicalRecords,
    Condition,
    Encounter,
    Gender,
    LabObservation,
    LabResult,
    LevelSegment,
    Location,
    LocationCategory,
    LocationStay,
    Patient,
    Procedure,
    TreatmentLevel,
    VitalStatus,
)
from .report import DashboardReport, DashboardReportGenerator, generate_report

__all__ = [
    # Config
    "CodeSettings",
    "Config",
    "config",
    "setup_logging",
    # Models
    "CaseClass",
    "CaseFlag",
    "ClassifiedEncounter",
    "ClinicalRecords",
    "Condition",
    "Encounter",
    "Gender",
    "Interval",
    "LabObservation",
    "LabResult",
    "LevelSegment",
    "Location",
    "LocationCategory",
    "LocationStay",
    "Patient",
    "Procedure",
    "TreatmentLevel",
    "VitalStatus",
    # Engine
    "CaseFlagger",
    "FlaggingResult",
    "TreatmentLevelClassifier",
    "categorize_location",
    "resolve_segments",
    # Report
    "DATA_ITEM_SHAPES",
    "DashboardReport",
    "DashboardReportGenerator",
    "DataItem",
    "ValueShape",
    "crosstab_frame",
    "export_crosstab_csv",
    "generate_report",
]
