"""CSV view of the current treatment-level crosstab."""

import logging
from pathlib import Path

import pandas as pd

from .data_items import DataItem
from .report import DashboardReport

logger = logging.getLogger(__name__)


def crosstab_frame(report: DashboardReport) -> pd.DataFrame:
    """Crosstab as a DataFrame: treatment levels as rows, genders as columns."""
    crosstab = report[DataItem.CURRENT_TREATMENT_LEVEL_CROSSTAB]
    rows = []
    for key, count in crosstab.items():
        level, gender = key.split(".", 1)
        rows.append({"treatment_level": level, "gender": gender, "count": count})
    df = pd.DataFrame(rows, columns=["treatment_level", "gender", "count"])

    levels = list(dict.fromkeys(df["treatment_level"]))
    genders = list(dict.fromkeys(df["gender"]))
    table = (
        df.pivot(index="treatment_level", columns="gender", values="count")
        .reindex(index=levels, columns=genders, fill_value=0)
        .fillna(0)
        .astype(int)
    )
    table["total"] = table.sum(axis=1)
    table.columns.name = None
    return table


def export_crosstab_csv(report: DashboardReport, path: Path | str | None = None) -> str:
    """Render the crosstab as CSV text, optionally writing it to a file."""
    csv_text = crosstab_frame(report).to_csv(index_label="treatment_level")
    if path is not None:
        Path(path).write_text(csv_text)
        logger.info(f"Saved current treatment level crosstab to {path}")
    return csv_text
