"""Reference codes and reporting criteria for the epidemic dashboard.

This module holds the default vocabulary the engine recognises: lab test
codes (LOINC), qualitative result codes (SNOMED CT), diagnosis codes
(ICD-10-GM), procedure codes for respiratory support and the location
classification rules. The values are defaults only; every component reads
them through a ``CodeSettings`` instance so a site can override them.

References:
- LOINC SARS-CoV-2 test panel (https://loinc.org/sars-cov-2-and-covid-19/)
- ICD-10-GM U07.1 / U07.2 coding guidance (BfArM)
"""

from datetime import date, datetime

# =============================================================================
# Reporting Period
# =============================================================================

# First day on which positive lab results are accepted
QUALIFYING_DATE = date(2020, 1, 27)

# Inpatient stays starting this many days after a positive outpatient
# contact inherit the positive flag
DAYS_AFTER_OUTPATIENT_STAY = 12

# Country whose postal codes are reported as-is
HOME_COUNTRY = "DE"


# =============================================================================
# Lab Observations (LOINC)
# =============================================================================

PCR_TEST_CODES = {
    "94306-8",  # SARS-CoV-2 RNA panel, NAA with probe detection
    "96763-8",  # SARS-CoV-2 RNA, respiratory specimen, NAA
    "94640-0",  # SARS-CoV-2 S gene, respiratory specimen, NAA
}

VARIANT_TEST_CODES = {
    "96741-4",  # SARS-CoV-2 variant, sequencing
    "96895-8",  # SARS-CoV-2 variant interpretation
}

# LOINC answer codes for variants of concern
VARIANT_ANSWER_CODES = {
    "LA31569-9": "Alpha",
    "LA31570-7": "Beta",
    "LA31621-8": "Gamma",
    "LA32552-4": "Delta",
    "LA33381-7": "Omicron",
}

# Reported variant buckets in display order
VARIANT_BUCKETS = [
    "Alpha",
    "Beta",
    "Gamma",
    "Delta",
    "Omicron",
    "OtherVOC",
    "NonVOC",
    "Unknown",
]


# =============================================================================
# Qualitative Results (SNOMED CT)
# =============================================================================

POSITIVE_RESULT_CODES = {
    "10828004",   # Positive
    "260373001",  # Detected
    "52101004",   # Present
}

NEGATIVE_RESULT_CODES = {
    "260385009",  # Negative
    "260415000",  # Not detected
    "410594000",  # Definitely NOT present
}

BORDERLINE_RESULT_CODES = {
    "280416009",  # Indeterminate result
    "419984006",  # Inconclusive
}


# =============================================================================
# Diagnoses (ICD-10-GM)
# =============================================================================

# Virus identified
CONFIRMED_ICD_CODES = {"U07.1"}

# Virus not identified, clinically-epidemiologically diagnosed
SUSPECTED_ICD_CODES = {"U07.2"}

# Diagnosis reliability markers (Diagnosesicherheit)
# A = excluded, V = suspected, Z = state after, G = confirmed
EXCLUDED_RELIABILITY_CODES = {"A"}

# A confirmed code carrying one of these markers only counts as borderline
SUSPECTED_RELIABILITY_CODES = {"V"}


# =============================================================================
# Procedures (SNOMED CT)
# =============================================================================

VENTILATION_PROCEDURE_CODES = {
    "40617009",  # Artificial respiration
    "57485005",  # Oxygen therapy
}

ECMO_PROCEDURE_CODES = {
    "182744004",  # Extracorporeal membrane oxygenation
}


# =============================================================================
# Locations
# =============================================================================

# Location type marking an intensive care unit
ICU_LOCATION_TYPE_CODES = {"ICU"}

# Physical type of a ward-level location; rooms and beds are ignored
WARD_PHYSICAL_TYPE_CODES = {"wa"}


# =============================================================================
# Age Buckets
# =============================================================================

# Lower bounds of the age buckets. The first bucket covers 0-19, then
# five-year bands up to an open 90+ bucket.
AGE_BUCKET_BOUNDS = (0, 20, 25, 30, 35, 40, 45, 50, 55, 60, 65, 70, 75, 80, 85, 90)

MAX_PLAUSIBLE_AGE = 130


# =============================================================================
# Helper Functions
# =============================================================================

def calculate_age(birth_date: date | None, at: date | datetime | None) -> int | None:
    """Age in whole years at the given date, truncated.

    Returns None if either date is missing or the birth date lies after
    the reference date.
    """
    if birth_date is None or at is None:
        return None
    if isinstance(at, datetime):
        at = at.date()
    if isinstance(birth_date, datetime):
        birth_date = birth_date.date()
    if birth_date > at:
        return None
    return at.year - birth_date.year - ((at.month, at.day) < (birth_date.month, birth_date.day))


def validate_age_bounds(bounds) -> tuple[int, ...]:
    """Check that age bucket bounds start at 0 and strictly increase."""
    bounds = tuple(int(b) for b in bounds)
    if not bounds:
        raise ValueError("Age bucket bounds must not be empty")
    if bounds[0] != 0:
        raise ValueError(f"First age bucket must start at 0, got {bounds[0]}")
    for lower, upper in zip(bounds, bounds[1:]):
        if upper <= lower:
            raise ValueError(f"Age bucket bounds must strictly increase: {bounds}")
    return bounds


def age_bucket_labels(bounds) -> list[str]:
    """Labels for all buckets in ascending order, e.g. '0-19', '20-24', '90+'."""
    labels = []
    for i, lower in enumerate(bounds):
        if i + 1 < len(bounds):
            labels.append(f"{lower}-{bounds[i + 1] - 1}")
        else:
            labels.append(f"{lower}+")
    return labels


def age_bucket(age: int | None, bounds) -> str | None:
    """Return the label of the bucket containing age, or None if age is unknown."""
    if age is None or age < 0:
        return None
    labels = age_bucket_labels(bounds)
    for i in range(len(bounds) - 1, -1, -1):
        if age >= bounds[i]:
            return labels[i]
    return None


def normalize_code(code: str | None) -> str | None:
    """Strip whitespace from a code; empty codes become None."""
    if code is None:
        return None
    code = code.strip()
    return code or None


def normalize_icd_code(code: str | None) -> str | None:
    """Normalise an ICD-10-GM code, dropping secondary-code markers ('U07.1!')."""
    code = normalize_code(code)
    if code is None:
        return None
    return code.rstrip("!+*†").upper() or None
