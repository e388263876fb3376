"""Configuration for the epidemic dashboard engine."""

import logging
import os
import sys
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

from dotenv import load_dotenv

from . import criteria

logger = logging.getLogger(__name__)

# Find and load .env file
_env_candidates = [
    Path(__file__).parent.parent / ".env",
    Path(__file__).parent.parent / ".env.template",
]

for env_path in _env_candidates:
    if env_path.exists():
        load_dotenv(env_path)
        break


def _code_set(env_name: str, default: set[str]) -> frozenset[str]:
    """Read a comma separated code list, falling back to the default."""
    raw = os.getenv(env_name, "")
    codes = [c.strip() for c in raw.split(",") if c.strip()]
    if not codes:
        return frozenset(default)
    return frozenset(codes)


@dataclass(frozen=True)
class CodeSettings:
    """Reference codes and rules used by every engine component.

    One instance is built per report run and passed explicitly to flagging,
    classification and the aggregators.
    """
    # Lab observations
    pcr_test_codes: frozenset[str] = frozenset(criteria.PCR_TEST_CODES)
    variant_test_codes: frozenset[str] = frozenset(criteria.VARIANT_TEST_CODES)
    variant_answer_codes: dict[str, str] = field(
        default_factory=lambda: dict(criteria.VARIANT_ANSWER_CODES)
    )
    other_voc_displays: frozenset[str] = frozenset()  # displays counted as OtherVOC
    non_voc_displays: frozenset[str] = frozenset()    # displays counted as NonVOC

    # Qualitative results
    positive_result_codes: frozenset[str] = frozenset(criteria.POSITIVE_RESULT_CODES)
    negative_result_codes: frozenset[str] = frozenset(criteria.NEGATIVE_RESULT_CODES)
    borderline_result_codes: frozenset[str] = frozenset(criteria.BORDERLINE_RESULT_CODES)

    # Diagnoses
    confirmed_icd_codes: frozenset[str] = frozenset(criteria.CONFIRMED_ICD_CODES)
    suspected_icd_codes: frozenset[str] = frozenset(criteria.SUSPECTED_ICD_CODES)
    excluded_reliability_codes: frozenset[str] = frozenset(criteria.EXCLUDED_RELIABILITY_CODES)
    suspected_reliability_codes: frozenset[str] = frozenset(criteria.SUSPECTED_RELIABILITY_CODES)

    # Procedures
    ventilation_procedure_codes: frozenset[str] = frozenset(criteria.VENTILATION_PROCEDURE_CODES)
    ecmo_procedure_codes: frozenset[str] = frozenset(criteria.ECMO_PROCEDURE_CODES)

    # Locations
    icu_location_type_codes: frozenset[str] = frozenset(criteria.ICU_LOCATION_TYPE_CODES)
    ward_physical_type_codes: frozenset[str] = frozenset(criteria.WARD_PHYSICAL_TYPE_CODES)

    # Reporting
    age_bucket_bounds: tuple[int, ...] = criteria.AGE_BUCKET_BOUNDS
    qualifying_date: date = criteria.QUALIFYING_DATE
    days_after_outpatient_stay: int = criteria.DAYS_AFTER_OUTPATIENT_STAY
    home_country: str = criteria.HOME_COUNTRY

    def __post_init__(self):
        object.__setattr__(
            self, "age_bucket_bounds", criteria.validate_age_bounds(self.age_bucket_bounds)
        )
        if self.days_after_outpatient_stay < 0:
            raise ValueError(
                f"days_after_outpatient_stay must not be negative, got {self.days_after_outpatient_stay}"
            )

    @property
    def age_bucket_labels(self) -> list[str]:
        return criteria.age_bucket_labels(self.age_bucket_bounds)

    def age_bucket(self, age: int | None) -> str | None:
        return criteria.age_bucket(age, self.age_bucket_bounds)


class Config:
    """Epidemic dashboard configuration."""

    # --- Reporting Period ---
    QUALIFYING_DATE: date = date.fromisoformat(
        os.getenv("QUALIFYING_DATE") or criteria.QUALIFYING_DATE.isoformat()
    )

    # --- Case Flagging ---
    # Days after a positive outpatient contact in which an inpatient stay inherits the flag
    DAYS_AFTER_OUTPATIENT_STAY: int = int(
        os.getenv("DAYS_AFTER_OUTPATIENT_STAY") or str(criteria.DAYS_AFTER_OUTPATIENT_STAY)
    )

    # --- Demographics ---
    COUNTRY_CODE: str = os.getenv("COUNTRY_CODE") or criteria.HOME_COUNTRY

    # --- Report Generation ---
    REPORT_MAX_WORKERS: int = int(os.getenv("REPORT_MAX_WORKERS") or "1")

    # --- Logging ---
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def get_age_bucket_bounds(cls) -> tuple[int, ...]:
        raw = os.getenv("AGE_BUCKET_BOUNDS", "")
        bounds = [b.strip() for b in raw.split(",") if b.strip()]
        if not bounds:
            return criteria.AGE_BUCKET_BOUNDS
        return criteria.validate_age_bounds(int(b) for b in bounds)

    @classmethod
    def get_code_settings(cls) -> CodeSettings:
        """Build the code settings from environment overrides and defaults."""
        settings = CodeSettings(
            pcr_test_codes=_code_set("PCR_TEST_CODES", criteria.PCR_TEST_CODES),
            variant_test_codes=_code_set("VARIANT_TEST_CODES", criteria.VARIANT_TEST_CODES),
            confirmed_icd_codes=_code_set("CONFIRMED_ICD_CODES", criteria.CONFIRMED_ICD_CODES),
            suspected_icd_codes=_code_set("SUSPECTED_ICD_CODES", criteria.SUSPECTED_ICD_CODES),
            ventilation_procedure_codes=_code_set(
                "VENTILATION_PROCEDURE_CODES", criteria.VENTILATION_PROCEDURE_CODES
            ),
            ecmo_procedure_codes=_code_set("ECMO_PROCEDURE_CODES", criteria.ECMO_PROCEDURE_CODES),
            icu_location_type_codes=_code_set(
                "ICU_LOCATION_TYPE_CODES", criteria.ICU_LOCATION_TYPE_CODES
            ),
            age_bucket_bounds=cls.get_age_bucket_bounds(),
            qualifying_date=cls.QUALIFYING_DATE,
            days_after_outpatient_stay=cls.DAYS_AFTER_OUTPATIENT_STAY,
            home_country=cls.COUNTRY_CODE,
        )
        logger.debug(
            f"Code settings: {len(settings.pcr_test_codes)} PCR codes, "
            f"{len(settings.age_bucket_bounds)} age buckets, "
            f"qualifying date {settings.qualifying_date}"
        )
        return settings


config = Config()


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for scripts embedding the engine."""
    level = logging.DEBUG if verbose else getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )
