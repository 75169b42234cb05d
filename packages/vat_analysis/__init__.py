"""Public interface for the ``vat_analysis`` package.

This module exposes the package's API functions and public models/types as the
stable import surface. There is no runtime logic here, only symbol re-exports.
"""

from .api import analyze_vat_file, analyze_vat_report
from .classifier import classify, detect_anomalies
from .config import EngineSettings, RuleOverrides, load_overrides
from .errors import InputTooShortError, MissingColumnsError, VatInputError
from .models import (
    Anomaly,
    AnomalyType,
    Classification,
    CountryBreakdownRow,
    CountrySanityResult,
    GlobalSanityResult,
    KpiCard,
    NormalizedTransaction,
    RulesApplied,
    SkippedRow,
    SkipReason,
    TransactionType,
    VatRecapRow,
    VatRegime,
)
from .report import VatReport

__all__ = [
    # API
    "analyze_vat_file",
    "analyze_vat_report",
    "classify",
    "detect_anomalies",
    # Configuration
    "EngineSettings",
    "RuleOverrides",
    "load_overrides",
    # Errors
    "VatInputError",
    "InputTooShortError",
    "MissingColumnsError",
    # Models / types
    "Anomaly",
    "AnomalyType",
    "Classification",
    "CountryBreakdownRow",
    "CountrySanityResult",
    "GlobalSanityResult",
    "KpiCard",
    "NormalizedTransaction",
    "RulesApplied",
    "SkippedRow",
    "SkipReason",
    "TransactionType",
    "VatRecapRow",
    "VatRegime",
    "VatReport",
]
