"""Public API and orchestration for the ``vat_analysis`` package.

One call runs the whole pipeline: parse and normalize rows, classify each
transaction, aggregate, cross-check, and assemble the report. The engine is a
pure function of the input text plus static reference data and the optional
settings/overrides; runs share no mutable state.
"""

from __future__ import annotations

import os

from .aggregation import Aggregator
from .classifier import classify, detect_anomalies
from .config import EngineSettings, RuleOverrides
from .logging_setup import get_logger
from .models import Anomaly
from .parsing import parse_report
from .report import VatReport, assemble_report
from .sanity import check_by_country, check_global

logger = get_logger("vat_analysis.api")


def analyze_vat_report(
    text: str,
    *,
    settings: EngineSettings | None = None,
    overrides: RuleOverrides | None = None,
) -> VatReport:
    """Analyze a VAT transaction report held in memory.

    Parameters
    ----------
    text:
        Full delimited report text (tab, semicolon or comma separated,
        optionally BOM-prefixed).
    settings:
        Engine settings. When omitted, :meth:`EngineSettings.from_env` is used.
    overrides:
        Optional user header and scheme aliases.

    Returns
    -------
    VatReport
        Breakdown, KPI cards, sanity results, rule counts, anomalies and
        skipped rows. Sanity failures are reported in the result, not raised.

    Raises
    ------
    vat_analysis.errors.VatInputError
        For structural problems (too few lines, missing required columns,
        malformed CSV). No partial report is produced.
    """

    settings = settings or EngineSettings.from_env()
    parsed = parse_report(text, settings=settings, overrides=overrides)

    classified = [(tx, classify(tx)) for tx in parsed.transactions]
    anomalies: list[Anomaly] = []
    for tx, classification in classified:
        anomalies.extend(detect_anomalies(tx, classification, tolerance=settings.tolerance))

    aggregator = Aggregator().extend(classified)
    unclassified = len(classified) - aggregator.classified_count
    if unclassified:
        logger.warning("%d transaction(s) had no resolvable country", unclassified)
    logger.info(
        "classified %d of %d transaction(s) into %d country row(s)",
        aggregator.classified_count,
        len(classified),
        len(aggregator.rows()),
    )

    sanity_global = check_global(classified, aggregator, tolerance=settings.tolerance)
    sanity_by_country = check_by_country(classified, aggregator, tolerance=settings.tolerance)

    return assemble_report(
        parsed,
        classified,
        aggregator,
        sanity_global=sanity_global,
        sanity_by_country=sanity_by_country,
        anomalies=anomalies,
    )


def analyze_vat_file(
    path: str | os.PathLike[str],
    *,
    settings: EngineSettings | None = None,
    overrides: RuleOverrides | None = None,
) -> VatReport:
    """Read ``path`` as UTF-8 (BOM tolerated) and analyze it.

    File errors (``FileNotFoundError``, ``PermissionError``,
    ``UnicodeDecodeError``) propagate unchanged.
    """

    # newline="" keeps CRLF and quoted newlines intact for the csv module.
    with open(path, encoding="utf-8-sig", newline="") as f:
        text = f.read()
    return analyze_vat_report(text, settings=settings, overrides=overrides)


__all__ = ["analyze_vat_file", "analyze_vat_report"]
