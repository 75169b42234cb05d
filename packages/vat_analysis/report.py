"""Report assembly: the immutable output of one analysis run.

This is where unrounded engine values become presentation values. Every
monetary figure is rounded half-up to cents exactly once, here; validity
flags were already decided on the unrounded numbers.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .aggregation import Aggregator
from .models import (
    Anomaly,
    Classification,
    CountryBreakdownRow,
    CountrySanityResult,
    GlobalSanityResult,
    KpiCard,
    NormalizedTransaction,
    RulesApplied,
    SkippedRow,
    VatRecapRow,
    VatRegime,
)
from .parsing import ParsedReport

M = TypeVar("M", bound=BaseModel)


def round_amount(value: float) -> float:
    """Round to two decimals, half away from zero (``2.675 -> 2.68``)."""

    # str() gives the shortest repr, so 2.675 is quantized as written.
    q = Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    # Avoid "-0.0" in output.
    return float(q) + 0.0


def _rounded(model: M) -> M:
    updates = {name: round_amount(v) for name, v in model if isinstance(v, float)}
    return model.model_copy(update=updates)


class VatReport(BaseModel):
    """Immutable result of one analysis run.

    ``to_dict()`` produces the camelCase mapping consumed by export and UI
    collaborators: ``breakdown``, ``kpiCards``, ``sanityCheckGlobal``,
    ``sanityCheckByCountry``, ``rulesApplied``, ``vatRecap`` and ``anomalies``,
    plus the run metadata ``skippedRows``, ``delimiter``, ``columns`` and ``currencies``.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    breakdown: tuple[CountryBreakdownRow, ...]
    kpi_cards: tuple[KpiCard, ...]
    sanity_check_global: GlobalSanityResult
    sanity_check_by_country: tuple[CountrySanityResult, ...]
    rules_applied: RulesApplied
    vat_recap: tuple[VatRecapRow, ...] = ()
    anomalies: tuple[Anomaly, ...] = ()
    skipped_rows: tuple[SkippedRow, ...] = ()
    delimiter: str = "\t"
    columns: dict[str, str] = {}
    currencies: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        """Global and every per-country sanity check passed."""

        return self.sanity_check_global.is_valid and all(
            c.is_valid for c in self.sanity_check_by_country
        )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def _rules_applied(
    classified: Sequence[tuple[NormalizedTransaction, Classification | None]],
) -> RulesApplied:
    counts = dict.fromkeys(VatRegime, 0)
    unclassified = 0
    for _tx, classification in classified:
        if classification is None:
            unclassified += 1
        else:
            counts[classification.regime] += 1
    return RulesApplied(
        oss_count=counts[VatRegime.OSS],
        b2c_count=counts[VatRegime.DOMESTIC_B2C],
        b2b_count=counts[VatRegime.DOMESTIC_B2B],
        intracom_count=counts[VatRegime.INTRACOMMUNITY],
        voec_count=counts[VatRegime.SWITZERLAND_VOEC],
        residual_count=counts[VatRegime.RESIDUAL],
        unclassified_count=unclassified,
        total_processed=len(classified),
    )


def assemble_report(
    parsed: ParsedReport,
    classified: Sequence[tuple[NormalizedTransaction, Classification | None]],
    aggregator: Aggregator,
    *,
    sanity_global: GlobalSanityResult,
    sanity_by_country: Sequence[CountrySanityResult],
    anomalies: Sequence[Anomaly] = (),
) -> VatReport:
    """Package every engine output into a :class:`VatReport`.

    Parameters
    ----------
    parsed:
        Parser output (delimiter, columns, skipped rows).
    classified:
        Every normalized transaction with its classification, in source order.
    aggregator:
        The aggregator fed with ``classified``.
    sanity_global, sanity_by_country:
        Unrounded sanity results.
    anomalies:
        Diagnostics collected while classifying.
    """

    breakdown = tuple(
        _rounded(
            CountryBreakdownRow(
                country=row.country,
                domestic_b2c=row.domestic_b2c,
                domestic_b2b=row.domestic_b2b,
                intracommunity=row.intracommunity,
                oss=row.oss,
                switzerland_voec=row.switzerland_voec,
                residual=row.residual,
                total=row.total,
            )
        )
        for row in aggregator.rows()
    )
    kpi_cards = tuple(
        KpiCard(title=k.title, amount=round_amount(k.amount), count=k.count)
        for k in aggregator.kpi_totals()
    )
    vat_recap = tuple(
        _rounded(
            VatRecapRow(country=r.country, regime=r.regime, net=r.net, vat=r.vat, count=r.count)
        )
        for r in aggregator.recap()
    )
    currencies = tuple(sorted({tx.currency for tx, _c in classified if tx.currency}))

    return VatReport(
        breakdown=breakdown,
        kpi_cards=kpi_cards,
        sanity_check_global=_rounded(sanity_global),
        sanity_check_by_country=tuple(_rounded(c) for c in sanity_by_country),
        rules_applied=_rules_applied(classified),
        vat_recap=vat_recap,
        anomalies=tuple(anomalies),
        skipped_rows=parsed.skipped,
        delimiter=parsed.delimiter,
        columns=parsed.columns.as_dict(),
        currencies=currencies,
    )


__all__ = ["VatReport", "assemble_report", "round_amount"]
