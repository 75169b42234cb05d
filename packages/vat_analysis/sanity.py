"""Independent cross-checks of the aggregated breakdown.

Totals are recomputed straight from the transaction stream, filtered by the
*declared* tax scheme rather than the assigned regime, and compared with the
aggregator's breakdown. A mismatch never raises: it is reported through the
``is_valid`` flags and difference fields for human review.

Results are returned unrounded; :mod:`vat_analysis.report` rounds them when
the report is materialized. Validity is always decided on unrounded values.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TypeAlias

from .aggregation import Aggregator
from .logging_setup import get_logger
from .models import (
    Classification,
    CountrySanityResult,
    GlobalSanityResult,
    NormalizedTransaction,
    VatRegime,
)
from .reference_data import SCHEME_CH_VOEC, SCHEME_REGULAR, SCHEME_UNION_OSS

logger = get_logger("vat_analysis.sanity")

Classified: TypeAlias = Sequence[tuple[NormalizedTransaction, Classification | None]]


def check_global(
    classified: Classified,
    aggregator: Aggregator,
    *,
    tolerance: float = 0.01,
) -> GlobalSanityResult:
    """Recompute the global totals and test the two reconciliation equations.

    ``grandTotal`` and the per-scheme totals come from classified transactions
    in ``classified``; the residual, B2C, B2B and intracommunity totals come
    from the aggregator's breakdown rows. The result is valid when both

    - ``grand - (oss + regular + switzerland + residual)`` and
    - ``regular - (b2c + b2b + intracom)``

    are within ``tolerance`` of zero.
    """

    grand = oss = regular = switzerland = 0.0
    for tx, classification in classified:
        if classification is None:
            continue
        amount = tx.signed_amount
        grand += amount
        if tx.tax_scheme == SCHEME_UNION_OSS:
            oss += amount
        elif tx.tax_scheme == SCHEME_REGULAR:
            regular += amount
        elif tx.tax_scheme == SCHEME_CH_VOEC:
            switzerland += amount

    residual = aggregator.breakdown_component_total(VatRegime.RESIDUAL)
    b2c = aggregator.breakdown_component_total(VatRegime.DOMESTIC_B2C)
    b2b = aggregator.breakdown_component_total(VatRegime.DOMESTIC_B2B)
    intracom = aggregator.breakdown_component_total(VatRegime.INTRACOMMUNITY)

    diff_grand = grand - (oss + regular + switzerland + residual)
    diff_regular = regular - (b2c + b2b + intracom)
    is_valid = abs(diff_grand) < tolerance and abs(diff_regular) < tolerance
    if not is_valid:
        logger.warning(
            "global sanity check failed: grand-vs-sum diff %.4f, regular-vs-components diff %.4f",
            diff_grand,
            diff_regular,
        )

    return GlobalSanityResult(
        grand_total=grand,
        oss_total=oss,
        regular_total=regular,
        switzerland_total=switzerland,
        residual_total=residual,
        b2c_total=b2c,
        b2b_total=b2b,
        intracom_total=intracom,
        diff_grand_total_vs_sum=diff_grand,
        diff_regular_vs_components=diff_regular,
        is_valid=is_valid,
    )


def check_by_country(
    classified: Classified,
    aggregator: Aggregator,
    *,
    tolerance: float = 0.01,
) -> list[CountrySanityResult]:
    """Per depart country, compare the REGULAR stream total with the breakdown.

    Every country that appears as the depart country of a classified
    ``REGULAR`` transaction gets one result, sorted by country code.
    """

    regular_by_country: dict[str, float] = {}
    for tx, classification in classified:
        if classification is None or tx.tax_scheme != SCHEME_REGULAR or not tx.depart_country:
            continue
        regular_by_country[tx.depart_country] = (
            regular_by_country.get(tx.depart_country, 0.0) + tx.signed_amount
        )

    results: list[CountrySanityResult] = []
    for country in sorted(regular_by_country):
        regular = regular_by_country[country]
        row = aggregator.row(country)
        b2c = row.domestic_b2c if row is not None else 0.0
        b2b = row.domestic_b2b if row is not None else 0.0
        intracom = row.intracommunity if row is not None else 0.0
        difference = regular - (b2c + b2b + intracom)
        is_valid = abs(difference) < tolerance
        if not is_valid:
            logger.warning(
                "country sanity check failed for %s: difference %.4f", country, difference
            )
        results.append(
            CountrySanityResult(
                country=country,
                regular_total=regular,
                b2c_total=b2c,
                b2b_total=b2b,
                intracom_total=intracom,
                difference=difference,
                is_valid=is_valid,
            )
        )
    return results


__all__ = ["check_by_country", "check_global"]
