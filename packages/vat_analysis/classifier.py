"""Transaction classifier: the ordered VAT rule cascade.

Classification is driven by the tax reporting scheme declared in the report,
evaluated in strict priority order (first match wins):

1. ``UNION-OSS`` with an arrival country: arrival country, OSS.
2. ``REGULAR`` with a depart country and no buyer VAT country: depart
   country, domestic B2C.
3. ``REGULAR`` with the buyer VAT country equal to the depart country: depart
   country, domestic B2B.
4. ``REGULAR`` with any other buyer VAT country: depart country,
   intracommunity.
5. ``CH_VOEC`` with an arrival country: arrival country, Switzerland VOEC.
6. Anything else with a depart (preferred) or arrival country: residual.

Transactions with no country at all are not classified. Anomalies are a
separate diagnostic list and never alter a classification.
"""

from __future__ import annotations

from .models import Anomaly, AnomalyType, Classification, NormalizedTransaction, VatRegime
from .parsing import is_plausible_vat_number, is_standard_transaction_type
from .reference_data import EU_COUNTRIES, SCHEME_CH_VOEC, SCHEME_REGULAR, SCHEME_UNION_OSS


def classify(tx: NormalizedTransaction) -> Classification | None:
    """Assign ``tx`` to exactly one ``(country, regime)`` pair.

    Returns ``None`` when neither a depart nor an arrival country is known.
    Buyer VAT *presence* decides B2C vs. B2B; number plausibility is only
    reported through :func:`detect_anomalies`.
    """

    scheme = tx.tax_scheme
    arrival = tx.arrival_country
    depart = tx.depart_country
    buyer = tx.buyer_vat_country

    if scheme == SCHEME_UNION_OSS and arrival:
        return Classification(arrival, VatRegime.OSS)
    if scheme == SCHEME_REGULAR and depart:
        if not buyer:
            return Classification(depart, VatRegime.DOMESTIC_B2C)
        if buyer == depart:
            return Classification(depart, VatRegime.DOMESTIC_B2B)
        return Classification(depart, VatRegime.INTRACOMMUNITY)
    if scheme == SCHEME_CH_VOEC and arrival:
        return Classification(arrival, VatRegime.SWITZERLAND_VOEC)
    if depart or arrival:
        return Classification(depart or arrival, VatRegime.RESIDUAL)
    return None


def _anomaly(tx: NormalizedTransaction, kind: AnomalyType, description: str) -> Anomaly:
    return Anomaly(
        type=kind,
        description=f"line {tx.line_number}: {description}",
        reference_id=tx.reference_id,
        line_number=tx.line_number,
    )


def detect_anomalies(
    tx: NormalizedTransaction,
    classification: Classification | None,
    *,
    tolerance: float = 0.01,
) -> list[Anomaly]:
    """Return the diagnostics raised by ``tx`` and its classification.

    Parameters
    ----------
    tx:
        The normalized transaction.
    classification:
        The result of :func:`classify` for ``tx`` (``None`` when unclassified).
    tolerance:
        VAT amounts at or below this value count as zero.
    """

    if classification is None:
        return [
            _anomaly(
                tx,
                AnomalyType.UNCLASSIFIABLE,
                "no depart or arrival country; excluded from all totals",
            )
        ]

    country, regime = classification
    found: list[Anomaly] = []

    if tx.raw_transaction_type and not is_standard_transaction_type(tx.raw_transaction_type):
        found.append(
            _anomaly(
                tx,
                AnomalyType.NON_STANDARD_TRANSACTION_TYPE,
                f"transaction type {tx.raw_transaction_type!r} counted as {tx.transaction_type}",
            )
        )

    if regime is VatRegime.RESIDUAL:
        found.append(
            _anomaly(
                tx,
                AnomalyType.RESIDUAL,
                f"no VAT rule matched scheme {tx.tax_scheme or '<empty>'!r}; "
                f"kept as residual for {country}",
            )
        )

    if regime in (VatRegime.DOMESTIC_B2B, VatRegime.INTRACOMMUNITY):
        # Only meaningful when the report actually carries buyer VAT numbers.
        if tx.buyer_vat_number is not None and not is_plausible_vat_number(tx.buyer_vat_number):
            found.append(
                _anomaly(
                    tx,
                    AnomalyType.B2B_VAT_NUMBER_MISSING,
                    f"{regime} sale without a valid buyer VAT number "
                    f"(buyer VAT country {tx.buyer_vat_country})",
                )
            )

    if regime is VatRegime.INTRACOMMUNITY:
        if tx.vat_amount > tolerance:
            found.append(
                _anomaly(
                    tx,
                    AnomalyType.VAT_ON_INTRACOMMUNITY,
                    f"VAT {tx.vat_amount:.2f} charged on intracommunity sale "
                    f"{tx.depart_country} -> {tx.buyer_vat_country}",
                )
            )
        outside = sorted(
            c for c in {tx.depart_country, tx.buyer_vat_country} if c not in EU_COUNTRIES
        )
        if outside:
            found.append(
                _anomaly(
                    tx,
                    AnomalyType.NON_EU_INTRACOMMUNITY,
                    f"intracommunity sale involves non-EU country {', '.join(outside)}",
                )
            )

    if regime in (VatRegime.DOMESTIC_B2C, VatRegime.DOMESTIC_B2B):
        if tx.arrival_country and tx.arrival_country != tx.depart_country:
            found.append(
                _anomaly(
                    tx,
                    AnomalyType.REGULAR_COUNTRY_MISMATCH,
                    f"domestic sale ships {tx.depart_country} -> {tx.arrival_country}",
                )
            )

    return found


__all__ = ["classify", "detect_anomalies"]
