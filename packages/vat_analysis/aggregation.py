"""Aggregation of classified transactions into per-country and per-regime totals.

Amounts are accumulated in full float precision; rounding to cents happens
once, when :mod:`vat_analysis.report` materializes the report.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from typing import NamedTuple

from .models import Classification, NormalizedTransaction, VatRegime

# Regime -> attribute on CountryTotals
_REGIME_FIELD: dict[VatRegime, str] = {
    VatRegime.DOMESTIC_B2C: "domestic_b2c",
    VatRegime.DOMESTIC_B2B: "domestic_b2b",
    VatRegime.INTRACOMMUNITY: "intracommunity",
    VatRegime.OSS: "oss",
    VatRegime.SWITZERLAND_VOEC: "switzerland_voec",
    VatRegime.RESIDUAL: "residual",
}

# KPI card order after the leading "Total" card
KPI_TITLES: tuple[tuple[VatRegime, str], ...] = (
    (VatRegime.OSS, "OSS"),
    (VatRegime.DOMESTIC_B2C, "Domestic B2C"),
    (VatRegime.DOMESTIC_B2B, "Domestic B2B"),
    (VatRegime.INTRACOMMUNITY, "Intracommunity"),
    (VatRegime.SWITZERLAND_VOEC, "Switzerland (VOEC)"),
    (VatRegime.RESIDUAL, "Residual"),
)


@dataclass(slots=True)
class CountryTotals:
    """Running, unrounded sums of signed amounts for one country."""

    country: str
    domestic_b2c: float = 0.0
    domestic_b2b: float = 0.0
    intracommunity: float = 0.0
    oss: float = 0.0
    switzerland_voec: float = 0.0
    residual: float = 0.0
    total: float = 0.0

    def add(self, regime: VatRegime, amount: float) -> None:
        name = _REGIME_FIELD[regime]
        setattr(self, name, getattr(self, name) + amount)
        self.total += amount

    def component(self, regime: VatRegime) -> float:
        return getattr(self, _REGIME_FIELD[regime])


@dataclass(slots=True)
class RecapTotals:
    """Running net, VAT and count for one (country, regime) pair."""

    country: str
    regime: VatRegime
    net: float = 0.0
    vat: float = 0.0
    count: int = 0


class KpiTotal(NamedTuple):
    title: str
    amount: float
    count: int


class Aggregator:
    """Fold ``(transaction, classification)`` pairs into breakdown rows.

    Each classified transaction adds its signed amount to exactly one regime
    field of exactly one country row (and to that row's ``total``), plus the
    matching flat regime bucket. Unclassified transactions are ignored.
    """

    def __init__(self) -> None:
        self._rows: dict[str, CountryTotals] = {}
        self._regime_amounts: dict[VatRegime, float] = {r: 0.0 for r in VatRegime}
        self._regime_counts: Counter[VatRegime] = Counter()
        self._recap: dict[tuple[str, VatRegime], RecapTotals] = {}

    def add(self, tx: NormalizedTransaction, classification: Classification | None) -> None:
        if classification is None:
            return
        country, regime = classification
        row = self._rows.get(country)
        if row is None:
            row = self._rows[country] = CountryTotals(country=country)
        amount = tx.signed_amount
        row.add(regime, amount)
        self._regime_amounts[regime] += amount
        self._regime_counts[regime] += 1

        recap = self._recap.get((country, regime))
        if recap is None:
            recap = self._recap[country, regime] = RecapTotals(country=country, regime=regime)
        recap.net += amount
        recap.vat += tx.signed_vat
        recap.count += 1

    def extend(
        self, pairs: Iterable[tuple[NormalizedTransaction, Classification | None]]
    ) -> Aggregator:
        for tx, classification in pairs:
            self.add(tx, classification)
        return self

    def rows(self) -> list[CountryTotals]:
        """Breakdown rows sorted by country code."""

        return [self._rows[c] for c in sorted(self._rows)]

    def recap(self) -> list[RecapTotals]:
        """VAT recap lines sorted by country, then regime declaration order."""

        order = {regime: i for i, regime in enumerate(VatRegime)}
        return sorted(self._recap.values(), key=lambda r: (r.country, order[r.regime]))

    def row(self, country: str) -> CountryTotals | None:
        return self._rows.get(country)

    def regime_total(self, regime: VatRegime) -> float:
        return self._regime_amounts[regime]

    def regime_count(self, regime: VatRegime) -> int:
        return self._regime_counts[regime]

    def breakdown_component_total(self, regime: VatRegime) -> float:
        """Sum of one regime column across all breakdown rows."""

        return sum(row.component(regime) for row in self._rows.values())

    @property
    def grand_total(self) -> float:
        return sum(row.total for row in self._rows.values())

    @property
    def classified_count(self) -> int:
        return sum(self._regime_counts.values())

    def kpi_totals(self) -> list[KpiTotal]:
        """Total card followed by one card per regime (residual last)."""

        cards = [KpiTotal("Total", self.grand_total, self.classified_count)]
        cards.extend(
            KpiTotal(title, self.regime_total(regime), self.regime_count(regime))
            for regime, title in KPI_TITLES
        )
        return cards


__all__ = ["Aggregator", "CountryTotals", "KPI_TITLES", "KpiTotal", "RecapTotals"]
