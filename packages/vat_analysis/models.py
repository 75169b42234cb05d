"""Data models for ``vat_analysis``.

Two families live here:

- Pipeline records (``NormalizedTransaction``, ``Classification``) are plain
  frozen dataclasses / named tuples. They are created once per input row and
  never mutated.
- Report records (breakdown rows, KPI cards, sanity results, anomalies, skipped
  rows) are frozen pydantic models whose JSON shape uses camelCase keys, the
  form consumed by export and dashboard collaborators. Monetary fields on these
  models are already rounded to two decimals; rounding happens once, when the
  report is materialized.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import StrEnum
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class TransactionType(StrEnum):
    SALE = "SALE"
    REFUND = "REFUND"


class VatRegime(StrEnum):
    """VAT regime assigned by the classification cascade.

    Each member corresponds to exactly one cascade rule, so counting regimes
    is the same as counting rule matches.
    """

    OSS = "OSS"
    DOMESTIC_B2C = "DOMESTIC_B2C"
    DOMESTIC_B2B = "DOMESTIC_B2B"
    INTRACOMMUNITY = "INTRACOMMUNITY"
    SWITZERLAND_VOEC = "SWITZERLAND_VOEC"
    RESIDUAL = "RESIDUAL"


class SkipReason(StrEnum):
    UNRECOGNIZED_TRANSACTION_TYPE = "unrecognized_transaction_type"
    UNPARSEABLE_COUNTRY = "unparseable_country"
    UNPARSEABLE_DATE = "unparseable_date"
    MALFORMED_LINE = "malformed_line"


class AnomalyType(StrEnum):
    UNCLASSIFIABLE = "UNCLASSIFIABLE"
    RESIDUAL = "RESIDUAL"
    B2B_VAT_NUMBER_MISSING = "B2B_VAT_NUMBER_MISSING"
    VAT_ON_INTRACOMMUNITY = "VAT_ON_INTRACOMMUNITY"
    REGULAR_COUNTRY_MISMATCH = "REGULAR_COUNTRY_MISMATCH"
    NON_EU_INTRACOMMUNITY = "NON_EU_INTRACOMMUNITY"
    NON_STANDARD_TRANSACTION_TYPE = "NON_STANDARD_TRANSACTION_TYPE"


# ---------------------------------------------------------------------------
# Pipeline records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class NormalizedTransaction:
    """A single report row after field extraction and normalization.

    Country fields hold ISO-2 codes or ``""`` when the source cell was empty.
    ``buyer_vat_country`` is ``""`` whenever the source value is one of the
    empty sentinels; emptiness is what separates B2C from B2B.

    Amounts are non-negative magnitudes; the sign comes from
    ``transaction_type`` through :attr:`signed_amount`.

    Attributes
    ----------
    line_number:
        1-based physical line of the row in the source text (the header is
        line 1). Used only for diagnostics.
    buyer_vat_number:
        Raw buyer VAT number, ``""`` when the column exists but is empty, and
        ``None`` when the report has no such column at all.
    reference_id:
        Transaction event id when the report carries one.
    raw_transaction_type:
        Upper-cased source type label (``"FC_TRANSFER"`` and the like are
        counted as sales but kept here for diagnostics).
    """

    line_number: int
    transaction_type: TransactionType
    tax_scheme: str
    arrival_country: str
    depart_country: str
    buyer_vat_country: str
    amount_excl_vat: float
    vat_amount: float
    currency: str
    transaction_date: date | None = None
    buyer_vat_number: str | None = None
    reference_id: str | None = None
    raw_transaction_type: str = ""

    @property
    def signed_amount(self) -> float:
        if self.transaction_type is TransactionType.REFUND:
            return -self.amount_excl_vat
        return self.amount_excl_vat

    @property
    def signed_vat(self) -> float:
        if self.transaction_type is TransactionType.REFUND:
            return -self.vat_amount
        return self.vat_amount


class Classification(NamedTuple):
    """Outcome of the cascade for one transaction."""

    country: str
    regime: VatRegime


# ---------------------------------------------------------------------------
# Report records (camelCase on the wire)
# ---------------------------------------------------------------------------


class _ReportModel(BaseModel):
    # to_camel renders "b2c_total" as "b2CTotal"; fields with B2B/B2C in their
    # name pin an explicit alias instead.
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class SkippedRow(_ReportModel):
    """A source row dropped from the classification stream."""

    line_number: int
    reason: SkipReason
    raw_value: str


class Anomaly(_ReportModel):
    """A diagnostic raised next to (never instead of) a classification."""

    type: AnomalyType
    description: str
    reference_id: str | None = None
    line_number: int | None = None


class CountryBreakdownRow(_ReportModel):
    country: str
    domestic_b2c: float = Field(default=0.0, alias="domesticB2C")
    domestic_b2b: float = Field(default=0.0, alias="domesticB2B")
    intracommunity: float = 0.0
    oss: float = 0.0
    switzerland_voec: float = 0.0
    residual: float = 0.0
    total: float = 0.0


class VatRecapRow(_ReportModel):
    """Net, VAT collected and transaction count for one (country, regime).

    This is the per-country figure set a return is filed from: OSS rows
    per arrival country, domestic rows per depart country.
    """

    country: str
    regime: VatRegime
    net: float
    vat: float
    count: int


class KpiCard(_ReportModel):
    title: str
    amount: float
    count: int


class GlobalSanityResult(_ReportModel):
    """Totals recomputed from the transaction stream, plus the two checks.

    ``is_valid`` is decided on unrounded values before the model is built.
    """

    grand_total: float
    oss_total: float
    regular_total: float
    switzerland_total: float
    residual_total: float
    b2c_total: float = Field(alias="b2cTotal")
    b2b_total: float = Field(alias="b2bTotal")
    intracom_total: float
    diff_grand_total_vs_sum: float
    diff_regular_vs_components: float
    is_valid: bool


class CountrySanityResult(_ReportModel):
    country: str
    regular_total: float
    b2c_total: float = Field(alias="b2cTotal")
    b2b_total: float = Field(alias="b2bTotal")
    intracom_total: float
    difference: float
    is_valid: bool


class RulesApplied(_ReportModel):
    oss_count: int = 0
    b2c_count: int = Field(default=0, alias="b2cCount")
    b2b_count: int = Field(default=0, alias="b2bCount")
    intracom_count: int = 0
    voec_count: int = 0
    residual_count: int = 0
    unclassified_count: int = 0
    total_processed: int = 0


__all__ = [
    "Anomaly",
    "AnomalyType",
    "Classification",
    "CountryBreakdownRow",
    "CountrySanityResult",
    "GlobalSanityResult",
    "KpiCard",
    "NormalizedTransaction",
    "RulesApplied",
    "SkipReason",
    "SkippedRow",
    "TransactionType",
    "VatRecapRow",
    "VatRegime",
]
