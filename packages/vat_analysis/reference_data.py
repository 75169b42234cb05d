"""Static, read-only reference tables shared by every analysis run.

Everything here is immutable (``frozenset``, tuples, ``MappingProxyType``) and
loaded once at import. Runs never mutate it, so concurrent analyses can share
it freely. Per-run customizations go through
:class:`vat_analysis.config.RuleOverrides` instead.
"""

from __future__ import annotations

import re
from types import MappingProxyType

# ---------------------------------------------------------------------------
# Countries
# ---------------------------------------------------------------------------

EU_COUNTRIES: frozenset[str] = frozenset(
    {
        "AT", "BE", "BG", "HR", "CY", "CZ", "DK", "EE", "FI", "FR", "DE", "GR", "HU", "IE",
        "IT", "LV", "LT", "LU", "MT", "NL", "PL", "PT", "RO", "SK", "SI", "ES", "SE",
    }
)  # fmt: skip

# Upper-cased country names (English plus the French labels seen in seller
# exports) to ISO 3166-1 alpha-2.
COUNTRY_NAME_TO_ISO = MappingProxyType(
    {
        "AUSTRIA": "AT",
        "AUTRICHE": "AT",
        "BELGIUM": "BE",
        "BELGIQUE": "BE",
        "BULGARIA": "BG",
        "BULGARIE": "BG",
        "CROATIA": "HR",
        "CROATIE": "HR",
        "CYPRUS": "CY",
        "CHYPRE": "CY",
        "CZECH REPUBLIC": "CZ",
        "CZECHIA": "CZ",
        "REPUBLIQUE TCHEQUE": "CZ",
        "DENMARK": "DK",
        "DANEMARK": "DK",
        "ESTONIA": "EE",
        "ESTONIE": "EE",
        "FINLAND": "FI",
        "FINLANDE": "FI",
        "FRANCE": "FR",
        "GERMANY": "DE",
        "ALLEMAGNE": "DE",
        "DEUTSCHLAND": "DE",
        "GREECE": "GR",
        "GRECE": "GR",
        "HUNGARY": "HU",
        "HONGRIE": "HU",
        "IRELAND": "IE",
        "IRLANDE": "IE",
        "ITALY": "IT",
        "ITALIE": "IT",
        "LATVIA": "LV",
        "LETTONIE": "LV",
        "LITHUANIA": "LT",
        "LITUANIE": "LT",
        "LUXEMBOURG": "LU",
        "MALTA": "MT",
        "MALTE": "MT",
        "NETHERLANDS": "NL",
        "THE NETHERLANDS": "NL",
        "PAYS-BAS": "NL",
        "POLAND": "PL",
        "POLOGNE": "PL",
        "PORTUGAL": "PT",
        "ROMANIA": "RO",
        "ROUMANIE": "RO",
        "SLOVAKIA": "SK",
        "SLOVAQUIE": "SK",
        "SLOVENIA": "SI",
        "SLOVENIE": "SI",
        "SPAIN": "ES",
        "ESPAGNE": "ES",
        "SWEDEN": "SE",
        "SUEDE": "SE",
        "UNITED KINGDOM": "GB",
        "GREAT BRITAIN": "GB",
        "ROYAUME-UNI": "GB",
        "SWITZERLAND": "CH",
        "SUISSE": "CH",
        "NORWAY": "NO",
        "NORVEGE": "NO",
    }
)

# ---------------------------------------------------------------------------
# Cell-level normalization
# ---------------------------------------------------------------------------

# Literal tokens meaning "no buyer VAT registration", compared after trim +
# upper-case. Membership is exact; no fuzzy matching.
EMPTY_SENTINELS: frozenset[str] = frozenset(
    {"", "(VIDE)", "NULL", "N/A", "-", "\u2014", "NONE", " "}
)

SCHEME_UNION_OSS = "UNION-OSS"
SCHEME_REGULAR = "REGULAR"
SCHEME_CH_VOEC = "CH_VOEC"

# Upper-cased raw labels (whitespace collapsed to "-") -> canonical scheme.
SCHEME_ALIASES = MappingProxyType(
    {
        "UNION-OSS": SCHEME_UNION_OSS,
        "UNION_OSS": SCHEME_UNION_OSS,
        "EU-OSS": SCHEME_UNION_OSS,
        "OSS": SCHEME_UNION_OSS,
        "REGULAR": SCHEME_REGULAR,
        "DOMESTIC": SCHEME_REGULAR,
        "LOCAL": SCHEME_REGULAR,
        "CH_VOEC": SCHEME_CH_VOEC,
        "CH-VOEC": SCHEME_CH_VOEC,
        "VOEC": SCHEME_CH_VOEC,
    }
)

REFUND_TOKENS: tuple[str, ...] = ("REFUND", "RETURN")

# Type labels that are plain sales. Other non-refund labels (FC_TRANSFER,
# INBOUND...) are still counted as sales but flagged for review.
SALE_LABELS: frozenset[str] = frozenset({"SALE", "SALES"})

# Two-letter prefix then at least two alphanumerics, checked after removing
# spaces, dots and dashes.
VAT_NUMBER_PATTERN = re.compile(r"[A-Z]{2}[0-9A-Z]{2,}")

# VAT number prefixes that differ from the ISO country code.
VAT_PREFIX_TO_ISO = MappingProxyType({"EL": "GR"})

# ---------------------------------------------------------------------------
# Column synonyms
# ---------------------------------------------------------------------------

F_TRANSACTION_TYPE = "TRANSACTION_TYPE"
F_TAX_SCHEME = "TAX_REPORTING_SCHEME"
F_ARRIVAL_COUNTRY = "SALE_ARRIVAL_COUNTRY"
F_DEPART_COUNTRY = "SALE_DEPART_COUNTRY"
F_JURISDICTION = "TAXABLE_JURISDICTION"
F_BUYER_VAT_COUNTRY = "BUYER_VAT_NUMBER_COUNTRY"
F_BUYER_VAT_NUMBER = "BUYER_VAT_NUMBER"
F_AMOUNT_VAT_EXCL = "TOTAL_ACTIVITY_VALUE_AMT_VAT_EXCL"
F_VAT_AMOUNT = "TOTAL_ACTIVITY_VALUE_VAT_AMT"
F_AMOUNT_VAT_INCL = "TOTAL_ACTIVITY_VALUE_AMT_VAT_INCL"
F_CURRENCY = "TRANSACTION_CURRENCY_CODE"
F_DEPART_DATE = "TRANSACTION_DEPART_DATE"
F_EVENT_ID = "TRANSACTION_EVENT_ID"

# Canonical field -> header variants, most specific first. Matching is done on
# an alphanumeric-only, upper-cased key, so "Ship To Country", "ship_to_country"
# and "SHIP-TO-COUNTRY" are the same header. Field order is the resolution
# order: earlier fields claim a column before later ones can.
COLUMN_SYNONYMS = MappingProxyType(
    {
        F_TRANSACTION_TYPE: (
            "TRANSACTION_TYPE", "TX_TYPE", "TYPE_TRANSACTION", "EVENT_TYPE", "ORDER_TYPE",
            "SALES_OR_REFUND", "OPERATION", "TYPE",
        ),
        F_TAX_SCHEME: (
            "TAX_REPORTING_SCHEME", "VAT_REPORTING_SCHEME", "REPORTING_SCHEME", "TAX_SCHEME",
            "SCHEME",
        ),
        F_ARRIVAL_COUNTRY: (
            "SALE_ARRIVAL_COUNTRY", "ARRIVAL_COUNTRY", "SHIP_TO_COUNTRY", "SHIP_TO_COUNTRY_CODE",
            "DESTINATION_COUNTRY", "PAYS_ARRIVEE", "ARRIVAL",
        ),
        F_DEPART_COUNTRY: (
            "SALE_DEPART_COUNTRY", "DEPART_COUNTRY", "DEPARTURE_COUNTRY", "SHIP_FROM_COUNTRY",
            "ORIGIN_COUNTRY", "FULFILLMENT_CENTER_COUNTRY", "PAYS_DEPART", "DEPART",
        ),
        F_BUYER_VAT_NUMBER: (
            "BUYER_VAT_NUMBER", "CUSTOMER_VAT_NUMBER", "VAT_NUMBER_BUYER", "NUMERO_TVA_ACHETEUR",
        ),
        F_BUYER_VAT_COUNTRY: (
            "BUYER_VAT_NUMBER_COUNTRY", "BUYER_VAT_COUNTRY", "B2B_BUYER_VAT_COUNTRY",
            "VAT_NUMBER_COUNTRY", "BUYER_VAT_NUMBER_PREFIX", "BUYER_VAT",
        ),
        F_AMOUNT_VAT_EXCL: (
            "TOTAL_ACTIVITY_VALUE_AMT_VAT_EXCL", "TOTAL_ACTIVITY_VALUE_AMOUNT_VAT_EXCL",
            "TRANSACTION_VALUE_VAT_EXCL", "AMOUNT_VAT_EXCL", "AMT_VAT_EXCL", "NET_AMOUNT",
            "AMOUNT_NET", "PRICE_NET", "MONTANT_HT", "TOTAL_HT", "HT", "NET",
        ),
        F_VAT_AMOUNT: (
            "TOTAL_ACTIVITY_VALUE_VAT_AMT", "VAT_AMOUNT", "TAX_AMOUNT", "AMOUNT_VAT",
            "MONTANT_TVA", "TVA", "VAT",
        ),
        F_AMOUNT_VAT_INCL: (
            "TOTAL_ACTIVITY_VALUE_AMT_VAT_INCL", "AMT_VAT_INCL", "GROSS_AMOUNT", "AMOUNT_GROSS",
            "TOTAL_GROSS", "TOTAL_TTC", "MONTANT_TTC", "TTC", "GROSS",
        ),
        F_JURISDICTION: (
            "TAXABLE_JURISDICTION", "TAX_JURISDICTION", "JURISDICTION", "JURIDICTION",
            "SHIP_COUNTRY", "COUNTRY", "PAYS",
        ),
        F_CURRENCY: (
            "TRANSACTION_CURRENCY_CODE", "CURRENCY_CODE", "CURRENCY", "DEVISE", "CURR",
        ),
        F_DEPART_DATE: (
            "TRANSACTION_DEPART_DATE", "TRANSACTION_DATE", "ORDER_DATE", "PURCHASE_DATE",
            "EVENT_DATE", "DATE_OPERATION", "DATE",
        ),
        F_EVENT_ID: (
            "TRANSACTION_EVENT_ID", "EVENT_ID", "TRANSACTION_ID", "ORDER_ID", "REFERENCE",
        ),
    }
)  # fmt: skip

# Synonym keys shorter than this only ever match exactly; containment on
# "HT" or "VAT" would hit half the columns of an Amazon report.
MIN_CONTAINMENT_KEY_LENGTH = 4

# Each entry is satisfied when at least one of its fields resolves.
REQUIRED_FIELDS: tuple[tuple[str, ...], ...] = (
    (F_TRANSACTION_TYPE,),
    (F_ARRIVAL_COUNTRY, F_DEPART_COUNTRY, F_JURISDICTION),
    (F_AMOUNT_VAT_EXCL, F_AMOUNT_VAT_INCL),
)

CANDIDATE_DELIMITERS: tuple[str, ...] = ("\t", ";", ",")

DEFAULT_DELIMITER = "\t"


__all__ = [
    "CANDIDATE_DELIMITERS",
    "COLUMN_SYNONYMS",
    "COUNTRY_NAME_TO_ISO",
    "DEFAULT_DELIMITER",
    "EMPTY_SENTINELS",
    "EU_COUNTRIES",
    "MIN_CONTAINMENT_KEY_LENGTH",
    "REFUND_TOKENS",
    "REQUIRED_FIELDS",
    "SALE_LABELS",
    "SCHEME_ALIASES",
    "SCHEME_CH_VOEC",
    "SCHEME_REGULAR",
    "SCHEME_UNION_OSS",
    "VAT_NUMBER_PATTERN",
    "VAT_PREFIX_TO_ISO",
]
