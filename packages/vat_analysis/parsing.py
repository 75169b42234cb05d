"""Row parsing and field normalization for VAT transaction reports.

Turns raw report text into :class:`~vat_analysis.models.NormalizedTransaction`
records in source order. Each physical line is one record; cells follow
RFC 4180 quoting via the stdlib :mod:`csv` module (quoted fields with
embedded delimiters, doubled quotes), with the delimiter chosen by
:func:`vat_analysis.headers.detect_delimiter`. A line with broken quoting
is skipped on its own and never swallows the lines after it.

Row-level problems never raise: the row becomes a
:class:`~vat_analysis.models.SkippedRow` and parsing continues. Only
structural problems (too few lines, unresolvable required columns,
a malformed header line) raise :class:`~vat_analysis.errors.VatInputError`.
"""

from __future__ import annotations

import csv
import re
import unicodedata
from collections import Counter
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from typing import NamedTuple

from .config import EngineSettings, RuleOverrides, scheme_key
from .errors import InputTooShortError, VatInputError
from .headers import ColumnMap, detect_delimiter, resolve_columns, split_line, strip_bom
from .logging_setup import get_logger
from .models import NormalizedTransaction, SkippedRow, SkipReason, TransactionType
from .reference_data import (
    COUNTRY_NAME_TO_ISO,
    EMPTY_SENTINELS,
    F_AMOUNT_VAT_EXCL,
    F_AMOUNT_VAT_INCL,
    F_ARRIVAL_COUNTRY,
    F_BUYER_VAT_COUNTRY,
    F_BUYER_VAT_NUMBER,
    F_CURRENCY,
    F_DEPART_COUNTRY,
    F_DEPART_DATE,
    F_EVENT_ID,
    F_JURISDICTION,
    F_TAX_SCHEME,
    F_TRANSACTION_TYPE,
    F_VAT_AMOUNT,
    REFUND_TOKENS,
    SALE_LABELS,
    SCHEME_ALIASES,
    VAT_NUMBER_PATTERN,
    VAT_PREFIX_TO_ISO,
)

logger = get_logger("vat_analysis.parsing")

# 1.234,56 / 12.345.678,9
_EUROPEAN_AMOUNT = re.compile(r"\d{1,3}(?:\.\d{3})+,\d+")
# 1234,56
_COMMA_DECIMAL = re.compile(r"\d+,\d+")
_TWO_LETTER_TOKEN = re.compile(r"\b[A-Z]{2}\b")
_DATE_FORMATS = ("%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y", "%m/%d/%Y", "%d.%m.%Y", "%Y/%m/%d")
_LINE_BREAK = re.compile(r"\r\n?|\n")

# ---------------------------------------------------------------------------
# Cell normalizers
# ---------------------------------------------------------------------------


def is_empty_sentinel(value: str | None) -> bool:
    """Return ``True`` when ``value`` is one of the literal "no value" tokens.

    The comparison is exact after trimming and upper-casing, so ``"(vide)"``
    and ``" n/a "`` are empty while ``"FR"`` or ``"VIDE"`` are not.
    """

    if value is None:
        return True
    return value.strip().upper() in EMPTY_SENTINELS


def parse_amount(raw: str | None) -> float:
    """Parse a monetary cell into a non-negative float.

    Accepts European (``1.234,56``), US (``1,234.56``) and plain
    comma-decimal (``12,5``) notation, with currency symbols, spaces and
    other decoration stripped. Unparseable or empty values become ``0.0``.
    The sign is always dropped; callers derive it from the transaction type.
    """

    if raw is None:
        return 0.0
    s = re.sub(r"[^0-9,.\-]", "", raw.strip())
    unsigned = s.lstrip("-")
    if _EUROPEAN_AMOUNT.fullmatch(unsigned):
        s = s.replace(".", "").replace(",", ".")
    elif "," in s and "." in s:
        s = s.replace(",", "")
    elif _COMMA_DECIMAL.fullmatch(unsigned):
        s = s.replace(",", ".")
    else:
        s = s.replace(",", "")

    # Only a leading minus is meaningful; the result is absolute anyway.
    s = s.replace("-", "")
    parts = s.split(".")
    if len(parts) > 2:
        # Several dots left: all but the last were thousands separators.
        s = "".join(parts[:-1]) + "." + parts[-1]
    try:
        return abs(float(s))
    except ValueError:
        return 0.0


def _fold_accents(s: str) -> str:
    decomposed = unicodedata.normalize("NFKD", s)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_country(raw: str | None) -> str | None:
    """Normalize a country cell to an ISO-2 code.

    Returns ``""`` for empty cells (including the empty sentinels), the ISO-2
    code when one can be derived, and ``None`` when the value is present but
    no code can be extracted from it.

    Resolution order: a bare two-letter value as-is; a known country name;
    the first standalone two-letter token in the string; the first two
    characters when both are letters.
    """

    if raw is None:
        return ""
    s = _fold_accents(raw.strip().strip("\"'").strip().upper())
    if s in EMPTY_SENTINELS:
        return ""
    if len(s) == 2 and s.isalpha() and s.isascii():
        return s
    named = COUNTRY_NAME_TO_ISO.get(re.sub(r"\s+", " ", s))
    if named is not None:
        return named
    m = _TWO_LETTER_TOKEN.search(s)
    if m is not None:
        return m.group(0)
    head = s[:2]
    if len(head) == 2 and head.isalpha() and head.isascii():
        return head
    return None


def parse_transaction_type(raw: str | None) -> TransactionType | None:
    """Map a free-text transaction type to SALE/REFUND.

    Anything mentioning REFUND or RETURN is a refund; every other non-empty
    value is a sale. Empty values yield ``None`` (the row is not usable).
    """

    if is_empty_sentinel(raw):
        return None
    s = (raw or "").strip().upper()
    if any(token in s for token in REFUND_TOKENS):
        return TransactionType.REFUND
    return TransactionType.SALE


def is_standard_transaction_type(raw: str | None) -> bool:
    """Return ``True`` for plain sale labels and anything refund-like.

    Labels such as ``FC_TRANSFER`` or ``INBOUND`` are still counted as sales
    by :func:`parse_transaction_type`; this tells them apart so they can be
    reported.
    """

    s = (raw or "").strip().upper()
    return s in SALE_LABELS or any(token in s for token in REFUND_TOKENS)


def normalize_scheme(raw: str | None, *, overrides: RuleOverrides | None = None) -> str:
    """Return the canonical scheme token for ``raw``.

    User aliases are consulted before the built-in table. Unknown labels are
    passed through upper-cased and will not match any cascade rule.
    """

    if raw is None:
        return ""
    key = scheme_key(raw)
    if overrides is not None and key in overrides.scheme_aliases:
        return overrides.scheme_aliases[key]
    return SCHEME_ALIASES.get(key, raw.strip().upper())


def parse_date(raw: str | None) -> date | None:
    """Parse a departure date; ``None`` for empty cells.

    Accepts ``YYYY-MM-DD`` (optionally followed by a time), ``DD-MM-YYYY``,
    ``DD/MM/YYYY``, ``MM/DD/YYYY``, ``DD.MM.YYYY`` and ``YYYY/MM/DD``.
    Slash dates are read day-first; month-first is only tried when the
    day-first reading is impossible, so ``03/01/2024`` is 3 January while
    ``03/15/2024`` is 15 March.

    Raises
    ------
    ValueError
        When the cell is non-empty but matches none of the formats.
    """

    if is_empty_sentinel(raw):
        return None
    s = (raw or "").strip()
    first = s.split()[0].split("T", 1)[0]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(first, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"invalid date: {raw!r}")


def _compact_vat_number(raw: str) -> str:
    return re.sub(r"[\s.\-]", "", raw.strip().upper())


def is_plausible_vat_number(raw: str | None) -> bool:
    """Format check only: a two-letter prefix followed by 2+ alphanumerics."""

    if is_empty_sentinel(raw):
        return False
    return VAT_NUMBER_PATTERN.fullmatch(_compact_vat_number(raw or "")) is not None


def vat_country_from_number(raw: str | None) -> str:
    """Country of a plausible VAT number (``EL`` maps to ``GR``), else ``""``."""

    if not is_plausible_vat_number(raw):
        return ""
    prefix = _compact_vat_number(raw or "")[:2]
    return VAT_PREFIX_TO_ISO.get(prefix, prefix)


# ---------------------------------------------------------------------------
# Row and document parsing
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ParsedReport:
    """Output of :func:`parse_report`."""

    delimiter: str
    columns: ColumnMap
    transactions: tuple[NormalizedTransaction, ...]
    skipped: tuple[SkippedRow, ...]


class Record(NamedTuple):
    """One physical line of report text, split into cells."""

    line_number: int
    cells: list[str]
    text: str
    malformed: bool = False


def read_records(text: str, delimiter: str) -> Iterator[Record]:
    """Yield a :class:`Record` for every physical line of ``text``.

    Each line is parsed on its own, so a stray quote can only damage the
    line it sits on. A line whose quoting does not close (or has text after
    a closing quote) is yielded with ``malformed=True`` and best-effort
    cells; the caller decides what to do with it.
    """

    for number, line in enumerate(_LINE_BREAK.split(text), start=1):
        try:
            cells = next(csv.reader([line], delimiter=delimiter, strict=True), [])
        except csv.Error:
            yield Record(number, split_line(line, delimiter), line, malformed=True)
        else:
            yield Record(number, cells, line)


def _skip(line_number: int, reason: SkipReason, raw_value: str | None) -> SkippedRow:
    return SkippedRow(line_number=line_number, reason=reason, raw_value=raw_value or "")


def _country_field(
    cells: Sequence[str], columns: ColumnMap, *field_names: str
) -> tuple[str | None, str]:
    # First non-empty cell among ``field_names`` -> (normalized, raw).
    for name in field_names:
        raw = columns.get(cells, name)
        if raw is None or is_empty_sentinel(raw):
            continue
        return normalize_country(raw), raw
    return "", ""


def normalize_row(
    cells: Sequence[str],
    line_number: int,
    columns: ColumnMap,
    *,
    settings: EngineSettings | None = None,
    overrides: RuleOverrides | None = None,
) -> NormalizedTransaction | SkippedRow:
    """Normalize one record into a transaction, or explain why it was skipped."""

    settings = settings or EngineSettings()

    raw_type = columns.get(cells, F_TRANSACTION_TYPE)
    tx_type = parse_transaction_type(raw_type)
    if tx_type is None:
        return _skip(line_number, SkipReason.UNRECOGNIZED_TRANSACTION_TYPE, raw_type)

    arrival, raw_arrival = _country_field(cells, columns, F_ARRIVAL_COUNTRY, F_JURISDICTION)
    if arrival is None:
        return _skip(line_number, SkipReason.UNPARSEABLE_COUNTRY, raw_arrival)
    depart, raw_depart = _country_field(cells, columns, F_DEPART_COUNTRY)
    if depart is None:
        return _skip(line_number, SkipReason.UNPARSEABLE_COUNTRY, raw_depart)

    buyer_vat_number = columns.get(cells, F_BUYER_VAT_NUMBER)
    if columns.has(F_BUYER_VAT_COUNTRY):
        buyer_vat_country, raw_buyer = _country_field(cells, columns, F_BUYER_VAT_COUNTRY)
        if buyer_vat_country is None:
            return _skip(line_number, SkipReason.UNPARSEABLE_COUNTRY, raw_buyer)
    else:
        buyer_vat_country = vat_country_from_number(buyer_vat_number)

    raw_date = columns.get(cells, F_DEPART_DATE)
    try:
        tx_date = parse_date(raw_date)
    except ValueError:
        return _skip(line_number, SkipReason.UNPARSEABLE_DATE, raw_date)

    raw_excl = columns.get(cells, F_AMOUNT_VAT_EXCL)
    raw_vat = columns.get(cells, F_VAT_AMOUNT)
    raw_incl = columns.get(cells, F_AMOUNT_VAT_INCL)
    vat_amount = parse_amount(raw_vat)
    if raw_excl:
        amount_excl = parse_amount(raw_excl)
        if raw_vat is None and raw_incl:
            vat_amount = max(parse_amount(raw_incl) - amount_excl, 0.0)
    else:
        # Net derived from gross when no usable VAT-exclusive value exists.
        amount_excl = max(parse_amount(raw_incl) - vat_amount, 0.0)

    raw_currency = columns.get(cells, F_CURRENCY)
    currency = (
        settings.default_currency
        if is_empty_sentinel(raw_currency)
        else (raw_currency or "").upper()
    )
    reference_id = columns.get(cells, F_EVENT_ID) or None

    return NormalizedTransaction(
        line_number=line_number,
        transaction_type=tx_type,
        tax_scheme=normalize_scheme(columns.get(cells, F_TAX_SCHEME), overrides=overrides),
        arrival_country=arrival,
        depart_country=depart,
        buyer_vat_country=buyer_vat_country,
        amount_excl_vat=amount_excl,
        vat_amount=vat_amount,
        currency=currency,
        transaction_date=tx_date,
        buyer_vat_number=buyer_vat_number,
        reference_id=reference_id,
        raw_transaction_type=(raw_type or "").upper(),
    )


def parse_report(
    text: str,
    *,
    settings: EngineSettings | None = None,
    overrides: RuleOverrides | None = None,
) -> ParsedReport:
    """Parse a whole report into normalized transactions.

    Parameters
    ----------
    text:
        Full report text, optionally BOM-prefixed.
    settings:
        Engine settings; defaults are used when omitted.
    overrides:
        Optional user header and scheme aliases.

    Returns
    -------
    ParsedReport
        Delimiter, resolved columns, transactions in source order and the
        rows that were skipped.

    Raises
    ------
    InputTooShortError
        Fewer than two non-empty lines.
    MissingColumnsError
        Required columns could not be resolved.
    VatInputError
        The header line has unbalanced quotes.
    """

    settings = settings or EngineSettings()
    text = strip_bom(text)
    non_empty = sum(1 for ln in _LINE_BREAK.split(text) if ln.strip())
    if non_empty < 2:
        raise InputTooShortError(non_empty)

    delimiter = detect_delimiter(text, settings=settings)
    records = read_records(text, delimiter)
    header: Record | None = None
    for record in records:
        if any(c.strip() for c in record.cells):
            header = record
            break
    if header is None:  # pragma: no cover - excluded by the line count above
        raise InputTooShortError(0)
    if header.malformed:
        raise VatInputError(
            f"malformed header on line {header.line_number}: unbalanced quotes in {header.text!r}"
        )
    columns = resolve_columns(header.cells, overrides=overrides)

    transactions: list[NormalizedTransaction] = []
    skipped: list[SkippedRow] = []
    for record in records:
        if not any(c.strip() for c in record.cells):
            continue
        if record.malformed:
            result: NormalizedTransaction | SkippedRow = _skip(
                record.line_number, SkipReason.MALFORMED_LINE, record.text
            )
        else:
            result = normalize_row(
                record.cells, record.line_number, columns, settings=settings, overrides=overrides
            )
        if isinstance(result, SkippedRow):
            logger.debug(
                "skipping line %d (%s): %r", result.line_number, result.reason, result.raw_value
            )
            skipped.append(result)
        else:
            transactions.append(result)

    logger.info(
        "parsed %d transaction(s) with delimiter %r; skipped %d row(s)",
        len(transactions),
        delimiter,
        len(skipped),
    )
    if skipped:
        by_reason: dict[str, int] = {}
        for row in skipped:
            by_reason[row.reason] = by_reason.get(row.reason, 0) + 1
        logger.warning(
            "skipped %d row(s): %s",
            len(skipped),
            ", ".join(f"{reason}={n}" for reason, n in sorted(by_reason.items())),
        )
    unusual = Counter(
        tx.raw_transaction_type
        for tx in transactions
        if tx.raw_transaction_type and not is_standard_transaction_type(tx.raw_transaction_type)
    )
    if unusual:
        logger.warning(
            "counted %d row(s) with non-standard transaction types as sales: %s",
            sum(unusual.values()),
            ", ".join(f"{label}={n}" for label, n in sorted(unusual.items())),
        )
    return ParsedReport(
        delimiter=delimiter,
        columns=columns,
        transactions=tuple(transactions),
        skipped=tuple(skipped),
    )


__all__ = [
    "ParsedReport",
    "Record",
    "is_empty_sentinel",
    "is_plausible_vat_number",
    "is_standard_transaction_type",
    "normalize_country",
    "normalize_row",
    "normalize_scheme",
    "parse_amount",
    "parse_date",
    "parse_report",
    "parse_transaction_type",
    "read_records",
    "vat_country_from_number",
]
