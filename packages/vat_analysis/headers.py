"""Delimiter detection and header resolution for VAT transaction reports.

Seller exports arrive tab-, semicolon- or comma-separated, with column names
that vary by marketplace, locale and tool ("SALE_ARRIVAL_COUNTRY",
"Ship To Country", "pays"...). This module picks the delimiter from a sample
of lines and maps each canonical field to one source column.

Splitting uses the stdlib :mod:`csv` module (RFC 4180 quoting: the delimiter
only separates outside quotes; a doubled quote inside a quoted field is one
literal quote).
"""

from __future__ import annotations

import csv
import re
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType

from .config import EngineSettings, RuleOverrides
from .errors import MissingColumnsError
from .logging_setup import get_logger
from .reference_data import (
    CANDIDATE_DELIMITERS,
    COLUMN_SYNONYMS,
    DEFAULT_DELIMITER,
    F_TAX_SCHEME,
    MIN_CONTAINMENT_KEY_LENGTH,
    REQUIRED_FIELDS,
)

_BOM = "\ufeff"
_DELIMITER_NAMES = {"\t": "tab", ";": "semicolon", ",": "comma"}

logger = get_logger("vat_analysis.headers")


def strip_bom(text: str) -> str:
    return text[1:] if text.startswith(_BOM) else text


def split_line(line: str, delimiter: str) -> list[str]:
    """Split one physical line on ``delimiter`` honoring double quotes."""

    return next(csv.reader([line], delimiter=delimiter), [])


def detect_delimiter(text: str, *, settings: EngineSettings | None = None) -> str:
    """Pick the field separator of ``text`` among tab, semicolon and comma.

    The first ``settings.sample_lines`` non-empty lines are split with each
    candidate. A candidate is plausible only when the average column count is
    greater than ``settings.min_plausible_columns``. Plausible candidates are
    ranked by consistency (share of sampled lines having the modal column
    count), then by the modal column count itself. When nothing is plausible
    the result is tab, the native separator of marketplace VAT reports.

    Parameters
    ----------
    text:
        Raw report text; a leading BOM is ignored.
    settings:
        Engine settings; defaults are used when omitted.

    Returns
    -------
    str
        The chosen delimiter character.
    """

    settings = settings or EngineSettings()
    sample = [ln for ln in strip_bom(text).splitlines() if ln.strip()][: settings.sample_lines]
    if not sample:
        return DEFAULT_DELIMITER

    best: str | None = None
    best_score: tuple[float, int] = (-1.0, -1)
    for delimiter in CANDIDATE_DELIMITERS:
        counts = [len(split_line(ln, delimiter)) for ln in sample]
        average = sum(counts) / len(counts)
        if average <= settings.min_plausible_columns:
            continue
        modal_count, modal_freq = Counter(counts).most_common(1)[0]
        score = (modal_freq / len(counts), modal_count)
        # Strict comparison keeps the earlier candidate on a full tie.
        if score > best_score:
            best, best_score = delimiter, score

    if best is None:
        logger.info(
            "no delimiter produced more than %d columns; defaulting to tab",
            settings.min_plausible_columns,
        )
        return DEFAULT_DELIMITER
    logger.debug(
        "delimiter scores settled on %s (consistency=%.2f, columns=%d)",
        _DELIMITER_NAMES.get(best, repr(best)),
        best_score[0],
        best_score[1],
    )
    return best


def normalize_header(token: str) -> str:
    """Normalize a raw header cell: no BOM/quotes, upper-case, ``_`` for spaces."""

    s = token.replace(_BOM, "").strip().strip("\"'").strip()
    return re.sub(r"\s+", "_", s.upper())


def _match_key(name: str) -> str:
    # Alphanumeric-only comparison key; "Ship-To Country" == "SHIP_TO_COUNTRY".
    return re.sub(r"[^A-Z0-9]", "", name.upper())


@dataclass(frozen=True, slots=True)
class ColumnMap:
    """Resolved canonical field -> source column index.

    ``headers`` holds every normalized header in source order; ``indices``
    only the fields that resolved.
    """

    headers: tuple[str, ...]
    indices: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))

    def has(self, field_name: str) -> bool:
        return field_name in self.indices

    def header_for(self, field_name: str) -> str | None:
        idx = self.indices.get(field_name)
        return None if idx is None else self.headers[idx]

    def get(self, cells: Sequence[str], field_name: str) -> str | None:
        """Return the stripped cell for ``field_name``.

        ``None`` when the field did not resolve; ``""`` when the row is too
        short to reach the column.
        """

        idx = self.indices.get(field_name)
        if idx is None:
            return None
        if idx >= len(cells):
            return ""
        return cells[idx].strip()

    def as_dict(self) -> dict[str, str]:
        """Canonical field -> normalized source header, in field order."""

        return {f: self.headers[i] for f, i in self.indices.items()}


def _find_exact(keys: Sequence[str], synonyms: Sequence[str], claimed: set[int]) -> int | None:
    for synonym in synonyms:
        wanted = _match_key(synonym)
        if not wanted:
            continue
        for idx, key in enumerate(keys):
            if idx not in claimed and key == wanted:
                return idx
    return None


def _containment_candidates(
    keys: Sequence[str],
    overrides: RuleOverrides,
    resolved: Mapping[str, int],
    claimed: set[int],
) -> list[tuple[int, int, int, int, str]]:
    # (-synonym length, field rank, synonym rank, column, field); sorting puts
    # the most specific synonym first.
    found = []
    for field_rank, field_name in enumerate(COLUMN_SYNONYMS):
        if field_name in resolved:
            continue
        for synonym_rank, synonym in enumerate(overrides.synonyms_for(field_name)):
            wanted = _match_key(synonym)
            if len(wanted) < MIN_CONTAINMENT_KEY_LENGTH:
                continue
            for idx, key in enumerate(keys):
                if idx not in claimed and wanted in key:
                    found.append((-len(wanted), field_rank, synonym_rank, idx, field_name))
    return sorted(found)


def resolve_columns(
    headers: Sequence[str],
    *,
    overrides: RuleOverrides | None = None,
) -> ColumnMap:
    """Map every canonical field to a source column.

    Resolution runs in two passes. The first pass walks the fields in table
    order and accepts exact matches only (user aliases first, then built-in
    synonyms). The second pass lets still-unresolved fields match a header
    that *contains* one of their synonyms; there the longest contained
    synonym wins, whatever the field order, so "Buyer VAT Number Country
    Code" goes to the buyer VAT country and not to the buyer VAT number. A
    column claimed by one field is never handed to another.

    Raises
    ------
    MissingColumnsError
        When the transaction type, every country column, or every amount
        column is unresolved.
    """

    overrides = overrides or RuleOverrides()
    normalized = tuple(normalize_header(h) for h in headers)
    keys = [_match_key(h) for h in normalized]

    claimed: set[int] = set()
    resolved: dict[str, int] = {}
    for field_name in COLUMN_SYNONYMS:
        idx = _find_exact(keys, overrides.synonyms_for(field_name), claimed)
        if idx is not None:
            resolved[field_name] = idx
            claimed.add(idx)

    for _length, _field_rank, _rank, idx, field_name in _containment_candidates(
        keys, overrides, resolved, claimed
    ):
        if field_name in resolved or idx in claimed:
            continue
        resolved[field_name] = idx
        claimed.add(idx)

    missing = [
        " or ".join(group)
        for group in REQUIRED_FIELDS
        if not any(f in resolved for f in group)
    ]
    if missing:
        raise MissingColumnsError(missing, normalized)

    # Keep field-table order for stable metadata output.
    ordered = {f: resolved[f] for f in COLUMN_SYNONYMS if f in resolved}
    columns = ColumnMap(headers=normalized, indices=MappingProxyType(ordered))
    logger.info(
        "resolved %d/%d columns: %s",
        len(ordered),
        len(COLUMN_SYNONYMS),
        ", ".join(f"{f}<-{h}" for f, h in columns.as_dict().items()),
    )
    if F_TAX_SCHEME not in ordered:
        logger.warning(
            "no tax reporting scheme column found; every transaction will fall to RESIDUAL"
        )
    return columns


__all__ = [
    "ColumnMap",
    "detect_delimiter",
    "normalize_header",
    "resolve_columns",
    "split_line",
    "strip_bom",
]
