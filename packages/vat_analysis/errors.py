"""Structural errors raised by the VAT analysis engine.

Only problems that make a whole run meaningless are raised. Row-level issues
(unparseable dates, unknown transaction types, unreadable countries) are
collected as :class:`~vat_analysis.models.SkippedRow` entries instead and
returned with the report.

``VatInputError`` derives from :class:`csv.Error` so callers that already treat
``csv.Error`` as "the file could not be parsed" keep working unchanged.
"""

from __future__ import annotations

import csv
from collections.abc import Sequence


class VatInputError(csv.Error):
    """Root of all structural input errors (no partial report is produced)."""


class InputTooShortError(VatInputError):
    """The input holds fewer than two non-empty lines (header + one row)."""

    def __init__(self, line_count: int) -> None:
        self.line_count = line_count
        super().__init__(
            f"VAT report needs a header line and at least one data line; got {line_count} "
            "non-empty line(s)"
        )


class MissingColumnsError(VatInputError):
    """Required logical columns could not be resolved from the header."""

    def __init__(self, missing: Sequence[str], headers: Sequence[str]) -> None:
        self.missing = tuple(missing)
        self.headers = tuple(headers)
        preview = ", ".join(self.headers[:12])
        if len(self.headers) > 12:
            preview += f", ... (+{len(self.headers) - 12} more)"
        super().__init__(
            "VAT report header is missing required columns: "
            + ", ".join(self.missing)
            + f" (headers seen: {preview or 'none'})"
        )


__all__ = ["InputTooShortError", "MissingColumnsError", "VatInputError"]
