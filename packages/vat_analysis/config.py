"""Run configuration for the VAT analysis engine.

``EngineSettings`` holds the numeric knobs (plausibility threshold, sample
size, sanity tolerance, default currency). ``RuleOverrides`` is the
user-supplied mapping table: extra header aliases for the column resolver and
extra scheme labels for the field normalizer. Overrides only ever add
synonyms; the classification cascade itself is fixed.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .reference_data import COLUMN_SYNONYMS, SCHEME_ALIASES

_ENV_PREFIX = "VAT_ANALYSIS_"

# Environment variable suffix -> EngineSettings field
_ENV_FIELDS = {
    "MIN_COLUMNS": "min_plausible_columns",
    "SAMPLE_LINES": "sample_lines",
    "TOLERANCE": "tolerance",
    "DEFAULT_CURRENCY": "default_currency",
}


def scheme_key(label: str) -> str:
    """Canonical lookup key for a scheme label: upper-cased, inner spaces as ``-``."""

    return re.sub(r"\s+", "-", label.strip().upper())


class EngineSettings(BaseModel):
    """Tunable constants for one analysis run.

    Attributes
    ----------
    min_plausible_columns:
        A delimiter is only considered when the sampled lines average *more*
        than this many columns.
    sample_lines:
        Number of leading non-empty lines inspected for delimiter detection.
    tolerance:
        Absolute tolerance for every sanity equation (one cent by default).
    default_currency:
        Currency recorded for rows whose currency cell is empty.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    min_plausible_columns: int = Field(default=10, ge=1)
    sample_lines: int = Field(default=10, ge=1)
    tolerance: float = Field(default=0.01, gt=0)
    default_currency: str = "EUR"

    @field_validator("default_currency")
    @classmethod
    def _currency_code(cls, v: str) -> str:
        code = v.upper()
        if not re.fullmatch(r"[A-Z]{3}", code):
            raise ValueError("default_currency must be a 3-letter ISO currency code")
        return code

    @classmethod
    def from_env(cls) -> EngineSettings:
        """Build settings from ``VAT_ANALYSIS_*`` environment variables.

        Unset or blank variables keep their defaults. Invalid values raise
        ``pydantic.ValidationError`` (a ``ValueError``).
        """

        values: dict[str, str] = {}
        for suffix, field_name in _ENV_FIELDS.items():
            raw = os.getenv(_ENV_PREFIX + suffix)
            if raw is not None and raw.strip():
                values[field_name] = raw
        return cls.model_validate(values)


class RuleOverrides(BaseModel):
    """User-supplied header and scheme aliases.

    ``column_aliases`` maps a canonical field (e.g. ``"SALE_ARRIVAL_COUNTRY"``)
    to header names tried *before* the built-in synonyms. ``scheme_aliases``
    maps a raw scheme label to one of the canonical schemes and is consulted
    before the built-in scheme table.
    """

    model_config = ConfigDict(strict=True, frozen=True, extra="forbid", str_strip_whitespace=True)

    column_aliases: dict[str, tuple[str, ...]] = Field(default_factory=dict)
    scheme_aliases: dict[str, str] = Field(default_factory=dict)

    @field_validator("column_aliases")
    @classmethod
    def _known_fields(cls, v: dict[str, tuple[str, ...]]) -> dict[str, tuple[str, ...]]:
        out: dict[str, tuple[str, ...]] = {}
        for field_name, aliases in v.items():
            key = field_name.strip().upper()
            if key not in COLUMN_SYNONYMS:
                raise ValueError(f"unknown column field: {field_name!r}")
            cleaned = tuple(a.strip() for a in aliases if a.strip())
            if not cleaned:
                raise ValueError(f"column_aliases[{field_name!r}] must list at least one header")
            out[key] = cleaned
        return out

    @field_validator("scheme_aliases")
    @classmethod
    def _known_schemes(cls, v: dict[str, str]) -> dict[str, str]:
        canonical = set(SCHEME_ALIASES.values())
        out: dict[str, str] = {}
        for raw, target in v.items():
            target_key = scheme_key(target)
            if target_key not in canonical:
                raise ValueError(
                    f"scheme_aliases[{raw!r}] must map to one of {sorted(canonical)}, "
                    f"got {target!r}"
                )
            if not raw.strip():
                raise ValueError("scheme_aliases keys must be non-empty")
            out[scheme_key(raw)] = target_key
        return out

    def synonyms_for(self, field_name: str) -> tuple[str, ...]:
        """User aliases followed by the built-in synonyms for ``field_name``."""

        return self.column_aliases.get(field_name, ()) + COLUMN_SYNONYMS[field_name]


def load_overrides(path: str | os.PathLike[str]) -> RuleOverrides:
    """Load :class:`RuleOverrides` from a JSON file.

    Raises ``FileNotFoundError``/``PermissionError`` for unreadable files and
    ``pydantic.ValidationError`` for malformed or invalid content.
    """

    text = Path(path).read_text(encoding="utf-8")
    return RuleOverrides.model_validate_json(text)


__all__ = ["EngineSettings", "RuleOverrides", "load_overrides", "scheme_key"]
