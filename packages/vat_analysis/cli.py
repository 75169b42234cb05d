# ruff: noqa: I001
"""CLI for the ``vat_analysis`` package.

This module exposes callable command handlers (``cmd_analyze``) and a
Typer-based console interface. Environment variables (``VAT_ANALYSIS_*``) are
loaded from a local ``.env`` using ``python-dotenv`` before delegating to
command logic. Business logic lives in ``vat_analysis.api``.
"""

from __future__ import annotations

import csv
import json
import sys
from enum import StrEnum
from pathlib import Path
from typing import Annotated, TextIO

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .logging_setup import configure_logging
from .models import CountryBreakdownRow
from .report import VatReport

# Exit code for a report whose sanity checks failed under --fail-on-invalid
EXIT_INVALID = 2


class OutputFormat(StrEnum):
    JSON = "json"
    TABLE = "table"
    CSV = "csv"


# ---- Output renderers ---------------------------------------------------------

_BREAKDOWN_COLUMNS = (
    ("country", "COUNTRY"),
    ("domestic_b2c", "DOMESTIC_B2C"),
    ("domestic_b2b", "DOMESTIC_B2B"),
    ("intracommunity", "INTRACOM"),
    ("oss", "OSS"),
    ("switzerland_voec", "CH_VOEC"),
    ("residual", "RESIDUAL"),
    ("total", "TOTAL"),
)


def _write_json(report: VatReport, out: TextIO) -> None:
    json.dump(report.to_dict(), out, indent=2, ensure_ascii=False)
    out.write("\n")


def _write_csv(report: VatReport, out: TextIO) -> None:
    # Breakdown rows only, keyed like the JSON output.
    fieldnames = [
        info.alias or name for name, info in CountryBreakdownRow.model_fields.items()
    ]
    writer = csv.DictWriter(out, fieldnames=fieldnames, lineterminator="\n")
    writer.writeheader()
    for row in report.breakdown:
        dumped = row.model_dump(by_alias=True)
        writer.writerow(
            {k: (f"{v:.2f}" if isinstance(v, float) else v) for k, v in dumped.items()}
        )


def _write_table(report: VatReport, out: TextIO) -> None:
    rules = report.rules_applied
    out.write(
        f"Delimiter: {report.delimiter!r}  Transactions: {rules.total_processed}  "
        f"Skipped rows: {len(report.skipped_rows)}  "
        f"Currencies: {', '.join(report.currencies) or '-'}\n\n"
    )

    header = f"{'COUNTRY':<8}" + "".join(f"{title:>14}" for _, title in _BREAKDOWN_COLUMNS[1:])
    out.write(header + "\n")
    out.write("-" * len(header) + "\n")
    for row in report.breakdown:
        cells = "".join(f"{getattr(row, name):>14.2f}" for name, _ in _BREAKDOWN_COLUMNS[1:])
        out.write(f"{row.country:<8}{cells}\n")

    out.write("\nKPIs\n")
    for card in report.kpi_cards:
        out.write(f"  {card.title:<20}{card.amount:>14.2f}  ({card.count})\n")

    out.write("\nVAT recap\n")
    for line in report.vat_recap:
        out.write(
            f"  {line.country:<4}{line.regime:<18}"
            f"{line.net:>14.2f}{line.vat:>14.2f}  ({line.count})\n"
        )

    g = report.sanity_check_global
    status = "OK" if g.is_valid else "FAILED"
    out.write(
        f"\nGlobal sanity check: {status} "
        f"(grand vs sum {g.diff_grand_total_vs_sum:.2f}, "
        f"regular vs components {g.diff_regular_vs_components:.2f})\n"
    )
    failing = [c for c in report.sanity_check_by_country if not c.is_valid]
    if failing:
        out.write("Country sanity failures:\n")
        for c in failing:
            out.write(f"  {c.country}: difference {c.difference:.2f}\n")
    out.write(f"Anomalies: {len(report.anomalies)}\n")


_RENDERERS = {
    OutputFormat.JSON: _write_json,
    OutputFormat.CSV: _write_csv,
    OutputFormat.TABLE: _write_table,
}


# ---- Command handlers -----------------------------------------------------------


def cmd_analyze(
    csv_path: str,
    *,
    output_format: OutputFormat | str = OutputFormat.JSON,
    overrides_path: str | None = None,
    fail_on_invalid: bool = False,
) -> int:
    """Analyze a VAT transaction report and print the result to stdout.

    Behavior
    --------
    - Loads engine settings from ``VAT_ANALYSIS_*`` environment variables and,
      when ``overrides_path`` is given, user header/scheme aliases from JSON.
    - Runs :func:`vat_analysis.api.analyze_vat_file` on ``csv_path``.
    - Prints the report as JSON (camelCase keys), a fixed-width table, or the
      breakdown rows as CSV.

    Errors are written to stderr and the function returns ``1``. With
    ``fail_on_invalid``, a report whose sanity checks failed is still printed
    but the function returns ``2``. On success, returns ``0``.

    Parameters
    ----------
    csv_path:
        Filesystem path to the report file.
    output_format:
        One of ``json``, ``table`` or ``csv``.
    overrides_path:
        Optional path to a JSON rule overrides file.
    fail_on_invalid:
        Return a non-zero status when any sanity check failed.
    """

    from pydantic import ValidationError

    from .api import analyze_vat_file
    from .config import EngineSettings, RuleOverrides, load_overrides
    from .errors import VatInputError

    try:
        fmt = OutputFormat(str(output_format).lower())
    except ValueError:
        print(f"Error: Unknown output format: {output_format}", file=sys.stderr)
        return 1

    try:
        settings = EngineSettings.from_env()
    except ValidationError as e:
        print(f"Error: Invalid VAT_ANALYSIS_* settings: {e}", file=sys.stderr)
        return 1

    overrides: RuleOverrides | None = None
    if overrides_path is not None:
        try:
            overrides = load_overrides(overrides_path)
        except FileNotFoundError:
            print(f"Error: Overrides file not found: {overrides_path}", file=sys.stderr)
            return 1
        except (PermissionError, ValidationError) as e:
            print(f"Error: Failed to load overrides '{overrides_path}': {e}", file=sys.stderr)
            return 1

    try:
        report = analyze_vat_file(csv_path, settings=settings, overrides=overrides)
    except FileNotFoundError:
        print(f"Error: File not found: {csv_path}", file=sys.stderr)
        return 1
    except PermissionError:
        print(f"Error: Permission denied: {csv_path}", file=sys.stderr)
        return 1
    except UnicodeDecodeError as e:
        print(f"Error: '{csv_path}' is not valid UTF-8: {e}", file=sys.stderr)
        return 1
    except VatInputError as e:
        print(f"Error: Failed to parse VAT report: {e}", file=sys.stderr)
        return 1

    _RENDERERS[fmt](report, sys.stdout)

    if fail_on_invalid and not report.is_valid:
        print("Error: sanity checks failed; see the report for details.", file=sys.stderr)
        return EXIT_INVALID
    return 0


# ---- Typer-based console interface -----------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Classify marketplace VAT transaction reports per country and VAT regime. "
        "Loads VAT_ANALYSIS_* settings from a local .env before running."
    ),
)


# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults). Typer will inspect these when used as default values below.
CSV_PATH_OPTION: OptionInfo = typer.Option(
    ...,  # required
    "--csv-path",
    help="Path to a VAT transactions report (tab, semicolon or comma separated)",
    dir_okay=False,
    file_okay=True,
    exists=False,  # allow non-existent here; the handler will report nice errors
    readable=True,
)

FORMAT_OPTION: OptionInfo = typer.Option(
    "--format",
    "-f",
    case_sensitive=False,
    help="Output format: json (full report), table, or csv (breakdown rows)",
)

OVERRIDES_OPTION: OptionInfo = typer.Option(
    "--overrides",
    help="JSON file with extra column_aliases / scheme_aliases",
    dir_okay=False,
    file_okay=True,
    exists=False,
)

FAIL_ON_INVALID_OPTION: OptionInfo = typer.Option(
    "--fail-on-invalid",
    help=f"Exit with status {EXIT_INVALID} when a sanity check fails",
)

LOG_LEVEL_OPTION: OptionInfo = typer.Option(
    "--log-level",
    help="Log level (falls back to VAT_ANALYSIS_LOG_LEVEL, then INFO).",
)


@app.command("analyze")
def analyze_cmd(
    csv_path: Annotated[Path, CSV_PATH_OPTION],
    output_format: Annotated[OutputFormat, FORMAT_OPTION] = OutputFormat.JSON,
    overrides: Annotated[Path | None, OVERRIDES_OPTION] = None,
    fail_on_invalid: Annotated[bool, FAIL_ON_INVALID_OPTION] = False,
) -> None:
    """Analyze a report and print breakdown, KPIs, sanity checks and anomalies."""

    code = cmd_analyze(
        str(csv_path),
        output_format=output_format,
        overrides_path=str(overrides) if overrides is not None else None,
        fail_on_invalid=fail_on_invalid,
    )
    if code:
        raise typer.Exit(code)


@app.callback()
def _root(log_level: Annotated[str | None, LOG_LEVEL_OPTION] = None) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures package logging before
    any subcommand runs.
    """

    # Load environment from .env in CWD (override=False to keep existing env)
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    # Central logging setup so child loggers inherit configuration
    configure_logging(log_level)


if __name__ == "__main__":  # pragma: no cover
    # Running as a module: `python -m vat_analysis.cli`
    app()
