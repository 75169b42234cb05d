# ruff: noqa: E402, E501, I001
import json
import os
import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner

_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

from vat_analysis.cli import EXIT_INVALID, app, cmd_analyze
from tests.helpers.reports import OSS_SALE_DE, REGULAR_SALE_FR_B2B, build_report, row


@pytest.fixture()
def report_path(tmp_path: Path) -> Path:
    path = tmp_path / "vat_report.txt"
    path.write_text(build_report([OSS_SALE_DE, REGULAR_SALE_FR_B2B]), encoding="utf-8")
    return path


def test_cmd_analyze_prints_json(report_path: Path, capsys: pytest.CaptureFixture[str]):
    code = cmd_analyze(str(report_path))

    assert code == 0
    data = json.loads(capsys.readouterr().out)
    assert [r["country"] for r in data["breakdown"]] == ["DE", "FR"]
    assert data["breakdown"][1]["domesticB2B"] == 80.0
    assert data["sanityCheckGlobal"]["isValid"] is True


def test_cmd_analyze_table(report_path: Path, capsys: pytest.CaptureFixture[str]):
    assert cmd_analyze(str(report_path), output_format="TABLE") == 0

    out = capsys.readouterr().out
    assert "Transactions: 2" in out
    assert "Global sanity check: OK" in out
    assert any(line.startswith("FR") and "80.00" in line for line in out.splitlines())
    assert any(
        line.split()[:2] == ["FR", "DOMESTIC_B2B"] and line.split()[3] == "16.00"
        for line in out.splitlines()
    )


def test_cmd_analyze_csv(report_path: Path, capsys: pytest.CaptureFixture[str]):
    assert cmd_analyze(str(report_path), output_format="csv") == 0

    lines = capsys.readouterr().out.splitlines()
    assert lines == [
        "country,domesticB2C,domesticB2B,intracommunity,oss,switzerlandVoec,residual,total",
        "DE,0.00,0.00,0.00,100.00,0.00,0.00,100.00",
        "FR,0.00,80.00,0.00,0.00,0.00,0.00,80.00",
    ]


def test_cmd_analyze_unknown_format(report_path: Path, capsys: pytest.CaptureFixture[str]):
    assert cmd_analyze(str(report_path), output_format="xml") == 1
    assert "Unknown output format" in capsys.readouterr().err


def test_cmd_analyze_missing_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]):
    assert cmd_analyze(str(tmp_path / "missing.txt")) == 1
    assert "File not found" in capsys.readouterr().err


def test_cmd_analyze_structural_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]):
    path = tmp_path / "short.txt"
    path.write_text("TRANSACTION_TYPE\n", encoding="utf-8")

    assert cmd_analyze(str(path)) == 1
    captured = capsys.readouterr()
    assert "Failed to parse VAT report" in captured.err
    assert captured.out == ""


def test_cmd_analyze_rejects_non_utf8(tmp_path: Path, capsys: pytest.CaptureFixture[str]):
    path = tmp_path / "latin1.txt"
    path.write_bytes(build_report([OSS_SALE_DE]).replace("SALE", "VENTE\xe9").encode("latin-1"))

    assert cmd_analyze(str(path)) == 1
    assert "not valid UTF-8" in capsys.readouterr().err


def test_cmd_analyze_fail_on_invalid(tmp_path: Path, capsys: pytest.CaptureFixture[str]):
    path = tmp_path / "residual_oss.txt"
    path.write_text(
        build_report([row(type="SALE", scheme="UNION-OSS", depart="FR", arrival="", excl="10")]),
        encoding="utf-8",
    )

    assert cmd_analyze(str(path)) == 0
    capsys.readouterr()

    assert cmd_analyze(str(path), fail_on_invalid=True) == EXIT_INVALID
    captured = capsys.readouterr()
    assert json.loads(captured.out)["sanityCheckGlobal"]["isValid"] is False
    assert "sanity checks failed" in captured.err


def test_cmd_analyze_overrides(report_path: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]):
    good = tmp_path / "overrides.json"
    good.write_text(json.dumps({"scheme_aliases": {"Union OSS": "REGULAR"}}), encoding="utf-8")
    assert cmd_analyze(str(report_path), overrides_path=str(good)) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["rulesApplied"]["ossCount"] == 0

    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    assert cmd_analyze(str(report_path), overrides_path=str(bad)) == 1
    assert "Failed to load overrides" in capsys.readouterr().err

    assert cmd_analyze(str(report_path), overrides_path=str(tmp_path / "nope.json")) == 1
    assert "Overrides file not found" in capsys.readouterr().err


def test_cmd_analyze_invalid_env_settings(
    report_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
):
    monkeypatch.setenv("VAT_ANALYSIS_TOLERANCE", "zero")
    assert cmd_analyze(str(report_path)) == 1
    assert "Invalid VAT_ANALYSIS_* settings" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------


def test_typer_analyze_json(report_path: Path):
    result = CliRunner().invoke(app, ["analyze", "--csv-path", str(report_path)])

    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["kpiCards"][0] == {"title": "Total", "amount": 180.0, "count": 2}


def test_typer_analyze_format_option(report_path: Path):
    result = CliRunner().invoke(app, ["analyze", "--csv-path", str(report_path), "-f", "csv"])

    assert result.exit_code == 0, result.output
    assert result.stdout.splitlines()[0].startswith("country,domesticB2C")


def test_typer_accepts_log_level_before_command(report_path: Path):
    result = CliRunner().invoke(
        app, ["--log-level", "DEBUG", "analyze", "--csv-path", str(report_path)]
    )

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["rulesApplied"]["totalProcessed"] == 2


def test_typer_exit_code_propagates(tmp_path: Path):
    result = CliRunner().invoke(app, ["analyze", "--csv-path", str(tmp_path / "missing.txt")])
    assert result.exit_code == 1


def test_typer_loads_dotenv_from_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    # load_dotenv writes into os.environ; keep that write local to this test.
    monkeypatch.setattr(os, "environ", dict(os.environ))
    (tmp_path / ".env").write_text("VAT_ANALYSIS_DEFAULT_CURRENCY=GBP\n", encoding="utf-8")
    path = tmp_path / "report.txt"
    path.write_text(
        build_report([row(type="SALE", scheme="REGULAR", depart="FR", excl="1", currency="")]),
        encoding="utf-8",
    )

    result = CliRunner().invoke(app, ["analyze", "--csv-path", str(path)])

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["currencies"] == ["GBP"]


def test_console_script_metadata():
    import tomllib

    project = tomllib.loads((_ROOT / "pyproject.toml").read_text(encoding="utf-8"))["project"]

    assert project["scripts"]["vat-analysis"] == "vat_analysis.cli:app"
    # The package has no long description; DESIGN.md is not one.
    assert project.get("readme") != "DESIGN.md"
