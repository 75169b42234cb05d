# ruff: noqa: E402, E501, I001
import sys
import textwrap
from datetime import date
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

from vat_analysis.config import EngineSettings, RuleOverrides
from vat_analysis.errors import InputTooShortError, MissingColumnsError, VatInputError
from vat_analysis.models import SkipReason, TransactionType
from vat_analysis.parsing import (
    is_empty_sentinel,
    is_plausible_vat_number,
    is_standard_transaction_type,
    normalize_country,
    normalize_scheme,
    parse_amount,
    parse_date,
    parse_report,
    parse_transaction_type,
    read_records,
    vat_country_from_number,
)
from tests.helpers.reports import COLUMNS, build_report, row, without


def _dedent(s: str) -> str:
    return textwrap.dedent(s).lstrip("\n").rstrip()


# ---------------------------------------------------------------------------
# Cell normalizers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("100.00", 100.0),
        ("1,234.56", 1234.56),
        ("1.234,56", 1234.56),
        ("12.345.678,9", 12345678.9),
        ("12,5", 12.5),
        ("€ 1 234,56", 1234.56),
        ("-50.00", 50.0),
        ("(19.99)", 19.99),
        ("$1,234,567", 1234567.0),
        ("1.234.567", 1234.567),
        ("", 0.0),
        ("n/a", 0.0),
        (None, 0.0),
        ("--", 0.0),
    ],
)
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == pytest.approx(expected)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("fr", "FR"),
        (" DE ", "DE"),
        ('"IT"', "IT"),
        ("Germany", "DE"),
        ("united kingdom", "GB"),
        ("Suède", "SE"),
        ("Switzerland", "CH"),
        ("France (FR)", "FR"),
        ("ESP", "ES"),
        ("", ""),
        ("(VIDE)", ""),
        ("123", None),
        ("X", None),
    ],
)
def test_normalize_country(raw, expected):
    assert normalize_country(raw) == expected


@pytest.mark.parametrize("token", ["", "(VIDE)", "(vide)", "NULL", "N/A", "-", "\u2014", "NONE", " ", "  none "])
def test_empty_sentinels(token):
    assert is_empty_sentinel(token)


@pytest.mark.parametrize("token", ["FR", "VIDE", "0", "NA"])
def test_non_empty_values_are_not_sentinels(token):
    assert not is_empty_sentinel(token)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("SALE", TransactionType.SALE),
        ("sales", TransactionType.SALE),
        ("REFUND", TransactionType.REFUND),
        ("Customer Return", TransactionType.REFUND),
        ("FC_TRANSFER", TransactionType.SALE),
        ("", None),
        ("NULL", None),
        (None, None),
    ],
)
def test_parse_transaction_type(raw, expected):
    assert parse_transaction_type(raw) is expected


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Union-OSS", "UNION-OSS"),
        ("union oss", "UNION-OSS"),
        ("UNION_OSS", "UNION-OSS"),
        ("regular", "REGULAR"),
        ("Domestic", "REGULAR"),
        ("ch voec", "CH_VOEC"),
        ("CH-VOEC", "CH_VOEC"),
        ("Non-Union-OSS", "NON-UNION-OSS"),
        ("", ""),
    ],
)
def test_normalize_scheme(raw, expected):
    assert normalize_scheme(raw) == expected


def test_normalize_scheme_user_alias_wins():
    overrides = RuleOverrides(scheme_aliases={"Import One Stop Shop": "UNION-OSS", "OSS": "REGULAR"})
    assert normalize_scheme("import one stop shop", overrides=overrides) == "UNION-OSS"
    assert normalize_scheme("oss", overrides=overrides) == "REGULAR"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("2024-03-05", date(2024, 3, 5)),
        ("2024-03-05T10:11:12", date(2024, 3, 5)),
        ("2024-03-05 10:11:12", date(2024, 3, 5)),
        ("05-03-2024", date(2024, 3, 5)),
        ("05/03/2024", date(2024, 3, 5)),
        ("03/15/2024", date(2024, 3, 15)),
        ("03/01/2024", date(2024, 1, 3)),
        ("12/31/2023", date(2023, 12, 31)),
        ("05.03.2024", date(2024, 3, 5)),
        ("", None),
        ("(VIDE)", None),
    ],
)
def test_parse_date(raw, expected):
    assert parse_date(raw) == expected


def test_parse_date_rejects_garbage():
    with pytest.raises(ValueError):
        parse_date("next tuesday")


def test_vat_number_helpers():
    assert is_plausible_vat_number("DE 123.456.789")
    assert not is_plausible_vat_number("12345")
    assert not is_plausible_vat_number("(VIDE)")
    assert vat_country_from_number("fr12345678901") == "FR"
    assert vat_country_from_number("EL123456789") == "GR"
    assert vat_country_from_number("N/A") == ""


def test_read_records_parses_each_physical_line_on_its_own():
    text = 'A;B\n1;"two\n3;4\r\n\n5;"x"y\n"6;7";8'
    records = list(read_records(text, ";"))

    assert [(r.line_number, r.malformed) for r in records] == [
        (1, False), (2, True), (3, False), (4, False), (5, True), (6, False),
    ]  # fmt: skip
    assert records[0].cells == ["A", "B"]
    assert records[1].text == '1;"two'
    assert records[2].cells == ["3", "4"]
    assert records[3].cells == []
    assert records[5].cells == ["6;7", "8"]


# ---------------------------------------------------------------------------
# Document parsing
# ---------------------------------------------------------------------------


def test_parse_report_normalizes_amazon_rows():
    text = build_report(
        [
            row(type="SALE", event_id="E1", date="05-03-2024", scheme="Union-OSS", depart="FR",
                arrival="Germany", buyer_vat_country="(VIDE)", excl="1.234,50", vat="234,56",
                incl="1.469,06", currency="eur"),
            row(type="REFUND", event_id="E2", scheme="REGULAR", depart="fr", arrival="FR",
                buyer_vat_country="FR", buyer_vat="FR12345678901", excl="-10.00", vat="-2.00",
                incl="-12.00", currency=""),
        ]  # fmt: skip
    )
    parsed = parse_report(text)

    assert parsed.delimiter == "\t"
    assert parsed.skipped == ()
    first, second = parsed.transactions

    assert first.line_number == 2
    assert first.transaction_type is TransactionType.SALE
    assert first.tax_scheme == "UNION-OSS"
    assert first.arrival_country == "DE"
    assert first.depart_country == "FR"
    assert first.buyer_vat_country == ""
    assert first.amount_excl_vat == pytest.approx(1234.50)
    assert first.vat_amount == pytest.approx(234.56)
    assert first.currency == "EUR"
    assert first.transaction_date == date(2024, 3, 5)
    assert first.reference_id == "E1"
    assert first.buyer_vat_number == ""
    assert first.signed_amount == pytest.approx(1234.50)

    assert second.transaction_type is TransactionType.REFUND
    assert second.amount_excl_vat == pytest.approx(10.0)
    assert second.signed_amount == pytest.approx(-10.0)
    assert second.buyer_vat_country == "FR"
    assert second.currency == "EUR"
    assert second.transaction_date is None


def test_parse_report_derives_net_from_gross_when_no_net_column():
    text = build_report(
        [row(type="SALE", scheme="REGULAR", depart="FR", incl="120.00", vat="20.00")],
        columns=without("excl"),
    )
    (tx,) = parse_report(text).transactions
    assert tx.amount_excl_vat == pytest.approx(100.0)
    assert tx.vat_amount == pytest.approx(20.0)


def test_parse_report_derives_buyer_country_from_vat_number():
    text = build_report(
        [
            row(type="SALE", scheme="REGULAR", depart="FR", buyer_vat="DE 123456789", excl="1"),
            row(type="SALE", scheme="REGULAR", depart="FR", buyer_vat="123", excl="1"),
        ],
        columns=without("buyer_vat_country"),
    )
    first, second = parse_report(text).transactions
    assert first.buyer_vat_country == "DE"
    assert second.buyer_vat_country == ""


def test_parse_report_falls_back_to_jurisdiction_for_arrival():
    columns = without("arrival") + (("jurisdiction", "TAXABLE_JURISDICTION"),)
    text = build_report(
        [{**row(type="SALE", scheme="UNION-OSS", depart="FR", excl="5"), "jurisdiction": "Italy"}],
        columns=columns,
    )
    (tx,) = parse_report(text).transactions
    assert tx.arrival_country == "IT"


def test_parse_report_skips_bad_rows_and_keeps_going():
    text = build_report(
        [
            row(type="", scheme="REGULAR", depart="FR", excl="1"),
            row(type="SALE", scheme="REGULAR", depart="123", excl="2"),
            row(type="SALE", scheme="REGULAR", depart="FR", date="someday", excl="3"),
            row(type="SALE", scheme="REGULAR", depart="FR", buyer_vat_country="99", excl="4"),
            row(type="SALE", scheme="REGULAR", depart="FR", excl="5"),
        ]
    )
    parsed = parse_report(text)

    assert [tx.amount_excl_vat for tx in parsed.transactions] == [5.0]
    assert [(s.line_number, s.reason) for s in parsed.skipped] == [
        (2, SkipReason.UNRECOGNIZED_TRANSACTION_TYPE),
        (3, SkipReason.UNPARSEABLE_COUNTRY),
        (4, SkipReason.UNPARSEABLE_DATE),
        (5, SkipReason.UNPARSEABLE_COUNTRY),
    ]
    assert parsed.skipped[2].raw_value == "someday"


def test_parse_report_confines_unbalanced_quote_to_its_line():
    rows = [
        row(type="SALE", event_id=f"E{n}", scheme="REGULAR", depart="FR", excl=str(n))
        for n in range(1, 6)
    ]
    rows[1]["event_id"] = '"E2'
    parsed = parse_report(build_report(rows))

    assert [tx.amount_excl_vat for tx in parsed.transactions] == [1.0, 3.0, 4.0, 5.0]
    assert [tx.line_number for tx in parsed.transactions] == [2, 4, 5, 6]
    (skipped,) = parsed.skipped
    assert skipped.line_number == 3
    assert skipped.reason is SkipReason.MALFORMED_LINE
    assert '"E2' in skipped.raw_value


def test_parse_report_rejects_header_with_unbalanced_quote():
    text = build_report([row(type="SALE", scheme="REGULAR", depart="FR", excl="1")])
    text = text.replace("TRANSACTION_EVENT_ID", '"TRANSACTION_EVENT_ID', 1)

    with pytest.raises(VatInputError, match="malformed header on line 1"):
        parse_report(text)


def test_parse_report_keeps_raw_transaction_type():
    text = build_report(
        [
            row(type="FC_TRANSFER", scheme="REGULAR", depart="FR", excl="1"),
            row(type="Sale", scheme="REGULAR", depart="FR", excl="2"),
        ]
    )
    first, second = parse_report(text).transactions

    assert first.transaction_type is TransactionType.SALE
    assert first.raw_transaction_type == "FC_TRANSFER"
    assert second.raw_transaction_type == "SALE"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("SALE", True),
        ("sales", True),
        ("REFUND", True),
        ("Customer Return", True),
        ("FC_TRANSFER", False),
        ("INBOUND", False),
    ],
)
def test_is_standard_transaction_type(raw, expected):
    assert is_standard_transaction_type(raw) is expected


def test_parse_report_ignores_blank_and_empty_valued_lines():
    report = build_report([row(type="SALE", scheme="REGULAR", depart="FR", excl="1")])
    empty_line = "\t".join([""] * len(COLUMNS))
    text = report + "\n" + empty_line + "\n   \n"
    parsed = parse_report(text)
    assert len(parsed.transactions) == 1
    assert parsed.skipped == ()


def test_parse_report_semicolon_with_bom_and_quotes():
    header = ";".join(h for _, h in COLUMNS)
    line = ";".join(
        ["A", "2024-MAR", "MFN", "amazon.de", "SALE", "E9", "2024-03-01", "UNION-OSS", "DE",
         "AT", "", "", '"1.000,00"', "200,00", "1.200,00", "EUR"]
    )  # fmt: skip
    parsed = parse_report("\ufeff" + header + "\r\n" + line + "\r\n")

    assert parsed.delimiter == ";"
    (tx,) = parsed.transactions
    assert tx.arrival_country == "AT"
    assert tx.amount_excl_vat == pytest.approx(1000.0)


def test_parse_report_rejects_single_line():
    with pytest.raises(InputTooShortError) as excinfo:
        parse_report("TRANSACTION_TYPE\tSALE_DEPART_COUNTRY\n\n   \n")
    assert excinfo.value.line_count == 1


def test_parse_report_rejects_missing_columns():
    text = _dedent(
        """
        FOO;BAR;BAZ;QUX;A1;A2;A3;A4;A5;A6;A7
        1;2;3;4;5;6;7;8;9;10;11
        """
    )
    with pytest.raises(MissingColumnsError):
        parse_report(text)


def test_parse_report_uses_default_currency_setting():
    text = build_report([row(type="SALE", scheme="REGULAR", depart="FR", excl="1", currency="")])
    (tx,) = parse_report(text, settings=EngineSettings(default_currency="gbp")).transactions
    assert tx.currency == "GBP"
