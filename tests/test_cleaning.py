"""Tests for value-level parsers used by the importers."""

from datetime import date, datetime

import numpy as np
import pytest

from pos_bundles.cleaning import (
    normalize_header,
    strip_invisibles,
    to_bool,
    to_date,
    to_float,
    to_money,
    to_text,
)
from pos_bundles.utils import format_day, month_key, slugify, string_hash, synthetic_id


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1.234,56", 1234.56),
        ("1,234.56", 1234.56),
        ("12,50 €", 12.5),
        ("(3,00)", -3.0),
        ("1 250,00", 1250.0),
        ("1,000", 1000.0),
        (7, 7.0),
        ("", None),
        ("abc", None),
        (np.nan, None),
    ],
)
def test_to_float(raw, expected) -> None:
    assert to_float(raw) == expected


def test_to_money_cents() -> None:
    assert to_money("1250", in_cents=True) == 12.5
    assert to_money(None, in_cents=True) is None


class TestToDate:
    def test_formats(self) -> None:
        assert to_date("2025-01-15") == datetime(2025, 1, 15)
        assert to_date("15/01/2025 10:30") == datetime(2025, 1, 15, 10, 30)
        assert to_date("15.01.2025") == datetime(2025, 1, 15)
        assert to_date("2025-01-15T08:00:00") == datetime(2025, 1, 15, 8)

    def test_objects_and_serials(self) -> None:
        assert to_date(date(2025, 1, 15)) == datetime(2025, 1, 15)
        assert to_date(45672) == datetime(2025, 1, 15)

    def test_unparsable(self) -> None:
        assert to_date("pas une date") is None
        assert to_date(None) is None
        assert to_date(-3) is None


def test_text_helpers() -> None:
    assert strip_invisibles("\u200bVERRE\u202fVN\t ") == "VERRE VN"
    assert normalize_header(" Catégorie  Défaut ") == "categorie defaut"
    assert to_text(4012.0) == "4012"
    assert to_text(float("nan")) == ""
    assert to_bool("Oui") is True
    assert to_bool("non") is False
    assert to_bool("peut-être") is None


def test_id_helpers() -> None:
    assert synthetic_id("Verre VN Tropez (clear)") == "VERRE_VN_TROPEZ_CLEAR"
    assert synthetic_id("Thé Glacé") == "THE_GLACE"
    assert synthetic_id("") == ""
    assert string_hash("") == "0"
    assert string_hash("abc") == "96354"
    assert len(string_hash("FRAIS DE PORT EXPRESS")) <= 6
    assert slugify("Boutique Saint-Tropez") == "boutique_saint_tropez"
    assert format_day(None) == ""
    assert month_key(datetime(2025, 3, 9)) == "2025-03"
