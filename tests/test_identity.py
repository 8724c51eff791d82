"""Unit tests for identity normalization."""

from datetime import date, datetime

import pytest

from app.auth.identity import dob_token, name_part, normalize, parse_dob
from app.core.exceptions import InvalidDateError


def test_name_part_strips_case_space_and_punctuation() -> None:
    assert name_part("Siddhesh") == "siddhesh"
    assert name_part("Mary Ann") == "maryann"
    assert name_part("D'Souza") == "dsouza"
    assert name_part("  O-Neil  ") == "oneil"


def test_name_part_folds_accents() -> None:
    assert name_part("José") == "jose"
    assert name_part("Zoë") == "zoe"


def test_name_part_empty_values() -> None:
    assert name_part(None) == ""
    assert name_part("") == ""
    assert name_part("!!!") == ""


def test_dob_token_is_ddmmyy_zero_padded() -> None:
    assert dob_token(date(2005, 9, 11)) == "110905"
    assert dob_token(date(2001, 1, 2)) == "020101"
    assert dob_token(date(1999, 12, 31)) == "311299"


def test_normalize_tokens() -> None:
    tokens = normalize("Siddhesh", "Dicholkar", date(2005, 9, 11))
    assert tokens.name_token == "siddheshdicholkar"
    assert tokens.dob_token == "110905"
    assert tokens.birth_year == 2005


def test_normalize_with_disambiguator() -> None:
    tokens = normalize("Asha", "Rao", date(2004, 3, 7), disambiguator="B")
    assert tokens.name_token == "asharaob"


def test_normalize_is_deterministic() -> None:
    assert normalize("Asha", "Rao", "2004-03-07") == normalize("Asha", "Rao", "2004-03-07")


@pytest.mark.parametrize(
    "value",
    [
        date(2005, 9, 11),
        datetime(2005, 9, 11, 10, 30),
        "2005-09-11",
        "2005-09-11T00:00:00",
        "11-09-2005",
        "11/09/2005",
        38606,  # Excel serial for 2005-09-11
        38606.0,
    ],
)
def test_parse_dob_accepts_common_formats(value) -> None:
    assert parse_dob(value) == date(2005, 9, 11)


@pytest.mark.parametrize("value", [None, "", "   ", "not a date", "31-02-2005", 0, -5, True])
def test_parse_dob_rejects_missing_or_invalid(value) -> None:
    with pytest.raises(InvalidDateError):
        parse_dob(value)


def test_normalize_without_dob_fails() -> None:
    with pytest.raises(InvalidDateError):
        normalize("Asha", "Rao", None)
