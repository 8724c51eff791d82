"""
Identity normalization: biographical fields -> canonical tokens for credential derivation.

Pure functions only. Same input always yields the same tokens, so issued credentials
can be re-derived for auditing and deterministic password resets.
"""

import re
import unicodedata
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Union

from app.core.exceptions import InvalidDateError

# Excel's 1900 date system: serial 1 == 1900-01-01, with the 1900 leap-year bug folded in.
EXCEL_EPOCH = date(1899, 12, 30)

_NON_TOKEN_CHARS = re.compile(r"[^a-z0-9]")
_DATE_FORMATS = ("%d-%m-%Y", "%d/%m/%Y", "%d.%m.%Y", "%Y/%m/%d")

DateInput = Union[date, datetime, str, int, float, None]


@dataclass(frozen=True)
class IdentityTokens:
    name_token: str
    dob_token: str
    birth_year: int


def name_part(value: Optional[str]) -> str:
    """
    Lowercase, fold accents to ASCII and drop everything outside [a-z0-9].

    Examples:
        "Siddhesh"      -> "siddhesh"
        "Mary Ann"      -> "maryann"
        "D'Souza"       -> "dsouza"
        "José"          -> "jose"
    """
    if not value:
        return ""
    folded = unicodedata.normalize("NFKD", str(value)).encode("ascii", "ignore").decode("ascii")
    return _NON_TOKEN_CHARS.sub("", folded.lower())


def parse_dob(value: DateInput) -> date:
    """Parse a date of birth from a date, ISO / DD-MM-YYYY string or Excel serial number."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidDateError("Date of birth is required")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, bool):
        raise InvalidDateError(f"Invalid date of birth: {value!r}")
    if isinstance(value, (int, float)):
        if value <= 0:
            raise InvalidDateError(f"Invalid date of birth: {value!r}")
        try:
            return EXCEL_EPOCH + timedelta(days=int(value))
        except OverflowError as e:
            raise InvalidDateError(f"Invalid date of birth: {value!r}") from e
    if isinstance(value, str):
        text = value.strip()
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            pass
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            pass
        for fmt in _DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue
    raise InvalidDateError(f"Invalid date of birth: {value!r}")


def dob_token(dob: DateInput) -> str:
    """Date of birth as ddmmyy, zero padded (2005-09-11 -> "110905")."""
    d = parse_dob(dob)
    return f"{d.day:02d}{d.month:02d}{d.year % 100:02d}"


def normalize(
    first_name: str,
    last_name: str,
    dob: DateInput,
    disambiguator: Optional[str] = None,
) -> IdentityTokens:
    """
    Canonical tokens for a person.

    name_token = first + last (+ disambiguator), each run through `name_part`.
    dob_token  = ddmmyy.
    Raises InvalidDateError if dob is missing or unparseable.
    """
    d = parse_dob(dob)
    return IdentityTokens(
        name_token=name_part(first_name) + name_part(last_name) + name_part(disambiguator),
        dob_token=dob_token(d),
        birth_year=d.year,
    )
