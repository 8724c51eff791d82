"""
Credential issuance: derive a unique (username, initial password) pair from biographical fields.

Rules:
- student / teacher / hod / classcoordinator / admin username: first + last + birth year.
- parent username: father's first name + last name + mother's name + the linked
  student's birth year (not the parent's own).
- password: first name + ddmmyy(dob). A linked parent shares the student's password.
- Username collisions append "2", "3", ... with a fresh existence check per candidate,
  up to a hard attempt bound.

Examples:
    Siddhesh Dicholkar, 2005-09-11 -> siddheshdicholkar2005 / siddhesh110905
    parent (Ramesh, Dicholkar, Sunita) -> rameshdicholkarsunita2005 / siddhesh110905

Issuance only returns records; hashing and persistence belong to the caller.
"""

import inspect
import logging
import secrets
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Set, Tuple, Union

from app.auth.identity import DateInput, dob_token, name_part, parse_dob
from app.core.enums import PersonRole, ResetMode
from app.core.exceptions import CredentialExhaustionError, InvalidDateError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 1000
RANDOM_PASSWORD_BYTES = 9

ExistsCheck = Callable[[str], Union[bool, Awaitable[bool]]]


@dataclass(frozen=True)
class PersonIdentity:
    """Biographical fields credential derivation needs. ORM users expose the same attributes."""

    first_name: str
    last_name: str
    dob: DateInput = None
    father_name: Optional[str] = None
    mother_name: Optional[str] = None


@dataclass(frozen=True)
class CredentialRecord:
    """Returned once at creation/reset time. The plaintext password is never persisted."""

    full_name: str
    username: str
    password: str
    role: str
    must_change_password: bool = True


def build_full_name(first_name: str, father_name: Optional[str], last_name: str) -> str:
    return " ".join(p.strip() for p in (first_name, father_name, last_name) if p and p.strip())


def derive_password(person) -> str:
    """first name token + ddmmyy. Raises InvalidDateError without a usable dob."""
    first = name_part(person.first_name)
    if not first:
        raise ValidationError("First name must contain letters or digits")
    return first + dob_token(getattr(person, "dob", None))


def base_username(person, role: PersonRole, linked_birth_year: Optional[int] = None) -> str:
    """Username candidate before collision handling."""
    first = name_part(person.first_name)
    last = name_part(person.last_name)
    if not first or not last:
        raise ValidationError("First and last name must contain letters or digits")

    if role == PersonRole.PARENT:
        year = linked_birth_year
        if year is None:
            own_dob = getattr(person, "dob", None)
            if own_dob is None:
                raise InvalidDateError("Parent needs a linked student or its own date of birth")
            year = parse_dob(own_dob).year
        return first + last + name_part(getattr(person, "mother_name", None)) + str(year)

    return first + last + str(parse_dob(getattr(person, "dob", None)).year)


async def _exists(exists_check: ExistsCheck, candidate: str) -> bool:
    result = exists_check(candidate)
    if inspect.isawaitable(result):
        result = await result
    return bool(result)


async def resolve_unique_username(
    base: str,
    exists_check: ExistsCheck,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> str:
    """Return base, base2, base3, ... whichever is free first. Every candidate is checked fresh."""
    for attempt in range(1, max_attempts + 1):
        candidate = base if attempt == 1 else f"{base}{attempt}"
        if not await _exists(exists_check, candidate):
            if attempt > 1:
                logger.debug("Username collision resolved", extra={"base": base, "attempts": attempt})
            return candidate
    logger.error(
        "Username candidates exhausted",
        extra={"base": base, "max_attempts": max_attempts},
    )
    raise CredentialExhaustionError(
        f"Could not issue a unique username for '{base}' after {max_attempts} attempts"
    )


async def issue(
    person,
    role: PersonRole,
    exists_check: ExistsCheck,
    linked_birth_year: Optional[int] = None,
    shared_password: Optional[str] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> CredentialRecord:
    """
    Issue credentials for one person.

    linked_birth_year / shared_password apply to parents linked to a student: the
    username takes the student's birth year and the password is the student's.
    """
    role = PersonRole(role)
    base = base_username(person, role, linked_birth_year=linked_birth_year)
    if role == PersonRole.PARENT and shared_password is not None:
        password = shared_password
    else:
        password = derive_password(person)
    username = await resolve_unique_username(base, exists_check, max_attempts=max_attempts)
    return CredentialRecord(
        full_name=build_full_name(person.first_name, getattr(person, "father_name", None), person.last_name),
        username=username,
        password=password,
        role=role.value,
    )


async def issue_student_with_parent(
    student,
    exists_check: ExistsCheck,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> Tuple[CredentialRecord, Optional[CredentialRecord], Optional[PersonIdentity]]:
    """
    Issue a student's credentials and, when the student has a father name, the linked
    parent's. Returns (student_record, parent_record, parent_identity).
    """
    student_record = await issue(student, PersonRole.STUDENT, exists_check, max_attempts=max_attempts)

    father_name = (getattr(student, "father_name", None) or "").strip()
    if not father_name:
        return student_record, None, None

    parent = PersonIdentity(
        first_name=father_name,
        last_name=student.last_name,
        mother_name=getattr(student, "mother_name", None),
    )
    # Not yet persisted, but already spoken for.
    reserved: Set[str] = {student_record.username}

    async def _parent_exists(candidate: str) -> bool:
        return candidate in reserved or await _exists(exists_check, candidate)

    parent_record = await issue(
        parent,
        PersonRole.PARENT,
        _parent_exists,
        linked_birth_year=parse_dob(student.dob).year,
        shared_password=student_record.password,
        max_attempts=max_attempts,
    )
    return student_record, parent_record, parent


def reset_password(person, mode: ResetMode) -> str:
    """
    New initial password for a reset. DETERMINISTIC re-derives first name + ddmmyy
    (same inputs give the same password); RANDOM returns an unguessable one.
    """
    mode = ResetMode(mode)
    if mode == ResetMode.DETERMINISTIC:
        return derive_password(person)
    return secrets.token_urlsafe(RANDOM_PASSWORD_BYTES)

