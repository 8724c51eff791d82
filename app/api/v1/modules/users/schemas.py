from datetime import date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from app.auth.identity import parse_dob
from app.core.enums import Gender, PersonRole
from app.core.exceptions import InvalidDateError

STAFF_CREATE_ROLES = (PersonRole.TEACHER, PersonRole.HOD, PersonRole.CLASS_COORDINATOR)
# Roles the generic /users endpoints may provision. Admins are seeded, not uploaded.
USER_CREATE_ROLES = (
    PersonRole.STUDENT,
    PersonRole.TEACHER,
    PersonRole.HOD,
    PersonRole.CLASS_COORDINATOR,
    PersonRole.PARENT,
)


def _coerce_dob(v: Any) -> date:
    """Accepts ISO / DD-MM-YYYY strings, dates and Excel serial numbers."""
    try:
        return parse_dob(v)
    except InvalidDateError as e:
        raise ValueError(e.message) from e


def _coerce_text(v: Any) -> Optional[str]:
    """Spreadsheet cells deliver phone numbers and codes as numbers."""
    if v is None:
        return None
    if isinstance(v, float) and v.is_integer():
        v = int(v)
    text = str(v).strip()
    return text or None


# ----- Person (shared) -----
class PersonBase(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    father_name: Optional[str] = Field(None, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    gender: Optional[Gender] = None
    department_id: Optional[UUID] = None

    @field_validator("first_name", "father_name", "last_name", "phone", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> Optional[str]:
        return _coerce_text(v)

    @field_validator("email", mode="before")
    @classmethod
    def blank_email(cls, v: Any) -> Optional[str]:
        return _coerce_text(v)

    @field_validator("gender", mode="before")
    @classmethod
    def lower_gender(cls, v: Any) -> Optional[str]:
        text = _coerce_text(v)
        return text.lower() if text else None


# ----- Student -----
class StudentCreate(PersonBase):
    """A parent account is created alongside when father_name is given."""

    mother_name: Optional[str] = Field(None, max_length=100)
    dob: date
    class_id: Optional[UUID] = None
    year: int = Field(1, ge=1, le=4)
    parent_phone: Optional[str] = Field(None, max_length=50)
    parent_email: Optional[EmailStr] = None

    @field_validator("mother_name", "parent_phone", mode="before")
    @classmethod
    def coerce_student_text(cls, v: Any) -> Optional[str]:
        return _coerce_text(v)

    @field_validator("dob", mode="before")
    @classmethod
    def coerce_dob(cls, v: Any) -> date:
        return _coerce_dob(v)

    @field_validator("year", mode="before")
    @classmethod
    def default_year(cls, v: Any) -> Any:
        return 1 if _coerce_text(v) is None else v


class StudentUpdate(BaseModel):
    """Username and date of birth are fixed once credentials are issued."""

    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    father_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    mother_name: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    gender: Optional[Gender] = None
    department_id: Optional[UUID] = None
    class_id: Optional[UUID] = None  # Moving a student renumbers both classes
    year: Optional[int] = Field(None, ge=1, le=4)
    parent_phone: Optional[str] = Field(None, max_length=50)
    parent_email: Optional[EmailStr] = None


class StudentRow(StudentCreate):
    """One spreadsheet row. Department and class are referenced by code / name."""

    department_code: Optional[str] = None
    class_name: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def student_contact_columns(cls, data: Any) -> Any:
        """The student template labels the student's own contact columns studentPhone / studentEmail."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for column, field in (("student_phone", "phone"), ("student_email", "email")):
            if _coerce_text(data.get(field)) is None and data.get(column) is not None:
                data[field] = data[column]
        return data

    @field_validator("department_code", "class_name", mode="before")
    @classmethod
    def coerce_refs(cls, v: Any) -> Optional[str]:
        return _coerce_text(v)


# ----- Teacher -----
class TeacherCreate(PersonBase):
    dob: date
    role: PersonRole = PersonRole.TEACHER

    @field_validator("dob", mode="before")
    @classmethod
    def coerce_dob(cls, v: Any) -> date:
        return _coerce_dob(v)

    @field_validator("role", mode="before")
    @classmethod
    def lower_role(cls, v: Any) -> Any:
        text = _coerce_text(v)
        return text.lower() if text else PersonRole.TEACHER

    @field_validator("role")
    @classmethod
    def staff_role(cls, v: PersonRole) -> PersonRole:
        if v not in STAFF_CREATE_ROLES:
            raise ValueError(f"Role must be one of: {', '.join(r.value for r in STAFF_CREATE_ROLES)}")
        return v


class TeacherRow(TeacherCreate):
    department_code: Optional[str] = None

    @field_validator("department_code", mode="before")
    @classmethod
    def coerce_refs(cls, v: Any) -> Optional[str]:
        return _coerce_text(v)


# ----- Generic user -----
class UserCreate(PersonBase):
    """Parents provisioned here have no linked student; their username uses their own birth year."""

    mother_name: Optional[str] = Field(None, max_length=100)
    dob: date
    role: PersonRole

    @field_validator("mother_name", mode="before")
    @classmethod
    def coerce_user_text(cls, v: Any) -> Optional[str]:
        return _coerce_text(v)

    @field_validator("dob", mode="before")
    @classmethod
    def coerce_dob(cls, v: Any) -> date:
        return _coerce_dob(v)

    @field_validator("role", mode="before")
    @classmethod
    def provisionable_role(cls, v: Any) -> Any:
        role = str(v).strip().lower() if v is not None else v
        if role not in {r.value for r in USER_CREATE_ROLES}:
            raise ValueError(f"Invalid role. Must be one of: {', '.join(r.value for r in USER_CREATE_ROLES)}")
        return role


class UserRow(UserCreate):
    department_code: Optional[str] = None

    @field_validator("department_code", mode="before")
    @classmethod
    def coerce_refs(cls, v: Any) -> Optional[str]:
        return _coerce_text(v)


# ----- Class assignment -----
class ClassAssignmentRow(BaseModel):
    """Move an existing student (by username or id) into a class named in the row."""

    username: Optional[str] = None
    student_id: Optional[UUID] = None
    class_name: str = Field(..., min_length=1)
    department_code: Optional[str] = None

    @field_validator("username", "class_name", "department_code", mode="before")
    @classmethod
    def coerce_refs(cls, v: Any) -> Optional[str]:
        return _coerce_text(v)


# ----- Responses -----
class PersonResponse(BaseModel):
    id: UUID
    username: str
    role: PersonRole
    first_name: str
    father_name: Optional[str] = None
    last_name: str
    mother_name: Optional[str] = None
    full_name: str
    dob: Optional[date] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    gender: Optional[str] = None
    department_id: Optional[UUID] = None
    must_change_password: bool
    is_active: bool
    created_at: datetime
    # Students only
    class_id: Optional[UUID] = None
    roll_no: Optional[int] = None
    parent_id: Optional[UUID] = None
    year: Optional[int] = None

    class Config:
        from_attributes = True


class CredentialResponse(BaseModel):
    """Plaintext initial password. Shown once; it is not stored."""

    full_name: str
    username: str
    password: str
    role: str
    must_change_password: bool = True

    class Config:
        from_attributes = True


class CreatePersonResponse(BaseModel):
    person: PersonResponse
    credentials: List[CredentialResponse]


class ResetPasswordResponse(BaseModel):
    credentials: List[CredentialResponse]


class BulkRowError(BaseModel):
    row_number: int
    row: Dict[str, Any]
    error: str

    class Config:
        from_attributes = True


class BulkImportResponse(BaseModel):
    success_count: int
    failed_count: int
    credentials: List[CredentialResponse]
    errors: List[BulkRowError]

    class Config:
        from_attributes = True
