from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.models.class_model import MAX_CLASS_CAPACITY, MIN_CLASS_CAPACITY


class ClassCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    year: int = Field(..., ge=1, le=4)
    department_id: UUID
    coordinator_id: Optional[UUID] = None
    max_capacity: int = Field(MAX_CLASS_CAPACITY, ge=MIN_CLASS_CAPACITY, le=MAX_CLASS_CAPACITY)


class ClassUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    year: Optional[int] = Field(None, ge=1, le=4)
    department_id: Optional[UUID] = None
    coordinator_id: Optional[UUID] = None
    max_capacity: Optional[int] = Field(None, ge=MIN_CLASS_CAPACITY, le=MAX_CLASS_CAPACITY)


class ClassResponse(BaseModel):
    id: UUID
    name: str
    year: int
    department_id: UUID
    coordinator_id: Optional[UUID] = None
    max_capacity: int
    batch_names: List[str] = Field(default_factory=list)
    student_count: int = 0
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BatchLabelsUpdate(BaseModel):
    """Display labels by batch position, e.g. ["A1", "A2", "A3"]. Empty string falls back to 'Batch N'."""

    batch_names: List[str] = Field(..., max_length=MAX_CLASS_CAPACITY)


# ----- Roster view -----
class RosterStudent(BaseModel):
    id: UUID
    username: str
    first_name: str
    father_name: Optional[str] = None
    last_name: str
    full_name: str
    roll_no: Optional[int] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class BatchResponse(BaseModel):
    name: str
    student_ids: List[UUID]
    student_count: int


class ClassSummary(BaseModel):
    id: UUID
    name: str
    year: int
    department_id: UUID
    coordinator_id: Optional[UUID] = None
    max_capacity: int
    total_students: int


class RosterView(BaseModel):
    """Class summary, computed batches and the full roll-ordered roster."""

    school_class: ClassSummary = Field(..., alias="class")
    batches: List[BatchResponse]
    all_students: List[RosterStudent]

    class Config:
        populate_by_name = True
