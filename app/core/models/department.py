import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from app.db.session import Base


class Department(Base):
    """Department master data. Bulk uploads reference it by code. Soft delete only (is_active)."""

    __tablename__ = "departments"
    __table_args__ = (
        UniqueConstraint("code", name="uq_department_code"),
        UniqueConstraint("name", name="uq_department_name"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code = Column(String(20), nullable=False)  # Uppercased; not editable after creation
    name = Column(String(100), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
