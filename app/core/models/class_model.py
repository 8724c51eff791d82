"""Classes (e.g. SE Comp A). Model named SchoolClass to avoid Python 'class' keyword."""
import uuid
from datetime import datetime

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.session import Base

MIN_CLASS_CAPACITY = 15
MAX_CLASS_CAPACITY = 75


class SchoolClass(Base):
    """
    Class master. max_capacity bounds the number of active students enrolled.
    Batches are not stored: they are recomputed from the roll order on read.
    batch_names only holds optional display labels by batch position.
    """

    __tablename__ = "classes"
    __table_args__ = (
        CheckConstraint(
            f"max_capacity >= {MIN_CLASS_CAPACITY} AND max_capacity <= {MAX_CLASS_CAPACITY}",
            name="ck_class_max_capacity",
        ),
        CheckConstraint("year >= 1 AND year <= 4", name="ck_class_year"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(50), nullable=False)
    year = Column(Integer, nullable=False)
    department_id = Column(UUID(as_uuid=True), ForeignKey("departments.id"), nullable=False)
    coordinator_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    max_capacity = Column(Integer, nullable=False, default=MAX_CLASS_CAPACITY)
    batch_names = Column(JSON, nullable=False, default=list)
    # Bumped whenever roll numbers change; reorganize updates conditionally on it
    roster_version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    department = relationship("Department", backref="school_classes")
