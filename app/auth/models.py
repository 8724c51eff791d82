import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.session import Base


class User(Base):
    """
    A person with a login: student, parent, teacher, hod, classcoordinator or admin.
    Username is issued once and never changes or gets reused; retired accounts are
    deactivated (is_active=false), not deleted.
    """

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("username", name="uq_user_username"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    first_name = Column(String(100), nullable=False)
    # Middle name slot; by naming convention the father's first name
    father_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=False)
    mother_name = Column(String(100), nullable=True)
    full_name = Column(String(255), nullable=False)
    username = Column(String(150), nullable=False, index=True)
    password_hash = Column(Text, nullable=False)
    # student | parent | teacher | hod | classcoordinator | admin
    role = Column(String(50), nullable=False)
    dob = Column(Date, nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    gender = Column(String(10), nullable=True)
    department_id = Column(UUID(as_uuid=True), ForeignKey("departments.id"), nullable=True)
    must_change_password = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    student_profile = relationship(
        "StudentProfile",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
        foreign_keys="StudentProfile.user_id",
    )
    department_rel = relationship("Department", foreign_keys=[department_id])


class StudentProfile(Base):
    """
    Student-only fields. Unit of truth for class membership and roll number.
    parent_id is the owning link to the student's parent account (1:1).
    """

    __tablename__ = "student_profiles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    class_id = Column(UUID(as_uuid=True), ForeignKey("classes.id"), nullable=True, index=True)
    roll_no = Column(Integer, nullable=True)  # Contiguous 1..n within class, rewritten on reorganize
    parent_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True, unique=True)
    year = Column(Integer, nullable=False, default=1)
    parent_phone = Column(String(50), nullable=True)
    parent_email = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="student_profile", foreign_keys=[user_id])
    parent = relationship("User", foreign_keys=[parent_id])
    school_class = relationship("SchoolClass", foreign_keys=[class_id])
