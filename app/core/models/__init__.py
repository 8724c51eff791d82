from app.core.models.class_model import SchoolClass
from app.core.models.department import Department

__all__ = [
    "Department",
    "SchoolClass",
]
