from enum import Enum


class PersonRole(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    HOD = "hod"
    CLASS_COORDINATOR = "classcoordinator"
    PARENT = "parent"
    ADMIN = "admin"


STAFF_ROLES = (
    PersonRole.TEACHER,
    PersonRole.HOD,
    PersonRole.CLASS_COORDINATOR,
    PersonRole.ADMIN,
)


class ResetMode(str, Enum):
    DETERMINISTIC = "deterministic"
    RANDOM = "random"


class Gender(str, Enum):
    male = "male"
    female = "female"
    other = "other"
