import enum
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from ..core.database import Base
from ..core.exceptions import ValidationError
from ..utils.timezone import get_utc_now
from .course import course_enrollments


class Role(str, enum.Enum):
    STUDENT = "student"
    LECTURER = "lecturer"
    ADMIN = "admin"


class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    fullname = Column(String, nullable=False)
    email = Column(String, unique=True, index=True)
    matric_number = Column(String, unique=True, nullable=True)
    created_at = Column(DateTime, default=get_utc_now)

    courses = relationship("Course", secondary=course_enrollments, back_populates="students")

    def __repr__(self):
        return f"<Student {self.id} {self.email}>"


class Lecturer(Base):
    __tablename__ = "lecturers"

    id = Column(Integer, primary_key=True, index=True)
    fullname = Column(String, nullable=False)
    email = Column(String, unique=True, index=True)
    created_at = Column(DateTime, default=get_utc_now)


class Admin(Base):
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, index=True)
    fullname = Column(String, nullable=False)
    email = Column(String, unique=True, index=True)
    created_at = Column(DateTime, default=get_utc_now)


ACCOUNT_MODELS = {
    Role.STUDENT: Student,
    Role.LECTURER: Lecturer,
    Role.ADMIN: Admin,
}


def account_model_for(role) -> type:
    """Resolve the mapped class for a role. The role is always explicit."""
    try:
        return ACCOUNT_MODELS[Role(role)]
    except ValueError:
        raise ValidationError(f"Unknown role: {role!r}")
