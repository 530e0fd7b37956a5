from sqlalchemy import Column, Integer, String, ForeignKey, Table
from sqlalchemy.orm import relationship

from ..core.database import Base


course_enrollments = Table(
    "course_enrollments",
    Base.metadata,
    Column("course_id", Integer, ForeignKey("courses.id"), primary_key=True),
    Column("student_id", Integer, ForeignKey("students.id"), primary_key=True),
)


class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    course_code = Column(String, index=True, nullable=False)
    course_title = Column(String, nullable=False)
    lecturer_id = Column(Integer, ForeignKey("lecturers.id"), nullable=True)

    students = relationship("Student", secondary=course_enrollments, back_populates="courses")
    exams = relationship("Exam", back_populates="course")
