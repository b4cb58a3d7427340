from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Numeric,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.utils.database import Base


class Course(Base):
    __tablename__ = "courses"

    course_id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)

    # subscription-level charges applied on top of every validity price
    gst_percent = Column(Numeric(5, 2), nullable=False, server_default="0")
    internet_handling_percent = Column(Numeric(5, 2), nullable=False, server_default="0")

    created_on = Column(DateTime, server_default=func.now())

    validities = relationship(
        "CourseValidity",
        back_populates="course",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class CourseValidity(Base):
    """A purchasable duration of a course, e.g. "6 months" at a given price."""
    __tablename__ = "course_validities"
    __table_args__ = (
        UniqueConstraint("course_id", "plan_label", name="uq_validity_course_label"),
    )

    validity_id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.course_id", ondelete="CASCADE"), nullable=False, index=True)

    plan_label = Column(String(50), nullable=False)  # "6 months"
    months = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    discount_percent = Column(Numeric(5, 2), nullable=False, server_default="0")

    course = relationship("Course", back_populates="validities")
