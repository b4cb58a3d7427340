import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from starlette import status

from app.utils.database import get_db
from app.core.errors import CourseNotFound
from app.models.course_model import Course, CourseValidity
from app.schemas.course_schema import CourseCreate, CourseOut, CourseChargesPatch, ValidityIn, ValidityOut
from app.utils.installment_calculations import money

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/courses", tags=["Courses"])


def _get_course(db: Session, course_id: int) -> Course:
    course = db.query(Course).filter(Course.course_id == course_id).first()
    if not course:
        raise CourseNotFound(f"Course {course_id} not found")
    return course


@router.post("", response_model=CourseOut, status_code=status.HTTP_201_CREATED)
def create_course(payload: CourseCreate, db: Session = Depends(get_db)):
    course = Course(
        title=payload.title.strip(),
        price=money(payload.price),
        gst_percent=money(payload.gst_percent),
        internet_handling_percent=money(payload.internet_handling_percent),
    )
    for v in payload.validities:
        course.validities.append(
            CourseValidity(
                plan_label=v.plan_label,
                months=v.months,
                price=money(v.price),
                discount_percent=money(v.discount_percent),
            )
        )

    db.add(course)
    db.commit()
    db.refresh(course)

    logger.info("Course %s created with %s validities", course.course_id, len(course.validities))
    return course


@router.get("", response_model=List[CourseOut])
def list_courses(db: Session = Depends(get_db)):
    return db.query(Course).order_by(Course.course_id.asc()).all()


@router.get("/{course_id}", response_model=CourseOut)
def get_course(course_id: int, db: Session = Depends(get_db)):
    return _get_course(db, course_id)


@router.patch("/{course_id}", response_model=CourseOut)
def update_course_charges(course_id: int, payload: CourseChargesPatch, db: Session = Depends(get_db)):
    course = _get_course(db, course_id)

    if payload.price is not None:
        course.price = money(payload.price)
    if payload.gst_percent is not None:
        course.gst_percent = money(payload.gst_percent)
    if payload.internet_handling_percent is not None:
        course.internet_handling_percent = money(payload.internet_handling_percent)

    db.commit()
    db.refresh(course)
    return course


@router.put("/{course_id}/validities", response_model=ValidityOut)
def upsert_validity(course_id: int, payload: ValidityIn, db: Session = Depends(get_db)):
    _get_course(db, course_id)

    validity = (
        db.query(CourseValidity)
        .filter(CourseValidity.course_id == course_id, CourseValidity.plan_label == payload.plan_label)
        .first()
    )
    if not validity:
        validity = CourseValidity(course_id=course_id, plan_label=payload.plan_label)
        db.add(validity)

    validity.months = payload.months
    validity.price = money(payload.price)
    validity.discount_percent = money(payload.discount_percent)

    db.commit()
    db.refresh(validity)
    return validity
