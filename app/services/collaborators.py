"""
Collaborators owned by other parts of the platform.

The installment core only talks to these interfaces. The SQL implementations
below read/write the catalog and purchase tables of this service and are what
the API wires in by default.
"""
import logging

from sqlalchemy.orm import Session

from app.core.errors import CourseNotFound, SubscriptionNotFound
from app.models.course_model import Course, CourseValidity
from app.models.course_purchase_model import CoursePurchase
from app.utils.installment_calculations import money, utc_now

logger = logging.getLogger(__name__)


class CourseCatalog:
    def get_course(self, course_id: int) -> dict:
        raise NotImplementedError

    def get_subscription_validity(self, course_id: int, plan_label: str) -> dict:
        raise NotImplementedError


class CourseAccessSink:
    def grant_course_access(self, user_id: int, course_id: int, payment_mode: str = "installment"):
        raise NotImplementedError


class SqlCourseCatalog(CourseCatalog):
    def __init__(self, db: Session):
        self.db = db

    def get_course(self, course_id: int) -> dict:
        course = self.db.query(Course).filter(Course.course_id == course_id).first()
        if not course:
            raise CourseNotFound(f"Course {course_id} not found")
        return {"course_id": course.course_id, "title": course.title, "price": money(course.price)}

    def get_subscription_validity(self, course_id: int, plan_label: str) -> dict:
        course = self.db.query(Course).filter(Course.course_id == course_id).first()
        if not course:
            raise CourseNotFound(f"Course {course_id} not found")

        validity = (
            self.db.query(CourseValidity)
            .filter(CourseValidity.course_id == course_id, CourseValidity.plan_label == plan_label)
            .first()
        )
        if not validity:
            raise SubscriptionNotFound(f"No subscription validity '{plan_label}' for course {course_id}")

        return {
            "plan_label": validity.plan_label,
            "months": validity.months,
            "price": money(validity.price),
            "discount_percent": money(validity.discount_percent),
            "tax_percent": money(course.gst_percent),
            "handling_fee_percent": money(course.internet_handling_percent),
        }


class SqlCourseAccessSink(CourseAccessSink):
    """Marks the user's purchase record as granted (creating it if needed)."""

    def __init__(self, db: Session):
        self.db = db

    def grant_course_access(self, user_id: int, course_id: int, payment_mode: str = "installment"):
        purchase = (
            self.db.query(CoursePurchase)
            .filter(CoursePurchase.user_id == user_id, CoursePurchase.course_id == course_id)
            .first()
        )
        if not purchase:
            purchase = CoursePurchase(
                user_id=user_id,
                course_id=course_id,
                payment_type=payment_mode,
                amount_paid=money(0),
            )
            self.db.add(purchase)

        if purchase.access_granted:
            return purchase

        purchase.access_granted = True
        purchase.granted_on = utc_now()
        self.db.commit()

        logger.info("Course access granted user=%s course=%s mode=%s", user_id, course_id, payment_mode)
        return purchase

