from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.utils.database import get_db
from app.services.collaborators import (
    CourseCatalog,
    CourseAccessSink,
    SqlCourseCatalog,
    SqlCourseAccessSink,
)
from app.services.gateway_client import RazorpayGateway, gateway_from_config


def get_gateway(request: Request) -> RazorpayGateway:
    # one client per app, built on first payment request
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        gateway = gateway_from_config()
        request.app.state.gateway = gateway
    return gateway


def get_course_catalog(db: Session = Depends(get_db)) -> CourseCatalog:
    return SqlCourseCatalog(db)


def get_access_sink(db: Session = Depends(get_db)) -> CourseAccessSink:
    return SqlCourseAccessSink(db)
