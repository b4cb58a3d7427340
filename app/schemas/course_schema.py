from pydantic import BaseModel, Field, field_validator
from typing import List, Optional


class ValidityIn(BaseModel):
    plan_label: str = Field(..., min_length=1)
    months: int = Field(gt=0)
    price: float = Field(gt=0)
    discount_percent: float = Field(0, ge=0, le=100)

    @field_validator("plan_label", mode="before")
    def strip_label(cls, v):
        return str(v).strip() if v is not None else v


class CourseCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    price: float = Field(gt=0)
    gst_percent: float = Field(0, ge=0, le=100)
    internet_handling_percent: float = Field(0, ge=0, le=100)
    validities: List[ValidityIn] = []


class CourseChargesPatch(BaseModel):
    price: Optional[float] = Field(None, gt=0)
    gst_percent: Optional[float] = Field(None, ge=0, le=100)
    internet_handling_percent: Optional[float] = Field(None, ge=0, le=100)


class ValidityOut(BaseModel):
    validity_id: int
    plan_label: str
    months: int
    price: float
    discount_percent: float

    class Config:
        from_attributes = True


class CourseOut(BaseModel):
    course_id: int
    title: str
    price: float
    gst_percent: float
    internet_handling_percent: float
    validities: List[ValidityOut] = []

    class Config:
        from_attributes = True
