from pydantic import BaseModel, Field, field_validator
from typing import Optional


class SettingPatch(BaseModel):
    key: str
    value: str
    updated_by: Optional[str] = None


class SettingCreate(BaseModel):
    key: str = Field(..., min_length=1)
    value: str = Field(..., min_length=1)
    description: str = Field("", max_length=500)

    @field_validator("key", mode="before")
    def upper_key(cls, v):
        return str(v).strip().upper()


class SettingOut(BaseModel):
    key: str
    value: str
    description: Optional[str] = None

    class Config:
        from_attributes = True
