"""
PROCTO - Course Schemas
"""
import uuid
from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.user import UserSummary


class CourseCreate(BaseModel):
    name: Annotated[str, Field(min_length=1, max_length=200)]
    description: str | None = None


class EnrollByCodeRequest(BaseModel):
    course_code: Annotated[str, Field(min_length=3, max_length=20)]


class CourseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: str | None = None
    code: str
    is_active: bool
    created_at: datetime
    faculty: UserSummary


class CourseDetailResponse(CourseResponse):
    enrollment_count: int = 0
    exam_count: int = 0


class RosterEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    enrollment_id: uuid.UUID = Field(validation_alias="id")
    enrolled_at: datetime
    student: UserSummary
