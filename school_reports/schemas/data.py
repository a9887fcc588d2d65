from __future__ import annotations
from typing import Optional
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator

_TEXT_FIELDS = ("course_id", "submission_name", "student_name", "student_username", "student_email", "direct_link")


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # timestamp senza fuso dalla sorgente = UTC; quelli con offset vengono portati in UTC
    if value is None:
        return value
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _expand_date_only(value):
    if isinstance(value, str) and len(value.strip()) == 10:
        return value.strip() + "T00:00:00"
    return value


class Submission(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    course_id: str = Field("", alias="courseId")
    submission_name: str = Field("", alias="submissionName")
    student_name: str = Field("", alias="studentName")
    student_username: str = Field("", alias="studentUsername")
    student_email: str = Field("", alias="studentEmail")
    date_submitted: datetime = Field(..., alias="dateSubmitted")
    direct_link: str = Field("", alias="directLink")

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def _null_to_empty(cls, value):
        return "" if value is None else value

    @field_validator("date_submitted", mode="before")
    @classmethod
    def _date_only(cls, value):
        return _expand_date_only(value)

    @field_validator("date_submitted")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class Report(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    school_name: str = Field(..., alias="schoolName", min_length=1)
    google_sheets_link: Optional[str] = Field(None, alias="googleSheetsLink")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")
    error_message: Optional[str] = Field(None, alias="errorMessage")
    submissions: list[Submission] = Field(default_factory=list)

    @field_validator("updated_at", mode="before")
    @classmethod
    def _date_only(cls, value):
        return _expand_date_only(value)

    @field_validator("updated_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


class SchoolSubmissionCount(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    school_name: str = Field(..., alias="schoolName")
    submission_count: int = Field(0, alias="submissionCount")


class SchoolStatistics(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_schools: int = Field(0, alias="totalSchools")
    school_names: list[str] = Field(default_factory=list, alias="schoolNames")
    total_submissions: int = Field(0, alias="totalSubmissions")
    average_submissions_per_school: float = Field(0.0, alias="averageSubmissionsPerSchool")
    submissions_by_school: list[SchoolSubmissionCount] = Field(default_factory=list, alias="submissionsBySchool")


class TeacherProfile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="id")
    email: Optional[str] = None
    full_name: Optional[str] = None
    accessible_schools: list[str] = Field(default_factory=list)
