# registrar/schemas/enrollment.py - Enrollment request and response schemas
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Literal
from datetime import datetime, time
from uuid import UUID

Semester = Literal["1st", "2nd", "Summer"]
PaymentPlan = Literal["FULL", "INSTALLMENT"]


class SubjectSelection(BaseModel):
    subject_id: UUID
    offering_id: UUID


class EnrollmentCreate(BaseModel):
    student_id: UUID
    school_year: str = Field(..., pattern=r"^\d{4}-\d{4}$")
    semester: Semester
    subjects: List[SubjectSelection] = Field(..., min_length=1)
    payment_plan: PaymentPlan = "FULL"

    @field_validator('school_year')
    @classmethod
    def validate_school_year(cls, v: str) -> str:
        """School year must span two consecutive years, e.g. 2024-2025"""
        start, end = v.split("-")
        if int(end) != int(start) + 1:
            raise ValueError('School year must span two consecutive years')
        return v

    @field_validator('subjects')
    @classmethod
    def validate_unique_subjects(cls, v: List[SubjectSelection]) -> List[SubjectSelection]:
        """A subject may appear only once per request"""
        seen = set()
        for selection in v:
            if selection.subject_id in seen:
                raise ValueError(f'Subject {selection.subject_id} is listed more than once')
            seen.add(selection.subject_id)
        return v


class EnrollmentReject(BaseModel):
    reason: Optional[str] = Field(None, max_length=512)


class SubjectDrop(BaseModel):
    subject_id: UUID


class ScheduleSlotOut(BaseModel):
    day: str
    start_time: time
    end_time: time

    class Config:
        from_attributes = True


class SubjectBrief(BaseModel):
    id: UUID
    code: str
    name: str
    units: int
    has_lab: bool

    class Config:
        from_attributes = True


class EnrolledSubjectOut(BaseModel):
    id: UUID
    subject_id: UUID
    offering_id: UUID
    units: int
    status: str
    enrolled_at: datetime
    dropped_at: Optional[datetime] = None
    subject: SubjectBrief

    class Config:
        from_attributes = True


class EnrollmentOut(BaseModel):
    id: UUID
    student_id: UUID
    school_year: str
    semester: str
    total_units: int
    payment_plan: str
    status: str
    enrollment_type: str
    created_by: Optional[UUID] = None
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    remarks: Optional[str] = None
    enrolled_at: datetime
    created_at: datetime
    updated_at: datetime
    subjects: List[EnrolledSubjectOut] = []

    class Config:
        from_attributes = True


class EnrollmentSummary(BaseModel):
    """List view without the subject entries"""
    id: UUID
    student_id: UUID
    school_year: str
    semester: str
    total_units: int
    payment_plan: str
    status: str
    enrollment_type: str
    created_at: datetime

    class Config:
        from_attributes = True


class EnrollmentList(BaseModel):
    enrollments: List[EnrollmentSummary]
    total: int
    page: int
    limit: int
    has_next: bool


# Registration card

class CardStudent(BaseModel):
    id: UUID
    student_number: str
    name: str
    email: Optional[str] = None
    program: str
    year_level: str


class CardPeriod(BaseModel):
    school_year: str
    semester: str


class CardSubject(BaseModel):
    code: str
    name: str
    units: int
    instructor_id: Optional[UUID] = None
    room: Optional[str] = None
    schedule: List[ScheduleSlotOut] = []


class RegistrationCard(BaseModel):
    enrollment_id: UUID
    student: CardStudent
    academic_period: CardPeriod
    subjects: List[CardSubject]
    total_units: int
    status: str
    generated_at: datetime
