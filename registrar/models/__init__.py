# registrar/models/__init__.py - Import all models so SQLAlchemy can discover them

from registrar.models.base import Base
from registrar.models.catalog import Subject, Offering, ScheduleSlot, subject_prerequisites
from registrar.models.student import Student, AcademicRecord
from registrar.models.enrollment import Enrollment, EnrolledSubject, EnrollmentStatusEvent
from registrar.models.tuition import TuitionInvoice, InvoiceLine, Installment, Payment

__all__ = [
    "Base",
    "Subject",
    "Offering",
    "ScheduleSlot",
    "subject_prerequisites",
    "Student",
    "AcademicRecord",
    "Enrollment",
    "EnrolledSubject",
    "EnrollmentStatusEvent",
    "TuitionInvoice",
    "InvoiceLine",
    "Installment",
    "Payment",
]
