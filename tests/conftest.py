"""Pytest configuration and shared fixtures.

Settings are read at import time, so the environment is prepared before
anything from ``registrar`` is imported.
"""

import os

os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-registrar-tests-only-0123456789")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import uuid
from collections.abc import Generator
from datetime import date, datetime
from typing import Iterable, Optional, Sequence, Tuple

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from registrar.core.db import register_sqlite_pragmas
from registrar.models import (
    AcademicRecord,
    Base,
    Offering,
    ScheduleSlot,
    Student,
    Subject,
)

SCHOOL_YEAR = "2024-2025"
SEMESTER = "1st"
TODAY = date(2024, 8, 1)

Slot = Tuple[str, str, str]


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory SQLite database with the full schema."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    register_sqlite_pragmas(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def file_session_factory(tmp_path) -> Generator[sessionmaker, None, None]:
    """Sessions on a file-backed SQLite database, for tests that need separate connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'registrar.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    register_sqlite_pragmas(engine)
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False)
    engine.dispose()


@pytest.fixture
def clock():
    """Fixed calendar date used by the services under test."""
    return lambda: TODAY


# =============================================================================
# Catalog Factories
# =============================================================================


def parse_time(value: str):
    return datetime.strptime(value, "%H:%M").time()


class CatalogFactory:
    """Creates committed catalog and student rows for tests."""

    def __init__(self, db: Session):
        self.db = db
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def student(self, user_id: Optional[uuid.UUID] = None, **overrides) -> Student:
        n = self._next()
        student = Student(
            user_id=user_id,
            student_number=overrides.pop("student_number", f"2024-{n:05d}"),
            first_name=overrides.pop("first_name", "Test"),
            last_name=overrides.pop("last_name", f"Student{n}"),
            email=overrides.pop("email", f"student{n}@example.edu"),
            program=overrides.pop("program", "BSCS"),
            year_level=overrides.pop("year_level", "1st Year"),
            **overrides,
        )
        self.db.add(student)
        self.db.commit()
        return student

    def subject(
        self,
        code: Optional[str] = None,
        units: int = 3,
        has_lab: bool = False,
        prerequisites: Iterable[Subject] = (),
    ) -> Subject:
        n = self._next()
        subject = Subject(
            code=code or f"SUBJ{n:03d}",
            name=f"Subject {code or n}",
            units=units,
            has_lab=has_lab,
        )
        subject.prerequisites.extend(prerequisites)
        self.db.add(subject)
        self.db.commit()
        return subject

    def offering(
        self,
        subject: Subject,
        slots: Sequence[Slot] = (("Monday", "09:00", "10:00"),),
        capacity: int = 40,
        is_open: bool = True,
        school_year: str = SCHOOL_YEAR,
        semester: str = SEMESTER,
    ) -> Offering:
        offering = Offering(
            subject_id=subject.id,
            school_year=school_year,
            semester=semester,
            room=f"R-{self._next()}",
            capacity=capacity,
            occupied=0,
            is_open=is_open,
        )
        for position, (day, start, end) in enumerate(slots):
            offering.slots.append(ScheduleSlot(
                position=position,
                day=day,
                start_time=parse_time(start),
                end_time=parse_time(end),
            ))
        self.db.add(offering)
        self.db.commit()
        return offering

    def course(
        self,
        code: Optional[str] = None,
        units: int = 3,
        slots: Sequence[Slot] = (("Monday", "09:00", "10:00"),),
        **kwargs,
    ) -> Tuple[Subject, Offering]:
        has_lab = kwargs.pop("has_lab", False)
        prerequisites = kwargs.pop("prerequisites", ())
        subject = self.subject(code=code, units=units, has_lab=has_lab, prerequisites=prerequisites)
        return subject, self.offering(subject, slots=slots, **kwargs)

    def load(self, count: int, units: int = 3, **kwargs) -> list:
        """``count`` courses with non-overlapping Monday/Wednesday slots."""
        courses = []
        for i in range(count):
            day = "Monday" if i < 6 else "Wednesday"
            hour = 7 + (i % 6) * 2
            slot = (day, f"{hour:02d}:00", f"{hour + 1:02d}:30")
            courses.append(self.course(units=units, slots=[slot], **kwargs))
        return courses

    def passed(self, student: Student, subject: Subject, remarks: str = "Passed") -> AcademicRecord:
        record = AcademicRecord(
            student_id=student.id,
            subject_id=subject.id,
            school_year="2023-2024",
            semester="2nd",
            remarks=remarks,
        )
        self.db.add(record)
        self.db.commit()
        return record


@pytest.fixture
def catalog(db: Session) -> CatalogFactory:
    return CatalogFactory(db)


@pytest.fixture
def file_db(file_session_factory: sessionmaker) -> Generator[Session, None, None]:
    session = file_session_factory()
    yield session
    session.close()


@pytest.fixture
def file_catalog(file_db: Session) -> CatalogFactory:
    return CatalogFactory(file_db)


@pytest.fixture
def seats(db: Session):
    """Read an offering's occupied count straight from the database."""
    def occupied(offering_id: uuid.UUID) -> int:
        return db.execute(select(Offering.occupied).where(Offering.id == offering_id)).scalar_one()
    return occupied


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an API-level test")
