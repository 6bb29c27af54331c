# registrar/api/routers/enrollments.py - Enrollment endpoints
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import Dict, Any, List, Optional
from uuid import UUID
import logging

from registrar.core.db import get_db
from registrar.core.terms import current_school_year, current_semester
from registrar.api.deps.auth import get_current_actor, require_admin, is_admin
from registrar.models.enrollment import Enrollment
from registrar.services.enrollment_service import EnrollmentService
from registrar.schemas.enrollment import (
    EnrollmentCreate,
    EnrollmentReject,
    SubjectDrop,
    EnrollmentOut,
    EnrollmentSummary,
    EnrollmentList,
    RegistrationCard,
    Semester,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def ensure_own_student(ctx: Dict[str, Any], service: EnrollmentService, student_id: UUID) -> None:
    """Non-admin actors may only act on the student record linked to their account"""
    if is_admin(ctx):
        return
    student = service.catalog.get_student(student_id)
    if student.user_id != ctx["actor_id"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only access your own enrollments"
        )


def load_owned_enrollment(ctx: Dict[str, Any], service: EnrollmentService, enrollment_id: UUID) -> Enrollment:
    enrollment = service.get_enrollment(enrollment_id)
    ensure_own_student(ctx, service, enrollment.student_id)
    return enrollment


@router.post("/", response_model=EnrollmentOut, status_code=status.HTTP_201_CREATED)
def create_enrollment(
    data: EnrollmentCreate,
    ctx: Dict[str, Any] = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Enroll a student in a term. Admin-created enrollments are approved immediately."""
    service = EnrollmentService(db)
    ensure_own_student(ctx, service, data.student_id)

    enrollment = service.create_enrollment(
        student_id=data.student_id,
        school_year=data.school_year,
        semester=data.semester,
        subjects=[(s.subject_id, s.offering_id) for s in data.subjects],
        payment_plan=data.payment_plan,
        created_by=ctx["actor_id"],
        as_admin=is_admin(ctx),
    )
    return EnrollmentOut.model_validate(enrollment)


@router.get("/", response_model=EnrollmentList)
def list_enrollments(
    school_year: Optional[str] = Query(None),
    semester: Optional[Semester] = Query(None),
    enrollment_status: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    ctx: Dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """List enrollments with optional term and status filters"""
    enrollments, total = EnrollmentService(db).list_enrollments(
        school_year=school_year,
        semester=semester,
        status=enrollment_status.upper() if enrollment_status else None,
        page=page,
        limit=limit,
    )
    return EnrollmentList(
        enrollments=[EnrollmentSummary.model_validate(e) for e in enrollments],
        total=total,
        page=page,
        limit=limit,
        has_next=total > page * limit,
    )


@router.get("/my", response_model=List[EnrollmentOut])
def my_enrollments(
    ctx: Dict[str, Any] = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Enrollments of the student linked to the current account, newest first"""
    service = EnrollmentService(db)
    student = service.catalog.get_student_for_user(ctx["actor_id"])
    return [EnrollmentOut.model_validate(e) for e in service.list_student_enrollments(student.id)]


@router.get("/my/registration-card", response_model=RegistrationCard)
def my_registration_card(
    school_year: Optional[str] = Query(None),
    semester: Optional[Semester] = Query(None),
    ctx: Dict[str, Any] = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Registration card for the current account; defaults to the current term"""
    service = EnrollmentService(db)
    student = service.catalog.get_student_for_user(ctx["actor_id"])
    return service.registration_card_for_student(
        student.id,
        school_year or current_school_year(),
        semester or current_semester(),
    )


@router.get("/student/{student_id}", response_model=List[EnrollmentOut])
def student_enrollments(
    student_id: UUID,
    ctx: Dict[str, Any] = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    service = EnrollmentService(db)
    ensure_own_student(ctx, service, student_id)
    return [EnrollmentOut.model_validate(e) for e in service.list_student_enrollments(student_id)]


@router.get("/{enrollment_id}", response_model=EnrollmentOut)
def get_enrollment(
    enrollment_id: UUID,
    ctx: Dict[str, Any] = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    enrollment = load_owned_enrollment(ctx, EnrollmentService(db), enrollment_id)
    return EnrollmentOut.model_validate(enrollment)


@router.get("/{enrollment_id}/registration-card", response_model=RegistrationCard)
def registration_card(
    enrollment_id: UUID,
    ctx: Dict[str, Any] = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    service = EnrollmentService(db)
    load_owned_enrollment(ctx, service, enrollment_id)
    return service.registration_card(enrollment_id)


@router.post("/{enrollment_id}/approve", response_model=EnrollmentOut)
def approve_enrollment(
    enrollment_id: UUID,
    ctx: Dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Approve a pending enrollment and generate its tuition invoice"""
    enrollment = EnrollmentService(db).approve_enrollment(enrollment_id, approver_id=ctx["actor_id"])
    return EnrollmentOut.model_validate(enrollment)


@router.post("/{enrollment_id}/reject", response_model=EnrollmentOut)
def reject_enrollment(
    enrollment_id: UUID,
    data: EnrollmentReject,
    ctx: Dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Reject a pending enrollment and release its seats"""
    enrollment = EnrollmentService(db).reject_enrollment(
        enrollment_id, reason=data.reason, actor_id=ctx["actor_id"]
    )
    return EnrollmentOut.model_validate(enrollment)


@router.post("/{enrollment_id}/complete", response_model=EnrollmentOut)
def complete_enrollment(
    enrollment_id: UUID,
    ctx: Dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db)
):
    enrollment = EnrollmentService(db).complete_enrollment(enrollment_id, actor_id=ctx["actor_id"])
    return EnrollmentOut.model_validate(enrollment)


@router.post("/{enrollment_id}/drop", response_model=EnrollmentOut)
def drop_subject(
    enrollment_id: UUID,
    data: SubjectDrop,
    ctx: Dict[str, Any] = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Drop one subject; its seat is released and its units removed from the total"""
    service = EnrollmentService(db)
    load_owned_enrollment(ctx, service, enrollment_id)
    enrollment = service.drop_subject(enrollment_id, data.subject_id, actor_id=ctx["actor_id"])
    return EnrollmentOut.model_validate(enrollment)


@router.delete("/{enrollment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_enrollment(
    enrollment_id: UUID,
    ctx: Dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Delete an enrollment; held seats are released and the invoice is kept"""
    EnrollmentService(db).delete_enrollment(enrollment_id)
    logger.info(f"Enrollment {enrollment_id} deleted by {ctx['actor_id']}")
