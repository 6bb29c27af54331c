# registrar/api/routers/tuitions.py - Tuition invoice and payment endpoints
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import Dict, Any, List, Optional
from uuid import UUID
import logging

from registrar.core.db import get_db
from registrar.api.deps.auth import get_current_actor, require_admin, require_accountant, has_any_role, ACCOUNTANT_ROLES
from registrar.services.catalog import CatalogLookup
from registrar.services.tuition_service import TuitionService
from registrar.schemas.tuition import (
    InvoiceCreate,
    InvoiceUpdate,
    PaymentCreate,
    InvoiceOut,
    InvoiceSummary,
    InvoiceList,
)
from registrar.schemas.enrollment import Semester

logger = logging.getLogger(__name__)
router = APIRouter()


def ensure_can_view(ctx: Dict[str, Any], db: Session, student_id: UUID) -> None:
    """Finance staff see every invoice; students only their own"""
    if has_any_role(ctx, ACCOUNTANT_ROLES):
        return
    student = CatalogLookup(db).get_student(student_id)
    if student.user_id != ctx["actor_id"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only access your own tuition records"
        )


@router.post("/", response_model=InvoiceOut, status_code=status.HTTP_201_CREATED)
def create_invoice(
    data: InvoiceCreate,
    ctx: Dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Generate the tuition invoice of an approved enrollment (idempotent)"""
    invoice = TuitionService(db).create_invoice(
        data.enrollment_id,
        additional_fees=[(fee.description, fee.amount) for fee in data.additional_fees],
        manual_discount=data.discount,
        discount_reason=data.discount_reason,
    )
    return InvoiceOut.model_validate(invoice)


@router.get("/", response_model=InvoiceList)
def list_invoices(
    school_year: Optional[str] = Query(None),
    semester: Optional[Semester] = Query(None),
    invoice_status: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    ctx: Dict[str, Any] = Depends(require_accountant),
    db: Session = Depends(get_db)
):
    invoices, total = TuitionService(db).list_invoices(
        school_year=school_year,
        semester=semester,
        status=invoice_status.upper() if invoice_status else None,
        page=page,
        limit=limit,
    )
    return InvoiceList(
        invoices=[InvoiceSummary.model_validate(i) for i in invoices],
        total=total,
        page=page,
        limit=limit,
        has_next=total > page * limit,
    )


@router.get("/enrollment/{enrollment_id}", response_model=InvoiceOut)
def invoice_for_enrollment(
    enrollment_id: UUID,
    ctx: Dict[str, Any] = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    invoice = TuitionService(db).get_invoice_for_enrollment(enrollment_id)
    ensure_can_view(ctx, db, invoice.student_id)
    return InvoiceOut.model_validate(invoice)


@router.get("/student/{student_id}", response_model=List[InvoiceOut])
def student_invoices(
    student_id: UUID,
    ctx: Dict[str, Any] = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Every invoice of a student, newest first"""
    ensure_can_view(ctx, db, student_id)
    return [InvoiceOut.model_validate(i) for i in TuitionService(db).list_student_invoices(student_id)]


@router.get("/{invoice_id}", response_model=InvoiceOut)
def get_invoice(
    invoice_id: UUID,
    ctx: Dict[str, Any] = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    invoice = TuitionService(db).get_invoice(invoice_id)
    ensure_can_view(ctx, db, invoice.student_id)
    return InvoiceOut.model_validate(invoice)


@router.post("/{invoice_id}/payments", response_model=InvoiceOut)
def add_payment(
    invoice_id: UUID,
    data: PaymentCreate,
    ctx: Dict[str, Any] = Depends(require_accountant),
    db: Session = Depends(get_db)
):
    """Record a payment; installments are settled in order"""
    invoice = TuitionService(db).add_payment(
        invoice_id,
        data.amount,
        method=data.method,
        reference=data.reference,
        remarks=data.remarks,
        recorded_by=ctx["actor_id"],
    )
    return InvoiceOut.model_validate(invoice)


@router.put("/{invoice_id}", response_model=InvoiceOut)
def adjust_invoice(
    invoice_id: UUID,
    data: InvoiceUpdate,
    ctx: Dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Replace the fee breakdown and/or discount of an invoice"""
    breakdown = None
    if data.breakdown is not None:
        breakdown = [(line.description, line.amount) for line in data.breakdown]
    invoice = TuitionService(db).adjust_invoice(
        invoice_id,
        breakdown=breakdown,
        discount=data.discount,
        discount_reason=data.discount_reason,
    )
    return InvoiceOut.model_validate(invoice)


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(
    invoice_id: UUID,
    ctx: Dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db)
):
    TuitionService(db).delete_invoice(invoice_id)
    logger.info(f"Invoice {invoice_id} deleted by {ctx['actor_id']}")
