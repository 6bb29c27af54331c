# registrar/schemas/tuition.py - Tuition invoice and payment schemas
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Literal
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from uuid import UUID

PaymentMethod = Literal["CASH", "CREDIT_CARD", "DEBIT_CARD", "BANK_TRANSFER", "CHECK", "ONLINE"]


def _to_cents(v: Decimal) -> Decimal:
    return v.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class FeeLineIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=128)
    amount: Decimal = Field(..., ge=0)

    @field_validator('description')
    @classmethod
    def validate_description(cls, v: str) -> str:
        """Ensure description is not just whitespace"""
        if not v.strip():
            raise ValueError('Description cannot be empty or whitespace')
        return v.strip()

    @field_validator('amount')
    @classmethod
    def round_amount(cls, v: Decimal) -> Decimal:
        return _to_cents(v)


class InvoiceCreate(BaseModel):
    enrollment_id: UUID
    additional_fees: List[FeeLineIn] = []
    discount: Decimal = Field(Decimal("0.00"), ge=0)
    discount_reason: Optional[str] = Field(None, max_length=256)


class InvoiceUpdate(BaseModel):
    breakdown: Optional[List[FeeLineIn]] = None
    discount: Optional[Decimal] = Field(None, ge=0)
    discount_reason: Optional[str] = Field(None, max_length=256)


class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    method: PaymentMethod = "CASH"
    reference: Optional[str] = Field(None, max_length=64)
    remarks: Optional[str] = Field(None, max_length=256)

    @field_validator('amount')
    @classmethod
    def round_amount(cls, v: Decimal) -> Decimal:
        """Amounts are kept to the cent"""
        v = _to_cents(v)
        if v <= 0:
            raise ValueError('Amount must be at least 0.01')
        return v


class InvoiceLineOut(BaseModel):
    position: int
    description: str
    amount: Decimal

    class Config:
        from_attributes = True


class InstallmentOut(BaseModel):
    sequence: int
    amount: Decimal
    due_date: date
    is_paid: bool
    paid_amount: Decimal
    paid_date: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaymentOut(BaseModel):
    id: UUID
    amount: Decimal
    method: str
    reference: Optional[str] = None
    remarks: Optional[str] = None
    recorded_by: Optional[UUID] = None
    paid_at: datetime

    class Config:
        from_attributes = True


class InvoiceOut(BaseModel):
    id: UUID
    enrollment_id: Optional[UUID] = None
    student_id: UUID
    school_year: str
    semester: str
    payment_plan: str
    total_amount: Decimal
    discount_amount: Decimal
    discount_reason: Optional[str] = None
    net_amount: Decimal
    total_paid: Decimal
    balance: Decimal
    status: str
    due_date: Optional[date] = None
    created_at: datetime
    updated_at: datetime
    lines: List[InvoiceLineOut] = []
    installments: List[InstallmentOut] = []
    payments: List[PaymentOut] = []

    class Config:
        from_attributes = True


class InvoiceSummary(BaseModel):
    id: UUID
    enrollment_id: Optional[UUID] = None
    student_id: UUID
    school_year: str
    semester: str
    payment_plan: str
    net_amount: Decimal
    total_paid: Decimal
    balance: Decimal
    status: str
    due_date: Optional[date] = None

    class Config:
        from_attributes = True


class InvoiceList(BaseModel):
    invoices: List[InvoiceSummary]
    total: int
    page: int
    limit: int
    has_next: bool
