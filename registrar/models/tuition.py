# registrar/models/tuition.py - Tuition invoices, fee lines, installments and payments
from __future__ import annotations
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from sqlalchemy import (
    String, Integer, Boolean, Numeric, Date, DateTime, ForeignKey, Uuid,
    CheckConstraint, Index, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from registrar.models.base import Base, utcnow

InvoiceStatus = Literal["UNPAID", "PARTIAL", "PAID", "OVERDUE"]
PaymentMethod = Literal["CASH", "CREDIT_CARD", "DEBIT_CARD", "BANK_TRANSFER", "CHECK", "ONLINE"]

UNPAID = "UNPAID"
PARTIAL = "PARTIAL"
PAID = "PAID"
OVERDUE = "OVERDUE"

ZERO = Decimal("0.00")


class TuitionInvoice(Base):
    __tablename__ = "tuition_invoices"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # Nullable so the financial record survives deletion of its enrollment
    enrollment_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("enrollments.id", ondelete="SET NULL"), nullable=True
    )
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("students.id", ondelete="RESTRICT"), nullable=False, index=True)
    school_year: Mapped[str] = mapped_column(String(16), nullable=False)
    semester: Mapped[str] = mapped_column(String(8), nullable=False)
    payment_plan: Mapped[str] = mapped_column(String(16), nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    discount_reason: Mapped[str | None] = mapped_column(String(256))
    net_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    total_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=UNPAID)
    due_date: Mapped[date | None] = mapped_column(Date)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    lines: Mapped[list["InvoiceLine"]] = relationship(
        "InvoiceLine", back_populates="invoice", cascade="all, delete-orphan", order_by="InvoiceLine.position"
    )
    installments: Mapped[list["Installment"]] = relationship(
        "Installment", back_populates="invoice", cascade="all, delete-orphan", order_by="Installment.sequence"
    )
    payments: Mapped[list["Payment"]] = relationship(
        "Payment", back_populates="invoice", cascade="all, delete-orphan", order_by="Payment.paid_at"
    )

    @property
    def balance(self) -> Decimal:
        """Always derived from total paid, never stored."""
        return max(ZERO, Decimal(self.net_amount) - Decimal(self.total_paid))

    __table_args__ = (
        UniqueConstraint("enrollment_id", name="uq_tuition_invoice_enrollment"),
        CheckConstraint("status IN ('UNPAID','PARTIAL','PAID','OVERDUE')", name="ck_tuition_invoice_status"),
        CheckConstraint("payment_plan IN ('FULL','INSTALLMENT')", name="ck_tuition_invoice_payment_plan"),
        CheckConstraint("total_amount >= 0", name="ck_tuition_invoice_total_positive"),
        CheckConstraint("discount_amount >= 0", name="ck_tuition_invoice_discount_positive"),
        CheckConstraint("net_amount >= 0", name="ck_tuition_invoice_net_positive"),
        CheckConstraint("total_paid >= 0", name="ck_tuition_invoice_paid_positive"),
        Index("ix_tuition_invoices_term", "school_year", "semester"),
    )


class InvoiceLine(Base):
    __tablename__ = "invoice_lines"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tuition_invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    invoice: Mapped["TuitionInvoice"] = relationship("TuitionInvoice", back_populates="lines")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_invoice_line_amount_positive"),
    )


class Installment(Base):
    __tablename__ = "installments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tuition_invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    paid_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    invoice: Mapped["TuitionInvoice"] = relationship("TuitionInvoice", back_populates="installments")

    @property
    def remaining(self) -> Decimal:
        return Decimal(self.amount) - Decimal(self.paid_amount)

    __table_args__ = (
        UniqueConstraint("invoice_id", "sequence", name="uq_installment_sequence"),
        CheckConstraint("amount >= 0", name="ck_installment_amount_positive"),
        CheckConstraint("paid_amount >= 0 AND paid_amount <= amount", name="ck_installment_paid_range"),
    )


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tuition_invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    method: Mapped[str] = mapped_column(String(16), nullable=False, default="CASH")
    reference: Mapped[str | None] = mapped_column(String(64))
    remarks: Mapped[str | None] = mapped_column(String(256))
    recorded_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    paid_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    invoice: Mapped["TuitionInvoice"] = relationship("TuitionInvoice", back_populates="payments")

    __table_args__ = (
        CheckConstraint(
            "method IN ('CASH','CREDIT_CARD','DEBIT_CARD','BANK_TRANSFER','CHECK','ONLINE')",
            name="ck_payment_method",
        ),
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
    )
