# registrar/services/tuition_service.py - Tuition invoice construction, payments and adjustments
import logging
import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from dateutil.relativedelta import relativedelta
from sqlalchemy import select, func, update
from sqlalchemy.orm import Session, selectinload

from registrar.core.config import settings
from registrar.core.errors import (
    RegistrarError,
    NotFoundError,
    InvalidAmountError,
    ExceedsBalanceError,
    InvalidStateTransitionError,
)
from registrar.models.base import utcnow
from registrar.models.enrollment import Enrollment, EnrolledSubject, APPROVED, COMPLETED, ENROLLED, FULL_PAYMENT, INSTALLMENT
from registrar.models.tuition import (
    TuitionInvoice, InvoiceLine, Installment, Payment,
    UNPAID, PARTIAL, PAID, OVERDUE, ZERO,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
FULL_PAYMENT_DISCOUNT_REASON = "Full Payment Discount"
INVOICEABLE_STATES = {APPROVED, COMPLETED}

FeeLine = Tuple[str, Decimal]


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def split_installments(net_amount: Decimal, count: int) -> List[Decimal]:
    """
    Split a net amount into ``count`` installments.

    Each installment is the even share rounded down to the cent; the last one
    absorbs the remainder so the parts always sum to the net amount.
    """
    if count < 1:
        raise ValueError("Installment count must be at least 1")
    net_amount = round_money(net_amount)
    share = (net_amount / count).quantize(CENT, rounding=ROUND_DOWN)
    parts = [share] * (count - 1)
    parts.append(net_amount - share * (count - 1))
    return parts


def derive_status(total_paid: Decimal, net_amount: Decimal, due_date: Optional[date], today: date) -> str:
    total_paid = to_decimal(total_paid)
    net_amount = to_decimal(net_amount)

    if total_paid >= net_amount:
        return PAID
    status = UNPAID if total_paid == 0 else PARTIAL
    if due_date is not None and today > due_date:
        return OVERDUE
    return status


@dataclass(frozen=True)
class FeePolicy:
    """Rates used to price an enrollment"""
    per_unit_rate: Decimal = Decimal("500")
    misc_fee: Decimal = Decimal("5000")
    lab_fee_per_subject: Decimal = Decimal("1000")
    full_payment_discount_rate: Decimal = Decimal("0.05")
    installment_count: int = 4
    full_payment_due_days: int = 30

    @classmethod
    def from_settings(cls, config=None) -> "FeePolicy":
        config = config or settings
        return cls(
            per_unit_rate=to_decimal(config.TUITION_PER_UNIT),
            misc_fee=to_decimal(config.MISC_FEE),
            lab_fee_per_subject=to_decimal(config.LAB_FEE_PER_SUBJECT),
            full_payment_discount_rate=to_decimal(config.FULL_PAYMENT_DISCOUNT_RATE),
            installment_count=config.INSTALLMENT_COUNT,
            full_payment_due_days=config.FULL_PAYMENT_DUE_DAYS,
        )


class TuitionService:
    """Service class for tuition billing"""

    def __init__(
        self,
        db: Session,
        policy: Optional[FeePolicy] = None,
        clock: Optional[Callable[[], date]] = None,
    ):
        self.db = db
        self.policy = policy or FeePolicy.from_settings()
        self.clock = clock or date.today

    # ------------------------------------------------------------------
    # Invoice creation
    # ------------------------------------------------------------------

    def create_invoice(
        self,
        enrollment_id: uuid.UUID,
        additional_fees: Optional[Iterable[FeeLine]] = None,
        manual_discount=ZERO,
        discount_reason: Optional[str] = None,
    ) -> TuitionInvoice:
        """
        Create the tuition invoice for an approved enrollment

        Args:
            enrollment_id: Enrollment to bill
            additional_fees: Extra (description, amount) lines
            manual_discount: Discount granted on top of the plan discount
            discount_reason: Reason recorded for the manual discount

        Returns:
            The new invoice, or the existing one if the enrollment is already billed

        Raises:
            NotFoundError: enrollment does not exist
            InvalidStateTransitionError: enrollment is not approved
            InvalidAmountError: discount is negative or exceeds the total
        """
        try:
            enrollment = self.db.execute(
                select(Enrollment)
                .where(Enrollment.id == enrollment_id)
                .options(selectinload(Enrollment.subjects).selectinload(EnrolledSubject.subject))
                .with_for_update(of=Enrollment)
            ).scalar_one_or_none()
            if not enrollment:
                raise NotFoundError("Enrollment not found", enrollment_id=enrollment_id)
            if enrollment.status not in INVOICEABLE_STATES:
                raise InvalidStateTransitionError(
                    "Enrollment must be approved before generating tuition",
                    current=enrollment.status,
                    enrollment_id=enrollment_id,
                )

            invoice = self.ensure_invoice(
                enrollment,
                additional_fees=additional_fees,
                manual_discount=manual_discount,
                discount_reason=discount_reason,
            )
            self.db.commit()
            self.db.refresh(invoice)
            return invoice
        except RegistrarError as e:
            self.db.rollback()
            logger.warning(f"Invoice creation rejected for enrollment {enrollment_id}: {e.message}")
            raise
        except Exception:
            self.db.rollback()
            logger.error(f"Invoice creation failed for enrollment {enrollment_id}", exc_info=True)
            raise

    def ensure_invoice(
        self,
        enrollment: Enrollment,
        additional_fees: Optional[Iterable[FeeLine]] = None,
        manual_discount=ZERO,
        discount_reason: Optional[str] = None,
    ) -> TuitionInvoice:
        """
        Return the enrollment's invoice, building it if it does not exist yet.
        Runs inside the caller's transaction and does not commit.
        """
        existing = self._find_for_enrollment(enrollment.id)
        if existing:
            logger.debug(f"Invoice {existing.id} already exists for enrollment {enrollment.id}")
            return existing

        policy = self.policy
        today = self.clock()

        lines: List[FeeLine] = [
            (
                f"Tuition Fee ({enrollment.total_units} units x {policy.per_unit_rate})",
                round_money(enrollment.total_units * policy.per_unit_rate),
            ),
            ("Miscellaneous Fees", round_money(policy.misc_fee)),
        ]
        lab_subjects = [
            entry for entry in enrollment.subjects
            if entry.status == ENROLLED and entry.subject.has_lab
        ]
        if lab_subjects:
            lines.append((
                f"Laboratory Fees ({len(lab_subjects)} subjects)",
                round_money(len(lab_subjects) * policy.lab_fee_per_subject),
            ))
        for description, amount in additional_fees or []:
            amount = round_money(amount)
            if amount < 0:
                raise InvalidAmountError("Fee amounts cannot be negative", description=description)
            lines.append((description, amount))

        total = sum((amount for _, amount in lines), ZERO)

        manual_discount = round_money(manual_discount or 0)
        if manual_discount < 0:
            raise InvalidAmountError("Discount cannot be negative", discount=manual_discount)
        discount = manual_discount
        reasons = []
        if manual_discount > 0 and discount_reason:
            reasons.append(discount_reason)
        if enrollment.payment_plan == FULL_PAYMENT and policy.full_payment_discount_rate > 0:
            discount += round_money(total * policy.full_payment_discount_rate)
            reasons.append(FULL_PAYMENT_DISCOUNT_REASON)
        if discount > total:
            raise InvalidAmountError(
                "Discount cannot exceed the total amount",
                discount=discount,
                total=total,
            )

        net = total - discount

        invoice = TuitionInvoice(
            enrollment_id=enrollment.id,
            student_id=enrollment.student_id,
            school_year=enrollment.school_year,
            semester=enrollment.semester,
            payment_plan=enrollment.payment_plan,
            total_amount=total,
            discount_amount=discount,
            discount_reason="; ".join(reasons) or None,
            net_amount=net,
            total_paid=ZERO,
        )
        for position, (description, amount) in enumerate(lines, start=1):
            invoice.lines.append(InvoiceLine(position=position, description=description, amount=amount))

        if enrollment.payment_plan == INSTALLMENT:
            for sequence, amount in enumerate(split_installments(net, policy.installment_count), start=1):
                invoice.installments.append(Installment(
                    sequence=sequence,
                    amount=amount,
                    due_date=today + relativedelta(months=sequence),
                    is_paid=False,
                    paid_amount=ZERO,
                ))
            invoice.due_date = invoice.installments[0].due_date
        else:
            invoice.due_date = today + timedelta(days=policy.full_payment_due_days)

        invoice.status = derive_status(ZERO, net, invoice.due_date, today)

        self.db.add(invoice)
        self.db.flush()

        logger.info(
            f"Invoice {invoice.id} created for enrollment {enrollment.id}: "
            f"total={total} discount={discount} net={net} plan={enrollment.payment_plan}"
        )
        return invoice

    # ------------------------------------------------------------------
    # Payments and adjustments
    # ------------------------------------------------------------------

    def add_payment(
        self,
        invoice_id: uuid.UUID,
        amount,
        method: str = "CASH",
        reference: Optional[str] = None,
        remarks: Optional[str] = None,
        recorded_by: Optional[uuid.UUID] = None,
    ) -> TuitionInvoice:
        """
        Record a payment and allocate it across installments in sequence

        Raises:
            InvalidAmountError: amount is not positive
            ExceedsBalanceError: amount is larger than the outstanding balance
        """
        try:
            amount = round_money(amount)
            if amount <= 0:
                raise InvalidAmountError("Payment amount must be greater than 0", amount=amount)

            invoice = self._lock_invoice(invoice_id)
            balance = invoice.balance
            if amount > balance:
                raise ExceedsBalanceError(
                    "Payment amount exceeds remaining balance",
                    amount=amount,
                    balance=balance,
                )

            now = utcnow()
            invoice.payments.append(Payment(
                amount=amount,
                method=method,
                reference=reference,
                remarks=remarks,
                recorded_by=recorded_by,
                paid_at=now,
            ))
            invoice.total_paid = to_decimal(invoice.total_paid) + amount
            self._allocate(invoice.installments, amount, now)
            invoice.status = derive_status(invoice.total_paid, invoice.net_amount, invoice.due_date, self.clock())

            self.db.commit()
            self.db.refresh(invoice)

            logger.info(
                f"Payment of {amount} ({method}) recorded on invoice {invoice.id}: "
                f"paid={invoice.total_paid} balance={invoice.balance} status={invoice.status}"
            )
            return invoice
        except RegistrarError as e:
            self.db.rollback()
            logger.warning(f"Payment rejected on invoice {invoice_id}: {e.message}")
            raise
        except Exception:
            self.db.rollback()
            logger.error(f"Payment failed on invoice {invoice_id}", exc_info=True)
            raise

    def adjust_invoice(
        self,
        invoice_id: uuid.UUID,
        breakdown: Optional[Sequence[FeeLine]] = None,
        discount=None,
        discount_reason: Optional[str] = None,
    ) -> TuitionInvoice:
        """
        Replace the fee lines and/or the discount of an invoice.

        Installments are re-split over the new net amount and what has
        already been paid is applied to them again in sequence order.
        """
        try:
            invoice = self._lock_invoice(invoice_id)

            if breakdown is not None:
                new_lines = []
                for description, amount in breakdown:
                    amount = round_money(amount)
                    if amount < 0:
                        raise InvalidAmountError("Fee amounts cannot be negative", description=description)
                    new_lines.append((description, amount))
                invoice.lines.clear()
                self.db.flush()
                for position, (description, amount) in enumerate(new_lines, start=1):
                    invoice.lines.append(InvoiceLine(position=position, description=description, amount=amount))

            total = sum((to_decimal(line.amount) for line in invoice.lines), ZERO)

            if discount is not None:
                new_discount = round_money(discount)
                if new_discount < 0:
                    raise InvalidAmountError("Discount cannot be negative", discount=new_discount)
                invoice.discount_amount = new_discount
            if discount_reason is not None:
                invoice.discount_reason = discount_reason

            discount_amount = to_decimal(invoice.discount_amount)
            if discount_amount > total:
                raise InvalidAmountError(
                    "Discount cannot exceed the total amount",
                    discount=discount_amount,
                    total=total,
                )

            net = total - discount_amount
            total_paid = to_decimal(invoice.total_paid)
            if net < total_paid:
                raise InvalidAmountError(
                    "Net amount cannot be less than the amount already paid",
                    net_amount=net,
                    total_paid=total_paid,
                )

            invoice.total_amount = total
            invoice.net_amount = net

            if invoice.installments:
                self._resplit(invoice, net, total_paid)

            invoice.status = derive_status(total_paid, net, invoice.due_date, self.clock())

            self.db.commit()
            self.db.refresh(invoice)

            logger.info(f"Invoice {invoice.id} adjusted: total={total} discount={discount_amount} net={net}")
            return invoice
        except RegistrarError as e:
            self.db.rollback()
            logger.warning(f"Adjustment rejected on invoice {invoice_id}: {e.message}")
            raise
        except Exception:
            self.db.rollback()
            logger.error(f"Adjustment failed on invoice {invoice_id}", exc_info=True)
            raise

    def delete_invoice(self, invoice_id: uuid.UUID) -> None:
        try:
            invoice = self.db.get(TuitionInvoice, invoice_id)
            if not invoice:
                raise NotFoundError("Tuition not found", invoice_id=invoice_id)

            self.db.delete(invoice)
            self.db.commit()
        except RegistrarError as e:
            self.db.rollback()
            logger.warning(f"Deletion refused for invoice {invoice_id}: {e.message}")
            raise
        except Exception:
            self.db.rollback()
            logger.error(f"Deletion failed for invoice {invoice_id}", exc_info=True)
            raise

        logger.info(f"Invoice {invoice_id} deleted")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_invoice(self, invoice_id: uuid.UUID) -> TuitionInvoice:
        invoice = self.db.get(TuitionInvoice, invoice_id)
        if not invoice:
            raise NotFoundError("Tuition not found", invoice_id=invoice_id)
        self._refresh_statuses([invoice])
        return invoice

    def get_invoice_for_enrollment(self, enrollment_id: uuid.UUID) -> TuitionInvoice:
        invoice = self._find_for_enrollment(enrollment_id)
        if not invoice:
            raise NotFoundError("Tuition not found for this enrollment", enrollment_id=enrollment_id)
        self._refresh_statuses([invoice])
        return invoice

    def list_student_invoices(self, student_id: uuid.UUID) -> List[TuitionInvoice]:
        invoices = self.db.execute(
            select(TuitionInvoice)
            .where(TuitionInvoice.student_id == student_id)
            .order_by(TuitionInvoice.created_at.desc())
        ).scalars().all()
        self._refresh_statuses(invoices)
        return list(invoices)

    def list_invoices(
        self,
        school_year: Optional[str] = None,
        semester: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[TuitionInvoice], int]:
        """Paginated invoice listing; returns the page and the total match count"""
        self._mark_overdue()

        query = select(TuitionInvoice)
        if school_year:
            query = query.where(TuitionInvoice.school_year == school_year)
        if semester:
            query = query.where(TuitionInvoice.semester == semester)
        if status:
            query = query.where(TuitionInvoice.status == status)

        total = self.db.execute(
            select(func.count()).select_from(query.subquery())
        ).scalar_one()

        offset = (page - 1) * limit
        invoices = self.db.execute(
            query.order_by(TuitionInvoice.created_at.desc()).offset(offset).limit(limit)
        ).scalars().all()
        self._refresh_statuses(invoices)
        return list(invoices), total

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _find_for_enrollment(self, enrollment_id: uuid.UUID) -> Optional[TuitionInvoice]:
        return self.db.execute(
            select(TuitionInvoice).where(TuitionInvoice.enrollment_id == enrollment_id)
        ).scalar_one_or_none()

    def _lock_invoice(self, invoice_id: uuid.UUID) -> TuitionInvoice:
        invoice = self.db.execute(
            select(TuitionInvoice)
            .where(TuitionInvoice.id == invoice_id)
            .options(selectinload(TuitionInvoice.installments), selectinload(TuitionInvoice.lines))
            .with_for_update(of=TuitionInvoice)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if not invoice:
            raise NotFoundError("Tuition not found", invoice_id=invoice_id)
        return invoice

    @staticmethod
    def _allocate(installments: Sequence[Installment], amount: Decimal, paid_at) -> None:
        remaining = amount
        for installment in installments:
            if remaining <= 0:
                break
            if installment.is_paid:
                continue
            applied = min(installment.remaining, remaining)
            installment.paid_amount = to_decimal(installment.paid_amount) + applied
            remaining -= applied
            if installment.paid_amount >= to_decimal(installment.amount):
                installment.is_paid = True
                installment.paid_date = paid_at

    def _resplit(self, invoice: TuitionInvoice, net: Decimal, total_paid: Decimal) -> None:
        installments = list(invoice.installments)
        previous_paid_dates = {inst.sequence: inst.paid_date for inst in installments}

        for installment, amount in zip(installments, split_installments(net, len(installments))):
            installment.amount = amount
            installment.paid_amount = ZERO
            installment.is_paid = False
            installment.paid_date = None

        self._allocate(installments, total_paid, utcnow())

        for installment in installments:
            if installment.is_paid and previous_paid_dates.get(installment.sequence):
                installment.paid_date = previous_paid_dates[installment.sequence]

    def _mark_overdue(self) -> None:
        """Flag every unpaid invoice past its due date so status filters see current values"""
        result = self.db.execute(
            update(TuitionInvoice)
            .where(
                TuitionInvoice.due_date < self.clock(),
                TuitionInvoice.total_paid < TuitionInvoice.net_amount,
                TuitionInvoice.status != OVERDUE,
            )
            .values(status=OVERDUE)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            self.db.commit()
            logger.info(f"{result.rowcount} invoices marked {OVERDUE}")
        else:
            self.db.rollback()

    def _refresh_statuses(self, invoices: Iterable[TuitionInvoice]) -> None:
        today = self.clock()
        changed = False
        for invoice in invoices:
            status = derive_status(invoice.total_paid, invoice.net_amount, invoice.due_date, today)
            if status != invoice.status:
                logger.info(f"Invoice {invoice.id} status {invoice.status} -> {status}")
                invoice.status = status
                changed = True
        if changed:
            self.db.commit()
