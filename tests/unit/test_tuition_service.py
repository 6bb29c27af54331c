"""Unit tests for tuition invoice construction, payments and status derivation."""

import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from registrar.core.errors import (
    ExceedsBalanceError,
    InvalidAmountError,
    InvalidStateTransitionError,
    NotFoundError,
)
from registrar.services.enrollment_service import EnrollmentService
from registrar.services.tuition_service import (
    FeePolicy,
    TuitionService,
    derive_status,
    round_money,
    split_installments,
)

SCHOOL_YEAR = "2024-2025"
SEMESTER = "1st"
D = Decimal


def selections(courses):
    return [(subject.id, offering.id) for subject, offering in courses]


@pytest.fixture
def tuition(db, clock):
    return TuitionService(db, clock=clock)


@pytest.fixture
def enrollments(db, clock, tuition):
    return EnrollmentService(db, tuition=tuition, clock=clock)


@pytest.fixture
def courses(catalog):
    """Five 3-unit courses without labs: 15 units."""
    return catalog.load(5)


@pytest.fixture
def make_enrollment(catalog, enrollments, courses):
    def make(plan="FULL", approve=True, extra=()):
        student = catalog.student()
        enrollment = enrollments.create_enrollment(
            student.id, SCHOOL_YEAR, SEMESTER, selections(list(courses) + list(extra)), plan
        )
        if approve:
            enrollment = enrollments.approve_enrollment(enrollment.id)
        return enrollment
    return make


@pytest.fixture
def installment_invoice(make_enrollment, tuition):
    """Installment-plan invoice with net 11875: 12500 less a 625 scholarship."""
    enrollment = make_enrollment(plan="INSTALLMENT")
    tuition.delete_invoice(tuition.get_invoice_for_enrollment(enrollment.id).id)
    return tuition.create_invoice(enrollment.id, manual_discount=D("625"), discount_reason="Scholarship")


class TestDeriveStatus:
    """Tests for the pure status function."""

    TODAY = date(2024, 9, 15)

    def test_nothing_paid_is_unpaid(self):
        assert derive_status(D("0"), D("100"), date(2024, 10, 1), self.TODAY) == "UNPAID"

    def test_some_paid_is_partial(self):
        assert derive_status(D("40"), D("100"), date(2024, 10, 1), self.TODAY) == "PARTIAL"

    def test_fully_paid_is_paid(self):
        assert derive_status(D("100"), D("100"), date(2024, 10, 1), self.TODAY) == "PAID"

    def test_paid_is_never_overdue(self):
        assert derive_status(D("100"), D("100"), date(2024, 9, 1), self.TODAY) == "PAID"

    @pytest.mark.parametrize("paid", [D("0"), D("40")])
    def test_past_due_is_overdue(self, paid):
        assert derive_status(paid, D("100"), date(2024, 9, 14), self.TODAY) == "OVERDUE"

    def test_due_today_is_not_overdue(self):
        assert derive_status(D("0"), D("100"), self.TODAY, self.TODAY) == "UNPAID"

    def test_zero_net_is_paid(self):
        assert derive_status(D("0"), D("0"), date(2024, 9, 1), self.TODAY) == "PAID"


class TestMoneyHelpers:
    """Tests for rounding and installment splitting."""

    def test_round_money_half_up(self):
        assert round_money(D("10.005")) == D("10.01")
        assert round_money(3) == D("3.00")

    def test_even_split(self):
        assert split_installments(D("11875"), 4) == [D("2968.75")] * 4

    def test_remainder_goes_on_last_installment(self):
        parts = split_installments(D("100.00"), 3)

        assert parts == [D("33.33"), D("33.33"), D("33.34")]
        assert sum(parts) == D("100.00")

    def test_fee_policy_from_settings(self):
        policy = FeePolicy.from_settings()

        assert policy.per_unit_rate == D("500")
        assert policy.installment_count == 4


class TestCreateInvoice:
    """Tests for invoice construction."""

    def test_full_payment_invoice(self, make_enrollment, tuition):
        """15 units x 500 + 5000 misc at 5% discount: 12500 / 625 / 11875, due in 30 days."""
        enrollment = make_enrollment(plan="FULL")

        invoice = tuition.get_invoice_for_enrollment(enrollment.id)

        assert [(l.description, l.amount) for l in invoice.lines] == [
            ("Tuition Fee (15 units x 500)", D("7500.00")),
            ("Miscellaneous Fees", D("5000.00")),
        ]
        assert invoice.total_amount == D("12500.00")
        assert invoice.discount_amount == D("625.00")
        assert invoice.discount_reason == "Full Payment Discount"
        assert invoice.net_amount == D("11875.00")
        assert invoice.due_date == date(2024, 8, 31)
        assert invoice.installments == []
        assert invoice.status == "UNPAID"
        assert invoice.balance == D("11875.00")

    def test_installment_invoice_schedule(self, installment_invoice):
        """Net 11875 splits into 4 x 2968.75 due at +1..+4 months."""
        invoice = installment_invoice

        assert invoice.net_amount == D("11875.00")
        assert [i.amount for i in invoice.installments] == [D("2968.75")] * 4
        assert [i.due_date for i in invoice.installments] == [
            date(2024, 9, 1), date(2024, 10, 1), date(2024, 11, 1), date(2024, 12, 1),
        ]
        assert invoice.due_date == date(2024, 9, 1)
        assert invoice.discount_reason == "Scholarship"

    def test_installment_plan_without_manual_discount(self, make_enrollment, tuition):
        enrollment = make_enrollment(plan="INSTALLMENT")

        invoice = tuition.get_invoice_for_enrollment(enrollment.id)

        assert invoice.discount_amount == D("0.00")
        assert invoice.net_amount == D("12500.00")
        assert sum(i.amount for i in invoice.installments) == invoice.net_amount

    def test_lab_subjects_add_lab_line(self, catalog, make_enrollment, tuition):
        lab = catalog.course(code="CHEM110", has_lab=True, slots=[("Friday", "08:00", "11:00")])

        enrollment = make_enrollment(plan="FULL", extra=[lab])
        invoice = tuition.get_invoice_for_enrollment(enrollment.id)

        assert invoice.lines[-1].description == "Laboratory Fees (1 subjects)"
        assert invoice.lines[-1].amount == D("1000.00")
        assert invoice.total_amount == D("15000.00")

    def test_additional_fees_and_manual_discount(self, make_enrollment, tuition):
        enrollment = make_enrollment(plan="FULL")
        tuition.delete_invoice(tuition.get_invoice_for_enrollment(enrollment.id).id)

        invoice = tuition.create_invoice(
            enrollment.id,
            additional_fees=[("ID Card", D("150"))],
            manual_discount=D("1000"),
            discount_reason="Scholarship",
        )

        assert invoice.total_amount == D("12650.00")
        assert invoice.discount_amount == D("1632.50")
        assert invoice.discount_reason == "Scholarship; Full Payment Discount"
        assert invoice.net_amount == D("11017.50")

    def test_create_is_idempotent(self, make_enrollment, tuition):
        enrollment = make_enrollment(plan="FULL")
        existing = tuition.get_invoice_for_enrollment(enrollment.id)

        again = tuition.create_invoice(enrollment.id)

        assert again.id == existing.id

    def test_pending_enrollment_cannot_be_billed(self, make_enrollment, tuition):
        enrollment = make_enrollment(approve=False)

        with pytest.raises(InvalidStateTransitionError):
            tuition.create_invoice(enrollment.id)

    def test_unknown_enrollment(self, tuition):
        with pytest.raises(NotFoundError):
            tuition.create_invoice(uuid.uuid4())

    def test_discount_above_total_is_invalid(self, make_enrollment, tuition):
        enrollment = make_enrollment(plan="INSTALLMENT")
        tuition.delete_invoice(tuition.get_invoice_for_enrollment(enrollment.id).id)

        with pytest.raises(InvalidAmountError):
            tuition.create_invoice(enrollment.id, manual_discount=D("20000"))

        with pytest.raises(NotFoundError):
            tuition.get_invoice_for_enrollment(enrollment.id)


class TestAddPayment:
    """Tests for payment application."""

    def test_payment_spills_into_next_installment(self, tuition, installment_invoice):
        """3000 pays installment 1 and carries 31.25 into installment 2."""
        invoice = tuition.add_payment(installment_invoice.id, D("3000"), method="CASH")

        first, second, third, _ = invoice.installments
        assert first.is_paid
        assert first.paid_amount == D("2968.75")
        assert first.paid_date is not None
        assert not second.is_paid
        assert second.paid_amount == D("31.25")
        assert third.paid_amount == D("0.00")
        assert invoice.total_paid == D("3000.00")
        assert invoice.balance == D("8875.00")
        assert invoice.status == "PARTIAL"
        assert len(invoice.payments) == 1

    def test_paying_balance_marks_paid(self, tuition, installment_invoice):
        tuition.add_payment(installment_invoice.id, D("3000"))

        invoice = tuition.add_payment(installment_invoice.id, D("8875"), method="BANK_TRANSFER", reference="TX-1")

        assert invoice.status == "PAID"
        assert invoice.balance == D("0.00")
        assert all(i.is_paid for i in invoice.installments)

    def test_full_plan_payment(self, make_enrollment, tuition):
        enrollment = make_enrollment(plan="FULL")
        invoice_id = tuition.get_invoice_for_enrollment(enrollment.id).id

        invoice = tuition.add_payment(invoice_id, D("11875"))

        assert invoice.status == "PAID"
        assert invoice.balance == D("0.00")

    @pytest.mark.parametrize("amount", [D("0"), D("-5"), D("0.001")])
    def test_non_positive_amount_is_invalid(self, tuition, installment_invoice, amount):
        with pytest.raises(InvalidAmountError):
            tuition.add_payment(installment_invoice.id, amount)

    def test_amount_over_balance_is_refused(self, tuition, installment_invoice):
        with pytest.raises(ExceedsBalanceError):
            tuition.add_payment(installment_invoice.id, D("11875.01"))

        invoice = tuition.get_invoice(installment_invoice.id)
        assert invoice.total_paid == D("0.00")
        assert invoice.payments == []
        assert all(i.paid_amount == D("0.00") for i in invoice.installments)

    def test_unknown_invoice(self, tuition):
        with pytest.raises(NotFoundError):
            tuition.add_payment(uuid.uuid4(), D("10"))

    def test_balance_tracks_every_payment(self, tuition, installment_invoice):
        for amount in [D("100"), D("2868.75"), D("0.01"), D("5000")]:
            invoice = tuition.add_payment(installment_invoice.id, amount)
            assert invoice.balance == max(D("0"), invoice.net_amount - invoice.total_paid)
            assert sum(i.paid_amount for i in invoice.installments) == invoice.total_paid


class TestStatusRefresh:
    """Overdue detection on read."""

    def test_invoice_becomes_overdue_after_due_date(self, db, make_enrollment, tuition):
        enrollment = make_enrollment(plan="FULL")
        invoice_id = tuition.get_invoice_for_enrollment(enrollment.id).id

        later = TuitionService(db, clock=lambda: date(2024, 9, 1))
        invoice = later.get_invoice(invoice_id)

        assert invoice.status == "OVERDUE"

    def test_partial_payment_after_due_date_stays_overdue(self, db, make_enrollment):
        enrollment = make_enrollment(plan="FULL")
        late = TuitionService(db, clock=lambda: date(2024, 10, 1))
        invoice_id = late.get_invoice_for_enrollment(enrollment.id).id

        invoice = late.add_payment(invoice_id, D("1000"))

        assert invoice.status == "OVERDUE"


class TestAdjustInvoice:
    """Tests for adjust_invoice."""

    def test_new_breakdown_recomputes_totals(self, tuition, installment_invoice):
        invoice = tuition.adjust_invoice(
            installment_invoice.id,
            breakdown=[("Tuition Fee", D("6000")), ("Miscellaneous Fees", D("4000"))],
            discount=D("0"),
        )

        assert invoice.total_amount == D("10000.00")
        assert invoice.net_amount == D("10000.00")
        assert [i.amount for i in invoice.installments] == [D("2500.00")] * 4
        assert [l.description for l in invoice.lines] == ["Tuition Fee", "Miscellaneous Fees"]

    def test_adjust_reapplies_paid_amount(self, tuition, installment_invoice):
        tuition.add_payment(installment_invoice.id, D("3000"))

        invoice = tuition.adjust_invoice(installment_invoice.id, discount=D("1500"), discount_reason="Honor grant")

        assert invoice.net_amount == D("11000.00")
        assert [i.amount for i in invoice.installments] == [D("2750.00")] * 4
        first, second = invoice.installments[:2]
        assert first.is_paid and first.paid_amount == D("2750.00")
        assert second.paid_amount == D("250.00")
        assert invoice.balance == D("8000.00")

    def test_net_below_paid_is_refused(self, tuition, installment_invoice):
        tuition.add_payment(installment_invoice.id, D("5000"))

        with pytest.raises(InvalidAmountError):
            tuition.adjust_invoice(installment_invoice.id, breakdown=[("Tuition Fee", D("4000"))], discount=D("0"))

        assert tuition.get_invoice(installment_invoice.id).net_amount == D("11875.00")

    def test_discount_above_total_is_refused(self, tuition, installment_invoice):
        with pytest.raises(InvalidAmountError):
            tuition.adjust_invoice(installment_invoice.id, discount=D("99999"))

    def test_new_discount_without_reason_keeps_recorded_reason(self, tuition, installment_invoice):
        invoice = tuition.adjust_invoice(installment_invoice.id, discount=D("1000"))

        assert invoice.discount_amount == D("1000.00")
        assert invoice.discount_reason == "Scholarship"

    def test_new_reason_replaces_recorded_reason(self, tuition, installment_invoice):
        invoice = tuition.adjust_invoice(installment_invoice.id, discount=D("1000"), discount_reason="Honor grant")

        assert invoice.discount_reason == "Honor grant"


class TestQueries:
    """Tests for invoice listings."""

    def test_list_invoices_filters_and_paginates(self, make_enrollment, tuition):
        for plan in ["FULL", "INSTALLMENT", "FULL"]:
            make_enrollment(plan=plan)

        page, total = tuition.list_invoices(school_year=SCHOOL_YEAR, page=1, limit=2)

        assert total == 3
        assert len(page) == 2

    def test_list_student_invoices(self, make_enrollment, tuition):
        enrollment = make_enrollment(plan="FULL")

        invoices = tuition.list_student_invoices(enrollment.student_id)

        assert [i.enrollment_id for i in invoices] == [enrollment.id]

    def test_delete_unknown_invoice(self, tuition):
        with pytest.raises(NotFoundError):
            tuition.delete_invoice(uuid.uuid4())

    def test_status_filter_sees_invoices_that_fell_overdue(self, db, make_enrollment, tuition):
        """An invoice stored UNPAID but past its due date is listed as OVERDUE only."""
        overdue = make_enrollment(plan="FULL")
        settled = make_enrollment(plan="FULL")
        tuition.add_payment(tuition.get_invoice_for_enrollment(settled.id).id, D("11875"))

        later = TuitionService(db, clock=lambda: date(2024, 12, 1))
        overdue_page, overdue_total = later.list_invoices(status="OVERDUE")
        unpaid_page, unpaid_total = later.list_invoices(status="UNPAID")
        paid_page, paid_total = later.list_invoices(status="PAID")

        assert overdue_total == 1
        assert [i.enrollment_id for i in overdue_page] == [overdue.id]
        assert overdue_page[0].status == "OVERDUE"
        assert unpaid_total == 0
        assert unpaid_page == []
        assert [i.enrollment_id for i in paid_page] == [settled.id]

    def test_failed_delete_rolls_back_and_logs(self, db, make_enrollment, tuition, monkeypatch, caplog):
        enrollment = make_enrollment(plan="FULL")
        invoice_id = tuition.get_invoice_for_enrollment(enrollment.id).id

        def failing_commit():
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(db, "commit", failing_commit)
        with pytest.raises(OperationalError):
            tuition.delete_invoice(invoice_id)
        monkeypatch.undo()

        assert f"Deletion failed for invoice {invoice_id}" in caplog.text
        assert tuition.get_invoice(invoice_id).id == invoice_id
