"""create registrar schema

Revision ID: 3f2a9c1d7e10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7e10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade():
    # Catalog
    op.create_table(
        'subjects',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('units', sa.Integer(), nullable=False),
        sa.Column('has_lab', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
        sa.CheckConstraint('units >= 1 AND units <= 6', name='ck_subject_units_range'),
    )

    op.create_table(
        'subject_prerequisites',
        sa.Column('subject_id', sa.Uuid(), nullable=False),
        sa.Column('prerequisite_id', sa.Uuid(), nullable=False),
        sa.PrimaryKeyConstraint('subject_id', 'prerequisite_id'),
        sa.ForeignKeyConstraint(['subject_id'], ['subjects.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['prerequisite_id'], ['subjects.id'], ondelete='RESTRICT'),
        sa.CheckConstraint('subject_id <> prerequisite_id', name='ck_subject_prerequisite_not_self'),
    )

    op.create_table(
        'offerings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('subject_id', sa.Uuid(), nullable=False),
        sa.Column('school_year', sa.String(length=16), nullable=False),
        sa.Column('semester', sa.String(length=8), nullable=False),
        sa.Column('instructor_id', sa.Uuid(), nullable=True),
        sa.Column('room', sa.String(length=64), nullable=True),
        sa.Column('capacity', sa.Integer(), nullable=False, server_default='40'),
        sa.Column('occupied', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_open', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['subject_id'], ['subjects.id'], ondelete='CASCADE'),
        sa.CheckConstraint('capacity > 0', name='ck_offering_capacity_positive'),
        sa.CheckConstraint('occupied >= 0 AND occupied <= capacity', name='ck_offering_occupied_range'),
        sa.CheckConstraint("semester IN ('1st','2nd','Summer')", name='ck_offering_semester'),
    )
    op.create_index('ix_offerings_subject_id', 'offerings', ['subject_id'])
    op.create_index('ix_offerings_subject_term', 'offerings', ['subject_id', 'school_year', 'semester'])

    op.create_table(
        'offering_slots',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('offering_id', sa.Uuid(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('day', sa.String(length=16), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['offering_id'], ['offerings.id'], ondelete='CASCADE'),
        sa.CheckConstraint('start_time < end_time', name='ck_offering_slot_time_order'),
        sa.CheckConstraint(
            "day IN ('Monday','Tuesday','Wednesday','Thursday','Friday','Saturday','Sunday')",
            name='ck_offering_slot_day',
        ),
        sa.UniqueConstraint('offering_id', 'position', name='uq_offering_slot_position'),
    )
    op.create_index('ix_offering_slots_offering_id', 'offering_slots', ['offering_id'])

    # Students
    op.create_table(
        'students',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('student_number', sa.String(length=32), nullable=False),
        sa.Column('first_name', sa.String(length=64), nullable=False),
        sa.Column('last_name', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('program', sa.String(length=64), nullable=False),
        sa.Column('year_level', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=True, server_default='ACTIVE'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
        sa.UniqueConstraint('student_number'),
    )

    op.create_table(
        'academic_records',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('student_id', sa.Uuid(), nullable=False),
        sa.Column('subject_id', sa.Uuid(), nullable=False),
        sa.Column('school_year', sa.String(length=16), nullable=False),
        sa.Column('semester', sa.String(length=8), nullable=False),
        sa.Column('grade', sa.Numeric(3, 2), nullable=True),
        sa.Column('remarks', sa.String(length=16), nullable=False, server_default='In Progress'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['subject_id'], ['subjects.id'], ondelete='RESTRICT'),
        sa.CheckConstraint(
            "remarks IN ('Passed','Failed','Dropped','Incomplete','In Progress')",
            name='ck_academic_record_remarks',
        ),
    )
    op.create_index('ix_academic_records_student_subject', 'academic_records', ['student_id', 'subject_id'])

    # Enrollments
    op.create_table(
        'enrollments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('student_id', sa.Uuid(), nullable=False),
        sa.Column('school_year', sa.String(length=16), nullable=False),
        sa.Column('semester', sa.String(length=8), nullable=False),
        sa.Column('total_units', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_plan', sa.String(length=16), nullable=False, server_default='FULL'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('enrollment_type', sa.String(length=8), nullable=False, server_default='SELF'),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('approved_by', sa.Uuid(), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('remarks', sa.String(length=512), nullable=True),
        sa.Column('enrolled_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='RESTRICT'),
        sa.CheckConstraint("status IN ('PENDING','APPROVED','REJECTED','COMPLETED')", name='ck_enrollment_status'),
        sa.CheckConstraint("payment_plan IN ('FULL','INSTALLMENT')", name='ck_enrollment_payment_plan'),
        sa.CheckConstraint("enrollment_type IN ('SELF','ADMIN')", name='ck_enrollment_type'),
        sa.CheckConstraint("semester IN ('1st','2nd','Summer')", name='ck_enrollment_semester'),
        sa.CheckConstraint('total_units >= 0', name='ck_enrollment_total_units'),
    )
    op.create_index('ix_enrollments_student_id', 'enrollments', ['student_id'])
    # One enrollment per student per term
    op.create_index(
        'uq_enrollment_student_term', 'enrollments', ['student_id', 'school_year', 'semester'], unique=True
    )

    op.create_table(
        'enrolled_subjects',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('enrollment_id', sa.Uuid(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('subject_id', sa.Uuid(), nullable=False),
        sa.Column('offering_id', sa.Uuid(), nullable=False),
        sa.Column('units', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ENROLLED'),
        sa.Column('holds_seat', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('enrolled_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('dropped_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['enrollment_id'], ['enrollments.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['subject_id'], ['subjects.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['offering_id'], ['offerings.id'], ondelete='RESTRICT'),
        sa.CheckConstraint("status IN ('ENROLLED','DROPPED','COMPLETED')", name='ck_enrolled_subject_status'),
    )
    op.create_index('ix_enrolled_subjects_enrollment_id', 'enrolled_subjects', ['enrollment_id'])
    op.create_index('ix_enrolled_subjects_offering_id', 'enrolled_subjects', ['offering_id'])
    op.create_index(
        'uq_enrolled_subject_per_enrollment', 'enrolled_subjects', ['enrollment_id', 'subject_id'], unique=True
    )

    op.create_table(
        'enrollment_status_events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('enrollment_id', sa.Uuid(), nullable=False),
        sa.Column('prev_status', sa.String(length=16), nullable=True),
        sa.Column('new_status', sa.String(length=16), nullable=False),
        sa.Column('reason', sa.String(length=512), nullable=True),
        sa.Column('actor_id', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['enrollment_id'], ['enrollments.id'], ondelete='CASCADE'),
        sa.CheckConstraint(
            "new_status IN ('PENDING','APPROVED','REJECTED','COMPLETED','DROPPED')",
            name='ck_enrollment_event_status',
        ),
    )
    op.create_index('ix_enrollment_status_events_enrollment_id', 'enrollment_status_events', ['enrollment_id'])

    # Tuition
    op.create_table(
        'tuition_invoices',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('enrollment_id', sa.Uuid(), nullable=True),
        sa.Column('student_id', sa.Uuid(), nullable=False),
        sa.Column('school_year', sa.String(length=16), nullable=False),
        sa.Column('semester', sa.String(length=8), nullable=False),
        sa.Column('payment_plan', sa.String(length=16), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('discount_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('discount_reason', sa.String(length=256), nullable=True),
        sa.Column('net_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_paid', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='UNPAID'),
        sa.Column('due_date', sa.Date(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['enrollment_id'], ['enrollments.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='RESTRICT'),
        sa.UniqueConstraint('enrollment_id', name='uq_tuition_invoice_enrollment'),
        sa.CheckConstraint("status IN ('UNPAID','PARTIAL','PAID','OVERDUE')", name='ck_tuition_invoice_status'),
        sa.CheckConstraint("payment_plan IN ('FULL','INSTALLMENT')", name='ck_tuition_invoice_payment_plan'),
        sa.CheckConstraint('total_amount >= 0', name='ck_tuition_invoice_total_positive'),
        sa.CheckConstraint('discount_amount >= 0', name='ck_tuition_invoice_discount_positive'),
        sa.CheckConstraint('net_amount >= 0', name='ck_tuition_invoice_net_positive'),
        sa.CheckConstraint('total_paid >= 0', name='ck_tuition_invoice_paid_positive'),
    )
    op.create_index('ix_tuition_invoices_student_id', 'tuition_invoices', ['student_id'])
    op.create_index('ix_tuition_invoices_term', 'tuition_invoices', ['school_year', 'semester'])

    op.create_table(
        'invoice_lines',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('invoice_id', sa.Uuid(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=128), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['invoice_id'], ['tuition_invoices.id'], ondelete='CASCADE'),
        sa.CheckConstraint('amount >= 0', name='ck_invoice_line_amount_positive'),
    )
    op.create_index('ix_invoice_lines_invoice_id', 'invoice_lines', ['invoice_id'])

    op.create_table(
        'installments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('invoice_id', sa.Uuid(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('is_paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('paid_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('paid_date', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['invoice_id'], ['tuition_invoices.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('invoice_id', 'sequence', name='uq_installment_sequence'),
        sa.CheckConstraint('amount >= 0', name='ck_installment_amount_positive'),
        sa.CheckConstraint('paid_amount >= 0 AND paid_amount <= amount', name='ck_installment_paid_range'),
    )
    op.create_index('ix_installments_invoice_id', 'installments', ['invoice_id'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('invoice_id', sa.Uuid(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('method', sa.String(length=16), nullable=False, server_default='CASH'),
        sa.Column('reference', sa.String(length=64), nullable=True),
        sa.Column('remarks', sa.String(length=256), nullable=True),
        sa.Column('recorded_by', sa.Uuid(), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['invoice_id'], ['tuition_invoices.id'], ondelete='CASCADE'),
        sa.CheckConstraint(
            "method IN ('CASH','CREDIT_CARD','DEBIT_CARD','BANK_TRANSFER','CHECK','ONLINE')",
            name='ck_payment_method',
        ),
        sa.CheckConstraint('amount > 0', name='ck_payment_amount_positive'),
    )
    op.create_index('ix_payments_invoice_id', 'payments', ['invoice_id'])


def downgrade():
    op.drop_table('payments')
    op.drop_table('installments')
    op.drop_table('invoice_lines')
    op.drop_table('tuition_invoices')
    op.drop_table('enrollment_status_events')
    op.drop_table('enrolled_subjects')
    op.drop_table('enrollments')
    op.drop_table('academic_records')
    op.drop_table('students')
    op.drop_table('offering_slots')
    op.drop_table('offerings')
    op.drop_table('subject_prerequisites')
    op.drop_table('subjects')
