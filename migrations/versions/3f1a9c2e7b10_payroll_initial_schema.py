"""payroll initial schema: roster, salary structures, attendance, rate sets,
loans/advances, pay runs

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2025-11-03 10:15:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2e7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _money(precision=14):
    return sa.Numeric(precision, 2)


def upgrade() -> None:
    op.create_table(
        'employees',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(32), nullable=False, unique=True),
        sa.Column('email', sa.String(255), unique=True),
        sa.Column('first_name', sa.String(80), nullable=False),
        sa.Column('last_name', sa.String(80)),
        sa.Column('department', sa.String(120)),
        sa.Column('designation', sa.String(120)),
        sa.Column('doj', sa.Date()),
        sa.Column('dol', sa.Date()),
        sa.Column('status', sa.String(16), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_emp_status', 'employees', ['status'])

    op.create_table(
        'rate_sets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('label', sa.String(80)),
        sa.Column('effective_from', sa.Date(), nullable=False),
        sa.Column('effective_to', sa.Date()),
        sa.Column('pf_rate', sa.Numeric(6, 3), nullable=False),
        sa.Column('pf_wage_ceiling', _money(), nullable=False),
        sa.Column('esi_rate', sa.Numeric(6, 3), nullable=False),
        sa.Column('esi_employer_rate', sa.Numeric(6, 3), nullable=False),
        sa.Column('esi_wage_ceiling', _money(), nullable=False),
        sa.Column('pt_slabs', sa.JSON(), nullable=False),
        sa.Column('created_by', sa.Integer()),
        sa.Column('created_at', sa.DateTime()),
    )
    op.create_index('ix_rate_sets_window', 'rate_sets', ['effective_from', 'effective_to'])

    op.create_table(
        'salary_structures',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
        sa.Column('effective_from', sa.Date(), nullable=False),
        sa.Column('effective_to', sa.Date()),
        sa.Column('ctc', _money(), nullable=False),
        sa.Column('basic_pct', sa.Numeric(5, 2), nullable=False),
        sa.Column('hra_pct', sa.Numeric(5, 2), nullable=False),
        sa.Column('conveyance', _money(12), nullable=False),
        sa.Column('telephone', _money(12), nullable=False),
        sa.Column('medical', _money(12), nullable=False),
        sa.Column('other_allowances', _money(12), nullable=False),
        sa.Column('includes_pf', sa.Boolean(), nullable=False),
        sa.Column('includes_esi', sa.Boolean(), nullable=False),
        sa.Column('ctc_includes_employer_contributions', sa.Boolean(), nullable=False),
        sa.Column('tds_pct', sa.Numeric(5, 2), nullable=False),
        sa.Column('payment_mode', sa.Enum('bank', 'cash', 'cheque', name='payment_mode_enum'), nullable=False),
        sa.Column('created_by', sa.Integer()),
        sa.Column('created_at', sa.DateTime()),
        sa.UniqueConstraint('employee_id', 'effective_from', name='uq_salary_emp_from'),
    )
    op.create_index('ix_salary_structures_employee_id', 'salary_structures', ['employee_id'])

    op.create_table(
        'attendance_records',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('total_working_days', sa.Integer(), nullable=False),
        sa.Column('present_days', sa.Integer(), nullable=False),
        sa.Column('absent_days', sa.Integer(), nullable=False),
        sa.Column('paid_leave_days', sa.Integer(), nullable=False),
        sa.Column('unpaid_leave_days', sa.Integer(), nullable=False),
        sa.Column('remarks', sa.String(255)),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
        sa.UniqueConstraint('employee_id', 'month', 'year', name='uq_attendance_emp_period'),
    )
    op.create_index('ix_attendance_records_employee_id', 'attendance_records', ['employee_id'])

    op.create_table(
        'pay_runs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('period_key', sa.String(7), unique=True),
        sa.Column('status', sa.Enum('draft', 'approved', 'processed', 'cancelled',
                                    name='payrun_status_enum'), nullable=False),
        sa.Column('rate_set_id', sa.Integer(), sa.ForeignKey('rate_sets.id')),
        sa.Column('employee_count', sa.Integer(), nullable=False),
        sa.Column('total_gross', _money(16), nullable=False),
        sa.Column('total_deductions', _money(16), nullable=False),
        sa.Column('total_net', _money(16), nullable=False),
        sa.Column('exclusions', sa.JSON()),
        sa.Column('created_by', sa.Integer()),
        sa.Column('generated_at', sa.DateTime()),
        sa.Column('approved_at', sa.DateTime()),
        sa.Column('approved_by', sa.Integer()),
        sa.Column('processed_at', sa.DateTime()),
        sa.Column('processed_by', sa.Integer()),
        sa.Column('cancelled_at', sa.DateTime()),
        sa.Column('cancelled_by', sa.Integer()),
    )
    op.create_index('ix_pay_runs_period', 'pay_runs', ['year', 'month'])

    money_cols = [
        'basic', 'hra', 'conveyance', 'telephone', 'medical', 'special_allowance',
        'other_allowances', 'gross', 'lop_amount', 'prorated_gross',
        'pf_employee', 'pf_employer', 'esi_employee', 'esi_employer',
        'professional_tax', 'tds', 'advance_deduction', 'loan_deduction',
        'total_deductions', 'net_pay',
    ]
    op.create_table(
        'pay_run_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('pay_run_id', sa.Integer(), sa.ForeignKey('pay_runs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('employee_id', sa.Integer(), nullable=False),
        sa.Column('salary_structure_id', sa.Integer()),
        sa.Column('employee_code', sa.String(32)),
        sa.Column('employee_name', sa.String(200), nullable=False),
        sa.Column('department', sa.String(120)),
        sa.Column('designation', sa.String(120)),
        sa.Column('payment_mode', sa.String(16)),
        sa.Column('total_working_days', sa.Integer()),
        sa.Column('payable_days', sa.Integer()),
        sa.Column('lop_days', sa.Integer()),
        sa.Column('attendance_defaulted', sa.Boolean()),
        *[sa.Column(c, _money()) for c in money_cols],
        sa.Column('recoveries', sa.JSON()),
        sa.UniqueConstraint('pay_run_id', 'employee_id', name='uq_pay_run_item_emp'),
    )
    op.create_index('ix_pay_run_items_pay_run_id', 'pay_run_items', ['pay_run_id'])
    op.create_index('ix_pay_run_items_employee_id', 'pay_run_items', ['employee_id'])

    op.create_table(
        'loan_records',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
        sa.Column('loan_type', sa.Enum('personal', 'vehicle', 'home', 'education', 'emergency', 'other',
                                       name='loan_type_enum'), nullable=False),
        sa.Column('principal', _money(), nullable=False),
        sa.Column('interest_rate', sa.Numeric(5, 2), nullable=False),
        sa.Column('installment_count', sa.Integer(), nullable=False),
        sa.Column('installment_amount', _money(), nullable=False),
        sa.Column('total_payable', _money(), nullable=False),
        sa.Column('start_month', sa.Integer(), nullable=False),
        sa.Column('start_year', sa.Integer(), nullable=False),
        sa.Column('paid_installments', sa.Integer(), nullable=False),
        sa.Column('remaining_balance', _money(), nullable=False),
        sa.Column('status', sa.Enum('active', 'completed', 'cancelled', name='loan_status_enum'), nullable=False),
        sa.Column('remarks', sa.Text()),
        sa.Column('created_by', sa.Integer()),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
    )
    op.create_index('ix_loan_records_employee_id', 'loan_records', ['employee_id'])
    op.create_index('ix_loan_emp_status', 'loan_records', ['employee_id', 'status'])

    op.create_table(
        'loan_installments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('loan_id', sa.Integer(), sa.ForeignKey('loan_records.id', ondelete='CASCADE'), nullable=False),
        sa.Column('seq', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('amount', _money(), nullable=False),
        sa.Column('status', sa.Enum('pending', 'paid', name='installment_status_enum'), nullable=False),
        sa.Column('paid_at', sa.DateTime()),
        sa.Column('pay_run_id', sa.Integer(), sa.ForeignKey('pay_runs.id')),
        sa.UniqueConstraint('loan_id', 'seq', name='uq_installment_loan_seq'),
    )
    op.create_index('ix_loan_installments_loan_id', 'loan_installments', ['loan_id'])
    op.create_index('ix_installment_period', 'loan_installments', ['year', 'month', 'status'])

    op.create_table(
        'advance_records',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
        sa.Column('amount', _money(), nullable=False),
        sa.Column('paid_month', sa.Integer(), nullable=False),
        sa.Column('paid_year', sa.Integer(), nullable=False),
        sa.Column('recovery_month', sa.Integer(), nullable=False),
        sa.Column('recovery_year', sa.Integer(), nullable=False),
        sa.Column('remaining_amount', _money(), nullable=False),
        sa.Column('status', sa.Enum('pending', 'partial', 'deducted', name='advance_status_enum'), nullable=False),
        sa.Column('remarks', sa.Text()),
        sa.Column('last_pay_run_id', sa.Integer(), sa.ForeignKey('pay_runs.id')),
        sa.Column('created_by', sa.Integer()),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
    )
    op.create_index('ix_advance_records_employee_id', 'advance_records', ['employee_id'])
    op.create_index('ix_advance_recovery', 'advance_records', ['employee_id', 'recovery_year', 'recovery_month'])


def downgrade() -> None:
    for table in ('advance_records', 'loan_installments', 'loan_records', 'pay_run_items',
                  'pay_runs', 'attendance_records', 'salary_structures', 'rate_sets', 'employees'):
        op.drop_table(table)

    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        for enum in ('advance_status_enum', 'installment_status_enum', 'loan_status_enum',
                     'loan_type_enum', 'payrun_status_enum', 'payment_mode_enum'):
            op.execute(f"DROP TYPE IF EXISTS {enum}")
