"""Create payroll engine tables

Revision ID: 20261019_0900
Revises:
Create Date: 2026-10-19 09:00:00.000000

This migration creates the dual-currency payroll schema:
- cost_centers, employees: master data read by the engine
- payrolls, payroll_employees, accounting_periods
- currency_splits, exchange_rates: effective-dated currency configuration
- tax_bands, nec_grades, tax_credits, vehicle_benefit_bands
- transaction_codes, default_transactions, custom_transactions
- center_period_statuses: run/refresh/close state per (period, center)
- payslips, payslip_transactions
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSON, ENUM


# revision identifiers, used by Alembic.
revision = '20261019_0900'
down_revision = None
branch_labels = None
depends_on = None


# Enum types store member names
currency = ENUM('ZWG', 'USD', name='currency', create_type=False)
currency_mode = ENUM('ZWG', 'USD', 'DEFAULT', name='currencymode', create_type=False)
period_type = ENUM('MONTHLY', 'ANNUAL', name='periodtype', create_type=False)
tax_method = ENUM('MONTHLY', 'ANNUALISED', name='taxmethod', create_type=False)
payroll_type = ENUM('PERIOD', 'DAILY', 'HOURLY', name='payrolltype', create_type=False)
code_category = ENUM('EARNING', 'DEDUCTION', 'CONTRIBUTION', name='codecategory', create_type=False)
contribution_type = ENUM('AMOUNT', 'PERCENTAGE', name='contributiontype', create_type=False)
line_item_type = ENUM(
    'EARNING', 'DEDUCTION', 'CONTRIBUTION', 'BENEFIT', 'TAX', 'CREDIT',
    name='lineitemtype', create_type=False,
)
calculation_basis = ENUM('DAYS', 'HOURS', 'AMOUNT', 'PERCENTAGE', name='calculationbasis', create_type=False)
payslip_status = ENUM('DRAFT', 'FINALIZED', 'DISTRIBUTED', 'CANCELLED', name='payslipstatus', create_type=False)

ENUM_TYPES = (
    currency, currency_mode, period_type, tax_method, payroll_type, code_category,
    contribution_type, line_item_type, calculation_basis, payslip_status,
)


def timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def money(name: str, nullable: bool = False, **kwargs) -> sa.Column:
    return sa.Column(name, sa.Numeric(15, 2), nullable=nullable, **kwargs)


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ENUM_TYPES:
        enum_type.create(bind, checkfirst=True)

    # ===========================================
    # MASTER DATA
    # ===========================================
    op.create_table('cost_centers',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('center_code', sa.String(20), nullable=False, unique=True),
        sa.Column('center_name', sa.String(150), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        *timestamps(),
    )

    op.create_table('employees',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('emp_system_id', sa.String(50), nullable=False, unique=True, comment='Staff number shown on payslips'),
        sa.Column('firstname', sa.String(100), nullable=False),
        sa.Column('surname', sa.String(100), nullable=False),
        sa.Column('date_of_birth', sa.Date, nullable=True),
        sa.Column('center_id', UUID(as_uuid=True), sa.ForeignKey('cost_centers.id', ondelete='SET NULL'), nullable=True, index=True),
        money('basic_salary', server_default='0'),
        sa.Column('dependents', sa.Integer, nullable=False, server_default='0'),
        sa.Column('disability_status', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('is_blind', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('vehicle_engine_capacity', sa.Integer, nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('is_ex', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('is_ex_on', sa.Date, nullable=True),
        *timestamps(),
    )

    # ===========================================
    # PAYROLLS AND PERIODS
    # ===========================================
    op.create_table('payrolls',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('payroll_name', sa.String(150), nullable=False),
        sa.Column('payroll_type', payroll_type, nullable=False),
        sa.Column('payroll_period', sa.Integer, nullable=False, server_default='12'),
        sa.Column('tax_method', tax_method, nullable=False),
        sa.Column('payroll_currency', currency, nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        *timestamps(),
    )

    op.create_table('payroll_employees',
        sa.Column('payroll_id', UUID(as_uuid=True), sa.ForeignKey('payrolls.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('employee_id', UUID(as_uuid=True), sa.ForeignKey('employees.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
    )

    op.create_table('accounting_periods',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('payroll_id', UUID(as_uuid=True), sa.ForeignKey('payrolls.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('month_name', sa.String(20), nullable=False),
        sa.Column('month_index', sa.Integer, nullable=False),
        sa.Column('period_year', sa.Integer, nullable=False),
        sa.Column('period_start', sa.Date, nullable=False),
        sa.Column('period_end', sa.Date, nullable=False),
        *timestamps(),
        sa.UniqueConstraint('payroll_id', 'period_year', 'month_index', name='uq_accounting_period_month'),
    )

    # ===========================================
    # CURRENCY CONFIGURATION
    # ===========================================
    op.create_table('currency_splits',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('center_id', UUID(as_uuid=True), sa.ForeignKey('cost_centers.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('zwg_percentage', sa.Numeric(7, 4), nullable=False),
        sa.Column('usd_percentage', sa.Numeric(7, 4), nullable=False),
        sa.Column('effective_date', sa.Date, nullable=False, index=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        *timestamps(),
    )

    op.create_table('exchange_rates',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('from_currency', currency, nullable=False),
        sa.Column('to_currency', currency, nullable=False),
        sa.Column('rate', sa.Numeric(18, 6), nullable=False),
        sa.Column('effective_date', sa.Date, nullable=False, index=True),
        *timestamps(),
        sa.UniqueConstraint('from_currency', 'to_currency', 'effective_date', name='uq_exchange_rate_pair_date'),
    )

    # ===========================================
    # TAX CONFIGURATION
    # ===========================================
    op.create_table('tax_bands',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('currency', currency, nullable=False, index=True),
        sa.Column('period_type', period_type, nullable=False),
        money('min_salary'),
        money('max_salary', nullable=True),
        sa.Column('tax_rate', sa.Numeric(7, 4), nullable=False, comment='Fraction, 0.20 = 20%'),
        money('tax_amount', server_default='0', comment='Cumulative tax of the bands below'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        *timestamps(),
    )

    op.create_table('transaction_codes',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('code_number', sa.String(20), nullable=False, unique=True),
        sa.Column('code_name', sa.String(150), nullable=False),
        sa.Column('code_category', code_category, nullable=False),
        sa.Column('is_benefit', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('apply_to_tax', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('is_tax_deductible', sa.Boolean, nullable=False, server_default=sa.false()),
        money('code_amount', nullable=True),
        sa.Column('code_percentage', sa.Numeric(7, 4), nullable=True),
        money('minimum_threshold', nullable=True),
        money('maximum_threshold', nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        *timestamps(),
    )

    op.create_table('nec_grades',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('grade_name', sa.String(100), nullable=False),
        sa.Column('transaction_code_id', UUID(as_uuid=True), sa.ForeignKey('transaction_codes.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('contribution_type', contribution_type, nullable=False),
        sa.Column('employee_contribution', sa.Numeric(15, 4), nullable=False, server_default='0'),
        sa.Column('employer_contribution', sa.Numeric(15, 4), nullable=False, server_default='0'),
        money('min_threshold', nullable=True),
        money('max_threshold', nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        *timestamps(),
    )

    op.create_table('nec_grade_employees',
        sa.Column('nec_grade_id', UUID(as_uuid=True), sa.ForeignKey('nec_grades.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('employee_id', UUID(as_uuid=True), sa.ForeignKey('employees.id', ondelete='CASCADE'), primary_key=True),
    )

    op.create_table('tax_credits',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('credit_name', sa.String(50), nullable=False),
        money('credit_amount'),
        sa.Column('currency', currency, nullable=False),
        sa.Column('period_type', period_type, nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        *timestamps(),
    )

    op.create_table('vehicle_benefit_bands',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('engine_capacity_min', sa.Integer, nullable=False),
        sa.Column('engine_capacity_max', sa.Integer, nullable=True),
        money('benefit_amount'),
        sa.Column('currency', currency, nullable=False),
        sa.Column('period_type', period_type, nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        *timestamps(),
    )

    # ===========================================
    # TRANSACTIONS
    # ===========================================
    op.create_table('default_transactions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('transaction_code_id', UUID(as_uuid=True), sa.ForeignKey('transaction_codes.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('period_id', UUID(as_uuid=True), sa.ForeignKey('accounting_periods.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('center_id', UUID(as_uuid=True), sa.ForeignKey('cost_centers.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('transaction_currency', currency_mode, nullable=False),
        money('employee_amount', nullable=True),
        money('employer_amount', server_default='0'),
        sa.Column('hours_worked', sa.Numeric(8, 2), nullable=True),
        sa.Column('is_deleted', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *timestamps(),
    )

    op.create_table('custom_transactions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('period_id', UUID(as_uuid=True), sa.ForeignKey('accounting_periods.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('center_id', UUID(as_uuid=True), sa.ForeignKey('cost_centers.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('worked_hours', sa.Numeric(8, 2), nullable=False, server_default='0'),
        sa.Column('base_hours', sa.Numeric(8, 2), nullable=False, server_default='0'),
        money('base_amount', nullable=True),
        sa.Column('use_basic', sa.Boolean, nullable=False, server_default=sa.false()),
        *timestamps(),
    )

    op.create_table('custom_transaction_employees',
        sa.Column('custom_transaction_id', UUID(as_uuid=True), sa.ForeignKey('custom_transactions.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('employee_id', UUID(as_uuid=True), sa.ForeignKey('employees.id', ondelete='CASCADE'), primary_key=True),
    )

    op.create_table('custom_transaction_codes',
        sa.Column('custom_transaction_id', UUID(as_uuid=True), sa.ForeignKey('custom_transactions.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('transaction_code_id', UUID(as_uuid=True), sa.ForeignKey('transaction_codes.id', ondelete='CASCADE'), primary_key=True),
    )

    # ===========================================
    # PROCESSING STATE AND RESULTS
    # ===========================================
    op.create_table('center_period_statuses',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('period_id', UUID(as_uuid=True), sa.ForeignKey('accounting_periods.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('center_id', UUID(as_uuid=True), sa.ForeignKey('cost_centers.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('period_currency', currency_mode, nullable=False),
        sa.Column('period_run_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('pay_run_date', sa.DateTime(timezone=True), nullable=True, comment='Last time payslips were (re)computed'),
        sa.Column('is_closed_confirmed', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('employee_count', sa.Integer, nullable=False, server_default='0'),
        *timestamps(),
        sa.UniqueConstraint('period_id', 'center_id', name='uq_center_period_status'),
    )

    op.create_table('payslips',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('employee_id', UUID(as_uuid=True), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('period_id', UUID(as_uuid=True), sa.ForeignKey('accounting_periods.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('payroll_id', UUID(as_uuid=True), sa.ForeignKey('payrolls.id', ondelete='CASCADE'), nullable=False),
        sa.Column('center_id', UUID(as_uuid=True), sa.ForeignKey('cost_centers.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('payslip_number', sa.String(50), nullable=False),
        sa.Column('status', payslip_status, nullable=False),

        # Currency resolution
        sa.Column('currency_mode', currency_mode, nullable=False),
        sa.Column('base_currency', currency, nullable=False),
        sa.Column('zwg_percentage', sa.Numeric(7, 4), nullable=False),
        sa.Column('usd_percentage', sa.Numeric(7, 4), nullable=False),
        sa.Column('exchange_rate', sa.Numeric(18, 6), nullable=False, server_default='1'),
        money('taxable_income', server_default='0', comment='In base currency'),

        # Totals per currency
        money('gross_zwg', server_default='0'),
        money('gross_usd', server_default='0'),
        money('deductions_zwg', server_default='0'),
        money('deductions_usd', server_default='0'),
        money('paye_zwg', server_default='0'),
        money('paye_usd', server_default='0'),
        money('credits_zwg', server_default='0'),
        money('credits_usd', server_default='0'),
        money('net_zwg', server_default='0'),
        money('net_usd', server_default='0'),

        # Year to date
        money('ytd_gross_zwg', server_default='0'),
        money('ytd_gross_usd', server_default='0'),
        money('ytd_paye_zwg', server_default='0'),
        money('ytd_paye_usd', server_default='0'),

        sa.Column('finalized_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('distributed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        *timestamps(),
        sa.UniqueConstraint('employee_id', 'period_id', name='uq_payslip_employee_period'),
    )

    op.create_table('payslip_transactions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('payslip_id', UUID(as_uuid=True), sa.ForeignKey('payslips.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('transaction_code_id', UUID(as_uuid=True), sa.ForeignKey('transaction_codes.id', ondelete='SET NULL'), nullable=True),
        sa.Column('description', sa.String(200), nullable=False),
        sa.Column('transaction_type', line_item_type, nullable=False),
        sa.Column('currency', currency, nullable=True, comment='Explicit currency tag; NULL when the line follows the split'),
        money('base_amount', server_default='0', comment="Amount in the payslip's base currency before splitting"),
        money('amount_zwg', server_default='0'),
        money('amount_usd', server_default='0'),
        money('employer_amount', server_default='0'),
        sa.Column('is_taxable', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('is_recurring', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('is_manual', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('days', sa.Numeric(8, 2), nullable=True),
        sa.Column('hours', sa.Numeric(8, 2), nullable=True),
        sa.Column('rate', sa.Numeric(15, 4), nullable=True),
        sa.Column('quantity', sa.Numeric(15, 4), nullable=True),
        sa.Column('calculation_basis', calculation_basis, nullable=False),
        sa.Column('is_calculated', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('manual_override', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('calculation_metadata', JSON, nullable=True),
        sa.Column('display_order', sa.Integer, nullable=False, server_default='0'),
        *timestamps(),
    )


def downgrade() -> None:
    op.drop_table('payslip_transactions')
    op.drop_table('payslips')
    op.drop_table('center_period_statuses')
    op.drop_table('custom_transaction_codes')
    op.drop_table('custom_transaction_employees')
    op.drop_table('custom_transactions')
    op.drop_table('default_transactions')
    op.drop_table('vehicle_benefit_bands')
    op.drop_table('tax_credits')
    op.drop_table('nec_grade_employees')
    op.drop_table('nec_grades')
    op.drop_table('transaction_codes')
    op.drop_table('tax_bands')
    op.drop_table('exchange_rates')
    op.drop_table('currency_splits')
    op.drop_table('accounting_periods')
    op.drop_table('payroll_employees')
    op.drop_table('payrolls')
    op.drop_table('employees')
    op.drop_table('cost_centers')

    bind = op.get_bind()
    for enum_type in reversed(ENUM_TYPES):
        enum_type.drop(bind, checkfirst=True)
