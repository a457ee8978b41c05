"""Initial schema: trips, programme, conditions, cotations, invoices

Revision ID: 001
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'conditions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('applies_to', sa.String(20), default='all'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        'condition_options',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('condition_id', sa.Integer(), sa.ForeignKey('conditions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('label', sa.String(100), nullable=False),
        sa.Column('sort_order', sa.Integer(), default=0),
    )
    op.create_index('ix_condition_options_condition_id', 'condition_options', ['condition_id'])

    op.create_table(
        'trips',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('reference', sa.String(50)),
        sa.Column('type', sa.String(20), default='custom'),
        sa.Column('status', sa.String(20), default='draft'),
        sa.Column('destination_country', sa.String(2)),
        sa.Column('start_date', sa.Date()),
        sa.Column('duration_days', sa.Integer(), default=1),
        sa.Column('default_currency', sa.String(3), default='EUR'),
        sa.Column('margin_pct', sa.Float(), default=30.0),
        sa.Column('margin_type', sa.String(10), default='margin'),
        sa.Column('vat_pct', sa.Float(), default=0.0),
        sa.Column('vat_calculation_mode', sa.String(20), default='on_margin'),
        sa.Column('primary_commission_pct', sa.Float(), default=0.0),
        sa.Column('primary_commission_label', sa.String(100)),
        sa.Column('secondary_commission_pct', sa.Float()),
        sa.Column('secondary_commission_label', sa.String(100)),
        sa.Column('currency_rates_json', sa.JSON()),
        sa.Column('inclusions', sa.JSON()),
        sa.Column('exclusions', sa.JSON()),
        sa.Column('language', sa.String(5), default='fr'),
        sa.Column('source_trip_id', sa.Integer(), sa.ForeignKey('trips.id', ondelete='SET NULL')),
        sa.Column('notes', sa.Text()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        'trip_days',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('trip_id', sa.Integer(), sa.ForeignKey('trips.id', ondelete='CASCADE'), nullable=False),
        sa.Column('day_number', sa.Integer(), nullable=False, default=1),
        sa.Column('day_number_end', sa.Integer()),
        sa.Column('title', sa.String(200)),
        sa.Column('location', sa.String(200)),
        sa.Column('breakfast_included', sa.Boolean(), default=False),
        sa.Column('lunch_included', sa.Boolean(), default=False),
        sa.Column('dinner_included', sa.Boolean(), default=False),
        sa.Column('sort_order', sa.Integer(), default=0),
    )
    op.create_index('ix_trip_days_trip_id', 'trip_days', ['trip_id'])

    op.create_table(
        'formulas',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('trip_id', sa.Integer(), sa.ForeignKey('trips.id', ondelete='CASCADE'), nullable=False),
        sa.Column('trip_day_id', sa.Integer(), sa.ForeignKey('trip_days.id', ondelete='CASCADE')),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('block_type', sa.String(20), nullable=False, default='text'),
        sa.Column('description_html', sa.Text()),
        sa.Column('condition_id', sa.Integer(), sa.ForeignKey('conditions.id', ondelete='SET NULL')),
        sa.Column('sort_order', sa.Integer(), default=0),
        sa.Column('service_day_start', sa.Integer()),
        sa.Column('service_day_end', sa.Integer()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_formulas_trip_id', 'formulas', ['trip_id'])
    op.create_index('ix_formulas_trip_day_id', 'formulas', ['trip_day_id'])

    op.create_table(
        'items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('formula_id', sa.Integer(), sa.ForeignKey('formulas.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('cost_nature_code', sa.String(3), default='MIS'),
        sa.Column('currency', sa.String(3)),
        sa.Column('unit_cost', sa.Float(), default=0.0),
        sa.Column('quantity', sa.Float(), default=1.0),
        sa.Column('ratio_rule', sa.String(20), default='per_group'),
        sa.Column('ratio_type', sa.String(10), default='set'),
        sa.Column('ratio_per', sa.Integer(), default=1),
        sa.Column('ratio_categories', sa.String(100)),
        sa.Column('payment_flow', sa.String(20)),
        sa.Column('price_includes_vat', sa.Boolean(), default=False),
        sa.Column('condition_option_id', sa.Integer(), sa.ForeignKey('condition_options.id', ondelete='SET NULL')),
        sa.Column('sort_order', sa.Integer(), default=0),
        sa.Column('notes', sa.Text()),
    )
    op.create_index('ix_items_formula_id', 'items', ['formula_id'])

    op.create_table(
        'trip_conditions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('trip_id', sa.Integer(), sa.ForeignKey('trips.id', ondelete='CASCADE'), nullable=False),
        sa.Column('condition_id', sa.Integer(), sa.ForeignKey('conditions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('selected_option_id', sa.Integer(), sa.ForeignKey('condition_options.id', ondelete='SET NULL')),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.UniqueConstraint('trip_id', 'condition_id', name='uix_trip_condition'),
    )
    op.create_index('ix_trip_conditions_trip_id', 'trip_conditions', ['trip_id'])

    op.create_table(
        'trip_cotations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('trip_id', sa.Integer(), sa.ForeignKey('trips.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('mode', sa.String(10), default='range'),
        sa.Column('min_pax', sa.Integer(), default=2),
        sa.Column('max_pax', sa.Integer(), default=10),
        sa.Column('margin_override_pct', sa.Float()),
        sa.Column('pax_configs_json', sa.JSON()),
        sa.Column('condition_selections_json', sa.JSON()),
        sa.Column('results_json', sa.JSON()),
        sa.Column('status', sa.String(20), default='draft'),
        sa.Column('calculated_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_trip_cotations_trip_id', 'trip_cotations', ['trip_id'])

    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('trip_id', sa.Integer(), sa.ForeignKey('trips.id', ondelete='SET NULL')),
        sa.Column('source_invoice_id', sa.Integer(), sa.ForeignKey('invoices.id', ondelete='SET NULL')),
        sa.Column('number', sa.String(30), nullable=False, unique=True),
        sa.Column('type', sa.String(3), nullable=False, default='DEV'),
        sa.Column('status', sa.String(20), nullable=False, default='draft'),
        sa.Column('client_name', sa.String(200)),
        sa.Column('client_email', sa.String(200)),
        sa.Column('currency', sa.String(3), default='EUR'),
        sa.Column('total_ttc', sa.Float(), default=0.0),
        sa.Column('sent_at', sa.DateTime()),
        sa.Column('paid_at', sa.DateTime()),
        sa.Column('paid_amount', sa.Float()),
        sa.Column('payment_method', sa.String(50)),
        sa.Column('payment_ref', sa.String(100)),
        sa.Column('cancelled_at', sa.DateTime()),
        sa.Column('cancel_reason', sa.Text()),
        sa.Column('notes', sa.Text()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_invoices_trip_id', 'invoices', ['trip_id'])

    op.create_table(
        'invoice_lines',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('invoice_id', sa.Integer(), sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('description', sa.String(300), nullable=False),
        sa.Column('details', sa.Text()),
        sa.Column('quantity', sa.Float(), default=1.0),
        sa.Column('unit_price_ttc', sa.Float(), default=0.0),
        sa.Column('total_ttc', sa.Float(), default=0.0),
        sa.Column('line_type', sa.String(20), default='service'),
        sa.Column('sort_order', sa.Integer(), default=0),
    )
    op.create_index('ix_invoice_lines_invoice_id', 'invoice_lines', ['invoice_id'])


def downgrade():
    op.drop_table('invoice_lines')
    op.drop_table('invoices')
    op.drop_table('trip_cotations')
    op.drop_table('trip_conditions')
    op.drop_table('items')
    op.drop_table('formulas')
    op.drop_table('trip_days')
    op.drop_table('trips')
    op.drop_table('condition_options')
    op.drop_table('conditions')
