"""
Alembic migration: Initial brokerage schema.

Creates the master data tables (companies, users, drivers, addresses), the
order and dispatch tables, the charge ledger, sales and purchase invoices,
settlement bundles with their adjustments, and the change log. Enumerations
are stored as short strings holding the member value.

Revision ID: 001
Revises:
Create Date: 2025-03-02 09:12:41.507113
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column(
        'id',
        postgresql.UUID(as_uuid=True),
        nullable=False,
        server_default=sa.text('gen_random_uuid()'),
        comment='Unique identifier for the record',
    )


def _audit_columns() -> list[sa.Column]:
    """Timestamps plus creator/updater id and snapshot."""
    return [
        sa.Column(
            'created_at',
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP'),
            comment='Timestamp when record was created',
        ),
        sa.Column(
            'updated_at',
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP'),
            comment='Timestamp when record was last updated',
        ),
        sa.Column('created_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_by_snapshot', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('updated_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('updated_by_snapshot', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    ]


def _money(name: str, nullable: bool = False, **kwargs) -> sa.Column:
    return sa.Column(name, sa.Numeric(precision=14, scale=2), nullable=nullable, **kwargs)


def _code(name: str, nullable: bool = False, **kwargs) -> sa.Column:
    return sa.Column(name, sa.String(length=32), nullable=nullable, **kwargs)


def _jsonb(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, postgresql.JSONB(astext_type=sa.Text()), nullable=True, **kwargs)


def _bank_columns() -> list[sa.Column]:
    return [
        sa.Column('bank_code', sa.String(length=10), nullable=True),
        sa.Column('bank_account', sa.String(length=50), nullable=True),
        sa.Column('bank_account_holder', sa.String(length=100), nullable=True),
    ]


def _invoice_columns() -> list[sa.Column]:
    return [
        sa.Column('invoice_number', sa.String(length=50), nullable=True),
        _code('status'),
        sa.Column('issue_date', sa.Date(), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        _money('subtotal_amount', server_default=sa.text('0')),
        _money('tax_amount', server_default=sa.text('0')),
        _money('total_amount', server_default=sa.text('0')),
        _jsonb('financial_snapshot', comment='Invoice items frozen at creation'),
        sa.Column('memo', sa.Text(), nullable=True),
    ]


def _adjustment_columns() -> list[sa.Column]:
    return [
        _code('type'),
        _money('amount'),
        _money('tax_amount', server_default=sa.text('0')),
        sa.Column('description', sa.String(length=500), nullable=True),
    ]


def upgrade() -> None:
    """
    Create the brokerage schema.

    Tables are created parent first so that foreign keys resolve.
    """
    # Master data
    op.create_table(
        'companies',
        _id_column(),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('business_number', sa.String(length=20), nullable=False),
        sa.Column('ceo_name', sa.String(length=100), nullable=True),
        _code('type'),
        _code('status', server_default=sa.text("'active'")),
        sa.Column('address_line', sa.String(length=500), nullable=True),
        sa.Column('phone', sa.String(length=30), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('fax', sa.String(length=30), nullable=True),
        *_bank_columns(),
        sa.Column('memo', sa.String(length=1000), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_companies'),
        sa.UniqueConstraint('business_number', name='uq_companies_business_number'),
        comment='Shipper, broker and carrier companies',
    )
    op.create_index('ix_companies_type_status', 'companies', ['type', 'status'])
    op.create_index('ix_companies_name', 'companies', ['name'])

    op.create_table(
        'users',
        _id_column(),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('phone', sa.String(length=30), nullable=True),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=True),
        _code('access_level'),
        _code('status'),
        sa.Column('department', sa.String(length=100), nullable=True),
        sa.Column('position', sa.String(length=100), nullable=True),
        sa.Column('last_login_at', sa.TIMESTAMP(timezone=True), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sa.ForeignKeyConstraint(
            ['company_id'],
            ['companies.id'],
            name='fk_users_company_id',
            ondelete='SET NULL',
        ),
        sa.CheckConstraint('length(email) >= 3', name='ck_users_email_min_length'),
        comment='Platform users',
    )
    op.create_index('ix_users_company_id', 'users', ['company_id'])
    op.create_index('ix_users_company_status', 'users', ['company_id', 'status'])

    op.create_table(
        'drivers',
        _id_column(),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('phone', sa.String(length=30), nullable=False),
        sa.Column('vehicle_number', sa.String(length=20), nullable=False),
        _code('vehicle_type', nullable=True),
        _code('vehicle_weight', nullable=True),
        sa.Column('business_number', sa.String(length=20), nullable=True),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=True),
        _code('affiliation'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        *_bank_columns(),
        sa.Column('memo', sa.String(length=1000), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_drivers'),
        sa.ForeignKeyConstraint(
            ['company_id'],
            ['companies.id'],
            name='fk_drivers_company_id',
            ondelete='SET NULL',
        ),
        comment='Drivers and their vehicles',
    )
    op.create_index('ix_drivers_company_id', 'drivers', ['company_id'])
    op.create_index('ix_drivers_vehicle_number', 'drivers', ['vehicle_number'])
    op.create_index('ix_drivers_phone', 'drivers', ['phone'])

    op.create_table(
        'addresses',
        _id_column(),
        sa.Column('name', sa.String(length=200), nullable=False),
        _code('type', server_default=sa.text("'any'")),
        sa.Column('road_address', sa.String(length=500), nullable=False),
        sa.Column('jibun_address', sa.String(length=500), nullable=True),
        sa.Column('detail_address', sa.String(length=500), nullable=True),
        sa.Column('postal_code', sa.String(length=10), nullable=True),
        sa.Column('contact_name', sa.String(length=100), nullable=True),
        sa.Column('contact_phone', sa.String(length=30), nullable=True),
        _jsonb('extra'),
        sa.Column('memo', sa.String(length=1000), nullable=True),
        sa.Column('is_frequent', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=True),
        *_audit_columns(),
        sa.Column(
            'deleted_at',
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment='Timestamp when record was soft deleted',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_addresses'),
        sa.ForeignKeyConstraint(
            ['company_id'],
            ['companies.id'],
            name='fk_addresses_company_id',
            ondelete='CASCADE',
        ),
        comment='Saved loading and unloading locations',
    )
    op.create_index('ix_addresses_company_id', 'addresses', ['company_id'])
    op.create_index('ix_addresses_company_frequent', 'addresses', ['company_id', 'is_frequent'])

    # Orders and dispatch
    op.create_table(
        'orders',
        _id_column(),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        _jsonb('company_snapshot'),
        sa.Column('contact_user_id', postgresql.UUID(as_uuid=True), nullable=True),
        _jsonb('contact_snapshot'),
        _code('flow_status'),
        sa.Column('cargo_name', sa.String(length=200), nullable=False),
        sa.Column('cargo_weight', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('cargo_unit', sa.String(length=20), nullable=True),
        sa.Column('cargo_quantity', sa.Integer(), nullable=True),
        sa.Column('packaging_type', sa.String(length=50), nullable=True),
        _code('requested_vehicle_type', nullable=True),
        _code('requested_vehicle_weight', nullable=True),
        sa.Column('pickup_address_id', postgresql.UUID(as_uuid=True), nullable=True),
        _jsonb('pickup_address_snapshot'),
        sa.Column('pickup_date', sa.Date(), nullable=True),
        sa.Column('pickup_time', sa.String(length=10), nullable=True),
        sa.Column('delivery_address_id', postgresql.UUID(as_uuid=True), nullable=True),
        _jsonb('delivery_address_snapshot'),
        sa.Column('delivery_date', sa.Date(), nullable=True),
        sa.Column('delivery_time', sa.String(length=10), nullable=True),
        sa.Column('estimated_distance', sa.Numeric(precision=10, scale=2), nullable=True),
        _money('estimated_price_amount', nullable=True),
        _code('price_type', nullable=True),
        _code('tax_type', nullable=True),
        sa.Column('is_canceled', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('memo', sa.Text(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.ForeignKeyConstraint(
            ['company_id'],
            ['companies.id'],
            name='fk_orders_company_id',
            ondelete='RESTRICT',
        ),
        sa.ForeignKeyConstraint(
            ['contact_user_id'],
            ['users.id'],
            name='fk_orders_contact_user_id',
            ondelete='SET NULL',
        ),
        sa.ForeignKeyConstraint(
            ['pickup_address_id'],
            ['addresses.id'],
            name='fk_orders_pickup_address_id',
            ondelete='SET NULL',
        ),
        sa.ForeignKeyConstraint(
            ['delivery_address_id'],
            ['addresses.id'],
            name='fk_orders_delivery_address_id',
            ondelete='SET NULL',
        ),
        sa.CheckConstraint(
            'estimated_price_amount IS NULL OR estimated_price_amount >= 0',
            name='ck_orders_price_non_negative',
        ),
        sa.CheckConstraint(
            'cargo_quantity IS NULL OR cargo_quantity >= 0',
            name='ck_orders_quantity_non_negative',
        ),
        comment='Shipper transport requests',
    )
    op.create_index('ix_orders_company_id', 'orders', ['company_id'])
    op.create_index('ix_orders_flow_status', 'orders', ['flow_status'])
    op.create_index('ix_orders_pickup_date', 'orders', ['pickup_date'])
    op.create_index('ix_orders_delivery_date', 'orders', ['delivery_date'])
    op.create_index('ix_orders_company_pickup', 'orders', ['company_id', 'pickup_date'])
    op.create_index('ix_orders_company_status', 'orders', ['company_id', 'flow_status'])

    op.create_table(
        'order_dispatches',
        _id_column(),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('broker_company_id', postgresql.UUID(as_uuid=True), nullable=False),
        _jsonb('broker_company_snapshot'),
        sa.Column('broker_manager_id', postgresql.UUID(as_uuid=True), nullable=True),
        _jsonb('broker_manager_snapshot'),
        sa.Column('assigned_driver_id', postgresql.UUID(as_uuid=True), nullable=True),
        _jsonb('assigned_driver_snapshot'),
        sa.Column('assigned_driver_phone', sa.String(length=30), nullable=True),
        sa.Column('assigned_vehicle_number', sa.String(length=20), nullable=True),
        _code('assigned_vehicle_type', nullable=True),
        _code('assigned_vehicle_weight', nullable=True),
        _code('assigned_vehicle_connection', nullable=True),
        _money('agreed_freight_cost', nullable=True),
        _code('broker_flow_status'),
        sa.Column(
            'is_closed',
            sa.Boolean(),
            nullable=False,
            server_default=sa.text('false'),
            comment='Settlement lock',
        ),
        sa.Column('broker_memo', sa.Text(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_order_dispatches'),
        sa.UniqueConstraint('order_id', name='uq_order_dispatches_order_id'),
        sa.ForeignKeyConstraint(
            ['order_id'],
            ['orders.id'],
            name='fk_order_dispatches_order_id',
            ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['broker_company_id'],
            ['companies.id'],
            name='fk_order_dispatches_broker_company_id',
            ondelete='RESTRICT',
        ),
        sa.ForeignKeyConstraint(
            ['broker_manager_id'],
            ['users.id'],
            name='fk_order_dispatches_broker_manager_id',
            ondelete='SET NULL',
        ),
        sa.ForeignKeyConstraint(
            ['assigned_driver_id'],
            ['drivers.id'],
            name='fk_order_dispatches_assigned_driver_id',
            ondelete='SET NULL',
        ),
        sa.CheckConstraint(
            'agreed_freight_cost IS NULL OR agreed_freight_cost >= 0',
            name='ck_order_dispatches_cost_non_negative',
        ),
        comment='Broker-side dispatch of orders',
    )
    op.create_index('ix_order_dispatches_broker_company_id', 'order_dispatches', ['broker_company_id'])
    op.create_index('ix_order_dispatches_assigned_driver_id', 'order_dispatches', ['assigned_driver_id'])
    op.create_index('ix_order_dispatches_closed', 'order_dispatches', ['is_closed'])

    # Charge ledger
    op.create_table(
        'charge_groups',
        _id_column(),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('dispatch_id', postgresql.UUID(as_uuid=True), nullable=True),
        _code('stage'),
        _code('reason'),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('is_locked', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_charge_groups'),
        sa.ForeignKeyConstraint(
            ['order_id'],
            ['orders.id'],
            name='fk_charge_groups_order_id',
            ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['dispatch_id'],
            ['order_dispatches.id'],
            name='fk_charge_groups_dispatch_id',
            ondelete='SET NULL',
        ),
        comment='Charge ledger buckets',
    )
    op.create_index('ix_charge_groups_order_id', 'charge_groups', ['order_id'])
    op.create_index('ix_charge_groups_dispatch_id', 'charge_groups', ['dispatch_id'])
    op.create_index('ix_charge_groups_order_stage', 'charge_groups', ['order_id', 'stage'])

    op.create_table(
        'charge_lines',
        _id_column(),
        sa.Column('group_id', postgresql.UUID(as_uuid=True), nullable=False),
        _code('side'),
        _money('amount'),
        sa.Column(
            'tax_rate',
            sa.Numeric(precision=5, scale=2),
            nullable=True,
            comment='Percent, e.g. 10 for 10%',
        ),
        _money('tax_amount', nullable=True),
        sa.Column('memo', sa.String(length=500), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_charge_lines'),
        sa.ForeignKeyConstraint(
            ['group_id'],
            ['charge_groups.id'],
            name='fk_charge_lines_group_id',
            ondelete='CASCADE',
        ),
        comment='Charge ledger entries',
    )
    op.create_index('ix_charge_lines_group_id', 'charge_lines', ['group_id'])
    op.create_index('ix_charge_lines_group_side', 'charge_lines', ['group_id', 'side'])

    # Invoices
    op.create_table(
        'order_sales',
        _id_column(),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        *_invoice_columns(),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_order_sales'),
        sa.ForeignKeyConstraint(
            ['order_id'],
            ['orders.id'],
            name='fk_order_sales_order_id',
            ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['company_id'],
            ['companies.id'],
            name='fk_order_sales_company_id',
            ondelete='RESTRICT',
        ),
        sa.CheckConstraint('subtotal_amount >= 0', name='ck_order_sales_subtotal_non_negative'),
        comment='Sales invoices',
    )
    op.create_index('ix_order_sales_order_id', 'order_sales', ['order_id'])
    op.create_index('ix_order_sales_company_id', 'order_sales', ['company_id'])
    op.create_index('ix_order_sales_company_status', 'order_sales', ['company_id', 'status'])

    op.create_table(
        'order_purchases',
        _id_column(),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('driver_id', postgresql.UUID(as_uuid=True), nullable=True),
        *_invoice_columns(),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_order_purchases'),
        sa.ForeignKeyConstraint(
            ['order_id'],
            ['orders.id'],
            name='fk_order_purchases_order_id',
            ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['company_id'],
            ['companies.id'],
            name='fk_order_purchases_company_id',
            ondelete='RESTRICT',
        ),
        sa.ForeignKeyConstraint(
            ['driver_id'],
            ['drivers.id'],
            name='fk_order_purchases_driver_id',
            ondelete='RESTRICT',
        ),
        sa.CheckConstraint(
            'company_id IS NOT NULL OR driver_id IS NOT NULL',
            name='ck_order_purchases_payee',
        ),
        sa.CheckConstraint(
            'subtotal_amount >= 0',
            name='ck_order_purchases_subtotal_non_negative',
        ),
        comment='Purchase invoices',
    )
    op.create_index('ix_order_purchases_order_id', 'order_purchases', ['order_id'])
    op.create_index('ix_order_purchases_company_id', 'order_purchases', ['company_id'])
    op.create_index('ix_order_purchases_driver_id', 'order_purchases', ['driver_id'])
    op.create_index('ix_order_purchases_company_status', 'order_purchases', ['company_id', 'status'])

    # Settlement bundles
    op.create_table(
        'settlement_bundles',
        _id_column(),
        _code('kind'),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        _jsonb('company_snapshot'),
        sa.Column('manager_id', postgresql.UUID(as_uuid=True), nullable=True),
        _jsonb('manager_snapshot'),
        sa.Column('driver_id', postgresql.UUID(as_uuid=True), nullable=True),
        _jsonb('driver_snapshot'),
        _code('period_type', nullable=True),
        sa.Column('period_from', sa.Date(), nullable=True),
        sa.Column('period_to', sa.Date(), nullable=True),
        _code('payment_method', nullable=True),
        *_bank_columns(),
        sa.Column('settlement_memo', sa.Text(), nullable=True),
        sa.Column('invoice_no', sa.String(length=50), nullable=True),
        sa.Column('invoice_issued_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('deposit_requested_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('deposit_received_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('settlement_confirmed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('settlement_batch_id', sa.String(length=100), nullable=True),
        sa.Column('settled_at', sa.TIMESTAMP(timezone=True), nullable=True),
        _money('total_amount', server_default=sa.text('0')),
        _money('total_tax_amount', server_default=sa.text('0')),
        _money('total_amount_with_tax', server_default=sa.text('0')),
        _code('status', server_default=sa.text("'draft'")),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_settlement_bundles'),
        sa.ForeignKeyConstraint(
            ['company_id'],
            ['companies.id'],
            name='fk_settlement_bundles_company_id',
            ondelete='RESTRICT',
        ),
        sa.ForeignKeyConstraint(
            ['manager_id'],
            ['users.id'],
            name='fk_settlement_bundles_manager_id',
            ondelete='SET NULL',
        ),
        sa.ForeignKeyConstraint(
            ['driver_id'],
            ['drivers.id'],
            name='fk_settlement_bundles_driver_id',
            ondelete='SET NULL',
        ),
        comment='Settlement batches of invoices',
    )
    op.create_index('ix_settlement_bundles_kind', 'settlement_bundles', ['kind'])
    op.create_index('ix_settlement_bundles_company_id', 'settlement_bundles', ['company_id'])
    op.create_index('ix_settlement_bundles_kind_company', 'settlement_bundles', ['kind', 'company_id'])

    op.create_table(
        'bundle_items',
        _id_column(),
        sa.Column('bundle_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_sale_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('order_purchase_id', postgresql.UUID(as_uuid=True), nullable=True),
        _money('base_amount'),
        _money('base_tax_amount', server_default=sa.text('0')),
        sa.Column('memo', sa.String(length=500), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_bundle_items'),
        sa.ForeignKeyConstraint(
            ['bundle_id'],
            ['settlement_bundles.id'],
            name='fk_bundle_items_bundle_id',
            ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['order_sale_id'],
            ['order_sales.id'],
            name='fk_bundle_items_order_sale_id',
            ondelete='RESTRICT',
        ),
        sa.ForeignKeyConstraint(
            ['order_purchase_id'],
            ['order_purchases.id'],
            name='fk_bundle_items_order_purchase_id',
            ondelete='RESTRICT',
        ),
        sa.CheckConstraint(
            '(order_sale_id IS NULL) <> (order_purchase_id IS NULL)',
            name='ck_bundle_items_single_invoice',
        ),
        comment='Invoices included in a bundle',
    )
    op.create_index('ix_bundle_items_bundle_id', 'bundle_items', ['bundle_id'])
    op.create_index('ix_bundle_items_order_sale_id', 'bundle_items', ['order_sale_id'])
    op.create_index('ix_bundle_items_order_purchase_id', 'bundle_items', ['order_purchase_id'])

    op.create_table(
        'bundle_adjustments',
        _id_column(),
        sa.Column('bundle_id', postgresql.UUID(as_uuid=True), nullable=False),
        *_adjustment_columns(),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_bundle_adjustments'),
        sa.ForeignKeyConstraint(
            ['bundle_id'],
            ['settlement_bundles.id'],
            name='fk_bundle_adjustments_bundle_id',
            ondelete='CASCADE',
        ),
        sa.CheckConstraint('amount >= 0', name='ck_bundle_adjustments_amount_non_negative'),
        comment='Bundle-level adjustments',
    )
    op.create_index('ix_bundle_adjustments_bundle_id', 'bundle_adjustments', ['bundle_id'])

    op.create_table(
        'bundle_item_adjustments',
        _id_column(),
        sa.Column('bundle_item_id', postgresql.UUID(as_uuid=True), nullable=False),
        *_adjustment_columns(),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_bundle_item_adjustments'),
        sa.ForeignKeyConstraint(
            ['bundle_item_id'],
            ['bundle_items.id'],
            name='fk_bundle_item_adjustments_bundle_item_id',
            ondelete='CASCADE',
        ),
        sa.CheckConstraint(
            'amount >= 0',
            name='ck_bundle_item_adjustments_amount_non_negative',
        ),
        comment='Item-level adjustments',
    )
    op.create_index(
        'ix_bundle_item_adjustments_bundle_item_id',
        'bundle_item_adjustments',
        ['bundle_item_id'],
    )

    # Audit trail
    op.create_table(
        'change_logs',
        _id_column(),
        _code('entity_type'),
        sa.Column('entity_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('changed_by', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('changed_by_name', sa.String(length=100), nullable=False),
        sa.Column('changed_by_email', sa.String(length=255), nullable=False),
        _code('changed_by_access_level'),
        _code('change_type'),
        _jsonb('old_data'),
        _jsonb('new_data'),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column(
            'changed_at',
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP'),
        ),
        sa.PrimaryKeyConstraint('id', name='pk_change_logs'),
        comment='Audit trail of entity mutations',
    )
    op.create_index(
        'ix_change_logs_entity',
        'change_logs',
        ['entity_type', 'entity_id', 'changed_at'],
    )
    op.create_index('ix_change_logs_changed_by', 'change_logs', ['changed_by'])


def downgrade() -> None:
    """Drop every brokerage table, children first."""
    for table in (
        'change_logs',
        'bundle_item_adjustments',
        'bundle_adjustments',
        'bundle_items',
        'settlement_bundles',
        'order_purchases',
        'order_sales',
        'charge_lines',
        'charge_groups',
        'order_dispatches',
        'orders',
        'addresses',
        'drivers',
        'users',
        'companies',
    ):
        op.drop_table(table)
