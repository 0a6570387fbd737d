"""initial schema

Revision ID: ac0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete schema from scratch:
- users, companies, company_users: principals
- subscription_plans, subscriptions: plan capability gating
- notification_events, notification_deliveries: event store + per-recipient fan-out
- inventory_stocks, inventory_destinations, inventory_items, inventory_movements:
  the inventory ledger
- inventory_adjustment_requests: propose -> approve/reject workflow
- session_tokens: hashed bearer sessions
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'ac0001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(*, updated: bool = False):
    cols = [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]
    if updated:
        cols.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                      server_default=sa.text('CURRENT_TIMESTAMP'))
        )
    return cols


def upgrade():
    # ============================================================================
    # Principals
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'companies',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('company_name', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('analyst_id', sa.String(length=36), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(updated=True),
        sa.ForeignKeyConstraint(['analyst_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_companies_analyst_id', 'companies', ['analyst_id'])
    op.create_index('ix_companies_is_active', 'companies', ['is_active'])

    op.create_table(
        'company_users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('company_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_company_users_company_id', 'company_users', ['company_id'])

    # ============================================================================
    # Subscriptions
    # ============================================================================
    op.create_table(
        'subscription_plans',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('permissions', sa.Text(), nullable=True),
        sa.Column('max_users', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('company_id', sa.String(length=36), nullable=False),
        sa.Column('plan_id', sa.String(length=36), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('current_period_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('trial_end', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['plan_id'], ['subscription_plans.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_subscriptions_company_id', 'subscriptions', ['company_id'])
    op.create_index('ix_subscriptions_company_status', 'subscriptions', ['company_id', 'status'])

    # ============================================================================
    # Notifications
    # ============================================================================
    op.create_table(
        'notification_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('company_id', sa.String(length=36), nullable=True),
        sa.Column('analyst_id', sa.String(length=36), nullable=True),
        sa.Column('created_by_type', sa.String(length=16), nullable=False),
        sa.Column('created_by_id', sa.String(length=36), nullable=True),
        sa.Column('category', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('link_url', sa.String(length=1024), nullable=True),
        sa.Column('data', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_notification_events_company_id', 'notification_events', ['company_id'])
    op.create_index('ix_notification_events_analyst_id', 'notification_events', ['analyst_id'])
    op.create_index('ix_notification_events_category', 'notification_events', ['category'])
    op.create_index('ix_notification_events_company_created', 'notification_events', ['company_id', 'created_at'])

    op.create_table(
        'notification_deliveries',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('event_id', sa.String(length=36), nullable=False),
        sa.Column('recipient_type', sa.String(length=16), nullable=False),
        sa.Column('recipient_id', sa.String(length=36), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_archived', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['event_id'], ['notification_events.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('event_id', 'recipient_type', 'recipient_id', name='uq_delivery_event_recipient'),
    )
    op.create_index('ix_notification_deliveries_event_id', 'notification_deliveries', ['event_id'])
    op.create_index('ix_deliveries_recipient_state', 'notification_deliveries',
                    ['recipient_type', 'recipient_id', 'is_archived', 'is_read'])
    op.create_index('ix_deliveries_recipient_created', 'notification_deliveries',
                    ['recipient_type', 'recipient_id', 'created_at'])

    # ============================================================================
    # Inventory ledger
    # ============================================================================
    op.create_table(
        'inventory_stocks',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('company_id', sa.String(length=36), nullable=False),
        sa.Column('analyst_id', sa.String(length=36), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['analyst_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_inventory_stocks_company_id', 'inventory_stocks', ['company_id'])
    op.create_index('ix_inventory_stocks_analyst_id', 'inventory_stocks', ['analyst_id'])
    op.create_index('ix_inventory_stocks_is_active', 'inventory_stocks', ['is_active'])

    op.create_table(
        'inventory_destinations',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('company_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_inventory_destinations_company_id', 'inventory_destinations', ['company_id'])

    op.create_table(
        'inventory_items',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('stock_id', sa.String(length=36), nullable=False),
        sa.Column('item_name', sa.String(length=255), nullable=False),
        sa.Column('unit', sa.String(length=32), nullable=True),
        sa.Column('current_quantity', sa.Numeric(14, 3), nullable=False),
        sa.Column('minimum_quantity', sa.Numeric(14, 3), nullable=False),
        sa.Column('unit_cost', sa.Numeric(14, 2), nullable=True),
        *_timestamps(updated=True),
        sa.CheckConstraint('current_quantity >= 0', name='ck_inventory_items_quantity_non_negative'),
        sa.ForeignKeyConstraint(['stock_id'], ['inventory_stocks.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_inventory_items_stock_id', 'inventory_items', ['stock_id'])
    op.create_index('ix_inventory_items_stock_name', 'inventory_items', ['stock_id', 'item_name'])

    op.create_table(
        'inventory_movements',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('item_id', sa.String(length=36), nullable=False),
        sa.Column('movement_type', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Numeric(14, 3), nullable=False),
        sa.Column('unit_cost', sa.Numeric(14, 2), nullable=True),
        sa.Column('total_cost', sa.Numeric(14, 2), nullable=True),
        sa.Column('from_stock_id', sa.String(length=36), nullable=True),
        sa.Column('to_stock_id', sa.String(length=36), nullable=True),
        sa.Column('destination_id', sa.String(length=36), nullable=True),
        sa.Column('destination_details', sa.Text(), nullable=True),
        sa.Column('movement_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reference_number', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=36), nullable=False),
        sa.Column('is_client', sa.Boolean(), nullable=False),
        sa.Column('adjustment_request_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("quantity > 0 OR (movement_type = 'adjustment' AND quantity >= 0)", name='ck_inventory_movements_quantity_positive'),
        sa.ForeignKeyConstraint(['item_id'], ['inventory_items.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_inventory_movements_item_id', 'inventory_movements', ['item_id'])
    op.create_index('ix_inventory_movements_movement_type', 'inventory_movements', ['movement_type'])
    op.create_index('ix_inventory_movements_adjustment_request_id', 'inventory_movements', ['adjustment_request_id'])
    op.create_index('ix_inventory_movements_item_date', 'inventory_movements', ['item_id', 'movement_date'])

    # ============================================================================
    # Adjustment requests
    # ============================================================================
    op.create_table(
        'inventory_adjustment_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.String(length=36), nullable=False),
        sa.Column('company_id', sa.String(length=36), nullable=False),
        sa.Column('requested_by', sa.String(length=36), nullable=False),
        sa.Column('movement_type', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Numeric(14, 3), nullable=False),
        sa.Column('unit_cost', sa.Numeric(14, 2), nullable=True),
        sa.Column('total_cost', sa.Numeric(14, 2), nullable=True),
        sa.Column('from_stock_id', sa.String(length=36), nullable=True),
        sa.Column('to_stock_id', sa.String(length=36), nullable=True),
        sa.Column('destination_id', sa.String(length=36), nullable=True),
        sa.Column('destination_details', sa.Text(), nullable=True),
        sa.Column('movement_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reference_number', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('approved_by', sa.String(length=36), nullable=True),
        sa.Column('approved_by_type', sa.String(length=16), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('movement_id', sa.String(length=36), nullable=True),
        *_timestamps(updated=True),
        sa.ForeignKeyConstraint(['item_id'], ['inventory_items.id']),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['requested_by'], ['company_users.id']),
        sa.ForeignKeyConstraint(['movement_id'], ['inventory_movements.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_adjustment_requests_item_id', 'inventory_adjustment_requests', ['item_id'])
    op.create_index('ix_inventory_adjustment_requests_company_id', 'inventory_adjustment_requests', ['company_id'])
    op.create_index('ix_inventory_adjustment_requests_requested_by', 'inventory_adjustment_requests', ['requested_by'])
    op.create_index('ix_inventory_adjustment_requests_status', 'inventory_adjustment_requests', ['status'])
    op.create_index('ix_adjustment_requests_company_status', 'inventory_adjustment_requests', ['company_id', 'status'])

    # ============================================================================
    # Sessions
    # ============================================================================
    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('principal_type', sa.String(length=16), nullable=False),
        sa.Column('principal_id', sa.String(length=36), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_principal', 'session_tokens',
                    ['principal_type', 'principal_id', 'is_revoked'])


def downgrade():
    op.drop_table('session_tokens')
    op.drop_table('inventory_adjustment_requests')
    op.drop_table('inventory_movements')
    op.drop_table('inventory_items')
    op.drop_table('inventory_destinations')
    op.drop_table('inventory_stocks')
    op.drop_table('notification_deliveries')
    op.drop_table('notification_events')
    op.drop_table('subscriptions')
    op.drop_table('subscription_plans')
    op.drop_table('company_users')
    op.drop_table('companies')
    op.drop_table('users')
