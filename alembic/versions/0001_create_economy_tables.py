"""Create economy tables.

Revision ID: 0001_economy
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from typing import Sequence, Union

# revision identifiers, used by Alembic.
revision: str = '0001_economy'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(*names):
    return [sa.Column(name, sa.DateTime(timezone=True), nullable=False,
                      server_default=sa.text('CURRENT_TIMESTAMP')) for name in names]


def _user_fk(column='user_id'):
    return sa.ForeignKeyConstraint([column], ['users.id'], ondelete='CASCADE')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(64), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('name', sa.String(100), nullable=True),
        sa.Column('role', sa.String(20), nullable=False, server_default='user'),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps('created_at'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    # Credits
    op.create_table(
        'user_credits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_recharged', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_consumed', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps('created_at', 'updated_at'),
        _user_fk(),
        sa.CheckConstraint('balance >= 0', name='ck_user_credits_balance_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id')
    )
    op.create_table(
        'credit_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('transaction_type', sa.String(20), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('balance_before', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('related_id', sa.String(100), nullable=True),
        sa.Column('related_type', sa.String(50), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('idempotency_key', sa.String(100), nullable=True),
        *_timestamps('created_at'),
        _user_fk(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'idempotency_key', name='uq_credit_transactions_idempotency')
    )
    op.create_index('ix_credit_transactions_user_created', 'credit_transactions', ['user_id', 'created_at'])
    op.create_table(
        'credit_redeem_codes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(32), nullable=False),
        sa.Column('credits', sa.Integer(), nullable=False),
        sa.Column('max_uses', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('used_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(64), nullable=True),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_credit_redeem_codes_code'), 'credit_redeem_codes', ['code'], unique=True)
    op.create_table(
        'credit_redeem_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('credits', sa.Integer(), nullable=False),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['code_id'], ['credit_redeem_codes.id'], ondelete='CASCADE'),
        _user_fk(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code_id', 'user_id', name='uq_credit_redeem_history_code_user')
    )

    # Points
    op.create_table(
        'user_points',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_spent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('consecutive_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_check_in_date', sa.Date(), nullable=True),
        *_timestamps('created_at', 'updated_at'),
        _user_fk(),
        sa.CheckConstraint('balance >= 0', name='ck_user_points_balance_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id')
    )
    op.create_table(
        'point_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('transaction_type', sa.String(20), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('source', sa.String(20), nullable=False),
        sa.Column('related_id', sa.String(100), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('idempotency_key', sa.String(100), nullable=True),
        *_timestamps('created_at'),
        _user_fk(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'idempotency_key', name='uq_point_transactions_idempotency')
    )
    op.create_index('ix_point_transactions_user_created', 'point_transactions', ['user_id', 'created_at'])
    op.create_table(
        'user_check_ins',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('check_in_date', sa.Date(), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('consecutive_days', sa.Integer(), nullable=False),
        *_timestamps('created_at'),
        _user_fk(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'check_in_date', name='uq_user_check_ins_user_date')
    )
    op.create_index(op.f('ix_user_check_ins_user_id'), 'user_check_ins', ['user_id'])
    op.create_table(
        'check_in_rules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('consecutive_days', sa.Integer(), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps('created_at'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table(
        'point_exchange_rates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('points_required', sa.Integer(), nullable=False),
        sa.Column('credits_received', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps('created_at'),
        sa.CheckConstraint('points_required > 0', name='ck_point_exchange_rates_points_positive'),
        sa.CheckConstraint('credits_received > 0', name='ck_point_exchange_rates_credits_positive'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table(
        'point_exchange_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('rate_id', sa.Integer(), nullable=True),
        sa.Column('points_spent', sa.Integer(), nullable=False),
        sa.Column('credits_received', sa.Integer(), nullable=False),
        sa.Column('exchange_rate', sa.Numeric(precision=10, scale=2), nullable=False),
        *_timestamps('created_at'),
        _user_fk(),
        sa.ForeignKeyConstraint(['rate_id'], ['point_exchange_rates.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_point_exchange_history_user_id'), 'point_exchange_history', ['user_id'])

    # Generation quota
    op.create_table(
        'generation_rate_limits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('identifier', sa.String(128), nullable=False),
        sa.Column('day', sa.Date(), nullable=False),
        sa.Column('count', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('identifier', 'day', name='uq_generation_rate_limits_identifier_day')
    )

    # VIP
    op.create_table(
        'vip_plans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0.00'),
        sa.Column('original_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('duration_months', sa.Integer(), nullable=False),
        sa.Column('features', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps('created_at'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table(
        'vip_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_no', sa.String(40), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('plan_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('payment_method', sa.String(50), nullable=True),
        sa.Column('user_submitted_transaction_id', sa.String(255), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('auto_renew', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expire_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reviewed_by', sa.String(64), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps('created_at', 'updated_at'),
        _user_fk(),
        sa.ForeignKeyConstraint(['plan_id'], ['vip_plans.id']),
        sa.ForeignKeyConstraint(['reviewed_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_vip_orders_order_no'), 'vip_orders', ['order_no'], unique=True)
    op.create_index(op.f('ix_vip_orders_status'), 'vip_orders', ['status'])
    op.create_index('ix_vip_orders_user_created', 'vip_orders', ['user_id', 'created_at'])
    op.create_table(
        'user_vip_status',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('is_vip', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('vip_expire_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('auto_renew', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('last_renewal_date', sa.DateTime(timezone=True), nullable=True),
        *_timestamps('updated_at'),
        _user_fk(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id')
    )
    op.create_table(
        'vip_redeem_codes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(32), nullable=False),
        sa.Column('code_type', sa.String(20), nullable=False),
        sa.Column('plan_id', sa.Integer(), nullable=True),
        sa.Column('duration_months', sa.Integer(), nullable=True),
        sa.Column('days', sa.Integer(), nullable=True),
        sa.Column('max_uses', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('used_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(64), nullable=True),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['plan_id'], ['vip_plans.id']),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_vip_redeem_codes_code'), 'vip_redeem_codes', ['code'], unique=True)
    op.create_table(
        'vip_redeem_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('months', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('vip_expire_date', sa.DateTime(timezone=True), nullable=False),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['code_id'], ['vip_redeem_codes.id'], ondelete='CASCADE'),
        _user_fk(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code_id', 'user_id', name='uq_vip_redeem_history_code_user')
    )

    # Referral
    op.create_table(
        'referral_codes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('code', sa.String(16), nullable=False),
        sa.Column('total_invites', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('successful_invites', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_rewards', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps('created_at'),
        _user_fk(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id')
    )
    op.create_index(op.f('ix_referral_codes_code'), 'referral_codes', ['code'], unique=True)
    op.create_table(
        'referral_relations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('inviter_id', sa.String(64), nullable=False),
        sa.Column('invitee_id', sa.String(64), nullable=False),
        sa.Column('referral_code', sa.String(16), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        *_timestamps('created_at'),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        _user_fk('inviter_id'),
        _user_fk('invitee_id'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('invitee_id')
    )
    op.create_index('ix_referral_relations_inviter', 'referral_relations', ['inviter_id'])
    op.create_table(
        'referral_rewards',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('relation_id', sa.Integer(), nullable=False),
        sa.Column('reward_type', sa.String(20), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps('created_at'),
        _user_fk(),
        sa.ForeignKeyConstraint(['relation_id'], ['referral_relations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_referral_rewards_user_id'), 'referral_rewards', ['user_id'])
    op.create_table(
        'referral_campaigns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('inviter_reward', sa.Integer(), nullable=False),
        sa.Column('invitee_reward', sa.Integer(), nullable=False),
        sa.Column('requirement_type', sa.String(50), nullable=False, server_default='verified_email'),
        sa.Column('max_invites_per_user', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps('created_at'),
        sa.PrimaryKeyConstraint('id')
    )


def downgrade() -> None:
    op.drop_table('referral_campaigns')
    op.drop_index(op.f('ix_referral_rewards_user_id'), table_name='referral_rewards')
    op.drop_table('referral_rewards')
    op.drop_index('ix_referral_relations_inviter', table_name='referral_relations')
    op.drop_table('referral_relations')
    op.drop_index(op.f('ix_referral_codes_code'), table_name='referral_codes')
    op.drop_table('referral_codes')
    op.drop_table('vip_redeem_history')
    op.drop_index(op.f('ix_vip_redeem_codes_code'), table_name='vip_redeem_codes')
    op.drop_table('vip_redeem_codes')
    op.drop_table('user_vip_status')
    op.drop_index('ix_vip_orders_user_created', table_name='vip_orders')
    op.drop_index(op.f('ix_vip_orders_status'), table_name='vip_orders')
    op.drop_index(op.f('ix_vip_orders_order_no'), table_name='vip_orders')
    op.drop_table('vip_orders')
    op.drop_table('vip_plans')
    op.drop_table('generation_rate_limits')
    op.drop_index(op.f('ix_point_exchange_history_user_id'), table_name='point_exchange_history')
    op.drop_table('point_exchange_history')
    op.drop_table('point_exchange_rates')
    op.drop_table('check_in_rules')
    op.drop_index(op.f('ix_user_check_ins_user_id'), table_name='user_check_ins')
    op.drop_table('user_check_ins')
    op.drop_index('ix_point_transactions_user_created', table_name='point_transactions')
    op.drop_table('point_transactions')
    op.drop_table('user_points')
    op.drop_table('credit_redeem_history')
    op.drop_index(op.f('ix_credit_redeem_codes_code'), table_name='credit_redeem_codes')
    op.drop_table('credit_redeem_codes')
    op.drop_index('ix_credit_transactions_user_created', table_name='credit_transactions')
    op.drop_table('credit_transactions')
    op.drop_table('user_credits')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')
