"""create_marketplace_tables

Revision ID: 3c1f5a9e2b47
Revises:
Create Date: 2026-09-14 09:30:12.418230

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3c1f5a9e2b47'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(*, updated: bool = True) -> list:
    cols = [sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False)]
    if updated:
        cols.append(sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False))
    return cols


def upgrade() -> None:
    # 供应商与服务（目录模块维护，这里只建订单/结算依赖的列）
    op.create_table(
        'vendors',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False, comment='供应商账号用户ID'),
        sa.Column('company_name', sa.String(length=200), nullable=False, comment='公司名称'),
        sa.Column('email', sa.String(length=255), nullable=True, comment='联系邮箱'),
        sa.Column('approval_status', sa.String(length=20), nullable=False, server_default='pending', comment='审核状态: pending/approved/rejected'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true(), comment='是否启用'),
        sa.Column('total_revenue', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0', comment='累计收入'),
        sa.Column('commission', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0', comment='累计平台佣金'),
        sa.Column('total_orders', sa.Integer(), nullable=False, server_default='0', comment='订单数'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_vendors_id', 'vendors', ['id'])
    op.create_index('ix_vendors_user_id', 'vendors', ['user_id'], unique=True)
    op.create_index('ix_vendors_approval_status', 'vendors', ['approval_status'])

    op.create_table(
        'services',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('vendor_id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True, comment='分类ID'),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('price', sa.Numeric(precision=15, scale=2), nullable=False, comment='价格'),
        sa.Column('discount', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0', comment='折扣百分比'),
        sa.Column('duration', sa.Integer(), nullable=False, server_default='60', comment='时长（分钟）'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['vendor_id'], ['vendors.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_services_id', 'services', ['id'])
    op.create_index('ix_services_vendor_id', 'services', ['vendor_id'])
    op.create_index('ix_services_category_id', 'services', ['category_id'])

    op.create_table(
        'coupons',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('code', sa.String(length=50), nullable=False, comment='券码（大写）'),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', sa.String(length=20), nullable=False, comment='percentage/fixed/free_delivery'),
        sa.Column('value', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('min_order_amount', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0'),
        sa.Column('max_discount_amount', sa.Numeric(precision=15, scale=2), nullable=True, comment='最大抵扣额'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('usage_limit', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('user_usage_limit', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('applicable_for', sa.String(length=30), nullable=False, server_default='all'),
        sa.Column('applicable_users', sa.JSON(), nullable=True),
        sa.Column('applicable_categories', sa.JSON(), nullable=True),
        sa.Column('applicable_services', sa.JSON(), nullable=True),
        sa.Column('applicable_vendors', sa.JSON(), nullable=True),
        sa.Column('is_first_order_only', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_coupons_id', 'coupons', ['id'])
    op.create_index('ix_coupons_code', 'coupons', ['code'], unique=True)
    op.create_index('ix_coupons_status', 'coupons', ['status'])

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_number', sa.String(length=40), nullable=False, comment='订单号'),
        sa.Column('user_id', sa.Integer(), nullable=False, comment='下单用户ID'),
        sa.Column('vendor_id', sa.Integer(), nullable=False, comment='供应商ID'),
        sa.Column('service_id', sa.Integer(), nullable=False, comment='服务ID'),
        sa.Column('service_name', sa.String(length=200), nullable=False, comment='服务名称快照'),
        sa.Column('category_id', sa.Integer(), nullable=True, comment='分类ID快照'),
        sa.Column('duration', sa.Integer(), nullable=False, server_default='60', comment='时长（分钟）'),
        sa.Column('customer_name', sa.String(length=200), nullable=False),
        sa.Column('customer_email', sa.String(length=255), nullable=False),
        sa.Column('customer_phone', sa.String(length=50), nullable=False),
        sa.Column('address', sa.JSON(), nullable=True, comment='服务地址'),
        sa.Column('scheduled_date', sa.Date(), nullable=False),
        sa.Column('scheduled_time', sa.String(length=10), nullable=False),
        sa.Column('rescheduled_from_date', sa.Date(), nullable=True, comment='上一次排期（单槽历史）'),
        sa.Column('rescheduled_from_time', sa.String(length=10), nullable=True),
        sa.Column('rescheduled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rescheduled_by', sa.String(length=20), nullable=True),
        sa.Column('service_price', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('discount', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0', comment='服务折扣百分比'),
        sa.Column('discount_amount', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0'),
        sa.Column('subtotal', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('tax', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0'),
        sa.Column('platform_fee', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('coupon_code', sa.String(length=50), nullable=True),
        sa.Column('coupon_id', sa.Integer(), nullable=True),
        sa.Column('coupon_discount', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending', comment='订单状态: pending/accepted/rejected/in_progress/completed/cancelled'),
        sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='pending', comment='支付状态: pending/paid/failed/refunded'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('special_requirements', sa.Text(), nullable=True),
        sa.Column('vendor_notes', sa.Text(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('cancelled_by', sa.String(length=20), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0', comment='乐观并发版本号'),
        sa.ForeignKeyConstraint(['vendor_id'], ['vendors.id']),
        sa.ForeignKeyConstraint(['service_id'], ['services.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_orders_id', 'orders', ['id'])
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_vendor_id', 'orders', ['vendor_id'])
    op.create_index('ix_orders_service_id', 'orders', ['service_id'])
    op.create_index('ix_orders_scheduled_date', 'orders', ['scheduled_date'])
    op.create_index('ix_orders_coupon_code', 'orders', ['coupon_code'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_payment_status', 'orders', ['payment_status'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])
    op.create_index('ix_orders_user_status', 'orders', ['user_id', 'status'])
    op.create_index('ix_orders_vendor_status', 'orders', ['vendor_id', 'status'])
    op.create_index('ix_orders_user_coupon', 'orders', ['user_id', 'coupon_code'])

    op.create_table(
        'payouts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('payout_number', sa.String(length=40), nullable=False, comment='结算单号'),
        sa.Column('vendor_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False, comment='结算金额'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending', comment='pending/processing/completed/failed/cancelled'),
        sa.Column('payment_method', sa.String(length=30), nullable=False, comment='bank_transfer/mobile_banking/paypal/stripe'),
        sa.Column('bank_details', sa.JSON(), nullable=True),
        sa.Column('mobile_banking_details', sa.JSON(), nullable=True),
        sa.Column('transaction_ids', sa.JSON(), nullable=False, comment='关联交易ID快照'),
        sa.Column('period_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('period_end', sa.DateTime(timezone=True), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('gateway_transaction_id', sa.String(length=200), nullable=True),
        sa.Column('gateway_response', sa.JSON(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processed_by', sa.Integer(), nullable=True, comment='处理管理员ID'),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['vendor_id'], ['vendors.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_payouts_id', 'payouts', ['id'])
    op.create_index('ix_payouts_payout_number', 'payouts', ['payout_number'], unique=True)
    op.create_index('ix_payouts_vendor_id', 'payouts', ['vendor_id'])
    op.create_index('ix_payouts_status', 'payouts', ['status'])
    op.create_index('ix_payouts_created_at', 'payouts', ['created_at'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('transaction_number', sa.String(length=40), nullable=False, comment='交易号'),
        sa.Column('type', sa.String(length=20), nullable=False, server_default='payment', comment='payment/refund/payout/commission'),
        sa.Column('order_id', sa.Integer(), nullable=False, comment='订单ID'),
        sa.Column('user_id', sa.Integer(), nullable=False, comment='付款用户ID'),
        sa.Column('vendor_id', sa.Integer(), nullable=False, comment='供应商ID'),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False, comment='交易金额'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD', comment='货币代码 ISO-4217'),
        sa.Column('commission_rate', sa.Numeric(precision=5, scale=2), nullable=False, server_default='5', comment='佣金比例'),
        sa.Column('commission_amount', sa.Numeric(precision=15, scale=2), nullable=False, comment='平台佣金'),
        sa.Column('vendor_amount', sa.Numeric(precision=15, scale=2), nullable=False, comment='供应商所得'),
        sa.Column('payment_method', sa.String(length=20), nullable=False, comment='支付方式: stripe/sslcommerz/cash/bank_transfer'),
        sa.Column('status', sa.String(length=30), nullable=False, server_default='pending', comment='交易状态'),
        sa.Column('stripe_payment_intent_id', sa.String(length=200), nullable=True, comment='Stripe PaymentIntent ID'),
        sa.Column('stripe_charge_id', sa.String(length=200), nullable=True, comment='Stripe Charge ID'),
        sa.Column('sslcommerz_transaction_id', sa.String(length=100), nullable=True, comment='SSLCommerz tran_id'),
        sa.Column('sslcommerz_session_key', sa.String(length=200), nullable=True),
        sa.Column('sslcommerz_validation_id', sa.String(length=200), nullable=True),
        sa.Column('sslcommerz_bank_tran_id', sa.String(length=200), nullable=True),
        sa.Column('gateway_response', sa.JSON(), nullable=True, comment='网关原始响应'),
        sa.Column('failure_reason', sa.Text(), nullable=True, comment='失败原因'),
        sa.Column('refund_amount', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0', comment='累计退款金额'),
        sa.Column('refund_reason', sa.Text(), nullable=True),
        sa.Column('refund_id', sa.String(length=200), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refunded_by', sa.Integer(), nullable=True),
        sa.Column('payout_id', sa.Integer(), nullable=True, comment='所属结算单'),
        sa.Column('earnings_credited', sa.Boolean(), nullable=False, server_default=sa.false(), comment='供应商收入是否已累加'),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column('metadata', sa.JSON(), nullable=True, comment='扩展元数据'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['vendor_id'], ['vendors.id']),
        sa.ForeignKeyConstraint(['payout_id'], ['payouts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stripe_payment_intent_id', name='uq_transactions_stripe_intent'),
    )
    op.create_index('ix_transactions_id', 'transactions', ['id'])
    op.create_index('ix_transactions_transaction_number', 'transactions', ['transaction_number'], unique=True)
    op.create_index('ix_transactions_order_id', 'transactions', ['order_id'])
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'])
    op.create_index('ix_transactions_vendor_id', 'transactions', ['vendor_id'])
    op.create_index('ix_transactions_payment_method', 'transactions', ['payment_method'])
    op.create_index('ix_transactions_status', 'transactions', ['status'])
    op.create_index('ix_transactions_sslcommerz_transaction_id', 'transactions', ['sslcommerz_transaction_id'])
    op.create_index('ix_transactions_payout_id', 'transactions', ['payout_id'])
    op.create_index('ix_transactions_completed_at', 'transactions', ['completed_at'])
    op.create_index('ix_transactions_created_at', 'transactions', ['created_at'])
    op.create_index('ix_transactions_order_status', 'transactions', ['order_id', 'status'])
    op.create_index(
        'ix_transactions_payout_candidates', 'transactions', ['vendor_id', 'status', 'type', 'payout_id']
    )


def downgrade() -> None:
    op.drop_table('transactions')
    op.drop_table('payouts')
    op.drop_table('orders')
    op.drop_table('coupons')
    op.drop_table('services')
    op.drop_table('vendors')
