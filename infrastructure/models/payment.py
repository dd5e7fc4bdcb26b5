"""
交易流水数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Text, JSON, Boolean,
    Index, ForeignKey
)
from datetime import datetime, timezone

from .base import Base


class TransactionModel(Base):
    """
    交易数据库模型

    这是数据库表的映射，不包含业务逻辑
    所有业务规则都在 domain.payment.entity.Transaction 中
    """
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    transaction_number = Column(String(40), unique=True, index=True, nullable=False, comment="交易号")
    type = Column(String(20), nullable=False, default="payment", comment="payment/refund/payout/commission")

    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True, comment="订单ID")
    user_id = Column(Integer, nullable=False, index=True, comment="付款用户ID")
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False, index=True, comment="供应商ID")

    # 金额信息（使用 Numeric 存储精确金额）
    amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="交易金额")
    currency = Column(String(3), nullable=False, default="USD", comment="货币代码 ISO-4217")
    commission_rate = Column(Numeric(precision=5, scale=2), nullable=False, default=5, comment="佣金比例")
    commission_amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="平台佣金")
    vendor_amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="供应商所得")

    payment_method = Column(
        String(20), nullable=False, index=True,
        comment="支付方式: stripe/sslcommerz/cash/bank_transfer"
    )
    status = Column(
        String(30), nullable=False, default="pending", index=True,
        comment="交易状态: pending/processing/completed/failed/refunded/partially_refunded"
    )

    # Stripe
    stripe_payment_intent_id = Column(String(200), nullable=True, unique=True, comment="Stripe PaymentIntent ID")
    stripe_charge_id = Column(String(200), nullable=True, comment="Stripe Charge ID")

    # SSLCommerz
    sslcommerz_transaction_id = Column(String(100), nullable=True, index=True, comment="SSLCommerz tran_id")
    sslcommerz_session_key = Column(String(200), nullable=True)
    sslcommerz_validation_id = Column(String(200), nullable=True)
    sslcommerz_bank_tran_id = Column(String(200), nullable=True)

    gateway_response = Column(JSON, nullable=True, comment="网关原始响应")
    failure_reason = Column(Text, nullable=True, comment="失败原因")

    # 退款信息
    refund_amount = Column(Numeric(precision=15, scale=2), nullable=False, default=0, comment="累计退款金额")
    refund_reason = Column(Text, nullable=True)
    refund_id = Column(String(200), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)
    refunded_by = Column(Integer, nullable=True)

    # 结算
    payout_id = Column(Integer, ForeignKey("payouts.id"), nullable=True, index=True, comment="所属结算单")
    earnings_credited = Column(Boolean, nullable=False, default=False, comment="供应商收入是否已累加")

    processed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True, index=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    # 元数据（JSON格式，使用 extra_metadata 避免与 SQLAlchemy 的 metadata 冲突）
    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")

    __table_args__ = (
        Index("ix_transactions_order_status", "order_id", "status"),
        Index("ix_transactions_payout_candidates", "vendor_id", "status", "type", "payout_id"),
    )

    def __repr__(self):
        return (
            f"<TransactionModel(id={self.id}, number='{self.transaction_number}', "
            f"method='{self.payment_method}', amount={self.amount}, status='{self.status}')>"
        )
