"""
结算单数据库模型
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Text, JSON, ForeignKey
from datetime import datetime, timezone

from .base import Base


class PayoutModel(Base):
    __tablename__ = "payouts"

    id = Column(Integer, primary_key=True, index=True)
    payout_number = Column(String(40), unique=True, index=True, nullable=False, comment="结算单号")
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False, index=True)

    amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="结算金额")
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(
        String(20), nullable=False, default="pending", index=True,
        comment="pending/processing/completed/failed/cancelled"
    )
    payment_method = Column(String(30), nullable=False, comment="bank_transfer/mobile_banking/paypal/stripe")
    bank_details = Column(JSON, nullable=True)
    mobile_banking_details = Column(JSON, nullable=True)

    transaction_ids = Column(JSON, nullable=False, default=list, comment="关联交易ID快照")
    period_start = Column(DateTime(timezone=True), nullable=False)
    period_end = Column(DateTime(timezone=True), nullable=False)

    notes = Column(Text, nullable=True)
    failure_reason = Column(Text, nullable=True)
    gateway_transaction_id = Column(String(200), nullable=True)
    gateway_response = Column(JSON, nullable=True)

    processed_at = Column(DateTime(timezone=True), nullable=True)
    processed_by = Column(Integer, nullable=True, comment="处理管理员ID")
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self):
        return f"<PayoutModel(id={self.id}, number='{self.payout_number}', amount={self.amount}, status='{self.status}')>"
