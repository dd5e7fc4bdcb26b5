"""
订单数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Date, Text, JSON, Index, ForeignKey
)
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    """
    订单数据库模型

    所有状态机规则都在 domain.order.entity.Order 中
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(40), unique=True, index=True, nullable=False, comment="订单号")

    user_id = Column(Integer, nullable=False, index=True, comment="下单用户ID")
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False, index=True, comment="供应商ID")
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False, index=True, comment="服务ID")
    service_name = Column(String(200), nullable=False, comment="服务名称快照")
    category_id = Column(Integer, nullable=True, comment="分类ID快照")
    duration = Column(Integer, nullable=False, default=60, comment="时长（分钟）")

    # 联系人快照
    customer_name = Column(String(200), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_phone = Column(String(50), nullable=False)
    address = Column(JSON, nullable=True, comment="服务地址")

    # 排期
    scheduled_date = Column(Date, nullable=False, index=True)
    scheduled_time = Column(String(10), nullable=False)
    rescheduled_from_date = Column(Date, nullable=True, comment="上一次排期（单槽历史）")
    rescheduled_from_time = Column(String(10), nullable=True)
    rescheduled_at = Column(DateTime(timezone=True), nullable=True)
    rescheduled_by = Column(String(20), nullable=True)

    # 价格快照
    service_price = Column(Numeric(precision=15, scale=2), nullable=False)
    discount = Column(Numeric(precision=5, scale=2), nullable=False, default=0, comment="服务折扣百分比")
    discount_amount = Column(Numeric(precision=15, scale=2), nullable=False, default=0)
    subtotal = Column(Numeric(precision=15, scale=2), nullable=False)
    tax = Column(Numeric(precision=15, scale=2), nullable=False, default=0)
    platform_fee = Column(Numeric(precision=15, scale=2), nullable=False, default=0)
    total_amount = Column(Numeric(precision=15, scale=2), nullable=False)

    # 优惠券
    coupon_code = Column(String(50), nullable=True, index=True)
    coupon_id = Column(Integer, nullable=True)
    coupon_discount = Column(Numeric(precision=15, scale=2), nullable=False, default=0)

    # 状态
    status = Column(
        String(20), nullable=False, default="pending", index=True,
        comment="订单状态: pending/accepted/rejected/in_progress/completed/cancelled"
    )
    payment_status = Column(
        String(20), nullable=False, default="pending", index=True,
        comment="支付状态: pending/paid/failed/refunded"
    )

    notes = Column(Text, nullable=True)
    special_requirements = Column(Text, nullable=True)
    vendor_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    cancelled_by = Column(String(20), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    accepted_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
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

    # 乐观锁
    version = Column(Integer, nullable=False, default=0, comment="乐观并发版本号")

    __table_args__ = (
        Index("ix_orders_user_status", "user_id", "status"),
        Index("ix_orders_vendor_status", "vendor_id", "status"),
        Index("ix_orders_user_coupon", "user_id", "coupon_code"),
    )

    def __repr__(self):
        return f"<OrderModel(id={self.id}, order_number='{self.order_number}', status='{self.status}')>"
