"""
优惠券数据库模型（CRUD 由营销模块负责，这里只承担读取与用量计数）
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Text, JSON, Boolean
from datetime import datetime, timezone

from .base import Base


class CouponModel(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, index=True, nullable=False, comment="券码（大写）")
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(20), nullable=False, comment="percentage/fixed/free_delivery")
    value = Column(Numeric(precision=15, scale=2), nullable=False)
    min_order_amount = Column(Numeric(precision=15, scale=2), nullable=False, default=0)
    max_discount_amount = Column(Numeric(precision=15, scale=2), nullable=True, comment="最大抵扣额")

    status = Column(String(20), nullable=False, default="active", index=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)

    # 用量（0 表示不限）
    usage_limit = Column(Integer, nullable=False, default=0)
    usage_count = Column(Integer, nullable=False, default=0)
    user_usage_limit = Column(Integer, nullable=False, default=1)

    applicable_for = Column(String(30), nullable=False, default="all")
    applicable_users = Column(JSON, nullable=True)
    applicable_categories = Column(JSON, nullable=True)
    applicable_services = Column(JSON, nullable=True)
    applicable_vendors = Column(JSON, nullable=True)
    is_first_order_only = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self):
        return f"<CouponModel(id={self.id}, code='{self.code}', used={self.usage_count}/{self.usage_limit})>"
