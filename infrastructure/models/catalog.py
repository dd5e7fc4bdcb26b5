"""
供应商/服务数据库模型（由目录模块维护，这里映射订单与结算需要的列）
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Boolean, ForeignKey
from datetime import datetime, timezone

from .base import Base


class VendorModel(Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, unique=True, index=True, nullable=False, comment="供应商账号用户ID")
    company_name = Column(String(200), nullable=False, comment="公司名称")
    email = Column(String(255), nullable=True, comment="联系邮箱")
    approval_status = Column(
        String(20), nullable=False, default="pending", index=True,
        comment="审核状态: pending/approved/rejected"
    )
    is_active = Column(Boolean, nullable=False, default=True, comment="是否启用")

    # 累计收入（原子累加）
    total_revenue = Column(Numeric(precision=15, scale=2), nullable=False, default=0, comment="累计收入")
    commission = Column(Numeric(precision=15, scale=2), nullable=False, default=0, comment="累计平台佣金")
    total_orders = Column(Integer, nullable=False, default=0, comment="订单数")

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self):
        return f"<VendorModel(id={self.id}, company_name='{self.company_name}', active={self.is_active})>"


class ServiceModel(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Integer, nullable=True, index=True, comment="分类ID")
    name = Column(String(200), nullable=False)
    price = Column(Numeric(precision=15, scale=2), nullable=False, comment="价格")
    discount = Column(Numeric(precision=5, scale=2), nullable=False, default=0, comment="折扣百分比")
    duration = Column(Integer, nullable=False, default=60, comment="时长（分钟）")
    is_active = Column(Boolean, nullable=False, default=True)
    is_available = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    def __repr__(self):
        return f"<ServiceModel(id={self.id}, name='{self.name}', price={self.price})>"
