"""Infrastructure models package exports."""
from .base import Base, metadata
from .catalog import VendorModel, ServiceModel
from .coupon import CouponModel
from .order import OrderModel
from .payment import TransactionModel
from .payout import PayoutModel

__all__ = [
    "Base",
    "metadata",
    "VendorModel",
    "ServiceModel",
    "CouponModel",
    "OrderModel",
    "TransactionModel",
    "PayoutModel",
]
