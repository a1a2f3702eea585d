"""Infrastructure models package exports."""
from .base import Base, metadata
from .order_info import OrderInfoModel
from .payment_info import PaymentInfoModel
from .product import ProductModel
from .refund_info import RefundInfoModel

__all__ = [
    "Base",
    "metadata",
    "OrderInfoModel",
    "PaymentInfoModel",
    "ProductModel",
    "RefundInfoModel",
]
