"""
服务包初始化文件
"""

from .sale_resolver import SaleResolver, rank_applicable_sales
from .sale_service import SaleService
from .coupon_validator import CouponValidator
from .coupon_ledger import CouponLedger
from .coupon_service import CouponService
from .checkout_service import CheckoutService

__all__ = [
    "SaleResolver",
    "rank_applicable_sales",
    "SaleService",
    "CouponValidator",
    "CouponLedger",
    "CouponService",
    "CheckoutService",
]
