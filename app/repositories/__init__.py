"""
仓库包初始化文件 - 数据库访问层
"""

from .product_repository import ProductRepository
from .sale_repository import SaleRepository
from .coupon_repository import CouponRepository

__all__ = [
    "ProductRepository",
    "SaleRepository",
    "CouponRepository",
]
