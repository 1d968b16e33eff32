"""
数据库模型包初始化文件
"""

from .product_db import ProductDB
from .sale_db import SaleDB, SaleProductDB
from .coupon_db import CouponDB, CouponUsageDB

__all__ = [
    "ProductDB",
    "SaleDB",
    "SaleProductDB",
    "CouponDB",
    "CouponUsageDB",
]
