"""
数据模型包初始化文件
"""

from .price_rule import (
    PriceRule,
    DiscountKind,
    RuleScope,
    OfferType,
    discount_kind_for_offer_type,
)
from .sale import Sale, SaleCreate, SaleUpdate, SaleWithProducts, SaleSummary
from .coupon import (
    Coupon,
    CouponCreate,
    CouponUpdate,
    CouponWithUsage,
    CouponErrorKind,
    CouponValidation,
    CouponUsage,
    CouponRedemption,
    CouponStats,
)
from .product import Product, ProductWithSale
from .checkout import CheckoutLine, PricedLine, PriceCalculation

__all__ = [
    "PriceRule",
    "DiscountKind",
    "RuleScope",
    "OfferType",
    "discount_kind_for_offer_type",
    "Sale",
    "SaleCreate",
    "SaleUpdate",
    "SaleWithProducts",
    "SaleSummary",
    "Coupon",
    "CouponCreate",
    "CouponUpdate",
    "CouponWithUsage",
    "CouponErrorKind",
    "CouponValidation",
    "CouponUsage",
    "CouponRedemption",
    "CouponStats",
    "Product",
    "ProductWithSale",
    "CheckoutLine",
    "PricedLine",
    "PriceCalculation",
]
