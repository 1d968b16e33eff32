"""
折扣规则公共结构 - 促销(Sale)与优惠券(Coupon)共用
"""

from decimal import Decimal
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from enum import Enum

from app.core.clock import as_naive_utc


class DiscountKind(str, Enum):
    """折扣计算方式"""
    PERCENTAGE = "percentage"  # 百分比折扣，取值0-100
    FLAT_AMOUNT = "flat_amount"  # 固定金额立减


class RuleScope(str, Enum):
    """规则适用范围"""
    GLOBAL = "global"  # 全场
    CATEGORY = "category"  # 指定分类
    PRODUCT = "product"  # 指定商品


class OfferType(str, Enum):
    """后台沿用的促销类型（同时混合了折扣方式与范围）"""
    PERCENTAGE = "percentage"
    FLAT = "flat"
    CATEGORY = "category"
    PRODUCT = "product"
    FLASH_SALE = "flash_sale"


# 旧促销类型到折扣方式的映射
OFFER_TYPE_DISCOUNT_KIND = {
    OfferType.PERCENTAGE: DiscountKind.PERCENTAGE,
    OfferType.CATEGORY: DiscountKind.PERCENTAGE,
    OfferType.FLASH_SALE: DiscountKind.PERCENTAGE,
    OfferType.FLAT: DiscountKind.FLAT_AMOUNT,
    OfferType.PRODUCT: DiscountKind.FLAT_AMOUNT,
}

# 范围越具体优先级越高
SCOPE_SPECIFICITY = {
    RuleScope.PRODUCT: 3,
    RuleScope.CATEGORY: 2,
    RuleScope.GLOBAL: 1,
}


def discount_kind_for_offer_type(offer_type: OfferType) -> DiscountKind:
    """旧促销类型换算成折扣方式"""
    return OFFER_TYPE_DISCOUNT_KIND[OfferType(offer_type)]


def check_price_rule_invariants(
    discount_kind: DiscountKind,
    discount_value: Decimal,
    valid_from: Optional[datetime] = None,
    valid_until: Optional[datetime] = None,
) -> None:
    """校验折扣规则不变量，不满足时抛出ValueError"""
    if discount_value < 0:
        raise ValueError("折扣值不能为负数")
    if discount_kind == DiscountKind.PERCENTAGE and discount_value > 100:
        raise ValueError("百分比折扣值不能超过100")
    if valid_from is not None and valid_until is not None and valid_from > valid_until:
        raise ValueError("结束时间不能早于开始时间")


class PriceRule(BaseModel):
    """折扣规则"""

    discount_kind: DiscountKind = Field(..., description="折扣计算方式")
    discount_value: Decimal = Field(..., ge=0, description="折扣值，百分比时为0-100")
    max_discount_amount: Optional[Decimal] = Field(None, ge=0, description="最大折扣金额，仅百分比规则生效")
    min_order_amount: Optional[Decimal] = Field(None, ge=0, description="最小订单金额")
    valid_from: Optional[datetime] = Field(None, description="有效开始时间")
    valid_until: Optional[datetime] = Field(None, description="有效结束时间")
    scope: RuleScope = Field(default=RuleScope.GLOBAL, description="适用范围")
    category_id: Optional[str] = Field(None, description="分类范围时的分类ID")
    product_ids: List[str] = Field(default_factory=list, description="商品范围时的商品ID列表")

    @field_validator("valid_from", "valid_until")
    @classmethod
    def normalize_datetime(cls, v):
        return as_naive_utc(v)

    @model_validator(mode="after")
    def validate_rule(self):
        """验证折扣规则"""
        check_price_rule_invariants(
            self.discount_kind, self.discount_value, self.valid_from, self.valid_until
        )
        return self

    @property
    def specificity(self) -> int:
        return SCOPE_SPECIFICITY[self.scope]

    def is_within_window(self, now: datetime) -> bool:
        """当前时间是否在有效期内（闭区间，缺失的边界视为不限）"""
        if self.valid_from is not None and now < self.valid_from:
            return False
        if self.valid_until is not None and now > self.valid_until:
            return False
        return True

    def targets(self, product_id: str, category_id: Optional[str]) -> bool:
        """规则是否覆盖指定商品"""
        if self.scope == RuleScope.GLOBAL:
            return True
        if self.scope == RuleScope.CATEGORY:
            return category_id is not None and self.category_id == category_id
        if self.scope == RuleScope.PRODUCT:
            return product_id in self.product_ids
        return False
