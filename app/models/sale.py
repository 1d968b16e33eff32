"""
促销活动相关数据模型
"""

from decimal import Decimal
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from app.core.clock import as_naive_utc, utc_now
from app.models.price_rule import (
    PriceRule,
    DiscountKind,
    RuleScope,
    OfferType,
    check_price_rule_invariants,
    discount_kind_for_offer_type,
)


class Sale(PriceRule):
    """促销活动模型"""

    sale_id: str = Field(..., description="促销ID")
    name: str = Field(..., description="促销名称")
    description: Optional[str] = Field(None, description="促销描述")
    offer_type: Optional[OfferType] = Field(None, description="后台录入的促销类型")
    valid_from: datetime = Field(..., description="有效开始时间")
    valid_until: datetime = Field(..., description="有效结束时间")
    is_active: bool = Field(default=True, description="是否启用")
    is_featured: bool = Field(default=False, description="是否推荐展示")
    banner_image: Optional[str] = Field(None, description="横幅图片")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, v):
        return as_naive_utc(v)

    def is_current(self, now: datetime) -> bool:
        """启用且在有效期内"""
        return self.is_active and self.is_within_window(now)


class SaleWithProducts(Sale):
    """后台列表用，附带商品数量"""

    product_count: int = Field(default=0, ge=0, description="关联商品数量")


class SaleCreate(BaseModel):
    """创建促销模型"""

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    offer_type: Optional[OfferType] = None
    discount_kind: Optional[DiscountKind] = None
    discount_value: Decimal = Field(..., ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    min_order_amount: Optional[Decimal] = Field(None, ge=0)
    scope: Optional[RuleScope] = None
    category_id: Optional[str] = None
    product_ids: List[str] = Field(default_factory=list)
    valid_from: datetime = Field(...)
    valid_until: datetime = Field(...)
    is_active: bool = True
    is_featured: bool = False
    banner_image: Optional[str] = None

    @field_validator("valid_from", "valid_until")
    @classmethod
    def normalize_datetime(cls, v):
        return as_naive_utc(v)

    @model_validator(mode="after")
    def resolve_rule_shape(self):
        """确定折扣方式与适用范围并校验规则"""
        if self.discount_kind is None:
            if self.offer_type is None:
                raise ValueError("必须提供折扣方式或促销类型")
            self.discount_kind = discount_kind_for_offer_type(self.offer_type)

        if self.scope is None:
            if self.product_ids:
                self.scope = RuleScope.PRODUCT
            elif self.category_id:
                self.scope = RuleScope.CATEGORY
            else:
                self.scope = RuleScope.GLOBAL

        if self.scope == RuleScope.PRODUCT and not self.product_ids:
            raise ValueError("商品范围的促销必须指定商品")
        if self.scope == RuleScope.CATEGORY and not self.category_id:
            raise ValueError("分类范围的促销必须指定分类")

        check_price_rule_invariants(
            self.discount_kind, self.discount_value, self.valid_from, self.valid_until
        )
        return self


class SaleUpdate(BaseModel):
    """更新促销模型，未提供的字段保持不变"""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    offer_type: Optional[OfferType] = None
    discount_kind: Optional[DiscountKind] = None
    discount_value: Optional[Decimal] = Field(None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    min_order_amount: Optional[Decimal] = Field(None, ge=0)
    scope: Optional[RuleScope] = None
    category_id: Optional[str] = None
    product_ids: Optional[List[str]] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None
    banner_image: Optional[str] = None

    @field_validator("valid_from", "valid_until")
    @classmethod
    def normalize_datetime(cls, v):
        return as_naive_utc(v)


class SaleSummary(BaseModel):
    """商品列表角标用的促销摘要"""

    sale_id: str
    name: str
    discount_kind: DiscountKind
    discount_value: Decimal
    max_discount_amount: Optional[Decimal] = None
    scope: RuleScope

    @classmethod
    def from_sale(cls, sale: Sale) -> "SaleSummary":
        return cls(
            sale_id=sale.sale_id,
            name=sale.name,
            discount_kind=sale.discount_kind,
            discount_value=sale.discount_value,
            max_discount_amount=sale.max_discount_amount,
            scope=sale.scope,
        )
