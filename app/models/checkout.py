"""
结算相关数据模型
"""

from decimal import Decimal
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from app.core.clock import as_naive_utc
from app.models.coupon import CouponErrorKind, CouponUsage


class CheckoutLine(BaseModel):
    """购物车行"""

    product_id: str = Field(..., description="商品ID")
    quantity: int = Field(default=1, ge=1, description="数量")


class PricedLine(BaseModel):
    """计价后的订单行"""

    product_id: str
    product_name: str
    category_id: Optional[str] = None
    quantity: int = 1
    unit_price: Decimal = Field(..., ge=0, description="原单价")
    sale_id: Optional[str] = Field(None, description="生效的促销ID")
    unit_discount: Decimal = Field(default=Decimal("0"), ge=0, description="单件促销优惠")
    unit_final_price: Decimal = Field(..., ge=0, description="促销后单价")
    subtotal: Decimal = Field(..., ge=0, description="原价小计")
    sale_discount: Decimal = Field(default=Decimal("0"), ge=0, description="促销优惠小计")
    final_subtotal: Decimal = Field(..., ge=0, description="促销后小计")


class PriceCalculation(BaseModel):
    """订单计价结果"""

    items: List[PricedLine] = Field(default_factory=list, description="订单行明细")
    original_amount: Decimal = Field(default=Decimal("0"), ge=0, description="原始总金额")
    sale_discount: Decimal = Field(default=Decimal("0"), ge=0, description="促销优惠")
    coupon_discount: Decimal = Field(default=Decimal("0"), ge=0, description="优惠券优惠")
    final_amount: Decimal = Field(default=Decimal("0"), ge=0, description="应付金额")
    coupon_code: Optional[str] = Field(None, description="使用的优惠码")
    coupon_id: Optional[str] = Field(None, description="使用的优惠券ID")
    coupon_applied: bool = Field(default=False, description="优惠券是否计入")
    coupon_error_kind: Optional[CouponErrorKind] = Field(None, description="优惠券不可用原因")
    coupon_error_message: Optional[str] = Field(None, description="优惠券不可用提示")
    missing_product_ids: List[str] = Field(default_factory=list, description="未找到的商品")

    @property
    def total_discount(self) -> Decimal:
        """总折扣金额"""
        return self.sale_discount + self.coupon_discount


class LineDiscountRequest(BaseModel):
    """单行促销优惠请求"""

    product_id: str = Field(..., description="商品ID")
    category_id: Optional[str] = Field(None, description="分类ID")
    price: Decimal = Field(..., description="商品价格")
    now: Optional[datetime] = Field(None, description="计算时间，默认当前时间")

    @field_validator("now")
    @classmethod
    def normalize_now(cls, v):
        return as_naive_utc(v)


class LineDiscountResponse(BaseModel):
    product_id: str
    price: Decimal
    discount_amount: Decimal
    final_price: Decimal
    sale_id: Optional[str] = None


class PriceOrderRequest(BaseModel):
    """订单计价请求"""

    user_id: str = Field(..., min_length=1, description="用户ID")
    items: List[CheckoutLine] = Field(..., min_length=1, description="购物车行")
    coupon_code: Optional[str] = Field(None, description="优惠码")


class CheckoutRequest(PriceOrderRequest):
    """计价并核销优惠券"""

    order_id: str = Field(..., min_length=1, description="订单ID（幂等键）")


class CheckoutResult(BaseModel):
    """结算结果"""

    order_id: str
    calculation: PriceCalculation
    coupon_redeemed: bool = False
    usage: Optional[CouponUsage] = None
    error_kind: Optional[CouponErrorKind] = None
    error_message: Optional[str] = None
