"""
优惠券相关数据模型
"""

from decimal import Decimal
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, field_serializer
from enum import Enum

from app.core.clock import as_naive_utc, utc_now
from app.models.price_rule import PriceRule, DiscountKind, RuleScope


class CouponErrorKind(str, Enum):
    """优惠券校验/核销失败类型"""
    INVALID_ARGUMENT = "invalid_argument"  # 参数不合法
    NOT_FOUND = "not_found"  # 优惠码不存在
    INACTIVE = "inactive"  # 已停用
    NOT_YET_VALID = "not_yet_valid"  # 未到开始时间
    EXPIRED = "expired"  # 已过期
    GLOBAL_LIMIT_REACHED = "global_limit_reached"  # 总使用次数已满
    USER_LIMIT_REACHED = "user_limit_reached"  # 单用户使用次数已满
    MIN_ORDER_NOT_MET = "min_order_not_met"  # 未达到最低订单金额
    CONCURRENT_LIMIT_RACE = "concurrent_limit_race"  # 校验通过后被并发核销抢占


def normalize_coupon_code(code: str) -> str:
    """优惠码不区分大小写，统一大写存储"""
    return code.strip().upper()


class Coupon(PriceRule):
    """优惠券基础模型（始终作用于整单）"""

    coupon_id: str = Field(..., description="优惠券ID")
    code: str = Field(..., min_length=1, max_length=50, description="优惠码（大写）")
    name: str = Field(..., description="优惠券名称")
    description: Optional[str] = Field(None, description="优惠券描述")
    usage_limit: Optional[int] = Field(None, ge=1, description="总使用次数限制")
    per_user_limit: Optional[int] = Field(None, ge=1, description="单用户使用次数限制")
    is_active: bool = Field(default=True, description="是否启用")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("scope")
    @classmethod
    def coupon_scope_is_global(cls, v):
        if v != RuleScope.GLOBAL:
            raise ValueError("优惠券只能作用于整单")
        return v

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, v):
        return as_naive_utc(v)


class CouponWithUsage(Coupon):
    """后台列表用，附带已使用次数"""

    usage_count: int = Field(default=0, ge=0, description="已核销次数（由使用记录统计）")


class CouponCreate(BaseModel):
    """创建优惠券模型"""

    code: str = Field(..., min_length=1, max_length=50)
    name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=500)
    discount_kind: DiscountKind = Field(...)
    discount_value: Decimal = Field(..., ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    min_order_amount: Optional[Decimal] = Field(None, ge=0)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    usage_limit: Optional[int] = Field(None, ge=1)
    per_user_limit: Optional[int] = Field(None, ge=1)
    is_active: bool = True

    @field_validator("code")
    @classmethod
    def upper_code(cls, v):
        v = normalize_coupon_code(v)
        if not v:
            raise ValueError("优惠码不能为空")
        return v

    @field_validator("valid_from", "valid_until")
    @classmethod
    def normalize_datetime(cls, v):
        return as_naive_utc(v)


class CouponUpdate(BaseModel):
    """更新优惠券模型，未提供的字段保持不变"""

    code: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=500)
    discount_kind: Optional[DiscountKind] = None
    discount_value: Optional[Decimal] = Field(None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    min_order_amount: Optional[Decimal] = Field(None, ge=0)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    usage_limit: Optional[int] = Field(None, ge=1)
    per_user_limit: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None

    @field_validator("code")
    @classmethod
    def upper_code(cls, v):
        return normalize_coupon_code(v) if v is not None else v

    @field_validator("valid_from", "valid_until")
    @classmethod
    def normalize_datetime(cls, v):
        return as_naive_utc(v)


class CouponValidation(BaseModel):
    """优惠券校验结果"""

    is_valid: bool = Field(..., description="是否可用")
    error_kind: Optional[CouponErrorKind] = Field(None, description="失败类型")
    error_message: Optional[str] = Field(None, description="面向用户的提示")
    coupon: Optional[Coupon] = Field(None, description="优惠券信息")
    order_amount: Decimal = Field(default=Decimal("0"), description="订单金额")
    estimated_discount: Decimal = Field(default=Decimal("0"), ge=0, description="预计优惠金额")
    final_amount: Decimal = Field(default=Decimal("0"), ge=0, description="优惠后金额")
    min_order_required: Optional[Decimal] = Field(None, description="最低订单金额要求")

    @field_serializer("order_amount", "estimated_discount", "final_amount")
    def money_as_string(self, v: Decimal) -> str:
        return f"{v:.2f}"

    @classmethod
    def failure(
        cls,
        error_kind: CouponErrorKind,
        message: str,
        coupon: Optional[Coupon] = None,
        order_amount: Decimal = Decimal("0"),
        min_order_required: Optional[Decimal] = None,
    ) -> "CouponValidation":
        return cls(
            is_valid=False,
            error_kind=error_kind,
            error_message=message,
            coupon=coupon,
            order_amount=order_amount,
            final_amount=max(order_amount, Decimal("0")),
            min_order_required=min_order_required,
        )


class CouponUsage(BaseModel):
    """优惠券使用记录（不可变）"""

    usage_id: str = Field(..., description="使用记录ID")
    coupon_id: str = Field(..., description="优惠券ID")
    user_id: str = Field(..., description="用户ID")
    order_id: str = Field(..., description="订单ID（幂等键）")
    discount_amount: Decimal = Field(..., ge=0, description="优惠金额")
    used_at: datetime = Field(default_factory=utc_now, description="使用时间")


class CouponRedemption(BaseModel):
    """优惠券核销结果"""

    success: bool = Field(..., description="是否核销成功")
    usage: Optional[CouponUsage] = Field(None, description="使用记录")
    replayed: bool = Field(default=False, description="同一订单重复提交，返回已有记录")
    error_kind: Optional[CouponErrorKind] = Field(None, description="失败类型")
    error_message: Optional[str] = Field(None, description="失败提示")

    @classmethod
    def failure(cls, error_kind: CouponErrorKind, message: str) -> "CouponRedemption":
        return cls(success=False, error_kind=error_kind, error_message=message)


class CouponStats(BaseModel):
    """优惠券使用统计"""

    coupon_id: str
    code: str
    name: str
    is_active: bool
    usage_limit: Optional[int] = None
    total_usage: int = 0
    remaining_count: Optional[int] = None
    total_discount: Decimal = Decimal("0")
    unique_users: int = 0


class CouponUsageHistoryItem(BaseModel):
    """用户优惠券使用历史条目"""

    usage_id: str
    coupon_id: str
    code: str
    name: str
    order_id: str
    discount_amount: Decimal
    used_at: datetime


class CouponValidateRequest(BaseModel):
    """优惠券校验请求"""

    code: str = Field(..., min_length=1, description="优惠码")
    user_id: str = Field(..., min_length=1, description="用户ID")
    order_amount: Decimal = Field(..., description="订单金额")


class CouponRedeemRequest(BaseModel):
    """优惠券核销请求"""

    coupon_id: str = Field(..., description="优惠券ID")
    user_id: str = Field(..., min_length=1, description="用户ID")
    order_id: str = Field(..., min_length=1, description="订单ID")
    discount_amount: Decimal = Field(..., description="优惠金额")


class CouponListResponse(BaseModel):
    """优惠券列表响应"""

    coupons: List[CouponWithUsage]
    total: int
