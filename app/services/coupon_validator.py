"""
优惠券校验
按固定顺序短路检查，结果以CouponValidation返回而不抛异常；
该检查不加锁，仅用于下单前快速失败，最终以账本核销为准
"""

from typing import Optional
from datetime import datetime
from decimal import Decimal

from app.core.clock import utc_now, as_naive_utc
from app.models.coupon import CouponValidation, CouponErrorKind
from app.repositories.coupon_repository import CouponRepository
from app.services import discount_calculator


def format_money(amount: Decimal) -> str:
    return f"{discount_calculator.quantize_money(amount):.2f}"


class CouponValidator:
    """优惠券校验器"""

    def __init__(self, coupon_repo: CouponRepository):
        self.coupon_repo = coupon_repo

    async def validate(
        self,
        code: str,
        user_id: str,
        order_amount: Decimal,
        now: Optional[datetime] = None
    ) -> CouponValidation:
        """
        校验顺序：
        1. 优惠码存在
        2. 已启用
        3. 在有效期内（未开始 / 已过期）
        4. 总使用次数未满
        5. 用户使用次数未满
        6. 满足最低订单金额
        """
        now = as_naive_utc(now) if now is not None else utc_now()
        order_amount = Decimal(str(order_amount))

        if not code or not code.strip():
            return CouponValidation.failure(CouponErrorKind.INVALID_ARGUMENT, "请输入优惠码")
        if order_amount < 0:
            return CouponValidation.failure(CouponErrorKind.INVALID_ARGUMENT, "订单金额不能为负数")

        db_coupon = await self.coupon_repo.get_by_code(code)
        if not db_coupon:
            return CouponValidation.failure(
                CouponErrorKind.NOT_FOUND, "优惠券不存在", order_amount=order_amount
            )

        coupon = self.coupon_repo.to_model(db_coupon)

        if not coupon.is_active:
            return CouponValidation.failure(
                CouponErrorKind.INACTIVE, "优惠券已停用", coupon, order_amount
            )

        if coupon.valid_from is not None and now < coupon.valid_from:
            return CouponValidation.failure(
                CouponErrorKind.NOT_YET_VALID, "优惠券尚未开始使用", coupon, order_amount
            )
        if coupon.valid_until is not None and now > coupon.valid_until:
            return CouponValidation.failure(
                CouponErrorKind.EXPIRED, "优惠券已过期", coupon, order_amount
            )

        if coupon.usage_limit is not None:
            total_usage = await self.coupon_repo.count_usage(coupon.coupon_id)
            if total_usage >= coupon.usage_limit:
                return CouponValidation.failure(
                    CouponErrorKind.GLOBAL_LIMIT_REACHED, "优惠券使用次数已达上限", coupon, order_amount
                )

        if coupon.per_user_limit is not None:
            user_usage = await self.coupon_repo.count_user_usage(coupon.coupon_id, user_id)
            if user_usage >= coupon.per_user_limit:
                return CouponValidation.failure(
                    CouponErrorKind.USER_LIMIT_REACHED, "您已达到该优惠券的使用上限", coupon, order_amount
                )

        if coupon.min_order_amount is not None and order_amount < coupon.min_order_amount:
            return CouponValidation.failure(
                CouponErrorKind.MIN_ORDER_NOT_MET,
                f"订单金额需满 ₹{format_money(coupon.min_order_amount)} 才能使用该优惠券",
                coupon,
                order_amount,
                min_order_required=coupon.min_order_amount
            )

        discount = discount_calculator.apply(coupon, order_amount)
        return CouponValidation(
            is_valid=True,
            coupon=coupon,
            order_amount=order_amount,
            estimated_discount=discount,
            final_amount=order_amount - discount,
            min_order_required=coupon.min_order_amount
        )
