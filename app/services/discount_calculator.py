"""
折扣计算
纯函数，不做任何I/O；金额统一保留两位小数，直接截断（ROUND_DOWN），优惠不会超过精确值
"""

from decimal import Decimal, ROUND_DOWN

from app.core.exceptions import InvalidArgumentError
from app.models.price_rule import PriceRule, DiscountKind

MONEY_QUANT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def quantize_money(amount) -> Decimal:
    """金额保留两位小数（截断）"""
    return Decimal(str(amount)).quantize(MONEY_QUANT, rounding=ROUND_DOWN)


def apply(rule: PriceRule, base_amount: Decimal) -> Decimal:
    """
    计算规则在给定金额上的优惠金额

    - 百分比：base * value / 100，设置了最大折扣时取较小值
    - 固定金额：min(value, base)

    返回值满足 0 <= 优惠 <= base_amount
    """
    base_amount = Decimal(str(base_amount))
    if base_amount < 0:
        raise InvalidArgumentError("金额不能为负数", details={"base_amount": str(base_amount)})

    if rule.discount_kind == DiscountKind.PERCENTAGE:
        discount = base_amount * rule.discount_value / HUNDRED
        if rule.max_discount_amount is not None:
            discount = min(discount, rule.max_discount_amount)
    elif rule.discount_kind == DiscountKind.FLAT_AMOUNT:
        discount = min(rule.discount_value, base_amount)
    else:
        raise InvalidArgumentError(f"不支持的折扣方式: {rule.discount_kind}")

    # 截断只会变小，仍需落在 [0, base] 区间内
    discount = quantize_money(discount)
    return max(ZERO, min(discount, base_amount))


def discounted_price(rule: PriceRule, base_amount: Decimal) -> Decimal:
    """优惠后的价格"""
    base_amount = Decimal(str(base_amount))
    return base_amount - apply(rule, base_amount)
