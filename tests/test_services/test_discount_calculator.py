"""
折扣计算测试
"""

import pytest
from decimal import Decimal

from app.core.exceptions import InvalidArgumentError
from app.models.price_rule import PriceRule, DiscountKind
from app.services.discount_calculator import apply, discounted_price, quantize_money


def percentage(value, max_discount=None):
    return PriceRule(
        discount_kind=DiscountKind.PERCENTAGE,
        discount_value=Decimal(value),
        max_discount_amount=Decimal(max_discount) if max_discount is not None else None,
    )


def flat(value):
    return PriceRule(discount_kind=DiscountKind.FLAT_AMOUNT, discount_value=Decimal(value))


class TestDiscountCalculator:
    """折扣计算测试类"""

    def test_percentage_capped_by_max_discount(self):
        """20%最多减300，2000元商品优惠300，到手1700"""
        rule = percentage("20", "300")
        assert apply(rule, Decimal("2000")) == Decimal("300.00")
        assert discounted_price(rule, Decimal("2000")) == Decimal("1700.00")

    def test_percentage_below_cap(self):
        rule = percentage("20", "300")
        assert apply(rule, Decimal("1000")) == Decimal("200.00")

    def test_percentage_without_cap(self):
        assert apply(percentage("15"), Decimal("1999")) == Decimal("299.85")

    def test_hundred_percent_is_free(self):
        assert discounted_price(percentage("100"), Decimal("799.99")) == Decimal("0.00")

    def test_flat_never_exceeds_base(self):
        rule = flat("200")
        assert apply(rule, Decimal("150")) == Decimal("150")
        assert discounted_price(rule, Decimal("150")) == Decimal("0")

    def test_flat_below_base(self):
        assert discounted_price(flat("200"), Decimal("1500")) == Decimal("1300.00")

    def test_zero_base(self):
        assert apply(percentage("50"), Decimal("0")) == Decimal("0")
        assert apply(flat("50"), Decimal("0")) == Decimal("0")

    def test_negative_base_rejected(self):
        with pytest.raises(InvalidArgumentError) as exc_info:
            apply(flat("10"), Decimal("-0.01"))
        assert exc_info.value.code == "INVALID_ARGUMENT"

    def test_truncates_to_two_decimals(self):
        """两位小数直接截断，优惠不超过精确值"""
        # 10% of 0.15 = 0.015 -> 0.01, 12.5% of 0.60 = 0.075 -> 0.07
        assert apply(percentage("10"), Decimal("0.15")) == Decimal("0.01")
        assert apply(percentage("12.5"), Decimal("0.60")) == Decimal("0.07")
        assert quantize_money(Decimal("2.345")) == Decimal("2.34")
        assert quantize_money(Decimal("2.359")) == Decimal("2.35")

    def test_sub_cent_cap_not_exceeded(self):
        assert apply(percentage("50", "0.015"), Decimal("10")) == Decimal("0.01")

    def test_accepts_numeric_input(self):
        assert apply(flat("10"), 25) == Decimal("10.00")

    @pytest.mark.parametrize("base", ["0", "0.01", "0.15", "1", "99.99", "333.33", "1000", "123456.78"])
    @pytest.mark.parametrize("value,max_discount", [("0", None), ("7.5", None), ("33", "50"), ("50", "0.015"), ("100", None)])
    def test_percentage_bounds(self, base, value, max_discount):
        """百分比优惠不为负，不超过精确的base*value/100，也不超过上限"""
        base = Decimal(base)
        rule = percentage(value, max_discount)
        discount = apply(rule, base)

        assert Decimal("0") <= discount <= base
        assert discount <= base * Decimal(value) / 100
        if max_discount is not None:
            assert discount <= Decimal(max_discount)

    @pytest.mark.parametrize("base", ["0", "0.01", "199.99", "200", "5000"])
    def test_flat_final_price_never_negative(self, base):
        assert discounted_price(flat("200"), Decimal(base)) >= 0
