"""
优惠券核销账本测试 - 使用SQLite文件库验证事务与并发
"""

import asyncio
import pytest
from decimal import Decimal

from app.models.coupon import CouponErrorKind
from app.repositories.coupon_repository import CouponRepository
from app.services.coupon_ledger import CouponLedger
from tests.factories import seed_coupon


async def usage_count(session_maker, coupon_id):
    async with session_maker() as session:
        return await CouponRepository(session).count_usage(coupon_id)


@pytest.mark.asyncio
class TestCouponLedger:
    """CouponLedger测试类"""

    @pytest.fixture
    def ledger(self, session_maker):
        return CouponLedger(session_maker)

    async def test_redeem_success(self, session_maker, ledger):
        coupon_id = await seed_coupon(session_maker)

        redemption = await ledger.redeem(coupon_id, "user_1", "order_1", Decimal("200"))

        assert redemption.success
        assert not redemption.replayed
        assert redemption.usage.coupon_id == coupon_id
        assert redemption.usage.order_id == "order_1"
        assert redemption.usage.discount_amount == Decimal("200")
        assert await usage_count(session_maker, coupon_id) == 1

    async def test_same_order_is_idempotent(self, session_maker, ledger):
        """同一订单重复核销只记一次"""
        coupon_id = await seed_coupon(session_maker)

        first = await ledger.redeem(coupon_id, "user_1", "order_1", Decimal("200"))
        second = await ledger.redeem(coupon_id, "user_1", "order_1", Decimal("200"))

        assert first.success and second.success
        assert second.replayed
        assert second.usage.usage_id == first.usage.usage_id
        assert await usage_count(session_maker, coupon_id) == 1

    async def test_replay_returns_recorded_row_even_when_full(self, session_maker, ledger):
        coupon_id = await seed_coupon(session_maker, usage_limit=1)

        first = await ledger.redeem(coupon_id, "user_1", "order_1", Decimal("200"))
        replay = await ledger.redeem(coupon_id, "user_1", "order_1", Decimal("150"))

        assert replay.success and replay.replayed
        assert replay.usage.discount_amount == first.usage.discount_amount

    async def test_global_limit(self, session_maker, ledger):
        """usage_limit=2时第三笔订单失败"""
        coupon_id = await seed_coupon(session_maker, usage_limit=2)

        assert (await ledger.redeem(coupon_id, "user_1", "order_1", Decimal("200"))).success
        assert (await ledger.redeem(coupon_id, "user_2", "order_2", Decimal("200"))).success
        third = await ledger.redeem(coupon_id, "user_3", "order_3", Decimal("200"))

        assert not third.success
        assert third.error_kind == CouponErrorKind.GLOBAL_LIMIT_REACHED
        assert await usage_count(session_maker, coupon_id) == 2

    async def test_per_user_limit(self, session_maker, ledger):
        coupon_id = await seed_coupon(session_maker, usage_limit=None, per_user_limit=1)

        assert (await ledger.redeem(coupon_id, "user_1", "order_1", Decimal("200"))).success
        blocked = await ledger.redeem(coupon_id, "user_1", "order_2", Decimal("200"))
        other = await ledger.redeem(coupon_id, "user_2", "order_3", Decimal("200"))

        assert blocked.error_kind == CouponErrorKind.USER_LIMIT_REACHED
        assert other.success

    async def test_unlimited_coupon(self, session_maker, ledger):
        coupon_id = await seed_coupon(session_maker, usage_limit=None)

        for i in range(5):
            assert (await ledger.redeem(coupon_id, "user_1", f"order_{i}", Decimal("200"))).success

        assert await usage_count(session_maker, coupon_id) == 5

    async def test_concurrent_redeem_respects_limit(self, session_maker, ledger):
        """5个并发核销争抢1次额度，只有一个成功"""
        coupon_id = await seed_coupon(session_maker, usage_limit=1)

        results = await asyncio.gather(*[
            ledger.redeem(coupon_id, f"user_{i}", f"order_{i}", Decimal("200"))
            for i in range(5)
        ])

        successes = [r for r in results if r.success]
        failures = [r for r in results if not r.success]
        assert len(successes) == 1
        assert all(r.error_kind == CouponErrorKind.GLOBAL_LIMIT_REACHED for r in failures)
        assert await usage_count(session_maker, coupon_id) == 1

    async def test_concurrent_same_order_records_once(self, session_maker, ledger):
        coupon_id = await seed_coupon(session_maker, usage_limit=5)

        results = await asyncio.gather(*[
            ledger.redeem(coupon_id, "user_1", "order_1", Decimal("200"))
            for _ in range(3)
        ])

        assert all(r.success for r in results)
        assert len({r.usage.usage_id for r in results}) == 1
        assert sum(1 for r in results if not r.replayed) == 1
        assert await usage_count(session_maker, coupon_id) == 1

    async def test_negative_discount_rejected(self, session_maker, ledger):
        coupon_id = await seed_coupon(session_maker)

        result = await ledger.redeem(coupon_id, "user_1", "order_1", Decimal("-1"))

        assert result.error_kind == CouponErrorKind.INVALID_ARGUMENT
        assert await usage_count(session_maker, coupon_id) == 0

    async def test_missing_order_id_rejected(self, session_maker, ledger):
        coupon_id = await seed_coupon(session_maker)

        result = await ledger.redeem(coupon_id, "user_1", "", Decimal("200"))

        assert result.error_kind == CouponErrorKind.INVALID_ARGUMENT

    async def test_unknown_coupon(self, ledger):
        result = await ledger.redeem("missing", "user_1", "order_1", Decimal("200"))

        assert result.error_kind == CouponErrorKind.NOT_FOUND

    async def test_zero_discount_is_recorded(self, session_maker, ledger):
        coupon_id = await seed_coupon(session_maker)

        result = await ledger.redeem(coupon_id, "user_1", "order_1", Decimal("0"))

        assert result.success
        assert result.usage.discount_amount == Decimal("0")
