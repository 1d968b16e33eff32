"""
优惠券Repository测试
"""

import pytest
from decimal import Decimal

from app.repositories.coupon_repository import CouponRepository
from tests.factories import NOW, seed_coupon


@pytest.mark.asyncio
class TestCouponRepository:
    """CouponRepository测试类"""

    async def test_get_by_code_is_case_insensitive(self, session_maker, db_session):
        coupon_id = await seed_coupon(session_maker)
        repo = CouponRepository(db_session)

        assert (await repo.get_by_code("save200")).coupon_id == coupon_id
        assert (await repo.get_by_code(" Save200 ")).coupon_id == coupon_id
        assert await repo.get_by_code("SAVE300") is None

    async def test_usage_counts(self, session_maker, db_session):
        coupon_id = await seed_coupon(session_maker, usage_limit=None)
        repo = CouponRepository(db_session)

        await repo.add_usage(coupon_id, "user_1", "order_1", Decimal("200"))
        await repo.add_usage(coupon_id, "user_1", "order_2", Decimal("200"))
        await repo.add_usage(coupon_id, "user_2", "order_3", Decimal("200"))

        assert await repo.count_usage(coupon_id) == 3
        assert await repo.count_user_usage(coupon_id, "user_1") == 2
        assert await repo.count_user_usage(coupon_id, "user_3") == 0

    async def test_get_usage_by_order(self, session_maker, db_session):
        coupon_id = await seed_coupon(session_maker)
        repo = CouponRepository(db_session)
        usage = await repo.add_usage(coupon_id, "user_1", "order_1", Decimal("200"))

        found = await repo.get_usage_by_order(coupon_id, "order_1")

        assert found.usage_id == usage.usage_id
        assert await repo.get_usage_by_order(coupon_id, "order_2") is None

    async def test_create_and_to_model(self, db_session):
        repo = CouponRepository(db_session)

        db_coupon = await repo.create_coupon({
            "code": "FESTIVE15",
            "name": "节日九五折",
            "discount_kind": "percentage",
            "discount_value": Decimal("15"),
            "max_discount_amount": Decimal("500"),
            "valid_from": NOW,
            "valid_until": None,
            "usage_limit": 100,
        })
        coupon = repo.to_model(db_coupon)

        assert coupon.code == "FESTIVE15"
        assert coupon.discount_kind == "percentage"
        assert coupon.max_discount_amount == Decimal("500")
        assert coupon.valid_until is None
        assert coupon.is_active

    async def test_list_coupons_with_usage_count(self, session_maker, db_session):
        used_id = await seed_coupon(session_maker, usage_limit=None)
        await seed_coupon(session_maker, code="IDLE", is_active=False)
        repo = CouponRepository(db_session)
        await repo.add_usage(used_id, "user_1", "order_1", Decimal("200"))
        await repo.add_usage(used_id, "user_2", "order_2", Decimal("200"))

        counts = {db_coupon.code: count for db_coupon, count in await repo.list_coupons()}
        active = await repo.list_coupons(is_active=True)

        assert counts == {"SAVE200": 2, "IDLE": 0}
        assert [db_coupon.code for db_coupon, _ in active] == ["SAVE200"]

    async def test_update_and_deactivate(self, session_maker, db_session):
        coupon_id = await seed_coupon(session_maker)
        repo = CouponRepository(db_session)

        updated = await repo.update_coupon(coupon_id, {"min_order_amount": Decimal("1500")})
        assert updated.min_order_amount == Decimal("1500")

        assert await repo.deactivate_coupon(coupon_id)
        assert not (await repo.get_by_coupon_id(coupon_id)).is_active

    async def test_stats_without_limit(self, session_maker, db_session):
        coupon_id = await seed_coupon(session_maker, usage_limit=None)
        repo = CouponRepository(db_session)
        await repo.add_usage(coupon_id, "user_1", "order_1", Decimal("120.50"))

        stats = await repo.get_coupon_stats(coupon_id)

        assert stats.total_usage == 1
        assert stats.remaining_count is None
        assert stats.total_discount == Decimal("120.50")
        assert await repo.get_coupon_stats("missing") is None

    async def test_user_usage_history(self, session_maker, db_session):
        coupon_id = await seed_coupon(session_maker, usage_limit=None)
        repo = CouponRepository(db_session)
        await repo.add_usage(coupon_id, "user_1", "order_1", Decimal("200"))
        await repo.add_usage(coupon_id, "user_2", "order_2", Decimal("200"))

        history = await repo.get_user_coupon_usage_history("user_1")

        assert len(history) == 1
        assert history[0].order_id == "order_1"
        assert history[0].code == "SAVE200"
