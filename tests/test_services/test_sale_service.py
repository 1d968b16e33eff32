"""
促销服务测试
"""

import pytest
from decimal import Decimal
from datetime import timedelta
from unittest.mock import AsyncMock

from sqlalchemy import select, func

from app.core.exceptions import InvalidArgumentError, NotFoundError
from app.models.database.sale_db import SaleDB
from app.models.price_rule import DiscountKind, RuleScope
from app.models.sale import SaleCreate, SaleUpdate
from app.repositories.sale_repository import SaleRepository
from app.services.sale_resolver import UNEXPIRED_SALES_KEY
from app.services.sale_service import SaleService
from tests.factories import NOW, seed_sale


@pytest.fixture
def mock_cache():
    cache = AsyncMock()
    cache.get = AsyncMock(return_value=None)
    cache.set = AsyncMock(return_value=True)
    cache.delete = AsyncMock(return_value=True)
    return cache


@pytest.fixture
def sale_service(db_session, mock_cache):
    service = SaleService(SaleRepository(db_session))
    service.resolver.cache = mock_cache
    return service


@pytest.mark.asyncio
class TestSaleService:
    """SaleService测试类"""

    async def test_create_invalidates_candidates(self, sale_service, mock_cache):
        sale = await sale_service.create_sale(SaleCreate(
            name="排灯节",
            offer_type="category",
            discount_value=Decimal("20"),
            max_discount_amount=Decimal("300"),
            category_id="silk",
            valid_from=NOW,
            valid_until=NOW + timedelta(days=5),
        ))

        assert sale.discount_kind == DiscountKind.PERCENTAGE
        assert sale.scope == RuleScope.CATEGORY
        mock_cache.delete.assert_called_once_with(UNEXPIRED_SALES_KEY)

    async def test_candidates_invalidated_after_commit(self, session_maker, sale_service, mock_cache):
        """清缓存时新促销已对其他会话可见，避免并发读回填旧候选"""
        seen = []

        async def record_visible_sales(key):
            async with session_maker() as session:
                result = await session.execute(select(func.count()).select_from(SaleDB))
                seen.append(result.scalar_one())
            return True

        mock_cache.delete.side_effect = record_visible_sales
        await sale_service.create_sale(SaleCreate(
            name="限时抢购",
            offer_type="flash_sale",
            discount_value=Decimal("25"),
            valid_from=NOW,
            valid_until=NOW + timedelta(hours=2),
        ))

        assert seen == [1]

    async def test_get_missing_sale(self, sale_service):
        with pytest.raises(NotFoundError):
            await sale_service.get_sale("missing")

    async def test_update_offer_type_remaps_kind(self, session_maker, sale_service):
        await seed_sale(session_maker, "running", discount_value="150", discount_kind="flat_amount")

        with pytest.raises(InvalidArgumentError):
            # 150 作为百分比不合法
            await sale_service.update_sale("running", SaleUpdate(offer_type="percentage"))

        updated = await sale_service.update_sale(
            "running", SaleUpdate(offer_type="flash_sale", discount_value=Decimal("30"))
        )
        assert updated.discount_kind == DiscountKind.PERCENTAGE
        assert updated.discount_value == Decimal("30")

    async def test_update_rejects_reversed_window(self, session_maker, sale_service):
        await seed_sale(session_maker, "running")

        with pytest.raises(InvalidArgumentError):
            await sale_service.update_sale("running", SaleUpdate(valid_until=NOW - timedelta(days=5)))

    async def test_update_to_product_scope_requires_products(self, session_maker, sale_service):
        await seed_sale(session_maker, "running")

        with pytest.raises(InvalidArgumentError):
            await sale_service.update_sale("running", SaleUpdate(scope="product"))

        updated = await sale_service.update_sale(
            "running", SaleUpdate(scope="product", product_ids=["p1"])
        )
        assert updated.scope == RuleScope.PRODUCT
        assert updated.product_ids == ["p1"]

    async def test_replace_products(self, session_maker, sale_service, mock_cache):
        await seed_sale(session_maker, "bundle", scope="product", product_ids=["p1"])

        sale = await sale_service.replace_sale_products("bundle", ["p2", "p3"])

        assert sale.product_ids == ["p2", "p3"]
        mock_cache.delete.assert_called_with(UNEXPIRED_SALES_KEY)

    async def test_replace_products_cannot_empty_product_sale(self, session_maker, sale_service):
        await seed_sale(session_maker, "bundle", scope="product", product_ids=["p1"])

        with pytest.raises(InvalidArgumentError):
            await sale_service.replace_sale_products("bundle", [])

    async def test_deactivate(self, session_maker, sale_service):
        await seed_sale(session_maker, "running")

        sale = await sale_service.deactivate_sale("running")

        assert not sale.is_active
        with pytest.raises(NotFoundError):
            await sale_service.deactivate_sale("missing")

    async def test_list_current_sales_order(self, session_maker, sale_service):
        await seed_sale(session_maker, "old", created_at=NOW - timedelta(days=3))
        await seed_sale(session_maker, "new", created_at=NOW - timedelta(days=1))
        await seed_sale(session_maker, "featured", is_featured=True, created_at=NOW - timedelta(days=5))
        await seed_sale(session_maker, "upcoming", valid_from=NOW + timedelta(hours=1))

        sales = await sale_service.list_current_sales(now=NOW)
        featured = await sale_service.list_current_sales(is_featured=True, now=NOW)

        assert [s.sale_id for s in sales] == ["featured", "new", "old"]
        assert [s.sale_id for s in featured] == ["featured"]

    async def test_list_sales_with_product_count(self, session_maker, sale_service):
        await seed_sale(session_maker, "bundle", scope="product", product_ids=["p1", "p2"])
        await seed_sale(session_maker, "ended", valid_from=NOW - timedelta(days=3), valid_until=NOW - timedelta(days=1))

        all_sales = await sale_service.list_sales()
        current = await sale_service.list_sales(current=True, now=NOW)

        assert {s.sale_id: s.product_count for s in all_sales} == {"bundle": 2, "ended": 0}
        assert [s.sale_id for s in current] == ["bundle"]
