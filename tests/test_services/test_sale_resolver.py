"""
促销匹配测试
"""

import pytest
from decimal import Decimal
from datetime import timedelta
from unittest.mock import AsyncMock

from app.models.sale import Sale
from app.repositories.sale_repository import SaleRepository
from app.services.sale_resolver import (
    SaleResolver,
    rank_applicable_sales,
    first_eligible,
    UNEXPIRED_SALES_KEY,
)
from tests.factories import NOW


def make_sale(sale_id, scope="global", category_id=None, product_ids=None, **overrides):
    data = {
        "sale_id": sale_id,
        "name": sale_id,
        "discount_kind": "percentage",
        "discount_value": Decimal("10"),
        "scope": scope,
        "category_id": category_id,
        "product_ids": product_ids or [],
        "valid_from": NOW - timedelta(days=1),
        "valid_until": NOW + timedelta(days=1),
        "is_active": True,
        "is_featured": False,
        "created_at": NOW - timedelta(days=3),
    }
    data.update(overrides)
    return Sale(**data)


class TestRankApplicableSales:
    """促销筛选与排序测试"""

    def test_product_ranks_before_category_before_global(self):
        sales = [
            make_sale("global"),
            make_sale("category", scope="category", category_id="silk"),
            make_sale("product", scope="product", product_ids=["p1"]),
        ]

        ranked = rank_applicable_sales(sales, "p1", "silk", NOW)

        assert [s.sale_id for s in ranked] == ["product", "category", "global"]

    def test_featured_breaks_specificity_tie(self):
        sales = [
            make_sale("plain", created_at=NOW - timedelta(hours=1)),
            make_sale("featured", is_featured=True, created_at=NOW - timedelta(days=5)),
        ]

        ranked = rank_applicable_sales(sales, "p1", None, NOW)

        assert [s.sale_id for s in ranked] == ["featured", "plain"]

    def test_newest_breaks_featured_tie(self):
        sales = [
            make_sale("older", created_at=NOW - timedelta(days=2)),
            make_sale("newer", created_at=NOW - timedelta(days=1)),
        ]

        ranked = rank_applicable_sales(sales, "p1", None, NOW)

        assert [s.sale_id for s in ranked] == ["newer", "older"]

    def test_excludes_inactive_and_out_of_window(self):
        sales = [
            make_sale("inactive", is_active=False),
            make_sale("expired", valid_from=NOW - timedelta(days=5), valid_until=NOW - timedelta(seconds=1)),
            make_sale("future", valid_from=NOW + timedelta(seconds=1), valid_until=NOW + timedelta(days=5)),
            make_sale("current"),
        ]

        ranked = rank_applicable_sales(sales, "p1", None, NOW)

        assert [s.sale_id for s in ranked] == ["current"]
        for sale in ranked:
            assert sale.is_active
            assert sale.valid_from <= NOW <= sale.valid_until

    def test_window_bounds_inclusive(self):
        sales = [
            make_sale("starts_now", valid_from=NOW),
            make_sale("ends_now", valid_until=NOW),
        ]

        ranked = rank_applicable_sales(sales, "p1", None, NOW)

        assert {s.sale_id for s in ranked} == {"starts_now", "ends_now"}

    def test_single_instant_sale_matches_only_that_instant(self):
        sales = [make_sale("instant", valid_from=NOW, valid_until=NOW)]

        assert rank_applicable_sales(sales, "p1", None, NOW)
        assert not rank_applicable_sales(sales, "p1", None, NOW + timedelta(microseconds=1))

    def test_excludes_other_category_and_product(self):
        sales = [
            make_sale("cotton", scope="category", category_id="cotton"),
            make_sale("other_product", scope="product", product_ids=["p2"]),
        ]

        assert rank_applicable_sales(sales, "p1", "silk", NOW) == []

    def test_first_eligible_skips_unmet_minimum(self):
        ranked = [
            make_sale("needs_5000", scope="product", product_ids=["p1"], min_order_amount=Decimal("5000")),
            make_sale("no_minimum"),
        ]

        assert first_eligible(ranked, Decimal("2000")).sale_id == "no_minimum"
        assert first_eligible(ranked, Decimal("5000")).sale_id == "needs_5000"
        assert first_eligible([], Decimal("5000")) is None


@pytest.mark.asyncio
class TestSaleResolver:
    """SaleResolver测试类"""

    @pytest.fixture
    def mock_sale_repo(self):
        return AsyncMock(spec=SaleRepository)

    @pytest.fixture
    def mock_cache(self):
        cache = AsyncMock()
        cache.get = AsyncMock(return_value=None)
        cache.set = AsyncMock(return_value=True)
        cache.delete = AsyncMock(return_value=True)
        return cache

    @pytest.fixture
    def resolver(self, mock_sale_repo, mock_cache):
        resolver = SaleResolver(mock_sale_repo)
        resolver.cache = mock_cache
        return resolver

    async def test_resolve_with_explicit_now_bypasses_cache(self, resolver, mock_sale_repo, mock_cache):
        mock_sale_repo.get_unexpired_sales.return_value = [
            make_sale("global"),
            make_sale("category", scope="category", category_id="silk"),
        ]

        ranked = await resolver.resolve_for_product("p1", "silk", NOW)

        assert [s.sale_id for s in ranked] == ["category", "global"]
        mock_sale_repo.get_unexpired_sales.assert_called_once_with(NOW)
        mock_cache.get.assert_not_called()
        mock_cache.set.assert_not_called()

    async def test_best_for_product(self, resolver, mock_sale_repo):
        mock_sale_repo.get_unexpired_sales.return_value = [
            make_sale("global"),
            make_sale("product", scope="product", product_ids=["p1"]),
        ]

        best = await resolver.best_for_product("p1", None, NOW)

        assert best.sale_id == "product"

    async def test_best_for_product_none(self, resolver, mock_sale_repo):
        mock_sale_repo.get_unexpired_sales.return_value = []

        assert await resolver.best_for_product("p1", None, NOW) is None

    async def test_candidates_cache_hit(self, resolver, mock_sale_repo, mock_cache):
        cached = make_sale("cached")
        mock_cache.get.return_value = [cached.model_dump(mode="json")]

        sales = await resolver.get_candidate_sales(NOW)

        assert [s.sale_id for s in sales] == ["cached"]
        assert sales[0].discount_value == Decimal("10")
        mock_cache.get.assert_called_once_with(UNEXPIRED_SALES_KEY)
        mock_sale_repo.get_unexpired_sales.assert_not_called()

    async def test_candidates_cache_miss_populates_cache(self, resolver, mock_sale_repo, mock_cache):
        sale = make_sale("fresh")
        mock_sale_repo.get_unexpired_sales.return_value = [sale]

        sales = await resolver.get_candidate_sales(NOW)

        assert sales == [sale]
        mock_cache.set.assert_called_once_with(
            UNEXPIRED_SALES_KEY, [sale.model_dump(mode="json")], ttl=resolver.cache_ttl
        )

    async def test_cached_candidates_are_refiltered_by_now(self, resolver, mock_sale_repo, mock_cache):
        """缓存中已过期的促销在当前时间下被过滤掉"""
        expired = make_sale("expired", valid_until=NOW - timedelta(minutes=1))
        mock_cache.get.return_value = [expired.model_dump(mode="json")]

        candidates = await resolver.get_candidate_sales(NOW)

        assert rank_applicable_sales(candidates, "p1", None, NOW) == []

    async def test_invalidate_deletes_candidates(self, resolver, mock_cache):
        await resolver.invalidate()

        mock_cache.delete.assert_called_once_with(UNEXPIRED_SALES_KEY)
