"""
促销Repository测试
"""

import pytest
from decimal import Decimal
from datetime import timedelta

from app.models.sale import SaleCreate
from app.repositories.sale_repository import SaleRepository
from tests.factories import NOW, seed_sale


@pytest.mark.asyncio
class TestSaleRepository:
    """SaleRepository测试类"""

    async def test_create_sale_with_products(self, db_session):
        repo = SaleRepository(db_session)

        db_sale = await repo.create_sale(SaleCreate(
            name="丝绸节",
            offer_type="product",
            discount_value=Decimal("150"),
            product_ids=["saree_1", "saree_2", "saree_1"],
            valid_from=NOW,
            valid_until=NOW + timedelta(days=3),
        ))

        assert db_sale.discount_kind == "flat_amount"
        assert db_sale.scope == "product"
        assert await repo.get_product_ids(db_sale.sale_id) == ["saree_1", "saree_2"]

    async def test_get_unexpired_sales(self, session_maker, db_session):
        await seed_sale(session_maker, "running")
        await seed_sale(session_maker, "upcoming", valid_from=NOW + timedelta(days=1), valid_until=NOW + timedelta(days=2))
        await seed_sale(session_maker, "ended", valid_from=NOW - timedelta(days=3), valid_until=NOW - timedelta(days=1))
        await seed_sale(session_maker, "disabled", is_active=False)
        await seed_sale(session_maker, "products", scope="product", product_ids=["p2", "p1"])

        sales = await SaleRepository(db_session).get_unexpired_sales(NOW)
        by_id = {s.sale_id: s for s in sales}

        assert set(by_id) == {"running", "upcoming", "products"}
        assert by_id["products"].product_ids == ["p1", "p2"]

    async def test_list_sales_filters_and_counts(self, session_maker, db_session):
        await seed_sale(session_maker, "silk", scope="category", category_id="silk", is_featured=True)
        await seed_sale(session_maker, "bundle", scope="product", product_ids=["p1", "p2", "p3"],
                        created_at=NOW - timedelta(days=1))
        await seed_sale(session_maker, "ended", valid_from=NOW - timedelta(days=3), valid_until=NOW - timedelta(days=1))

        repo = SaleRepository(db_session)
        all_rows = await repo.list_sales()
        current = await repo.list_sales(current_at=NOW)
        featured = await repo.list_sales(is_featured=True)
        silk = await repo.list_sales(category_id="silk")

        counts = {db_sale.sale_id: count for db_sale, count in all_rows}
        assert counts == {"silk": 0, "bundle": 3, "ended": 0}
        assert all_rows[0][0].sale_id == "bundle"
        assert {db_sale.sale_id for db_sale, _ in current} == {"silk", "bundle"}
        assert [db_sale.sale_id for db_sale, _ in featured] == ["silk"]
        assert [db_sale.sale_id for db_sale, _ in silk] == ["silk"]

    async def test_replace_products(self, session_maker, db_session):
        await seed_sale(session_maker, "bundle", scope="product", product_ids=["p1", "p2"])
        repo = SaleRepository(db_session)

        product_ids = await repo.replace_products("bundle", ["p3", "p2", "p3"])

        assert product_ids == ["p2", "p3"]
        assert await repo.get_product_ids("bundle") == ["p2", "p3"]

    async def test_update_and_deactivate(self, session_maker, db_session):
        await seed_sale(session_maker, "running")
        repo = SaleRepository(db_session)

        updated = await repo.update_sale("running", {"discount_value": Decimal("25"), "is_featured": True})
        assert updated.discount_value == Decimal("25")
        assert updated.is_featured

        assert await repo.deactivate_sale("running")
        assert not (await repo.get_by_sale_id("running")).is_active
        assert not await repo.deactivate_sale("missing")

    async def test_update_missing_sale(self, db_session):
        assert await SaleRepository(db_session).update_sale("missing", {"name": "x"}) is None
