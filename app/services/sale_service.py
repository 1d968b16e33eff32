"""
促销活动业务服务层
后台维护促销，写入时校验规则并清除候选缓存
"""

import logging
from typing import List, Optional, Dict, Any
from datetime import datetime

from app.core.clock import utc_now
from app.core.exceptions import InvalidArgumentError, NotFoundError
from app.models.price_rule import RuleScope, check_price_rule_invariants, discount_kind_for_offer_type
from app.models.sale import Sale, SaleCreate, SaleUpdate, SaleWithProducts
from app.repositories.sale_repository import SaleRepository
from app.services.sale_resolver import SaleResolver

logger = logging.getLogger(__name__)

NON_NULLABLE_FIELDS = (
    "name", "discount_kind", "discount_value", "scope",
    "valid_from", "valid_until", "is_active", "is_featured",
)


class SaleService:
    """促销活动业务服务"""

    def __init__(self, sale_repo: SaleRepository):
        self.sale_repo = sale_repo
        self.resolver = SaleResolver(sale_repo)

    async def get_sale(self, sale_id: str) -> Sale:
        """获取促销及其商品ID"""
        db_sale = await self.sale_repo.get_by_sale_id(sale_id)
        if not db_sale:
            raise NotFoundError("促销不存在", details={"sale_id": sale_id})
        product_ids = await self.sale_repo.get_product_ids(sale_id)
        return self.sale_repo.to_model(db_sale, product_ids)

    async def list_sales(
        self,
        is_active: Optional[bool] = None,
        is_featured: Optional[bool] = None,
        category_id: Optional[str] = None,
        current: bool = False,
        limit: int = 50,
        offset: int = 0,
        now: Optional[datetime] = None
    ) -> List[SaleWithProducts]:
        """后台促销列表"""
        rows = await self.sale_repo.list_sales(
            is_active=is_active,
            is_featured=is_featured,
            category_id=category_id,
            current_at=(now or utc_now()) if current else None,
            limit=limit,
            offset=offset
        )
        return [
            SaleWithProducts(**self.sale_repo.to_model(db_sale).model_dump(), product_count=count)
            for db_sale, count in rows
        ]

    async def list_current_sales(
        self,
        is_featured: Optional[bool] = None,
        now: Optional[datetime] = None
    ) -> List[Sale]:
        """前台展示的进行中促销，推荐优先、新建优先"""
        use_cache = now is None
        now = now or utc_now()
        candidates = await self.resolver.get_candidate_sales(now, use_cache=use_cache)
        sales = [
            sale for sale in candidates
            if sale.is_current(now) and (is_featured is None or sale.is_featured == is_featured)
        ]
        sales.sort(key=lambda s: (s.is_featured, s.created_at, s.sale_id), reverse=True)
        return sales

    async def create_sale(self, sale_data: SaleCreate) -> Sale:
        """创建促销"""
        db_sale = await self.sale_repo.create_sale(sale_data)
        sale = self.sale_repo.to_model(db_sale, sorted(set(sale_data.product_ids)))
        logger.info(f"创建促销 {sale.name} ({sale.sale_id}), 范围: {sale.scope.value}")

        await self.sale_repo.commit()
        await self.resolver.invalidate()
        return sale

    async def update_sale(self, sale_id: str, sale_data: SaleUpdate) -> Sale:
        """更新促销，合并后的规则需满足写入校验"""
        current = await self.get_sale(sale_id)

        values: Dict[str, Any] = {
            key: value
            for key, value in sale_data.model_dump(exclude_unset=True).items()
            if not (key in NON_NULLABLE_FIELDS and value is None)
        }
        product_ids = values.pop("product_ids", None)

        # 只改了促销类型时按映射换算折扣方式
        if values.get("offer_type") is not None and "discount_kind" not in values:
            values["discount_kind"] = discount_kind_for_offer_type(values["offer_type"])

        discount_kind = values.get("discount_kind", current.discount_kind)
        scope = values.get("scope", current.scope)
        category_id = values.get("category_id", current.category_id)
        merged_products = product_ids if product_ids is not None else current.product_ids

        try:
            check_price_rule_invariants(
                discount_kind,
                values.get("discount_value", current.discount_value),
                values.get("valid_from", current.valid_from),
                values.get("valid_until", current.valid_until),
            )
        except ValueError as e:
            raise InvalidArgumentError(str(e), details={"sale_id": sale_id})

        if scope == RuleScope.PRODUCT and not merged_products:
            raise InvalidArgumentError("商品范围的促销必须指定商品", details={"sale_id": sale_id})
        if scope == RuleScope.CATEGORY and not category_id:
            raise InvalidArgumentError("分类范围的促销必须指定分类", details={"sale_id": sale_id})

        for key in ("discount_kind", "scope", "offer_type"):
            if values.get(key) is not None:
                values[key] = values[key].value

        await self.sale_repo.update_sale(sale_id, values)
        if product_ids is not None:
            await self.sale_repo.replace_products(sale_id, product_ids)

        await self.sale_repo.commit()
        await self.resolver.invalidate()
        return await self.get_sale(sale_id)

    async def replace_sale_products(self, sale_id: str, product_ids: List[str]) -> Sale:
        """整体替换促销商品"""
        current = await self.get_sale(sale_id)
        if current.scope == RuleScope.PRODUCT and not product_ids:
            raise InvalidArgumentError("商品范围的促销必须指定商品", details={"sale_id": sale_id})

        await self.sale_repo.replace_products(sale_id, product_ids)
        logger.info(f"促销 {sale_id} 商品已替换, 数量: {len(set(product_ids))}")

        await self.sale_repo.commit()
        await self.resolver.invalidate()
        return await self.get_sale(sale_id)

    async def deactivate_sale(self, sale_id: str) -> Sale:
        """停用促销（不物理删除）"""
        if not await self.sale_repo.deactivate_sale(sale_id):
            raise NotFoundError("促销不存在", details={"sale_id": sale_id})
        logger.info(f"停用促销 {sale_id}")

        await self.sale_repo.commit()
        await self.resolver.invalidate()
        return await self.get_sale(sale_id)
