"""
促销匹配服务
根据商品、分类和当前时间找出生效的促销，并按具体程度排序
"""

import logging
from typing import List, Optional, Iterable
from datetime import datetime
from decimal import Decimal

from app.core.clock import utc_now, as_naive_utc
from app.core.config import settings
from app.models.sale import Sale
from app.repositories.sale_repository import SaleRepository
from app.services.common_cache import sale_cache

logger = logging.getLogger(__name__)

UNEXPIRED_SALES_KEY = "unexpired"


def sale_rank_key(sale: Sale):
    """排序键：商品 > 分类 > 全场，其次推荐优先，再次创建时间新者优先"""
    return (sale.specificity, sale.is_featured, sale.created_at, sale.sale_id)


def rank_applicable_sales(
    sales: Iterable[Sale],
    product_id: str,
    category_id: Optional[str],
    now: datetime
) -> List[Sale]:
    """
    筛选并排序适用于商品的促销

    1. 启用且 now 落在 [valid_from, valid_until] 内
    2. 范围为全场、同分类或包含该商品
    3. 按具体程度、是否推荐、创建时间倒序
    """
    applicable = [
        sale for sale in sales
        if sale.is_current(now) and sale.targets(product_id, category_id)
    ]
    applicable.sort(key=sale_rank_key, reverse=True)
    return applicable


def first_eligible(ranked: Iterable[Sale], order_amount: Decimal) -> Optional[Sale]:
    """按排序取第一个满足最低金额要求的促销"""
    for sale in ranked:
        if sale.min_order_amount is None or order_amount >= sale.min_order_amount:
            return sale
    return None


class SaleResolver:
    """促销匹配服务"""

    def __init__(self, sale_repo: SaleRepository):
        self.sale_repo = sale_repo
        self.cache = sale_cache
        self.cache_ttl = settings.sale_cache_ttl

    async def get_candidate_sales(self, now: datetime, use_cache: bool = True) -> List[Sale]:
        """获取候选促销（启用且未结束），时间窗口由调用方再次过滤"""
        if use_cache:
            cached_sales = await self.cache.get(UNEXPIRED_SALES_KEY)
            if cached_sales is not None:
                return [Sale(**sale_data) for sale_data in cached_sales]

        sales = await self.sale_repo.get_unexpired_sales(now)

        if use_cache:
            await self.cache.set(
                UNEXPIRED_SALES_KEY,
                [sale.model_dump(mode="json") for sale in sales],
                ttl=self.cache_ttl
            )

        return sales

    async def resolve_for_product(
        self,
        product_id: str,
        category_id: Optional[str],
        now: Optional[datetime] = None
    ) -> List[Sale]:
        """返回适用于商品的全部促销（已排序）"""
        # 指定了历史/未来时间时不走缓存，缓存只对应真实时钟
        use_cache = now is None
        now = as_naive_utc(now) if now is not None else utc_now()
        candidates = await self.get_candidate_sales(now, use_cache=use_cache)
        return rank_applicable_sales(candidates, product_id, category_id, now)

    async def best_for_product(
        self,
        product_id: str,
        category_id: Optional[str],
        now: Optional[datetime] = None
    ) -> Optional[Sale]:
        """返回排序第一的促销（列表页角标用）"""
        ranked = await self.resolve_for_product(product_id, category_id, now)
        return ranked[0] if ranked else None

    async def invalidate(self) -> None:
        """促销变更后清除候选缓存"""
        await self.cache.delete(UNEXPIRED_SALES_KEY)
        logger.debug("促销候选缓存已清除")
