"""
促销活动数据库操作层
"""

import uuid
from typing import List, Optional, Dict, Any, Tuple
from datetime import datetime

from sqlalchemy import select, update, delete, and_, desc, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utc_now
from app.models.sale import Sale, SaleCreate
from app.models.database.sale_db import SaleDB, SaleProductDB


class SaleRepository:
    """促销活动数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def commit(self) -> None:
        """提交当前事务，写入对其他会话可见后再清缓存"""
        await self.db.commit()

    async def get_by_sale_id(self, sale_id: str) -> Optional[SaleDB]:
        """根据促销ID获取促销"""
        result = await self.db.execute(
            select(SaleDB).where(SaleDB.sale_id == sale_id)
        )
        return result.scalar_one_or_none()

    async def get_product_ids(self, sale_id: str) -> List[str]:
        """获取促销关联的商品ID"""
        result = await self.db.execute(
            select(SaleProductDB.product_id)
            .where(SaleProductDB.sale_id == sale_id)
            .order_by(SaleProductDB.product_id)
        )
        return list(result.scalars().all())

    async def get_product_ids_for_sales(self, sale_ids: List[str]) -> Dict[str, List[str]]:
        """批量获取多个促销的商品ID"""
        mapping: Dict[str, List[str]] = {sale_id: [] for sale_id in sale_ids}
        if not sale_ids:
            return mapping

        result = await self.db.execute(
            select(SaleProductDB.sale_id, SaleProductDB.product_id)
            .where(SaleProductDB.sale_id.in_(sale_ids))
            .order_by(SaleProductDB.sale_id, SaleProductDB.product_id)
        )
        for row in result.fetchall():
            mapping[row.sale_id].append(row.product_id)
        return mapping

    async def list_sales(
        self,
        is_active: Optional[bool] = None,
        is_featured: Optional[bool] = None,
        category_id: Optional[str] = None,
        current_at: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[Tuple[SaleDB, int]]:
        """按条件获取促销列表，附带关联商品数量"""
        product_count = select(
            SaleProductDB.sale_id,
            func.count(SaleProductDB.product_id).label("product_count")
        ).group_by(SaleProductDB.sale_id).subquery()

        query = select(
            SaleDB,
            func.coalesce(product_count.c.product_count, 0).label("product_count")
        ).outerjoin(product_count, SaleDB.sale_id == product_count.c.sale_id)

        conditions = []
        if is_active is not None:
            conditions.append(SaleDB.is_active.is_(is_active))
        if is_featured is not None:
            conditions.append(SaleDB.is_featured.is_(is_featured))
        if category_id:
            conditions.append(SaleDB.category_id == category_id)
        if current_at is not None:
            conditions.append(SaleDB.valid_from <= current_at)
            conditions.append(SaleDB.valid_until >= current_at)
        if conditions:
            query = query.where(and_(*conditions))

        query = query.order_by(desc(SaleDB.created_at), SaleDB.sale_id).limit(limit).offset(offset)

        result = await self.db.execute(query)
        return [(row.SaleDB, int(row.product_count)) for row in result.fetchall()]

    async def get_unexpired_sales(self, now: datetime) -> List[Sale]:
        """获取启用且尚未结束的全部促销（含商品ID），开始时间由调用方按当前时间过滤"""
        result = await self.db.execute(
            select(SaleDB).where(
                and_(
                    SaleDB.is_active.is_(True),
                    SaleDB.valid_until >= now
                )
            )
        )
        db_sales = list(result.scalars().all())
        product_ids = await self.get_product_ids_for_sales([s.sale_id for s in db_sales])
        return [self.to_model(s, product_ids[s.sale_id]) for s in db_sales]

    async def create_sale(self, sale_data: SaleCreate) -> SaleDB:
        """创建促销及其商品关联"""
        now = utc_now()
        db_sale = SaleDB(
            sale_id=str(uuid.uuid4()),
            name=sale_data.name,
            description=sale_data.description,
            offer_type=sale_data.offer_type.value if sale_data.offer_type else None,
            discount_kind=sale_data.discount_kind.value,
            discount_value=sale_data.discount_value,
            max_discount_amount=sale_data.max_discount_amount,
            min_order_amount=sale_data.min_order_amount,
            scope=sale_data.scope.value,
            category_id=sale_data.category_id,
            valid_from=sale_data.valid_from,
            valid_until=sale_data.valid_until,
            is_active=sale_data.is_active,
            is_featured=sale_data.is_featured,
            banner_image=sale_data.banner_image,
            created_at=now,
            updated_at=now
        )
        self.db.add(db_sale)
        for product_id in dict.fromkeys(sale_data.product_ids):
            self.db.add(SaleProductDB(sale_id=db_sale.sale_id, product_id=product_id))

        await self.db.flush()
        return db_sale

    async def update_sale(self, sale_id: str, values: Dict[str, Any]) -> Optional[SaleDB]:
        """更新促销字段"""
        if values:
            values = {**values, "updated_at": utc_now()}
            await self.db.execute(
                update(SaleDB).where(SaleDB.sale_id == sale_id).values(**values)
            )
        db_sale = await self.get_by_sale_id(sale_id)
        if db_sale is not None:
            await self.db.refresh(db_sale)
        return db_sale

    async def replace_products(self, sale_id: str, product_ids: List[str]) -> List[str]:
        """整体替换促销的商品集合（随外层事务提交）"""
        await self.db.execute(
            delete(SaleProductDB).where(SaleProductDB.sale_id == sale_id)
        )
        unique_ids = list(dict.fromkeys(product_ids))
        for product_id in unique_ids:
            self.db.add(SaleProductDB(sale_id=sale_id, product_id=product_id))
        await self.db.flush()
        return sorted(unique_ids)

    async def deactivate_sale(self, sale_id: str) -> bool:
        """停用促销（不物理删除）"""
        result = await self.db.execute(
            update(SaleDB)
            .where(SaleDB.sale_id == sale_id)
            .values(is_active=False, updated_at=utc_now())
        )
        return result.rowcount > 0

    def to_model(self, db_sale: SaleDB, product_ids: Optional[List[str]] = None) -> Sale:
        """转换为Pydantic模型"""
        return Sale(
            sale_id=db_sale.sale_id,
            name=db_sale.name,
            description=db_sale.description,
            offer_type=db_sale.offer_type,
            discount_kind=db_sale.discount_kind,
            discount_value=db_sale.discount_value,
            max_discount_amount=db_sale.max_discount_amount,
            min_order_amount=db_sale.min_order_amount,
            scope=db_sale.scope,
            category_id=db_sale.category_id,
            product_ids=product_ids or [],
            valid_from=db_sale.valid_from,
            valid_until=db_sale.valid_until,
            is_active=db_sale.is_active,
            is_featured=db_sale.is_featured,
            banner_image=db_sale.banner_image,
            created_at=db_sale.created_at,
            updated_at=db_sale.updated_at
        )
