"""
商品数据库操作层（只读）
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.product import Product
from app.models.database.product_db import ProductDB


class ProductRepository:
    """商品数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_product_id(self, product_id: str) -> Optional[ProductDB]:
        """根据商品ID获取商品"""
        result = await self.db.execute(
            select(ProductDB).where(ProductDB.product_id == product_id)
        )
        return result.scalar_one_or_none()

    async def get_by_product_ids(self, product_ids: List[str]) -> List[ProductDB]:
        """批量获取商品"""
        if not product_ids:
            return []
        result = await self.db.execute(
            select(ProductDB).where(ProductDB.product_id.in_(product_ids))
        )
        return list(result.scalars().all())

    async def list_products(
        self,
        category_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[ProductDB]:
        """获取上架商品列表"""
        query = select(ProductDB).where(ProductDB.is_active.is_(True))
        if category_id:
            query = query.where(ProductDB.category_id == category_id)
        query = query.order_by(ProductDB.created_at.desc(), ProductDB.product_id)
        query = query.limit(limit).offset(offset)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    def to_model(self, db_product: ProductDB) -> Product:
        """转换为Pydantic模型"""
        return Product(
            product_id=db_product.product_id,
            name=db_product.name,
            category_id=db_product.category_id,
            price=db_product.price,
            is_active=db_product.is_active,
        )
