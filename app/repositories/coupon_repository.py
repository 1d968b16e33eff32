"""
优惠券数据库操作层
"""

import uuid
from typing import List, Optional, Dict, Any, Tuple
from decimal import Decimal

from sqlalchemy import select, update, and_, desc, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utc_now
from app.models.coupon import (
    Coupon,
    CouponUsage,
    CouponStats,
    CouponUsageHistoryItem,
    normalize_coupon_code,
)
from app.models.database.coupon_db import CouponDB, CouponUsageDB


class CouponRepository:
    """优惠券数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def commit(self) -> None:
        """提交当前事务，写入对其他会话可见后再清缓存"""
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()

    async def get_by_code(self, code: str) -> Optional[CouponDB]:
        """根据优惠码获取优惠券（不区分大小写）"""
        result = await self.db.execute(
            select(CouponDB).where(CouponDB.code == normalize_coupon_code(code))
        )
        return result.scalar_one_or_none()

    async def get_by_coupon_id(self, coupon_id: str, for_update: bool = False) -> Optional[CouponDB]:
        """根据优惠券ID获取优惠券，for_update时对该行加锁"""
        query = select(CouponDB).where(CouponDB.coupon_id == coupon_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def count_usage(self, coupon_id: str) -> int:
        """统计优惠券总核销次数"""
        result = await self.db.execute(
            select(func.count(CouponUsageDB.usage_id)).where(
                CouponUsageDB.coupon_id == coupon_id
            )
        )
        return result.scalar() or 0

    async def count_user_usage(self, coupon_id: str, user_id: str) -> int:
        """获取用户对特定优惠券的使用次数"""
        result = await self.db.execute(
            select(func.count(CouponUsageDB.usage_id)).where(
                and_(
                    CouponUsageDB.user_id == user_id,
                    CouponUsageDB.coupon_id == coupon_id
                )
            )
        )
        return result.scalar() or 0

    async def get_usage_by_order(self, coupon_id: str, order_id: str) -> Optional[CouponUsageDB]:
        """获取订单对该优惠券的使用记录"""
        result = await self.db.execute(
            select(CouponUsageDB).where(
                and_(
                    CouponUsageDB.coupon_id == coupon_id,
                    CouponUsageDB.order_id == order_id
                )
            )
        )
        return result.scalar_one_or_none()

    async def add_usage(
        self,
        coupon_id: str,
        user_id: str,
        order_id: str,
        discount_amount: Decimal
    ) -> CouponUsageDB:
        """写入一条使用记录"""
        usage = CouponUsageDB(
            usage_id=str(uuid.uuid4()),
            coupon_id=coupon_id,
            user_id=user_id,
            order_id=order_id,
            discount_amount=discount_amount,
            used_at=utc_now()
        )
        self.db.add(usage)
        await self.db.flush()
        return usage

    async def list_coupons(
        self,
        is_active: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[Tuple[CouponDB, int]]:
        """获取优惠券列表，附带已核销次数"""
        usage_count = select(
            CouponUsageDB.coupon_id,
            func.count(CouponUsageDB.usage_id).label("usage_count")
        ).group_by(CouponUsageDB.coupon_id).subquery()

        query = select(
            CouponDB,
            func.coalesce(usage_count.c.usage_count, 0).label("usage_count")
        ).outerjoin(usage_count, CouponDB.coupon_id == usage_count.c.coupon_id)

        if is_active is not None:
            query = query.where(CouponDB.is_active.is_(is_active))

        query = query.order_by(desc(CouponDB.created_at), CouponDB.coupon_id).limit(limit).offset(offset)

        result = await self.db.execute(query)
        return [(row.CouponDB, int(row.usage_count)) for row in result.fetchall()]

    async def create_coupon(self, values: Dict[str, Any]) -> CouponDB:
        """创建优惠券"""
        now = utc_now()
        db_coupon = CouponDB(
            coupon_id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            **values
        )
        self.db.add(db_coupon)
        await self.db.flush()
        return db_coupon

    async def update_coupon(self, coupon_id: str, values: Dict[str, Any]) -> Optional[CouponDB]:
        """更新优惠券字段"""
        if values:
            values = {**values, "updated_at": utc_now()}
            await self.db.execute(
                update(CouponDB).where(CouponDB.coupon_id == coupon_id).values(**values)
            )
        db_coupon = await self.get_by_coupon_id(coupon_id)
        if db_coupon is not None:
            await self.db.refresh(db_coupon)
        return db_coupon

    async def deactivate_coupon(self, coupon_id: str) -> bool:
        """停用优惠券（软删除，保留使用记录）"""
        result = await self.db.execute(
            update(CouponDB)
            .where(CouponDB.coupon_id == coupon_id)
            .values(is_active=False, updated_at=utc_now())
        )
        return result.rowcount > 0

    async def get_coupon_stats(self, coupon_id: str) -> Optional[CouponStats]:
        """获取优惠券统计信息"""
        coupon = await self.get_by_coupon_id(coupon_id)
        if not coupon:
            return None

        usage_stats = await self.db.execute(
            select(
                func.count(CouponUsageDB.usage_id).label("total_usage"),
                func.sum(CouponUsageDB.discount_amount).label("total_discount"),
                func.count(func.distinct(CouponUsageDB.user_id)).label("unique_users")
            ).where(CouponUsageDB.coupon_id == coupon_id)
        )
        stats_row = usage_stats.fetchone()
        total_usage = stats_row.total_usage or 0

        return CouponStats(
            coupon_id=coupon.coupon_id,
            code=coupon.code,
            name=coupon.name,
            is_active=coupon.is_active,
            usage_limit=coupon.usage_limit,
            total_usage=total_usage,
            remaining_count=(
                max(coupon.usage_limit - total_usage, 0) if coupon.usage_limit is not None else None
            ),
            total_discount=Decimal(str(stats_row.total_discount or 0)),
            unique_users=stats_row.unique_users or 0
        )

    async def get_user_coupon_usage_history(
        self,
        user_id: str,
        limit: int = 20,
        offset: int = 0
    ) -> List[CouponUsageHistoryItem]:
        """获取用户优惠券使用历史"""
        query = select(
            CouponUsageDB,
            CouponDB.name,
            CouponDB.code
        ).join(
            CouponDB, CouponUsageDB.coupon_id == CouponDB.coupon_id
        ).where(
            CouponUsageDB.user_id == user_id
        ).order_by(desc(CouponUsageDB.used_at)).limit(limit).offset(offset)

        result = await self.db.execute(query)
        return [
            CouponUsageHistoryItem(
                usage_id=row.CouponUsageDB.usage_id,
                coupon_id=row.CouponUsageDB.coupon_id,
                code=row.code,
                name=row.name,
                order_id=row.CouponUsageDB.order_id,
                discount_amount=row.CouponUsageDB.discount_amount,
                used_at=row.CouponUsageDB.used_at
            )
            for row in result.fetchall()
        ]

    def to_model(self, db_coupon: CouponDB) -> Coupon:
        """转换为Pydantic模型"""
        return Coupon(
            coupon_id=db_coupon.coupon_id,
            code=db_coupon.code,
            name=db_coupon.name,
            description=db_coupon.description,
            discount_kind=db_coupon.discount_kind,
            discount_value=db_coupon.discount_value,
            max_discount_amount=db_coupon.max_discount_amount,
            min_order_amount=db_coupon.min_order_amount,
            valid_from=db_coupon.valid_from,
            valid_until=db_coupon.valid_until,
            usage_limit=db_coupon.usage_limit,
            per_user_limit=db_coupon.per_user_limit,
            is_active=db_coupon.is_active,
            created_at=db_coupon.created_at,
            updated_at=db_coupon.updated_at
        )

    def usage_to_model(self, db_usage: CouponUsageDB) -> CouponUsage:
        """使用记录转换为Pydantic模型"""
        return CouponUsage(
            usage_id=db_usage.usage_id,
            coupon_id=db_usage.coupon_id,
            user_id=db_usage.user_id,
            order_id=db_usage.order_id,
            discount_amount=db_usage.discount_amount,
            used_at=db_usage.used_at
        )
