"""
优惠券核销账本

每次核销在单个事务内完成：锁定优惠券行、重新统计使用次数、复核上限、写入使用记录。
已用次数始终由使用记录统计，不在内存或缓存中累加。
(coupon_id, order_id) 唯一，同一订单重复提交返回已有记录。
"""

from decimal import Decimal

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.database import SQLITE_BEGIN_IMMEDIATE
from app.models.coupon import CouponRedemption, CouponErrorKind
from app.repositories.coupon_repository import CouponRepository

logger = structlog.get_logger()


class CouponLedger:
    """优惠券核销账本，自行管理事务"""

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def redeem(
        self,
        coupon_id: str,
        user_id: str,
        order_id: str,
        discount_amount: Decimal
    ) -> CouponRedemption:
        """原子核销一次优惠券"""
        discount_amount = Decimal(str(discount_amount))
        if discount_amount < 0:
            return CouponRedemption.failure(CouponErrorKind.INVALID_ARGUMENT, "优惠金额不能为负数")
        if not user_id or not order_id:
            return CouponRedemption.failure(CouponErrorKind.INVALID_ARGUMENT, "缺少用户ID或订单ID")

        try:
            return await self._redeem_in_transaction(coupon_id, user_id, order_id, discount_amount)
        except IntegrityError:
            # 并发提交同一订单，唯一约束兜底，返回先写入的记录
            replayed = await self._find_existing(coupon_id, order_id)
            if replayed is None:
                raise
            logger.info("优惠券重复核销请求", coupon_id=coupon_id, order_id=order_id, via="unique_constraint")
            return replayed

    async def _redeem_in_transaction(
        self,
        coupon_id: str,
        user_id: str,
        order_id: str,
        discount_amount: Decimal
    ) -> CouponRedemption:
        async with self.session_maker() as session:
            async with session.begin():
                await session.connection(execution_options={SQLITE_BEGIN_IMMEDIATE: True})
                repo = CouponRepository(session)

                # 锁定优惠券行，同一优惠券的核销串行执行
                db_coupon = await repo.get_by_coupon_id(coupon_id, for_update=True)
                if db_coupon is None:
                    return CouponRedemption.failure(CouponErrorKind.NOT_FOUND, "优惠券不存在")

                existing = await repo.get_usage_by_order(coupon_id, order_id)
                if existing is not None:
                    if existing.user_id != user_id:
                        logger.warning(
                            "同一订单使用不同用户重复核销",
                            coupon_id=coupon_id,
                            order_id=order_id,
                            recorded_user_id=existing.user_id,
                            user_id=user_id,
                        )
                    logger.info("优惠券重复核销请求", coupon_id=coupon_id, order_id=order_id)
                    return CouponRedemption(
                        success=True, usage=repo.usage_to_model(existing), replayed=True
                    )

                if db_coupon.usage_limit is not None:
                    total_usage = await repo.count_usage(coupon_id)
                    if total_usage >= db_coupon.usage_limit:
                        logger.info(
                            "优惠券总次数已满",
                            coupon_id=coupon_id,
                            total_usage=total_usage,
                            usage_limit=db_coupon.usage_limit,
                        )
                        return CouponRedemption.failure(
                            CouponErrorKind.GLOBAL_LIMIT_REACHED, "优惠券使用次数已达上限"
                        )

                if db_coupon.per_user_limit is not None:
                    user_usage = await repo.count_user_usage(coupon_id, user_id)
                    if user_usage >= db_coupon.per_user_limit:
                        logger.info(
                            "优惠券用户次数已满",
                            coupon_id=coupon_id,
                            user_id=user_id,
                            user_usage=user_usage,
                            per_user_limit=db_coupon.per_user_limit,
                        )
                        return CouponRedemption.failure(
                            CouponErrorKind.USER_LIMIT_REACHED, "您已达到该优惠券的使用上限"
                        )

                usage = await repo.add_usage(coupon_id, user_id, order_id, discount_amount)
                redemption = CouponRedemption(success=True, usage=repo.usage_to_model(usage))

        logger.info(
            "优惠券核销成功",
            coupon_id=coupon_id,
            user_id=user_id,
            order_id=order_id,
            discount_amount=str(discount_amount),
        )
        return redemption

    async def _find_existing(self, coupon_id: str, order_id: str):
        async with self.session_maker() as session:
            repo = CouponRepository(session)
            existing = await repo.get_usage_by_order(coupon_id, order_id)
            if existing is None:
                return None
            return CouponRedemption(success=True, usage=repo.usage_to_model(existing), replayed=True)
