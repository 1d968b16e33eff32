"""
优惠券业务服务层
后台维护优惠券，结算时校验与核销
"""

import logging
from typing import List, Optional, Dict, Any
from decimal import Decimal
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError

from app.core.clock import utc_now
from app.core.config import settings
from app.core.exceptions import InvalidArgumentError, NotFoundError
from app.models.coupon import (
    Coupon,
    CouponCreate,
    CouponUpdate,
    CouponWithUsage,
    CouponValidation,
    CouponRedemption,
    CouponErrorKind,
    CouponStats,
    CouponUsageHistoryItem,
)
from app.models.price_rule import check_price_rule_invariants
from app.repositories.coupon_repository import CouponRepository
from app.services.common_cache import coupon_cache
from app.services.coupon_ledger import CouponLedger
from app.services.coupon_validator import CouponValidator

logger = logging.getLogger(__name__)

# 账本复核失败且此前校验通过时，视为被并发核销抢占
RACE_ERROR_KINDS = (CouponErrorKind.GLOBAL_LIMIT_REACHED, CouponErrorKind.USER_LIMIT_REACHED)

# 不允许显式置空的字段
NON_NULLABLE_FIELDS = ("code", "name", "discount_kind", "discount_value", "is_active")


class CouponService:
    """优惠券业务服务"""

    def __init__(self, coupon_repo: CouponRepository, ledger: CouponLedger):
        self.coupon_repo = coupon_repo
        self.ledger = ledger
        self.validator = CouponValidator(coupon_repo)
        self.cache = coupon_cache
        self.cache_prefix = "coupon"
        self.cache_ttl = settings.coupon_cache_ttl

    async def get_coupon(self, coupon_id: str) -> Coupon:
        """根据ID获取优惠券"""
        db_coupon = await self.coupon_repo.get_by_coupon_id(coupon_id)
        if not db_coupon:
            raise NotFoundError("优惠券不存在", details={"coupon_id": coupon_id})
        return self.coupon_repo.to_model(db_coupon)

    async def get_coupon_by_code(self, code: str, use_cache: bool = True) -> Optional[Coupon]:
        """根据优惠码获取优惠券定义（后台查看用，校验不走缓存）"""
        code = code.strip().upper()
        cache_key = f"{self.cache_prefix}:code:{code}"

        if use_cache:
            cached_coupon = await self.cache.get(cache_key)
            if cached_coupon:
                return Coupon(**cached_coupon)

        db_coupon = await self.coupon_repo.get_by_code(code)
        if not db_coupon:
            return None

        coupon = self.coupon_repo.to_model(db_coupon)

        if use_cache:
            await self.cache.set(cache_key, coupon.model_dump(mode="json"), ttl=self.cache_ttl)

        return coupon

    async def list_coupons(
        self,
        is_active: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[CouponWithUsage]:
        """优惠券列表（使用次数实时统计）"""
        rows = await self.coupon_repo.list_coupons(is_active=is_active, limit=limit, offset=offset)
        return [
            CouponWithUsage(**self.coupon_repo.to_model(db_coupon).model_dump(), usage_count=usage_count)
            for db_coupon, usage_count in rows
        ]

    async def create_coupon(self, coupon_data: CouponCreate, now: Optional[datetime] = None) -> Coupon:
        """创建优惠券，未指定有效期时默认从现在起一年"""
        now = now or utc_now()
        valid_from = coupon_data.valid_from or now
        valid_until = coupon_data.valid_until or now + timedelta(days=settings.default_coupon_validity_days)

        try:
            check_price_rule_invariants(
                coupon_data.discount_kind, coupon_data.discount_value, valid_from, valid_until
            )
        except ValueError as e:
            raise InvalidArgumentError(str(e), details={"code": coupon_data.code})

        if await self.coupon_repo.get_by_code(coupon_data.code):
            raise InvalidArgumentError("优惠码已存在", details={"code": coupon_data.code})

        try:
            db_coupon = await self.coupon_repo.create_coupon({
                "code": coupon_data.code,
                "name": coupon_data.name or coupon_data.code,
                "description": coupon_data.description,
                "discount_kind": coupon_data.discount_kind.value,
                "discount_value": coupon_data.discount_value,
                "max_discount_amount": coupon_data.max_discount_amount,
                "min_order_amount": coupon_data.min_order_amount,
                "valid_from": valid_from,
                "valid_until": valid_until,
                "usage_limit": coupon_data.usage_limit,
                "per_user_limit": coupon_data.per_user_limit,
                "is_active": coupon_data.is_active,
            })
            coupon = self.coupon_repo.to_model(db_coupon)
            await self.coupon_repo.commit()
        except IntegrityError:
            # 并发创建同一优惠码时由唯一约束兜底
            await self.coupon_repo.rollback()
            raise InvalidArgumentError("优惠码已存在", details={"code": coupon_data.code})
        logger.info(f"创建优惠券 {coupon.code} ({coupon.coupon_id})")

        await self._clear_coupon_caches(coupon.code)
        return coupon

    async def update_coupon(self, coupon_id: str, coupon_data: CouponUpdate) -> Coupon:
        """更新优惠券，合并后的规则需满足写入校验"""
        db_coupon = await self.coupon_repo.get_by_coupon_id(coupon_id)
        if not db_coupon:
            raise NotFoundError("优惠券不存在", details={"coupon_id": coupon_id})

        current = self.coupon_repo.to_model(db_coupon)
        values: Dict[str, Any] = {
            key: value
            for key, value in coupon_data.model_dump(exclude_unset=True).items()
            if not (key in NON_NULLABLE_FIELDS and value is None)
        }

        try:
            check_price_rule_invariants(
                values.get("discount_kind", current.discount_kind),
                values.get("discount_value", current.discount_value),
                values.get("valid_from", current.valid_from),
                values.get("valid_until", current.valid_until),
            )
        except ValueError as e:
            raise InvalidArgumentError(str(e), details={"coupon_id": coupon_id})

        new_code = values.get("code")
        if new_code and new_code != current.code:
            if await self.coupon_repo.get_by_code(new_code):
                raise InvalidArgumentError("优惠码已存在", details={"code": new_code})

        if "discount_kind" in values:
            values["discount_kind"] = values["discount_kind"].value

        try:
            updated = await self.coupon_repo.update_coupon(coupon_id, values)
            coupon = self.coupon_repo.to_model(updated)
            await self.coupon_repo.commit()
        except IntegrityError:
            await self.coupon_repo.rollback()
            raise InvalidArgumentError("优惠码已存在", details={"code": new_code})

        await self._clear_coupon_caches(current.code)
        if coupon.code != current.code:
            await self._clear_coupon_caches(coupon.code)
        return coupon

    async def deactivate_coupon(self, coupon_id: str) -> Coupon:
        """停用优惠券（软删除）"""
        db_coupon = await self.coupon_repo.get_by_coupon_id(coupon_id)
        if not db_coupon:
            raise NotFoundError("优惠券不存在", details={"coupon_id": coupon_id})

        code = db_coupon.code
        await self.coupon_repo.deactivate_coupon(coupon_id)
        await self.coupon_repo.commit()
        logger.info(f"停用优惠券 {code} ({coupon_id})")

        await self._clear_coupon_caches(code)
        return await self.get_coupon(coupon_id)

    async def validate_coupon(
        self,
        code: str,
        user_id: str,
        order_amount: Decimal,
        now: Optional[datetime] = None
    ) -> CouponValidation:
        """校验优惠券（不使用缓存，确保实时性）"""
        return await self.validator.validate(code, user_id, order_amount, now)

    async def redeem_coupon(
        self,
        coupon_id: str,
        user_id: str,
        order_id: str,
        discount_amount: Decimal
    ) -> CouponRedemption:
        """核销优惠券，以账本事务为准"""
        return await self.ledger.redeem(coupon_id, user_id, order_id, discount_amount)

    async def validate_and_redeem(
        self,
        code: str,
        user_id: str,
        order_id: str,
        order_amount: Decimal,
        now: Optional[datetime] = None
    ) -> CouponRedemption:
        """
        校验并核销

        校验通过后账本复核发现次数已满，返回 CONCURRENT_LIMIT_RACE（优惠券已被抢完）。
        同一订单重试时直接返回已有记录（即使优惠券此后已过期或停用）。
        """
        validation = await self.validate_coupon(code, user_id, order_amount, now)

        if not validation.is_valid:
            if validation.coupon is not None:
                replayed = await self.find_order_redemption(validation.coupon.coupon_id, order_id)
                if replayed is not None:
                    return replayed
            return CouponRedemption.failure(validation.error_kind, validation.error_message)

        return await self.redeem_validated(
            validation.coupon, user_id, order_id, validation.estimated_discount
        )

    async def redeem_validated(
        self,
        coupon: Coupon,
        user_id: str,
        order_id: str,
        discount_amount: Decimal
    ) -> CouponRedemption:
        """核销已校验通过的优惠券，账本复核次数已满时返回 CONCURRENT_LIMIT_RACE"""
        redemption = await self.redeem_coupon(coupon.coupon_id, user_id, order_id, discount_amount)

        if not redemption.success and redemption.error_kind in RACE_ERROR_KINDS:
            logger.info(
                f"优惠券 {coupon.code} 校验通过后被并发核销抢占: "
                f"order_id={order_id}, reason={redemption.error_kind.value}"
            )
            return CouponRedemption.failure(
                CouponErrorKind.CONCURRENT_LIMIT_RACE, "优惠券已被领完，请重新下单"
            )

        return redemption

    async def find_order_redemption(self, coupon_id: str, order_id: str) -> Optional[CouponRedemption]:
        """订单已核销过该优惠券时返回已有记录"""
        existing = await self.coupon_repo.get_usage_by_order(coupon_id, order_id)
        if existing is None:
            return None
        return CouponRedemption(success=True, usage=self.coupon_repo.usage_to_model(existing), replayed=True)

    async def get_coupon_stats(self, coupon_id: str) -> CouponStats:
        """获取优惠券统计信息（由使用记录实时统计）"""
        stats = await self.coupon_repo.get_coupon_stats(coupon_id)
        if stats is None:
            raise NotFoundError("优惠券不存在", details={"coupon_id": coupon_id})
        return stats

    async def get_user_coupon_usage_history(
        self,
        user_id: str,
        limit: int = 20,
        offset: int = 0
    ) -> List[CouponUsageHistoryItem]:
        """获取用户优惠券使用历史"""
        return await self.coupon_repo.get_user_coupon_usage_history(
            user_id=user_id, limit=limit, offset=offset
        )

    async def _clear_coupon_caches(self, code: str):
        """清除优惠券相关缓存"""
        await self.cache.delete(f"{self.cache_prefix}:code:{code}")
