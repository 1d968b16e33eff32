"""
路由依赖注入
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db_session, get_session_maker
from app.repositories.coupon_repository import CouponRepository
from app.repositories.product_repository import ProductRepository
from app.repositories.sale_repository import SaleRepository
from app.services.checkout_service import CheckoutService
from app.services.coupon_ledger import CouponLedger
from app.services.coupon_service import CouponService
from app.services.sale_resolver import SaleResolver
from app.services.sale_service import SaleService


def get_coupon_ledger() -> CouponLedger:
    """账本使用独立会话，自行提交事务"""
    return CouponLedger(get_session_maker())


def get_coupon_service(
    db: AsyncSession = Depends(get_db_session),
    ledger: CouponLedger = Depends(get_coupon_ledger)
) -> CouponService:
    return CouponService(CouponRepository(db), ledger)


def get_sale_service(db: AsyncSession = Depends(get_db_session)) -> SaleService:
    return SaleService(SaleRepository(db))


def get_checkout_service(
    db: AsyncSession = Depends(get_db_session),
    coupon_service: CouponService = Depends(get_coupon_service)
) -> CheckoutService:
    return CheckoutService(
        ProductRepository(db),
        SaleResolver(SaleRepository(db)),
        coupon_service
    )
