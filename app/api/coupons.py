"""
优惠券后台接口
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import get_coupon_service
from app.models.coupon import (
    Coupon,
    CouponCreate,
    CouponUpdate,
    CouponListResponse,
    CouponStats,
    CouponUsageHistoryItem,
)
from app.services.coupon_service import CouponService

router = APIRouter(prefix="/admin/coupons", tags=["优惠券管理"])


@router.get("", response_model=CouponListResponse)
async def list_coupons(
    is_active: Optional[bool] = Query(None, description="按启用状态筛选"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: CouponService = Depends(get_coupon_service)
):
    """优惠券列表，附带已使用次数"""
    coupons = await service.list_coupons(is_active=is_active, limit=limit, offset=offset)
    return CouponListResponse(coupons=coupons, total=len(coupons))


@router.post("", response_model=Coupon, status_code=status.HTTP_201_CREATED)
async def create_coupon(
    coupon_data: CouponCreate,
    service: CouponService = Depends(get_coupon_service)
):
    """创建优惠券"""
    return await service.create_coupon(coupon_data)


@router.get("/code/{code}", response_model=Coupon)
async def get_coupon_by_code(code: str, service: CouponService = Depends(get_coupon_service)):
    """按优惠码查询（不区分大小写）"""
    coupon = await service.get_coupon_by_code(code)
    if not coupon:
        raise HTTPException(status_code=404, detail="优惠券不存在")
    return coupon


@router.get("/usage/{user_id}", response_model=List[CouponUsageHistoryItem])
async def get_user_usage_history(
    user_id: str,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: CouponService = Depends(get_coupon_service)
):
    """用户优惠券使用历史"""
    return await service.get_user_coupon_usage_history(user_id, limit=limit, offset=offset)


@router.get("/{coupon_id}", response_model=Coupon)
async def get_coupon(coupon_id: str, service: CouponService = Depends(get_coupon_service)):
    return await service.get_coupon(coupon_id)


@router.put("/{coupon_id}", response_model=Coupon)
async def update_coupon(
    coupon_id: str,
    coupon_data: CouponUpdate,
    service: CouponService = Depends(get_coupon_service)
):
    """更新优惠券"""
    return await service.update_coupon(coupon_id, coupon_data)


@router.delete("/{coupon_id}", response_model=Coupon)
async def deactivate_coupon(coupon_id: str, service: CouponService = Depends(get_coupon_service)):
    """停用优惠券，保留使用记录"""
    return await service.deactivate_coupon(coupon_id)


@router.get("/{coupon_id}/stats", response_model=CouponStats)
async def get_coupon_stats(coupon_id: str, service: CouponService = Depends(get_coupon_service)):
    """优惠券使用统计"""
    return await service.get_coupon_stats(coupon_id)
