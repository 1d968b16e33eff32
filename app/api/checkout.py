"""
结算接口
"""

from fastapi import APIRouter, Depends

from app.api.deps import get_checkout_service, get_coupon_service
from app.models.checkout import (
    LineDiscountRequest,
    LineDiscountResponse,
    PriceOrderRequest,
    PriceCalculation,
    CheckoutRequest,
    CheckoutResult,
)
from app.models.coupon import CouponValidateRequest, CouponRedeemRequest, CouponRedemption
from app.services.checkout_service import CheckoutService
from app.services.coupon_service import CouponService

router = APIRouter(prefix="/checkout", tags=["结算"])


@router.post("/line-discount", response_model=LineDiscountResponse)
async def compute_line_discount(
    request: LineDiscountRequest,
    service: CheckoutService = Depends(get_checkout_service)
):
    """单件商品促销优惠"""
    sale, discount = await service.line_sale(
        request.product_id, request.category_id, request.price, request.now
    )
    return LineDiscountResponse(
        product_id=request.product_id,
        price=request.price,
        discount_amount=discount,
        final_price=request.price - discount,
        sale_id=sale.sale_id if sale else None
    )


@router.post("/coupons/validate")
async def validate_coupon(
    request: CouponValidateRequest,
    service: CouponService = Depends(get_coupon_service)
):
    """校验优惠券，返回优惠金额与应付金额"""
    validation = await service.validate_coupon(request.code, request.user_id, request.order_amount)
    body = validation.model_dump(mode="json")
    body["discount_amount"] = body.pop("estimated_discount")
    body["message"] = validation.error_message or "优惠券可用"
    return body


@router.post("/coupons/redeem", response_model=CouponRedemption)
async def redeem_coupon(
    request: CouponRedeemRequest,
    service: CouponService = Depends(get_coupon_service)
):
    """核销优惠券（同一订单重复提交返回已有记录）"""
    return await service.redeem_coupon(
        request.coupon_id, request.user_id, request.order_id, request.discount_amount
    )


@router.post("/price", response_model=PriceCalculation)
async def price_order(
    request: PriceOrderRequest,
    service: CheckoutService = Depends(get_checkout_service)
):
    """订单计价"""
    return await service.price_order(request.user_id, request.items, request.coupon_code)


@router.post("", response_model=CheckoutResult)
async def checkout(
    request: CheckoutRequest,
    service: CheckoutService = Depends(get_checkout_service)
):
    """计价并核销优惠券"""
    return await service.checkout(
        request.order_id, request.user_id, request.items, request.coupon_code
    )
