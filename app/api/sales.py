"""
促销活动接口（后台维护 + 前台展示）
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from app.api.deps import get_sale_service, get_checkout_service
from app.models.product import ProductWithSale
from app.models.sale import Sale, SaleCreate, SaleUpdate, SaleWithProducts
from app.services.checkout_service import CheckoutService
from app.services.sale_service import SaleService

admin_router = APIRouter(prefix="/admin/sales", tags=["促销管理"])
router = APIRouter(prefix="/sales", tags=["促销"])


class SaleProductsRequest(BaseModel):
    product_ids: List[str] = Field(default_factory=list, description="商品ID列表")


@admin_router.get("", response_model=List[SaleWithProducts])
async def list_sales(
    is_active: Optional[bool] = Query(None),
    is_featured: Optional[bool] = Query(None),
    category_id: Optional[str] = Query(None),
    current: bool = Query(False, description="只看当前进行中的促销"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: SaleService = Depends(get_sale_service)
):
    """后台促销列表"""
    return await service.list_sales(
        is_active=is_active,
        is_featured=is_featured,
        category_id=category_id,
        current=current,
        limit=limit,
        offset=offset
    )


@admin_router.post("", response_model=Sale, status_code=status.HTTP_201_CREATED)
async def create_sale(sale_data: SaleCreate, service: SaleService = Depends(get_sale_service)):
    """创建促销"""
    return await service.create_sale(sale_data)


@admin_router.get("/{sale_id}", response_model=Sale)
async def get_sale(sale_id: str, service: SaleService = Depends(get_sale_service)):
    return await service.get_sale(sale_id)


@admin_router.put("/{sale_id}", response_model=Sale)
async def update_sale(
    sale_id: str,
    sale_data: SaleUpdate,
    service: SaleService = Depends(get_sale_service)
):
    """更新促销"""
    return await service.update_sale(sale_id, sale_data)


@admin_router.put("/{sale_id}/products", response_model=Sale)
async def replace_sale_products(
    sale_id: str,
    request: SaleProductsRequest,
    service: SaleService = Depends(get_sale_service)
):
    """整体替换促销商品"""
    return await service.replace_sale_products(sale_id, request.product_ids)


@admin_router.delete("/{sale_id}", response_model=Sale)
async def deactivate_sale(sale_id: str, service: SaleService = Depends(get_sale_service)):
    """停用促销"""
    return await service.deactivate_sale(sale_id)


@router.get("/current", response_model=List[Sale])
async def list_current_sales(
    is_featured: Optional[bool] = Query(None),
    service: SaleService = Depends(get_sale_service)
):
    """进行中的促销"""
    return await service.list_current_sales(is_featured=is_featured)


@router.get("/products", response_model=List[ProductWithSale])
async def list_products_with_sales(
    category_id: Optional[str] = Query(None),
    on_sale: Optional[bool] = Query(None, description="只看有促销/无促销的商品"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: CheckoutService = Depends(get_checkout_service)
):
    """商品列表附带促销价"""
    return await service.list_products_with_sales(
        category_id=category_id, on_sale=on_sale, limit=limit, offset=offset
    )
