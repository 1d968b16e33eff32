"""
商品数据模型（目录模块的只读投影）
"""

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from app.models.sale import SaleSummary


class Product(BaseModel):
    """商品基础信息"""

    product_id: str = Field(..., description="商品ID")
    name: str = Field(..., description="商品名称")
    category_id: Optional[str] = Field(None, description="分类ID")
    price: Decimal = Field(..., ge=0, description="售价")
    is_active: bool = Field(default=True, description="是否上架")


class ProductWithSale(Product):
    """附带当前最佳促销的商品"""

    sale: Optional[SaleSummary] = Field(None, description="当前最佳促销")
    sale_discount: Decimal = Field(default=Decimal("0"), ge=0, description="促销优惠金额")
    discounted_price: Decimal = Field(..., ge=0, description="促销后价格")

    @property
    def on_sale(self) -> bool:
        return self.sale is not None and self.sale_discount > 0
