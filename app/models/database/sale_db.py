"""
促销活动数据库模型
"""

from sqlalchemy import Column, String, Numeric, Text, Boolean, DateTime, Index

from app.core.clock import utc_now
from app.core.database import Base


class SaleDB(Base):
    """促销活动表"""

    __tablename__ = "sales"

    sale_id = Column(String(50), primary_key=True, comment="促销ID")
    name = Column(String(200), nullable=False, comment="促销名称")
    description = Column(Text, comment="促销描述")
    offer_type = Column(String(20), comment="后台录入的促销类型")

    # 折扣规则
    discount_kind = Column(String(20), nullable=False, comment="折扣方式")
    discount_value = Column(Numeric(10, 2), nullable=False, comment="折扣值")
    max_discount_amount = Column(Numeric(10, 2), comment="最大折扣金额")
    min_order_amount = Column(Numeric(10, 2), comment="最小订单金额")

    # 适用范围
    scope = Column(String(20), nullable=False, default="global", comment="适用范围")
    category_id = Column(String(50), index=True, comment="分类ID")

    # 有效期（UTC）
    valid_from = Column(DateTime, nullable=False, comment="有效开始时间")
    valid_until = Column(DateTime, nullable=False, comment="有效结束时间")

    is_active = Column(Boolean, nullable=False, default=True, comment="是否启用")
    is_featured = Column(Boolean, nullable=False, default=False, comment="是否推荐")
    banner_image = Column(String(500), comment="横幅图片")

    created_at = Column(DateTime, nullable=False, default=utc_now, comment="创建时间")
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now, comment="更新时间")

    __table_args__ = (
        Index("ix_sales_active_window", "is_active", "valid_from", "valid_until"),
        {'comment': '促销活动表'}
    )


class SaleProductDB(Base):
    """促销与商品关联表"""

    __tablename__ = "sale_products"

    sale_id = Column(String(50), primary_key=True, comment="促销ID")
    product_id = Column(String(50), primary_key=True, index=True, comment="商品ID")

    __table_args__ = (
        {'comment': '促销商品关联表'}
    )
