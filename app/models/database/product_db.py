"""
商品数据库模型（由目录模块维护，这里只读）
"""

from sqlalchemy import Column, String, Numeric, Boolean, DateTime

from app.core.clock import utc_now
from app.core.database import Base


class ProductDB(Base):
    """商品表"""

    __tablename__ = "products"

    product_id = Column(String(50), primary_key=True, comment="商品ID")
    name = Column(String(200), nullable=False, comment="商品名称")
    category_id = Column(String(50), index=True, comment="分类ID")
    price = Column(Numeric(10, 2), nullable=False, comment="售价")
    is_active = Column(Boolean, nullable=False, default=True, comment="是否上架")
    created_at = Column(DateTime, nullable=False, default=utc_now, comment="创建时间")

    __table_args__ = (
        {'comment': '商品表'}
    )
