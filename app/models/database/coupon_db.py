"""
优惠券数据库模型
"""

from sqlalchemy import Column, String, Integer, Numeric, Text, Boolean, DateTime, Index, UniqueConstraint

from app.core.clock import utc_now
from app.core.database import Base


class CouponDB(Base):
    """优惠券数据库表"""

    __tablename__ = "coupons"

    # 主键和基本信息
    coupon_id = Column(String(50), primary_key=True, comment="优惠券ID")
    code = Column(String(50), nullable=False, unique=True, index=True, comment="优惠码（大写）")
    name = Column(String(200), nullable=False, comment="优惠券名称")
    description = Column(Text, comment="优惠券描述")

    # 折扣信息
    discount_kind = Column(String(20), nullable=False, comment="折扣方式")
    discount_value = Column(Numeric(10, 2), nullable=False, comment="折扣值")
    max_discount_amount = Column(Numeric(10, 2), comment="最大折扣金额")
    min_order_amount = Column(Numeric(10, 2), comment="最小订单金额")

    # 有效期（UTC，缺失表示不限）
    valid_from = Column(DateTime, index=True, comment="有效开始时间")
    valid_until = Column(DateTime, index=True, comment="有效结束时间")

    # 使用限制，已用次数由使用记录统计
    usage_limit = Column(Integer, comment="总使用次数限制")
    per_user_limit = Column(Integer, comment="单用户使用次数限制")

    is_active = Column(Boolean, nullable=False, default=True, index=True, comment="是否启用")

    # 时间戳
    created_at = Column(DateTime, nullable=False, default=utc_now, comment="创建时间")
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now, comment="更新时间")

    __table_args__ = (
        {'comment': '优惠券信息表'}
    )


class CouponUsageDB(Base):
    """优惠券使用记录表（只增不改）"""

    __tablename__ = "coupon_usage"

    usage_id = Column(String(50), primary_key=True, comment="使用记录ID")
    coupon_id = Column(String(50), nullable=False, index=True, comment="优惠券ID")
    user_id = Column(String(50), nullable=False, index=True, comment="使用用户ID")
    order_id = Column(String(50), nullable=False, comment="关联订单ID")
    discount_amount = Column(Numeric(10, 2), nullable=False, comment="折扣金额")
    used_at = Column(DateTime, nullable=False, default=utc_now, comment="使用时间")

    __table_args__ = (
        UniqueConstraint("coupon_id", "order_id", name="uq_coupon_usage_coupon_order"),
        Index("ix_coupon_usage_coupon_user", "coupon_id", "user_id"),
        {'comment': '优惠券使用记录表'}
    )
