"""
促销与优惠券数据库表创建脚本
"""

import asyncio
import sys
from pathlib import Path
from datetime import timedelta

# 添加项目根目录到Python路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy import text
from app.core.clock import utc_now
from app.core.config import settings
from app.core.database import Base, build_engine

# 导入所有数据库模型以确保表被注册
from app.models.database import ProductDB, SaleDB, SaleProductDB, CouponDB, CouponUsageDB  # noqa: F401


async def create_database_if_not_exists():
    """创建数据库（如果不存在，仅PostgreSQL）"""
    if not settings.database_url_computed.startswith("postgresql"):
        return

    # 连接到PostgreSQL服务器（不指定数据库）
    server_url = settings.database_url_computed.replace(f"/{settings.db_name}", "/postgres")
    engine = build_engine(server_url)

    async with engine.connect() as conn:
        conn = await conn.execution_options(isolation_level="AUTOCOMMIT")
        result = await conn.execute(
            text("SELECT 1 FROM pg_database WHERE datname = :db_name"),
            {"db_name": settings.db_name}
        )

        if not result.fetchone():
            await conn.execute(text(f"CREATE DATABASE {settings.db_name}"))
            print(f"数据库 '{settings.db_name}' 创建成功")
        else:
            print(f"数据库 '{settings.db_name}' 已存在")

    await engine.dispose()


async def create_tables(engine):
    """创建所有数据表"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("所有数据表创建成功")


async def create_indexes(engine):
    """创建额外的索引"""
    indexes = [
        # 促销表索引
        "CREATE INDEX IF NOT EXISTS idx_sales_scope_featured ON sales(scope, is_featured);",
        # 优惠券表索引
        "CREATE INDEX IF NOT EXISTS idx_coupons_validity ON coupons(valid_from, valid_until);",
        # 使用记录索引
        "CREATE INDEX IF NOT EXISTS idx_coupon_usage_user_time ON coupon_usage(user_id, used_at);",
    ]

    async with engine.begin() as conn:
        for index_sql in indexes:
            await conn.execute(text(index_sql))
    print("所有索引创建成功")


async def insert_sample_products(engine):
    """插入示例商品数据"""
    now = utc_now()
    sample_products = [
        {"product_id": "saree_silk_001", "name": "Kanjivaram Silk Saree", "category_id": "silk", "price": 2000.00},
        {"product_id": "saree_silk_002", "name": "Banarasi Silk Saree", "category_id": "silk", "price": 3500.00},
        {"product_id": "saree_cotton_001", "name": "Handloom Cotton Saree", "category_id": "cotton", "price": 900.00},
    ]

    async with engine.begin() as conn:
        for product in sample_products:
            result = await conn.execute(
                text("SELECT 1 FROM products WHERE product_id = :product_id"),
                {"product_id": product["product_id"]}
            )
            if not result.fetchone():
                await conn.execute(
                    text("""
                        INSERT INTO products (product_id, name, category_id, price, is_active, created_at)
                        VALUES (:product_id, :name, :category_id, :price, :is_active, :created_at)
                    """),
                    {**product, "is_active": True, "created_at": now}
                )
                print(f"插入商品: {product['name']}")
            else:
                print(f"商品已存在: {product['name']}")


async def insert_sample_sales(engine):
    """插入示例促销数据"""
    now = utc_now()
    sample_sales = [
        {
            "sale_id": "silk_festival",
            "name": "丝绸节",
            "offer_type": "category",
            "discount_kind": "percentage",
            "discount_value": 20.00,
            "max_discount_amount": 300.00,
            "scope": "category",
            "category_id": "silk",
            "is_featured": True,
        },
        {
            "sale_id": "flash_weekend",
            "name": "周末闪购",
            "offer_type": "flash_sale",
            "discount_kind": "percentage",
            "discount_value": 10.00,
            "max_discount_amount": None,
            "scope": "global",
            "category_id": None,
            "is_featured": False,
        },
    ]

    async with engine.begin() as conn:
        for sale in sample_sales:
            result = await conn.execute(
                text("SELECT 1 FROM sales WHERE sale_id = :sale_id"),
                {"sale_id": sale["sale_id"]}
            )
            if not result.fetchone():
                await conn.execute(
                    text("""
                        INSERT INTO sales (
                            sale_id, name, offer_type, discount_kind, discount_value, max_discount_amount,
                            scope, category_id, valid_from, valid_until, is_active, is_featured,
                            created_at, updated_at
                        ) VALUES (
                            :sale_id, :name, :offer_type, :discount_kind, :discount_value, :max_discount_amount,
                            :scope, :category_id, :valid_from, :valid_until, :is_active, :is_featured,
                            :created_at, :updated_at
                        )
                    """),
                    {
                        **sale,
                        "valid_from": now,
                        "valid_until": now + timedelta(days=30),
                        "is_active": True,
                        "created_at": now,
                        "updated_at": now,
                    }
                )
                print(f"插入促销: {sale['name']}")
            else:
                print(f"促销已存在: {sale['name']}")


async def insert_sample_coupons(engine):
    """插入示例优惠券数据"""
    now = utc_now()
    sample_coupons = [
        {
            "coupon_id": "save200",
            "code": "SAVE200",
            "name": "满1000减200",
            "discount_kind": "flat_amount",
            "discount_value": 200.00,
            "max_discount_amount": None,
            "min_order_amount": 1000.00,
            "usage_limit": 1000,
            "per_user_limit": 1,
            "description": "订单满1000立减200",
        },
        {
            "coupon_id": "festive15",
            "code": "FESTIVE15",
            "name": "节日85折券",
            "discount_kind": "percentage",
            "discount_value": 15.00,
            "max_discount_amount": 500.00,
            "min_order_amount": 1500.00,
            "usage_limit": 500,
            "per_user_limit": 2,
            "description": "节日85折，最高优惠500",
        },
    ]

    async with engine.begin() as conn:
        for coupon in sample_coupons:
            result = await conn.execute(
                text("SELECT 1 FROM coupons WHERE code = :code"),
                {"code": coupon["code"]}
            )
            if not result.fetchone():
                await conn.execute(
                    text("""
                        INSERT INTO coupons (
                            coupon_id, code, name, discount_kind, discount_value, max_discount_amount,
                            min_order_amount, valid_from, valid_until, usage_limit, per_user_limit,
                            description, is_active, created_at, updated_at
                        ) VALUES (
                            :coupon_id, :code, :name, :discount_kind, :discount_value, :max_discount_amount,
                            :min_order_amount, :valid_from, :valid_until, :usage_limit, :per_user_limit,
                            :description, :is_active, :created_at, :updated_at
                        )
                    """),
                    {
                        **coupon,
                        "valid_from": now,
                        "valid_until": now + timedelta(days=settings.default_coupon_validity_days),
                        "is_active": True,
                        "created_at": now,
                        "updated_at": now,
                    }
                )
                print(f"插入优惠券: {coupon['name']}")
            else:
                print(f"优惠券已存在: {coupon['name']}")


async def main():
    """主函数"""
    print("开始创建促销与优惠券数据库表...")

    await create_database_if_not_exists()

    engine = build_engine(settings.database_url_computed)
    try:
        await create_tables(engine)
        await create_indexes(engine)
        await insert_sample_products(engine)
        await insert_sample_sales(engine)
        await insert_sample_coupons(engine)
        print("促销与优惠券数据库初始化完成！")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
