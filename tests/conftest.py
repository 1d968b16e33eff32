"""
测试配置文件 - pytest fixtures和共用配置
"""

import pytest
import pytest_asyncio

from app.core.database import Base, build_engine, build_session_maker
from tests.factories import NOW


@pytest_asyncio.fixture(scope="function")
async def test_db_engine(tmp_path):
    """测试数据库引擎 - 每个测试一个SQLite文件库"""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'promotion_test.db'}")

    # 创建表结构
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(test_db_engine):
    """测试session工厂（账本自行管理事务）"""
    return build_session_maker(test_db_engine)


@pytest_asyncio.fixture
async def db_session(session_maker):
    """测试数据库会话"""
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@pytest.fixture
def now():
    return NOW


