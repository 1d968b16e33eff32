"""
时间工具：库内统一使用不带时区的UTC时间
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """当前UTC时间（naive）"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """带时区的时间换算到UTC并去掉tzinfo，naive时间视为UTC原样返回"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
