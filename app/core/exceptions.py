"""
业务异常定义
"""

from typing import Any, Dict, Optional


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        message: str,
        code: str = "BUSINESS_ERROR",
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}


class InvalidArgumentError(BusinessException):
    """参数不合法（写入时规则校验失败、金额为负等）"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="INVALID_ARGUMENT", status_code=400, details=details)


class NotFoundError(BusinessException):
    """资源不存在"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="NOT_FOUND", status_code=404, details=details)
