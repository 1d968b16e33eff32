"""
全局异常处理器
"""

import logging
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import BusinessException

logger = logging.getLogger(__name__)

__all__ = [
    "BusinessException",
    "validation_exception_handler",
    "http_exception_handler",
    "database_exception_handler",
    "business_exception_handler",
    "general_exception_handler",
]


def error_response(status_code: int, error_code: str, message: str, details=None) -> JSONResponse:
    content = {
        "success": False,
        "error_code": error_code,
        "message": message,
    }
    if details:
        content["details"] = jsonable_encoder(details)
    return JSONResponse(status_code=status_code, content=content)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """请求参数校验失败"""
    errors = [
        {"field": ".".join(str(loc) for loc in error.get("loc", [])), "message": error.get("msg")}
        for error in exc.errors()
    ]
    logger.info(f"请求参数校验失败 {request.url.path}: {errors}")
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY, "VALIDATION_ERROR", "请求参数不合法", {"errors": errors}
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    """HTTP异常"""
    return error_response(exc.status_code, "HTTP_ERROR", str(exc.detail))


async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    """数据库异常"""
    logger.error(f"数据库操作失败 {request.url.path}: {exc}")
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "DATABASE_ERROR", "数据库操作失败")


async def business_exception_handler(request: Request, exc: BusinessException):
    """业务异常，只影响当前请求"""
    logger.info(f"业务异常 {request.url.path}: [{exc.code}] {exc.message}")
    return error_response(exc.status_code, exc.code, exc.message, exc.details)


async def general_exception_handler(request: Request, exc: Exception):
    """未处理的异常"""
    logger.error(f"未处理的异常 {request.url.path}: {exc}", exc_info=True)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", "服务器内部错误")
