"""异常处理模块：定义网盘业务异常与统一的响应格式。

异常分类：
- InvalidPathError：路径越界、包含 ``..`` 或格式非法，变更前即拒绝；
- NodeNotFoundError：引用的节点或文件不存在；
- NodeConflictError：目标路径已被占用；
- StorageFailureError：数据库事务失败，事务已回滚；
- MirrorError：文件系统操作失败。
"""

from typing import Any, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from app.packages.drive.core.constants import (
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_CONFLICT,
    HTTP_STATUS_INTERNAL_SERVER_ERROR,
    HTTP_STATUS_NOT_FOUND,
)
from app.packages.drive.core.logger import get_logger

logger = get_logger("exceptions")


class AppException(HTTPException):
    """携带统一响应结构的业务异常，方便在全局处理中转换响应体。"""

    def __init__(self, msg: str, code: int = status.HTTP_400_BAD_REQUEST, data: Any = None) -> None:
        super().__init__(status_code=code, detail=msg)
        self.data = data


class InvalidPathError(AppException):
    def __init__(self, msg: str = "非法路径", data: Any = None) -> None:
        super().__init__(msg, HTTP_STATUS_BAD_REQUEST, data)


class NodeNotFoundError(AppException):
    def __init__(self, msg: str = "节点不存在", data: Any = None) -> None:
        super().__init__(msg, HTTP_STATUS_NOT_FOUND, data)


class NodeConflictError(AppException):
    def __init__(self, msg: str = "目标路径已存在", data: Any = None) -> None:
        super().__init__(msg, HTTP_STATUS_CONFLICT, data)


class StorageFailureError(AppException):
    def __init__(self, msg: str = "元数据事务执行失败", data: Any = None) -> None:
        super().__init__(msg, HTTP_STATUS_INTERNAL_SERVER_ERROR, data)


class MirrorError(AppException):
    """文件系统操作失败；``path`` 记录出错的逻辑路径。"""

    def __init__(self, msg: str = "文件系统操作失败", path: Optional[str] = None) -> None:
        super().__init__(msg, HTTP_STATUS_INTERNAL_SERVER_ERROR, {"path": path} if path else None)
        self.path = path


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # pragma: no cover - framework glue
    """将 FastAPI 的 ``HTTPException`` 转换为统一响应格式。"""
    payload = {"msg": exc.detail, "data": getattr(exc, "data", None), "code": exc.status_code}
    return JSONResponse(status_code=exc.status_code, content=payload)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # pragma: no cover - framework glue
    """兜底处理：将未捕获异常转换为标准的 500 响应结构。"""
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    payload = {
        "msg": "服务器内部错误",
        "data": None,
        "code": status.HTTP_500_INTERNAL_SERVER_ERROR,
    }
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload)
