"""异常处理模块：定义统一的业务异常与响应格式。

所有错误响应都包含稳定的 ``error`` 字段；存储类故障（数据损坏、内容缺失、
存储不可用）只在服务端记录详细原因，客户端仅看到通用提示。
"""

from typing import Any, Optional

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.packages.assets.core.constants import (
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_CONFLICT,
    HTTP_STATUS_FORBIDDEN,
    HTTP_STATUS_INTERNAL_SERVER_ERROR,
    HTTP_STATUS_NOT_FOUND,
    HTTP_STATUS_UNAUTHORIZED,
    HTTP_STATUS_UNPROCESSABLE_ENTITY,
    MSG_AUTH_REQUIRED,
    MSG_FILE_NOT_FOUND,
    MSG_FOLDER_CYCLE,
    MSG_FOLDER_NOT_FOUND,
    MSG_INTERNAL_ERROR,
    MSG_INVALID_FOLDER,
    MSG_PERMISSION_DENIED,
    MSG_REORDER_MISMATCH,
    MSG_UPLOAD_FAILED,
    MSG_VALIDATION_FAILED,
)
from app.packages.assets.core.logger import logger, operator_logger


class AppException(HTTPException):
    """携带统一响应结构的业务异常，方便在全局处理中转换响应体。"""

    def __init__(self, msg: str, code: int = status.HTTP_400_BAD_REQUEST, data=None) -> None:
        super().__init__(status_code=code, detail=msg)
        self.data = data


class AuthRequired(AppException):
    def __init__(self, msg: str = MSG_AUTH_REQUIRED) -> None:
        super().__init__(msg, HTTP_STATUS_UNAUTHORIZED)


class PermissionDenied(AppException):
    def __init__(self, msg: str = MSG_PERMISSION_DENIED) -> None:
        super().__init__(msg, HTTP_STATUS_FORBIDDEN)


class NotFound(AppException):
    def __init__(self, msg: str, data=None) -> None:
        super().__init__(msg, HTTP_STATUS_NOT_FOUND, data)


class FileNotFound(NotFound):
    def __init__(self, file_id: Optional[str] = None) -> None:
        super().__init__(MSG_FILE_NOT_FOUND)
        self.file_id = file_id


class FolderNotFound(NotFound):
    def __init__(self, folder_id: Optional[str] = None) -> None:
        super().__init__(MSG_FOLDER_NOT_FOUND)
        self.folder_id = folder_id


class StoreFault(AppException):
    """服务端存储故障基类：``internal_detail`` 仅写入日志，不回传客户端。"""

    kind = "store_fault"

    def __init__(self, internal_detail: str, *, file_id: Optional[str] = None) -> None:
        super().__init__(MSG_INTERNAL_ERROR, HTTP_STATUS_INTERNAL_SERVER_ERROR)
        self.internal_detail = internal_detail
        self.file_id = file_id


class DataCorrupted(StoreFault):
    kind = "data_corrupted"


class BlobMissing(StoreFault):
    kind = "blob_missing"


class StoreUnavailable(StoreFault):
    kind = "store_unavailable"


class ReorderIntegrityViolation(AppException):
    """提交的 ID 集合与当前作用域内持久化的集合不一致。"""

    def __init__(
        self,
        *,
        missing: list[str],
        unexpected: list[str],
        duplicates: Optional[list[str]] = None,
    ) -> None:
        data = {
            "missing": sorted(missing),
            "unexpected": sorted(unexpected),
            "duplicates": sorted(duplicates or []),
        }
        super().__init__(MSG_REORDER_MISMATCH, HTTP_STATUS_CONFLICT, data)


class UploadFailed(AppException):
    def __init__(self, reason: str) -> None:
        super().__init__(MSG_UPLOAD_FAILED, HTTP_STATUS_BAD_REQUEST, {"reason": reason})


class FolderCycle(AppException):
    def __init__(self) -> None:
        super().__init__(MSG_FOLDER_CYCLE, HTTP_STATUS_BAD_REQUEST)


class InvalidFolder(AppException):
    def __init__(self, reason: str) -> None:
        super().__init__(MSG_INVALID_FOLDER, HTTP_STATUS_BAD_REQUEST, {"reason": reason})


class LogWriteFailure(Exception):
    """下载账本写入失败。只在后台任务边界内被捕获上报，永远不会影响已发送的响应。"""

    def __init__(self, operation: str, cause: BaseException) -> None:
        super().__init__(f"{operation} failed: {cause}")
        self.operation = operation
        self.cause = cause


def error_payload(msg: str, code: int, data: Any = None) -> dict[str, Any]:
    return {"error": msg, "msg": msg, "data": data, "code": code}


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # pragma: no cover - framework glue
    """将 ``HTTPException`` 转换为统一响应格式，存储故障额外写入运维日志。"""
    if isinstance(exc, StoreFault):
        operator_logger.error(
            "Store fault (%s) on %s %s file_id=%s: %s",
            exc.kind,
            request.method,
            request.url.path,
            exc.file_id,
            exc.internal_detail,
        )
    payload = error_payload(str(exc.detail), exc.status_code, getattr(exc, "data", None))
    return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # pragma: no cover - framework glue
    """兜底处理：将未捕获异常转换为标准的 500 响应结构。"""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=HTTP_STATUS_INTERNAL_SERVER_ERROR,
        content=error_payload(MSG_INTERNAL_ERROR, HTTP_STATUS_INTERNAL_SERVER_ERROR),
    )


def _serialize(obj: Any) -> Any:
    if isinstance(obj, Exception):
        return str(obj)
    if isinstance(obj, dict):
        return {key: _serialize(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_serialize(item) for item in obj]
    return obj


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # pragma: no cover - framework glue
    """统一处理请求参数验证失败（包括未知的实体类型）。"""
    return JSONResponse(
        status_code=HTTP_STATUS_UNPROCESSABLE_ENTITY,
        content=error_payload(MSG_VALIDATION_FAILED, HTTP_STATUS_UNPROCESSABLE_ENTITY, _serialize(exc.errors())),
    )
