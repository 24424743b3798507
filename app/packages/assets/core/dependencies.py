"""依赖注入模块：封装 FastAPI 中复用度高的依赖函数。"""

from collections.abc import Callable, Generator
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.packages.assets.core.constants import ACCESS_TOKEN_TYPE
from app.packages.assets.core.exceptions import AuthRequired, PermissionDenied
from app.packages.assets.core.permissions import has_permission, is_operator
from app.packages.assets.core.security import Principal, decode_token, principal_from_payload
from app.packages.assets.db import session as db_session
from app.packages.assets.services.context import ServiceContext

security_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """生成一个数据库会话，并在请求结束后自动关闭。"""
    db = db_session.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_services(request: Request) -> ServiceContext:
    return request.app.state.services


def get_optional_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> Optional[Principal]:
    """解析 ``Authorization`` 头部；缺失或非法时返回 ``None``，由调用方决定是否拒绝。"""
    if not credentials or credentials.scheme.lower() != ACCESS_TOKEN_TYPE:
        return None
    payload = decode_token(credentials.credentials)
    if payload is None:
        return None
    return principal_from_payload(payload)


def get_current_principal(
    principal: Optional[Principal] = Depends(get_optional_principal),
) -> Principal:
    if principal is None:
        raise AuthRequired()
    return principal


def require_permission(permission: str) -> Callable[..., Principal]:
    """按文件权限矩阵校验当前主体，例如 ``require_permission("can_edit")``。"""

    def _checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not has_permission(principal, permission):
            raise PermissionDenied()
        return principal

    return _checker


def require_operator(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not is_operator(principal):
        raise PermissionDenied()
    return principal
