"""文件权限矩阵：按角色集中判定查看/下载/上传/编辑/删除能力。

集中维护角色到能力的映射，避免在各个路由里散落硬编码。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from app.packages.assets.core.constants import OPERATOR_ROLES
from app.packages.assets.core.security import Principal


@dataclass(frozen=True)
class FilePermissions:
    can_view: bool = False
    can_download: bool = False
    can_upload: bool = False
    can_edit: bool = False
    can_delete: bool = False


_FULL = FilePermissions(True, True, True, True, True)
_CONTRIBUTE = FilePermissions(True, True, True, False, False)
_READ_ONLY = FilePermissions(True, True, False, False, False)
_NONE = FilePermissions()

_ROLE_PERMISSIONS: dict[str, FilePermissions] = {
    "admin": _FULL,
    "organizer": _FULL,
    "editor": _FULL,
    "analyzer": _FULL,
    "member": _CONTRIBUTE,
    "participant": _CONTRIBUTE,
    "contributor": _CONTRIBUTE,
}


def get_file_permissions(principal: Optional[Principal]) -> FilePermissions:
    """未认证用户没有任何权限；未知角色按只读处理。"""
    if principal is None:
        return _NONE
    return _ROLE_PERMISSIONS.get(principal.role, _READ_ONLY)


def has_permission(principal: Optional[Principal], permission: str) -> bool:
    return bool(getattr(get_file_permissions(principal), permission, False))


def is_operator(principal: Optional[Principal]) -> bool:
    return principal is not None and principal.role in OPERATOR_ROLES
