"""文件夹请求/响应模型。"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from app.packages.assets.api.v1.schemas.common import ResponseEnvelope
from app.packages.assets.core.enums import EntityKind
from app.packages.assets.core.timezone import isoformat
from app.packages.assets.models.folder import Folder


class FolderItem(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    parentFolderId: Optional[str] = None
    entityType: str
    entityId: str
    folderPath: str
    sortOrder: int
    isActive: bool
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None

    @classmethod
    def from_model(cls, folder: Folder) -> "FolderItem":
        return cls(
            id=folder.id,
            name=folder.name,
            description=folder.description,
            parentFolderId=folder.parent_folder_id,
            entityType=folder.entity_type,
            entityId=folder.entity_id,
            folderPath=folder.folder_path,
            sortOrder=folder.sort_order,
            isActive=bool(folder.is_active),
            createdAt=isoformat(folder.created_at),
            updatedAt=isoformat(folder.updated_at),
        )


def serialize_folder(folder: Folder) -> dict[str, Any]:
    return FolderItem.from_model(folder).model_dump()


class FolderCreateBody(BaseModel):
    entityType: EntityKind
    entityId: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=255)
    parentFolderId: Optional[str] = None
    description: Optional[str] = None


class FolderUpdateBody(BaseModel):
    """``parentFolderId`` 显式传 ``null`` 表示移动到根目录，不传表示不移动。"""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    parentFolderId: Optional[str] = None


class FolderReorderBody(BaseModel):
    entityType: EntityKind
    entityId: str = Field(..., min_length=1)
    parentFolderId: Optional[str] = None
    folderIds: list[str]


class FoldersListData(BaseModel):
    folders: list[FolderItem]


FolderResponse = ResponseEnvelope[FolderItem]
FoldersListResponse = ResponseEnvelope[FoldersListData]
