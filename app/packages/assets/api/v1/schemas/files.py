"""文件资产请求/响应模型。"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from app.packages.assets.api.v1.schemas.common import ResponseEnvelope
from app.packages.assets.core.enums import AccessLevel, EntityKind
from app.packages.assets.core.timezone import isoformat
from app.packages.assets.models.file_asset import FileAsset


class FileItem(BaseModel):
    id: str
    filename: str
    originalName: str
    mimeType: Optional[str] = None
    fileSize: int
    entityType: str
    entityId: str
    folderId: Optional[str] = None
    uploadedBy: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    description: Optional[str] = None
    version: int
    isArchived: bool
    accessLevel: str
    downloadCount: int
    lastAccessedAt: Optional[str] = None
    sortOrder: int
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None

    @classmethod
    def from_model(cls, asset: FileAsset) -> "FileItem":
        return cls(
            id=asset.id,
            filename=asset.filename,
            originalName=asset.original_name,
            mimeType=asset.mime_type,
            fileSize=asset.file_size,
            entityType=asset.entity_type,
            entityId=asset.entity_id,
            folderId=asset.folder_id,
            uploadedBy=asset.uploaded_by,
            tags=asset.tag_names,
            description=asset.description,
            version=asset.version,
            isArchived=bool(asset.is_archived),
            accessLevel=asset.access_level,
            downloadCount=asset.download_count or 0,
            lastAccessedAt=isoformat(asset.last_accessed_at),
            sortOrder=asset.sort_order,
            createdAt=isoformat(asset.created_at),
            updatedAt=isoformat(asset.updated_at),
        )


def serialize_file(asset: FileAsset) -> dict[str, Any]:
    return FileItem.from_model(asset).model_dump()


def serialize_files(assets: list[FileAsset]) -> list[dict[str, Any]]:
    return [serialize_file(asset) for asset in assets]


class FileUpdateBody(BaseModel):
    originalName: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    tags: Optional[list[str]] = None
    accessLevel: Optional[AccessLevel] = None
    isArchived: Optional[bool] = None

    def to_changes(self) -> dict[str, Any]:
        data = self.model_dump(exclude_unset=True)
        mapping = {
            "originalName": "original_name",
            "description": "description",
            "tags": "tags",
            "accessLevel": "access_level",
            "isArchived": "is_archived",
        }
        return {mapping[key]: value for key, value in data.items()}


class ReorderBody(BaseModel):
    entityType: EntityKind
    entityId: str = Field(..., min_length=1)
    folderId: Optional[str] = None
    fileIds: list[str]


class FilesListData(BaseModel):
    files: list[FileItem]


FileResponse = ResponseEnvelope[FileItem]
FilesListResponse = ResponseEnvelope[FilesListData]
FilesMutationResponse = ResponseEnvelope[Any]
