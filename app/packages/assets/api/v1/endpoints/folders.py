"""文件夹路由：按实体组织文件的树形目录。"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.packages.assets.api.v1.schemas.files import FilesMutationResponse
from app.packages.assets.api.v1.schemas.folders import (
    FolderCreateBody,
    FolderReorderBody,
    FolderResponse,
    FoldersListResponse,
    FolderUpdateBody,
    serialize_folder,
)
from app.packages.assets.core.constants import HTTP_STATUS_CREATED
from app.packages.assets.core.dependencies import get_db, get_services, require_permission
from app.packages.assets.core.enums import EntityKind, EntityRef
from app.packages.assets.core.responses import create_response
from app.packages.assets.core.security import Principal
from app.packages.assets.services.context import ServiceContext

router = APIRouter(tags=["folders"])


@router.get("/folders", response_model=FoldersListResponse)
def list_folders(
    entity_type: EntityKind = Query(..., alias="entityType"),
    entity_id: str = Query(..., alias="entityId", min_length=1),
    parent_folder_id: Optional[str] = Query(None, alias="parentFolderId"),
    recursive: bool = Query(False),
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
    _: Principal = Depends(require_permission("can_view")),
):
    ref = EntityRef.of(entity_type, entity_id)
    folders = services.file_store.list_folders(db, ref, parent_folder_id, recursive=recursive)
    return create_response("获取文件夹列表成功", {"folders": [serialize_folder(f) for f in folders]})


@router.post("/folders", response_model=FolderResponse, status_code=HTTP_STATUS_CREATED)
def create_folder(
    payload: FolderCreateBody,
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
    _: Principal = Depends(require_permission("can_edit")),
):
    folder = services.file_store.create_folder(
        db,
        EntityRef.of(payload.entityType, payload.entityId),
        payload.name,
        parent_folder_id=payload.parentFolderId,
        description=payload.description,
    )
    return create_response("创建文件夹成功", serialize_folder(folder), HTTP_STATUS_CREATED)


@router.post("/folders/reorder", response_model=FoldersListResponse)
def reorder_folders(
    payload: FolderReorderBody,
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
    _: Principal = Depends(require_permission("can_edit")),
):
    ref = EntityRef.of(payload.entityType, payload.entityId)
    folders = services.ordering.commit_folders(db, ref, payload.parentFolderId, payload.folderIds)
    return create_response("文件夹排序已更新", {"folders": [serialize_folder(f) for f in folders]})


@router.get("/folders/{folder_id}", response_model=FolderResponse)
def get_folder(
    folder_id: str,
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
    _: Principal = Depends(require_permission("can_view")),
):
    return create_response("获取文件夹成功", serialize_folder(services.file_store.get_folder(db, folder_id)))


@router.patch("/folders/{folder_id}", response_model=FolderResponse)
def update_folder(
    folder_id: str,
    payload: FolderUpdateBody,
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
    _: Principal = Depends(require_permission("can_edit")),
):
    store = services.file_store
    folder = store.get_folder(db, folder_id)
    if payload.name is not None or payload.description is not None:
        folder = store.rename_folder(db, folder_id, payload.name, description=payload.description)
    if "parentFolderId" in payload.model_fields_set:
        folder = store.move_folder(db, folder_id, payload.parentFolderId)
    return create_response("文件夹已更新", serialize_folder(folder))


@router.delete("/folders/{folder_id}", response_model=FilesMutationResponse)
def delete_folder(
    folder_id: str,
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
    _: Principal = Depends(require_permission("can_delete")),
):
    removal = services.file_store.delete_folder(db, folder_id)
    # 文件在多个作用域之间移动，直接清空列表缓存
    services.listings.clear()
    return create_response(
        "删除文件夹成功",
        {"folderIds": removal.folder_ids, "movedFileIds": removal.moved_file_ids},
    )
