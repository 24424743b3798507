"""文件资产路由：列表、搜索、上传、下载、在线预览、排序与删除。

列表结果按作用域写入响应缓存，任何会改变作用域内容或顺序的写操作都会
清理对应的缓存键。下载路由在返回响应前完成全部校验与读取，下载日志在
响应发送后由后台任务交给下载账本。
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session
from starlette.background import BackgroundTask

from app.packages.assets.api.v1.schemas.files import (
    FileResponse,
    FilesListResponse,
    FilesMutationResponse,
    FileUpdateBody,
    ReorderBody,
    serialize_file,
    serialize_files,
)
from app.packages.assets.core.constants import HTTP_STATUS_CREATED
from app.packages.assets.core.dependencies import (
    get_db,
    get_optional_principal,
    get_services,
    require_permission,
)
from app.packages.assets.core.enums import AccessLevel, EntityKind, EntityRef
from app.packages.assets.core.exceptions import PermissionDenied, UploadFailed
from app.packages.assets.core.permissions import has_permission
from app.packages.assets.core.responses import create_response
from app.packages.assets.core.security import Principal
from app.packages.assets.services.context import ServiceContext
from app.packages.assets.services.download_pipeline import RequestInfo
from app.packages.assets.services.file_store import FileDraft
from app.packages.assets.services.listing_cache import listing_cache_key

router = APIRouter(tags=["files"])


def invalidate_listing(services: ServiceContext, ref: EntityRef, *folder_ids: Optional[str]) -> None:
    services.listings.invalidate(ref, *folder_ids)


def _parse_tags(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    return [item for item in (part.strip() for part in raw.split(",")) if item]


def _read_upload(upload: UploadFile) -> bytes:
    try:
        return upload.file.read()
    except OSError as exc:
        raise UploadFailed(f"could not read upload: {exc}") from exc
    finally:
        upload.file.close()


@router.get("/files", response_model=FilesListResponse)
def list_files(
    entity_type: EntityKind = Query(..., alias="entityType"),
    entity_id: str = Query(..., alias="entityId", min_length=1),
    folder_id: Optional[str] = Query(None, alias="folderId"),
    all_folders: bool = Query(False, alias="allFolders"),
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
    _: Principal = Depends(require_permission("can_view")),
):
    ref = EntityRef.of(entity_type, entity_id)
    key = listing_cache_key(ref, folder_id, all_folders=all_folders)
    files = services.listings.get(key)
    if files is None:
        generation = services.listings.generation(ref)
        assets = services.file_store.list_by_entity(db, ref, folder_id, all_folders=all_folders)
        files = serialize_files(assets)
        services.listings.store(ref, generation, key, files)
    return create_response("获取文件列表成功", {"files": files})


@router.get("/files/search", response_model=FilesListResponse)
def search_files(
    q: Optional[str] = Query(None),
    entity_type: Optional[EntityKind] = Query(None, alias="entityType"),
    entity_id: Optional[str] = Query(None, alias="entityId"),
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
    _: Principal = Depends(require_permission("can_view")),
):
    ref = EntityRef.of(entity_type, entity_id) if entity_type and entity_id else None
    assets = services.file_store.search_by_name_or_tag(db, q, ref)
    return create_response("搜索文件成功", {"files": serialize_files(assets)})


@router.post("/files/reorder", response_model=FilesListResponse)
def reorder_files(
    payload: ReorderBody,
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
    _: Principal = Depends(require_permission("can_edit")),
):
    ref = EntityRef.of(payload.entityType, payload.entityId)
    assets = services.ordering.commit(db, ref, payload.folderId, payload.fileIds)
    invalidate_listing(services, ref, payload.folderId)
    return create_response("文件排序已更新", {"files": serialize_files(assets)})


@router.get("/files/{file_id}/download")
def download_file(
    file_id: str,
    request: Request,
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
    principal: Optional[Principal] = Depends(get_optional_principal),
):
    if principal is not None and not has_permission(principal, "can_download"):
        raise PermissionDenied()
    info = RequestInfo(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        referer=request.headers.get("referer"),
    )
    prepared = services.pipeline.prepare(db, file_id, principal, info)
    return Response(
        content=prepared.body,
        headers=prepared.headers,
        background=BackgroundTask(services.ledger.submit, prepared.ledger_entry),
    )


@router.get("/files/{file_id}/view")
def view_file(
    file_id: str,
    request: Request,
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
    principal: Optional[Principal] = Depends(get_optional_principal),
):
    """在线预览：与下载共用管线与缓存，inline 展示，不计入下载日志与计数。"""
    if principal is not None and not has_permission(principal, "can_view"):
        raise PermissionDenied()
    info = RequestInfo(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        referer=request.headers.get("referer"),
    )
    prepared = services.pipeline.prepare(db, file_id, principal, info, inline=True)
    return Response(content=prepared.body, headers=prepared.headers)


@router.get("/files/{file_id}", response_model=FileResponse)
def get_file(
    file_id: str,
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
    _: Principal = Depends(require_permission("can_view")),
):
    asset = services.file_store.get_metadata(db, file_id)
    return create_response("获取文件信息成功", serialize_file(asset))


@router.post("/files", response_model=FileResponse, status_code=HTTP_STATUS_CREATED)
def upload_file(
    file: UploadFile = File(...),
    entity_type: EntityKind = Form(..., alias="entityType"),
    entity_id: str = Form(..., alias="entityId", min_length=1),
    folder_id: Optional[str] = Form(None, alias="folderId"),
    tags: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    access_level: AccessLevel = Form(AccessLevel.RESTRICTED, alias="accessLevel"),
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
    principal: Principal = Depends(require_permission("can_upload")),
):
    ref = EntityRef.of(entity_type, entity_id)
    blob = _read_upload(file)
    draft = FileDraft(
        entity=ref,
        original_name=file.filename or "",
        mime_type=file.content_type,
        folder_id=folder_id or None,
        uploaded_by=principal.id,
        description=description,
        tags=_parse_tags(tags),
        access_level=access_level,
    )
    asset = services.file_store.create(db, draft, blob)
    invalidate_listing(services, ref, draft.folder_id)
    return create_response("上传文件成功", serialize_file(asset), HTTP_STATUS_CREATED)


@router.put("/files/{file_id}/content", response_model=FileResponse)
def replace_file_content(
    file_id: str,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
    _: Principal = Depends(require_permission("can_upload")),
):
    blob = _read_upload(file)
    asset = services.file_store.replace_content(
        db,
        file_id,
        blob,
        original_name=file.filename,
        mime_type=file.content_type,
    )
    services.pipeline.evict(file_id)
    invalidate_listing(services, asset.entity, asset.folder_id)
    return create_response("文件内容已更新", serialize_file(asset))


@router.patch("/files/{file_id}", response_model=FileResponse)
def update_file(
    file_id: str,
    payload: FileUpdateBody,
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
    _: Principal = Depends(require_permission("can_edit")),
):
    asset = services.file_store.update_metadata(db, file_id, payload.to_changes())
    invalidate_listing(services, asset.entity, asset.folder_id)
    return create_response("文件信息已更新", serialize_file(asset))


@router.delete("/files/{file_id}", response_model=FilesMutationResponse)
def delete_file(
    file_id: str,
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
    _: Principal = Depends(require_permission("can_delete")),
):
    scope = services.file_store.delete(db, file_id)
    services.pipeline.evict(file_id)
    invalidate_listing(services, scope.entity, scope.folder_id)
    return create_response("删除文件成功", {"id": file_id})
