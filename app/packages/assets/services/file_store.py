"""文件存储服务：文件/文件夹元数据与文件内容的唯一数据来源。

文件内容以 base64 文本保存在 ``file_assets.file_data`` 列中，元数据读取
不会加载该列。所有与数据库交互的异常（连接失败、语句超时、连接池耗尽）
统一转换为 :class:`StoreUnavailable`，由全局异常处理记录细节并返回通用错误。
"""

from __future__ import annotations

import base64
import binascii
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from sqlalchemy.exc import DBAPIError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from app.packages.assets.core.constants import FOLDER_PATH_SEPARATOR, SEARCH_MIN_LENGTH
from app.packages.assets.core.enums import AccessLevel, EntityRef
from app.packages.assets.core.exceptions import (
    BlobMissing,
    DataCorrupted,
    FileNotFound,
    FolderCycle,
    FolderNotFound,
    InvalidFolder,
    StoreUnavailable,
    UploadFailed,
)
from app.packages.assets.core.logger import logger
from app.packages.assets.crud.file_asset import file_asset_crud
from app.packages.assets.crud.folder import folder_crud
from app.packages.assets.models.file_asset import FileAsset
from app.packages.assets.models.folder import Folder


@dataclass
class FileDraft:
    """上传时提交的文件元数据（不含内容）。"""

    entity: EntityRef
    original_name: str
    mime_type: Optional[str] = None
    folder_id: Optional[str] = None
    uploaded_by: Optional[str] = None
    description: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    access_level: AccessLevel = AccessLevel.RESTRICTED


@dataclass(frozen=True)
class FileScope:
    """文件所在的排序作用域，删除后用于缓存失效。"""

    entity: EntityRef
    folder_id: Optional[str]


@dataclass(frozen=True)
class FolderRemoval:
    entity: EntityRef
    folder_ids: list[str]
    moved_file_ids: list[str]


_EDITABLE_FILE_FIELDS = ("original_name", "description", "access_level", "is_archived")


@contextmanager
def store_errors(db: Session, file_id: Optional[str] = None) -> Iterator[None]:
    """把数据库连接/超时类异常转换为 StoreUnavailable，并回滚当前会话。"""
    try:
        yield
    except (DBAPIError, PoolTimeoutError) as exc:
        db.rollback()
        raise StoreUnavailable(f"{type(exc).__name__}: {exc}", file_id=file_id) from exc


class FileStore:
    def __init__(self, *, upload_max_bytes: int) -> None:
        self.upload_max_bytes = upload_max_bytes

    # ----------------------------
    # 文件读取
    # ----------------------------
    def get_metadata(self, db: Session, file_id: str) -> FileAsset:
        with store_errors(db, file_id):
            asset = file_asset_crud.get(db, file_id)
        if asset is None:
            raise FileNotFound(file_id)
        return asset

    def get_blob(self, db: Session, file_id: str) -> bytes:
        """解码并校验文件内容：空内容为 BlobMissing，解码失败或长度不符为 DataCorrupted。"""
        with store_errors(db, file_id):
            row = file_asset_crud.load_blob(db, file_id)
        if row is None:
            raise FileNotFound(file_id)
        encoded, expected_size = row
        if not encoded:
            raise BlobMissing("file_data column is empty", file_id=file_id)
        try:
            blob = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise DataCorrupted(f"base64 decode failed: {exc}", file_id=file_id) from exc
        if len(blob) != expected_size:
            raise DataCorrupted(
                f"decoded size {len(blob)} != recorded file_size {expected_size}",
                file_id=file_id,
            )
        return blob

    def list_by_entity(
        self,
        db: Session,
        ref: EntityRef,
        folder_id: Optional[str] = None,
        *,
        all_folders: bool = False,
    ) -> list[FileAsset]:
        with store_errors(db):
            return file_asset_crud.list_by_entity(db, ref, folder_id, all_folders=all_folders)

    def search_by_name_or_tag(
        self,
        db: Session,
        query: Optional[str],
        ref: Optional[EntityRef] = None,
    ) -> list[FileAsset]:
        term = (query or "").strip()
        if len(term) < SEARCH_MIN_LENGTH:
            return []
        with store_errors(db):
            return file_asset_crud.search(db, term, ref)

    # ----------------------------
    # 文件写入
    # ----------------------------
    def _check_blob(self, blob: bytes) -> None:
        if not blob:
            raise UploadFailed("file is empty")
        if len(blob) > self.upload_max_bytes:
            raise UploadFailed(f"file exceeds {self.upload_max_bytes} bytes")

    def _check_target_folder(self, db: Session, ref: EntityRef, folder_id: Optional[str]) -> None:
        if folder_id is None:
            return
        folder = folder_crud.get(db, folder_id)
        if folder is None or folder.entity != ref:
            raise UploadFailed("folder does not exist for this entity")

    def create(self, db: Session, draft: FileDraft, blob: bytes) -> FileAsset:
        original_name = (draft.original_name or "").strip()
        if not original_name:
            raise UploadFailed("filename is required")
        self._check_blob(blob)
        ref = draft.entity
        with store_errors(db):
            self._check_target_folder(db, ref, draft.folder_id)
            asset = FileAsset(
                filename=_stored_filename(ref, original_name),
                original_name=original_name,
                mime_type=draft.mime_type,
                file_size=len(blob),
                file_data=base64.b64encode(blob).decode("ascii"),
                entity_type=ref.kind.value,
                entity_id=ref.id,
                folder_id=draft.folder_id,
                uploaded_by=draft.uploaded_by,
                description=draft.description,
                version=1,
                access_level=AccessLevel(draft.access_level).value,
                sort_order=file_asset_crud.next_sort_order(db, ref, draft.folder_id),
            )
            asset.replace_tags(draft.tags)
            asset = file_asset_crud.save(db, asset)
        logger.info(
            "file.create id=%s entity=%s folder=%s size=%s",
            asset.id,
            ref,
            draft.folder_id,
            asset.file_size,
        )
        return asset

    def replace_content(
        self,
        db: Session,
        file_id: str,
        blob: bytes,
        *,
        original_name: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> FileAsset:
        """重新上传：覆盖内容并递增版本号；调用方负责清理该文件的缓存条目。"""
        self._check_blob(blob)
        asset = self.get_metadata(db, file_id)
        with store_errors(db, file_id):
            asset.file_data = base64.b64encode(blob).decode("ascii")
            asset.file_size = len(blob)
            asset.version = (asset.version or 1) + 1
            if original_name and original_name.strip():
                asset.original_name = original_name.strip()
            if mime_type:
                asset.mime_type = mime_type
            asset = file_asset_crud.save(db, asset)
        logger.info("file.replace id=%s version=%s size=%s", asset.id, asset.version, asset.file_size)
        return asset

    def update_metadata(self, db: Session, file_id: str, changes: dict[str, Any]) -> FileAsset:
        asset = self.get_metadata(db, file_id)
        with store_errors(db, file_id):
            for key in _EDITABLE_FILE_FIELDS:
                if key not in changes or changes[key] is None:
                    continue
                value = changes[key]
                if key == "original_name":
                    value = str(value).strip()
                    if not value:
                        continue
                elif key == "access_level":
                    value = AccessLevel(value).value
                setattr(asset, key, value)
            if changes.get("tags") is not None:
                asset.replace_tags(changes["tags"])
            asset = file_asset_crud.save(db, asset)
        return asset

    def delete(self, db: Session, file_id: str) -> FileScope:
        """删除元数据、标签与内容；调用方负责清理该文件的缓存条目。"""
        asset = self.get_metadata(db, file_id)
        scope = FileScope(entity=asset.entity, folder_id=asset.folder_id)
        with store_errors(db, file_id):
            file_asset_crud.hard_delete(db, asset)
        logger.info("file.delete id=%s entity=%s", file_id, scope.entity)
        return scope

    def record_access(self, db: Session, file_id: str, bytes_sent: int) -> None:
        """原子地 ``download_count + 1`` 并刷新 ``last_accessed_at``。"""
        with store_errors(db, file_id):
            updated = file_asset_crud.increment_access(db, file_id, datetime.now(timezone.utc))
            db.commit()
        if not updated:
            raise FileNotFound(file_id)
        logger.debug("file.access id=%s bytes=%s", file_id, bytes_sent)

    # ----------------------------
    # 文件夹
    # ----------------------------
    def get_folder(self, db: Session, folder_id: str) -> Folder:
        with store_errors(db):
            folder = folder_crud.get(db, folder_id)
        if folder is None:
            raise FolderNotFound(folder_id)
        return folder

    def list_folders(
        self,
        db: Session,
        ref: EntityRef,
        parent_folder_id: Optional[str] = None,
        *,
        recursive: bool = False,
    ) -> list[Folder]:
        with store_errors(db):
            if recursive:
                return folder_crud.list_by_entity(db, ref)
            return folder_crud.list_children(db, ref, parent_folder_id)

    def create_folder(
        self,
        db: Session,
        ref: EntityRef,
        name: str,
        *,
        parent_folder_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Folder:
        clean_name = _clean_folder_name(name)
        parent = self._resolve_parent(db, ref, parent_folder_id)
        with store_errors(db):
            self._ensure_unique_name(db, ref, parent_folder_id, clean_name)
            folder = Folder(
                name=clean_name,
                description=description,
                parent_folder_id=parent_folder_id,
                entity_type=ref.kind.value,
                entity_id=ref.id,
                folder_path=_join_path(parent.folder_path if parent else None, clean_name),
                sort_order=folder_crud.next_sort_order(db, ref, parent_folder_id),
            )
            folder = folder_crud.save(db, folder)
        logger.info("folder.create id=%s path=%s entity=%s", folder.id, folder.folder_path, ref)
        return folder

    def rename_folder(
        self,
        db: Session,
        folder_id: str,
        name: Optional[str] = None,
        *,
        description: Optional[str] = None,
    ) -> Folder:
        folder = self.get_folder(db, folder_id)
        with store_errors(db):
            if description is not None:
                folder.description = description
            if name is not None:
                clean_name = _clean_folder_name(name)
                if clean_name != folder.name:
                    self._ensure_unique_name(db, folder.entity, folder.parent_folder_id, clean_name)
                    parent_path = folder.folder_path.rsplit(FOLDER_PATH_SEPARATOR, 1)[0]
                    self._rewrite_subtree(db, folder, _join_path(parent_path or None, clean_name))
                    folder.name = clean_name
            folder = folder_crud.save(db, folder)
        return folder

    def move_folder(self, db: Session, folder_id: str, new_parent_id: Optional[str]) -> Folder:
        folder = self.get_folder(db, folder_id)
        if new_parent_id == folder.parent_folder_id:
            return folder
        parent = self._resolve_parent(db, folder.entity, new_parent_id)
        if parent is not None and (
            parent.id == folder.id
            or parent.folder_path.startswith(folder.folder_path + FOLDER_PATH_SEPARATOR)
        ):
            raise FolderCycle()
        with store_errors(db):
            self._ensure_unique_name(db, folder.entity, new_parent_id, folder.name)
            self._rewrite_subtree(
                db, folder, _join_path(parent.folder_path if parent else None, folder.name)
            )
            folder.parent_folder_id = new_parent_id
            folder.sort_order = folder_crud.next_sort_order(db, folder.entity, new_parent_id)
            folder = folder_crud.save(db, folder)
        logger.info("folder.move id=%s parent=%s path=%s", folder.id, new_parent_id, folder.folder_path)
        return folder

    def delete_folder(self, db: Session, folder_id: str) -> FolderRemoval:
        """删除文件夹及其子文件夹，不级联删除文件。

        子树中的文件移动到实体根目录（``folder_id = NULL``），按原有相对顺序
        追加在根目录已有文件之后。
        """
        folder = self.get_folder(db, folder_id)
        ref = folder.entity
        with store_errors(db):
            subtree = folder_crud.subtree(db, folder)
            folder_ids = [f.id for f in subtree]
            rank = {fid: index for index, fid in enumerate(folder_ids)}
            files = (
                file_asset_crud.query(db)
                .filter(FileAsset.folder_id.in_(folder_ids))
                .all()
            )
            files.sort(key=lambda f: (rank[f.folder_id], f.sort_order, f.created_at, f.id))
            base = file_asset_crud.next_sort_order(db, ref, None)
            for offset, asset in enumerate(files):
                asset.folder_id = None
                asset.sort_order = base + offset
            db.flush()
            folder_crud.query(db).filter(Folder.id.in_(folder_ids)).delete(synchronize_session=False)
            try:
                db.commit()
            except Exception:
                db.rollback()
                raise
        logger.info(
            "folder.delete id=%s removed_folders=%d moved_files=%d",
            folder_id,
            len(folder_ids),
            len(files),
        )
        return FolderRemoval(entity=ref, folder_ids=folder_ids, moved_file_ids=[f.id for f in files])

    def _resolve_parent(self, db: Session, ref: EntityRef, parent_folder_id: Optional[str]) -> Optional[Folder]:
        if parent_folder_id is None:
            return None
        parent = self.get_folder(db, parent_folder_id)
        if parent.entity != ref:
            raise InvalidFolder("parent folder belongs to another entity")
        return parent

    def _ensure_unique_name(
        self,
        db: Session,
        ref: EntityRef,
        parent_folder_id: Optional[str],
        name: str,
    ) -> None:
        clash = folder_crud.sibling_query(db, ref, parent_folder_id).filter(Folder.name == name).first()
        if clash is not None:
            raise InvalidFolder(f"folder '{name}' already exists here")

    def _rewrite_subtree(self, db: Session, folder: Folder, new_path: str) -> None:
        old_path = folder.folder_path
        for node in folder_crud.subtree(db, folder):
            node.folder_path = new_path + node.folder_path[len(old_path):]


def _clean_folder_name(name: Optional[str]) -> str:
    clean = (name or "").strip()
    if not clean:
        raise InvalidFolder("folder name is required")
    if FOLDER_PATH_SEPARATOR in clean:
        raise InvalidFolder(f"folder name cannot contain '{FOLDER_PATH_SEPARATOR}'")
    return clean


def _join_path(parent_path: Optional[str], name: str) -> str:
    return f"{parent_path or ''}{FOLDER_PATH_SEPARATOR}{name}"


def _stored_filename(ref: EntityRef, original_name: str) -> str:
    return f"{ref.kind.value}_{ref.id}_{int(time.time() * 1000)}_{original_name}"[:255]
