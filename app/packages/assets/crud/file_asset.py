"""文件资产 CRUD。"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import exists, func, or_
from sqlalchemy.orm import Query, Session

from app.packages.assets.core.enums import EntityRef
from app.packages.assets.crud.base import CRUDBase
from app.packages.assets.models.file_asset import FileAsset, FileTag


class CRUDFileAsset(CRUDBase[FileAsset]):
    def scope_query(self, db: Session, ref: EntityRef, folder_id: Optional[str]) -> Query:
        """(entity_type, entity_id, folder_id) 作用域，folder_id 为空表示根目录。"""
        query = self.query(db).filter(
            FileAsset.entity_type == ref.kind.value,
            FileAsset.entity_id == ref.id,
        )
        if folder_id is None:
            return query.filter(FileAsset.folder_id.is_(None))
        return query.filter(FileAsset.folder_id == folder_id)

    def list_by_entity(
        self,
        db: Session,
        ref: EntityRef,
        folder_id: Optional[str] = None,
        *,
        all_folders: bool = False,
    ) -> list[FileAsset]:
        if all_folders:
            query = self.query(db).filter(
                FileAsset.entity_type == ref.kind.value,
                FileAsset.entity_id == ref.id,
            )
        else:
            query = self.scope_query(db, ref, folder_id)
        return query.order_by(
            FileAsset.sort_order.asc(),
            FileAsset.created_at.asc(),
            FileAsset.id.asc(),
        ).all()

    def scope_ids(self, db: Session, ref: EntityRef, folder_id: Optional[str]) -> list[str]:
        rows = self.scope_query(db, ref, folder_id).with_entities(FileAsset.id).all()
        return [row[0] for row in rows]

    def next_sort_order(self, db: Session, ref: EntityRef, folder_id: Optional[str]) -> int:
        current = self.scope_query(db, ref, folder_id).with_entities(func.max(FileAsset.sort_order)).scalar()
        return 0 if current is None else int(current) + 1

    def search(self, db: Session, term: str, ref: Optional[EntityRef] = None, *, limit: int = 100) -> list[FileAsset]:
        escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        tag_match = exists().where(
            FileTag.file_id == FileAsset.id,
            FileTag.tag.ilike(pattern, escape="\\"),
        )
        query = self.query(db).filter(
            or_(
                FileAsset.original_name.ilike(pattern, escape="\\"),
                FileAsset.filename.ilike(pattern, escape="\\"),
                tag_match,
            )
        )
        if ref is not None:
            query = query.filter(
                FileAsset.entity_type == ref.kind.value,
                FileAsset.entity_id == ref.id,
            )
        return query.order_by(FileAsset.original_name.asc(), FileAsset.id.asc()).limit(limit).all()

    def load_blob(self, db: Session, file_id: str) -> Optional[tuple[Optional[str], int]]:
        """只读取 (file_data, file_size)，不构造 ORM 对象。"""
        row = (
            db.query(FileAsset.file_data, FileAsset.file_size)
            .filter(FileAsset.id == file_id)
            .first()
        )
        if row is None:
            return None
        return row[0], int(row[1] or 0)

    def increment_access(self, db: Session, file_id: str, accessed_at: datetime) -> int:
        """单条 UPDATE 内完成自增，并发下不会丢失更新。返回受影响行数。"""
        return (
            db.query(FileAsset)
            .filter(FileAsset.id == file_id)
            .update(
                {
                    FileAsset.download_count: FileAsset.download_count + 1,
                    FileAsset.last_accessed_at: accessed_at,
                },
                synchronize_session=False,
            )
        )


file_asset_crud = CRUDFileAsset(FileAsset)
