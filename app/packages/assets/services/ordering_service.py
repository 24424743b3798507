"""排序服务：为同一作用域内的文件（或同级文件夹）写入显式的显示顺序。

提交的 ID 列表必须与当前作用域内已持久化的集合完全一致（不多、不少、
不重复），否则整次提交被拒绝且不产生任何写入。校验通过后在一个事务内
写入 ``sort_order = 下标``，失败时整体回滚。
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable, Optional, Sequence

from sqlalchemy.orm import Session

from app.packages.assets.core.enums import EntityRef
from app.packages.assets.core.exceptions import ReorderIntegrityViolation
from app.packages.assets.core.logger import logger
from app.packages.assets.crud.file_asset import file_asset_crud
from app.packages.assets.crud.folder import folder_crud
from app.packages.assets.models.file_asset import FileAsset
from app.packages.assets.models.folder import Folder
from app.packages.assets.services.file_store import FileStore, store_errors


def _verify_same_members(persisted: Iterable[str], submitted: Sequence[str]) -> None:
    counts = Counter(submitted)
    duplicates = [item for item, n in counts.items() if n > 1]
    current = set(persisted)
    wanted = set(counts)
    missing = current - wanted
    unexpected = wanted - current
    if duplicates or missing or unexpected:
        raise ReorderIntegrityViolation(
            missing=list(missing),
            unexpected=list(unexpected),
            duplicates=duplicates,
        )


class OrderingService:
    """校验与写入走 crud 层的作用域查询，写入后的结果通过 FileStore 读取。"""

    def __init__(self, file_store: FileStore) -> None:
        self.file_store = file_store

    def commit(
        self,
        db: Session,
        ref: EntityRef,
        folder_id: Optional[str],
        ordered_file_ids: Sequence[str],
    ) -> list[FileAsset]:
        ordered = [str(item) for item in ordered_file_ids]
        with store_errors(db):
            _verify_same_members(file_asset_crud.scope_ids(db, ref, folder_id), ordered)
            rows = {row.id: row for row in file_asset_crud.scope_query(db, ref, folder_id).all()}
            try:
                for index, file_id in enumerate(ordered):
                    rows[file_id].sort_order = index
                db.commit()
            except Exception:
                db.rollback()
                raise
        result = self.file_store.list_by_entity(db, ref, folder_id)
        logger.info("files.reorder entity=%s folder=%s count=%d", ref, folder_id, len(ordered))
        return result

    def commit_folders(
        self,
        db: Session,
        ref: EntityRef,
        parent_folder_id: Optional[str],
        ordered_folder_ids: Sequence[str],
    ) -> list[Folder]:
        ordered = [str(item) for item in ordered_folder_ids]
        with store_errors(db):
            _verify_same_members(folder_crud.sibling_ids(db, ref, parent_folder_id), ordered)
            rows = {row.id: row for row in folder_crud.sibling_query(db, ref, parent_folder_id).all()}
            try:
                for index, folder_id in enumerate(ordered):
                    rows[folder_id].sort_order = index
                db.commit()
            except Exception:
                db.rollback()
                raise
        result = self.file_store.list_folders(db, ref, parent_folder_id)
        logger.info(
            "folders.reorder entity=%s parent=%s count=%d", ref, parent_folder_id, len(ordered)
        )
        return result
