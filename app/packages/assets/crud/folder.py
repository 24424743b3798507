"""文件夹 CRUD。"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session

from app.packages.assets.core.enums import EntityRef
from app.packages.assets.crud.base import CRUDBase
from app.packages.assets.models.folder import Folder


class CRUDFolder(CRUDBase[Folder]):
    def sibling_query(self, db: Session, ref: EntityRef, parent_folder_id: Optional[str]) -> Query:
        query = self.query(db).filter(
            Folder.entity_type == ref.kind.value,
            Folder.entity_id == ref.id,
        )
        if parent_folder_id is None:
            return query.filter(Folder.parent_folder_id.is_(None))
        return query.filter(Folder.parent_folder_id == parent_folder_id)

    def list_children(self, db: Session, ref: EntityRef, parent_folder_id: Optional[str]) -> list[Folder]:
        return (
            self.sibling_query(db, ref, parent_folder_id)
            .order_by(Folder.sort_order.asc(), Folder.name.asc(), Folder.id.asc())
            .all()
        )

    def list_by_entity(self, db: Session, ref: EntityRef) -> list[Folder]:
        return (
            self.query(db)
            .filter(Folder.entity_type == ref.kind.value, Folder.entity_id == ref.id)
            .order_by(Folder.folder_path.asc(), Folder.id.asc())
            .all()
        )

    def sibling_ids(self, db: Session, ref: EntityRef, parent_folder_id: Optional[str]) -> list[str]:
        rows = self.sibling_query(db, ref, parent_folder_id).with_entities(Folder.id).all()
        return [row[0] for row in rows]

    def next_sort_order(self, db: Session, ref: EntityRef, parent_folder_id: Optional[str]) -> int:
        current = (
            self.sibling_query(db, ref, parent_folder_id)
            .with_entities(func.max(Folder.sort_order))
            .scalar()
        )
        return 0 if current is None else int(current) + 1

    def subtree(self, db: Session, folder: Folder) -> list[Folder]:
        """返回 ``folder`` 及其所有后代，按路径深度升序。"""
        prefix = folder.folder_path.rstrip("/") + "/"
        rows = (
            self.query(db)
            .filter(
                Folder.entity_type == folder.entity_type,
                Folder.entity_id == folder.entity_id,
                or_(Folder.id == folder.id, Folder.folder_path.startswith(prefix, autoescape=True)),
            )
            .all()
        )
        return sorted(rows, key=lambda f: (f.folder_path.count("/"), f.folder_path))


folder_crud = CRUDFolder(Folder)
