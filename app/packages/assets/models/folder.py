"""文件夹模型：按实体组织文件的树形结构，``folder_path`` 为物化路径。"""

from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import expression

from app.packages.assets.core.enums import EntityRef
from app.packages.assets.models.base import Base, TimestampMixin, new_id


class Folder(TimestampMixin, Base):
    __tablename__ = "file_folders"

    __table_args__ = (
        Index("ix_file_folders_entity", "entity_type", "entity_id"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    parent_folder_id: Mapped[Optional[str]] = mapped_column(
        String(32), ForeignKey("file_folders.id", ondelete="CASCADE"), nullable=True, index=True
    )
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    folder_path: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=expression.true()
    )

    @property
    def entity(self) -> EntityRef:
        return EntityRef.of(self.entity_type, self.entity_id)
