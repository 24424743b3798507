"""文件资产模型：元数据与 base64 编码的文件内容保存在同一行。

``file_data`` 列声明为延迟加载，元数据查询不会把大字段读入内存。
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import expression

from app.packages.assets.core.enums import AccessLevel, EntityRef
from app.packages.assets.models.base import Base, TimestampMixin, new_id


class FileAsset(TimestampMixin, Base):
    __tablename__ = "file_assets"

    __table_args__ = (
        Index("ix_file_assets_scope_order", "entity_type", "entity_id", "folder_id", "sort_order"),
        CheckConstraint("download_count >= 0", name="download_count_non_negative"),
        CheckConstraint("version >= 1", name="version_positive"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    file_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True, deferred=True)

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    folder_id: Mapped[Optional[str]] = mapped_column(
        String(32), ForeignKey("file_folders.id", ondelete="SET NULL"), nullable=True, index=True
    )
    uploaded_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    is_archived: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=expression.false()
    )
    access_level: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AccessLevel.RESTRICTED.value
    )
    download_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_accessed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    tags: Mapped[list["FileTag"]] = relationship(
        back_populates="file",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="FileTag.tag",
    )

    @property
    def entity(self) -> EntityRef:
        return EntityRef.of(self.entity_type, self.entity_id)

    @property
    def display_name(self) -> str:
        return self.original_name or self.filename

    @property
    def tag_names(self) -> list[str]:
        return sorted(t.tag for t in self.tags)

    def replace_tags(self, names: list[str]) -> None:
        """按集合语义覆盖标签：去空白、去重，保留已有行以减少写放大。"""
        wanted = normalize_tags(names)
        self.tags = [t for t in self.tags if t.tag in wanted] + [
            FileTag(tag=name) for name in wanted if name not in set(self.tag_names)
        ]


class FileTag(Base):
    """文件标签（集合语义，同一文件内唯一）。"""

    __tablename__ = "file_tags"

    __table_args__ = (UniqueConstraint("file_id", "tag", name="uq_file_tags_file_tag"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("file_assets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tag: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    file: Mapped[FileAsset] = relationship(back_populates="tags")


def normalize_tags(names: Optional[list[str]]) -> list[str]:
    seen: list[str] = []
    for raw in names or []:
        name = (raw or "").strip()[:64]
        if name and name not in seen:
            seen.append(name)
    return seen
