"""下载日志模型：每次下载尝试一条只追加的审计记录。"""

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.packages.assets.core.enums import DownloadStatus
from app.packages.assets.models.base import Base, new_id


class DownloadLog(Base):
    __tablename__ = "download_logs"

    __table_args__ = (
        Index("ix_download_logs_entity", "entity_type", "entity_id"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    # 不加外键：文件删除后审计记录仍需保留
    file_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    user_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    user_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    user_role: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    download_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    download_duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    download_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DownloadStatus.COMPLETED.value, index=True
    )
    entity_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    referer_page: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    downloaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )
