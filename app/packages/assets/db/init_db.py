"""Database bootstrapping utilities."""

from __future__ import annotations

import logging

from app.packages.assets.db import session as db_session
from app.packages.assets.models import Base, DownloadLog, FileAsset, FileTag, Folder  # noqa: F401 - register tables

logger = logging.getLogger(__name__)


def init_db() -> None:
    """创建缺失的数据表。结构变更由外部迁移工具负责，这里只做首次建表。"""
    Base.metadata.create_all(bind=db_session.engine)
    logger.info("Database tables ensured: %s", ", ".join(sorted(Base.metadata.tables)))
