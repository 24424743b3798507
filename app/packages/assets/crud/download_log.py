"""下载日志 CRUD。"""

from __future__ import annotations

from sqlalchemy.orm import Session

from app.packages.assets.crud.base import CRUDBase
from app.packages.assets.models.download_log import DownloadLog


class CRUDDownloadLog(CRUDBase[DownloadLog]):
    def list_for_file(self, db: Session, file_id: str) -> list[DownloadLog]:
        return (
            self.query(db)
            .filter(DownloadLog.file_id == file_id)
            .order_by(DownloadLog.downloaded_at.asc(), DownloadLog.id.asc())
            .all()
        )


download_log_crud = CRUDDownloadLog(DownloadLog)
