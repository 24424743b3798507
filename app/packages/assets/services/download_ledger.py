"""下载账本：在独立后台线程中写入下载日志并更新文件计数。

请求线程只负责把记录放入有界队列，不等待任何数据库操作。队列满时丢弃
最早的待写记录并告警。每条记录的两次写入（日志行、计数器）互相独立，
任一失败都包装为 :class:`LogWriteFailure` 写入运维日志，不会向上抛出。
"""

from __future__ import annotations

import queue
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.packages.assets.core.enums import DownloadStatus
from app.packages.assets.core.exceptions import LogWriteFailure
from app.packages.assets.core.logger import logger, operator_logger
from app.packages.assets.crud.download_log import download_log_crud
from app.packages.assets.services.file_store import FileStore


@dataclass
class LedgerEntry:
    """一次下载尝试的审计数据，对应 ``download_logs`` 的一行。"""

    file_id: str
    user_id: str
    user_email: Optional[str] = None
    user_name: Optional[str] = None
    user_role: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    download_size: int = 0
    download_duration_ms: int = 0
    download_status: DownloadStatus = DownloadStatus.COMPLETED
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    referer_page: Optional[str] = None
    downloaded_at: Optional[datetime] = None

    @property
    def completed(self) -> bool:
        return self.download_status == DownloadStatus.COMPLETED


class DownloadLedger:
    def __init__(
        self,
        file_store: FileStore,
        session_factory: Callable[[], Session],
        *,
        max_pending: int = 1000,
    ) -> None:
        self.file_store = file_store
        self.session_factory = session_factory
        self._queue: "queue.Queue[Optional[LedgerEntry]]" = queue.Queue(maxsize=max(1, max_pending))
        self._worker: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.dropped = 0

    # ----------------------------
    # 入队
    # ----------------------------
    def submit(self, entry: LedgerEntry) -> None:
        """非阻塞入队；队列已满时丢弃最早的一条。"""
        if entry.downloaded_at is None:
            entry.downloaded_at = datetime.now(timezone.utc)
        with self._lock:
            while True:
                try:
                    self._queue.put_nowait(entry)
                    return
                except queue.Full:
                    try:
                        dropped = self._queue.get_nowait()
                    except queue.Empty:
                        continue
                    self._queue.task_done()
                    self.dropped += 1
                    logger.warning(
                        "Download ledger queue full, dropped pending entry file_id=%s",
                        getattr(dropped, "file_id", None),
                    )

    def pending(self) -> int:
        return self._queue.qsize()

    def flush(self, timeout: Optional[float] = 5.0) -> bool:
        """等待队列清空；超时返回 ``False``。未启动工作线程时直接在当前线程处理。"""
        if not self.is_running:
            self._drain()
            return True
        # task_done() 在计数归零时 notify_all，这里直接在同一个条件变量上限时等待
        idle = self._queue.all_tasks_done
        with idle:
            return idle.wait_for(lambda: self._queue.unfinished_tasks == 0, timeout)

    # ----------------------------
    # 写入
    # ----------------------------
    def process(self, entry: LedgerEntry) -> None:
        """两次写入各自捕获异常，互不影响。"""
        try:
            self.record(entry)
        except LogWriteFailure as failure:
            self._report(failure, entry)
        if not entry.completed:
            return
        try:
            self.update_file_counters(entry.file_id, entry.download_size)
        except LogWriteFailure as failure:
            self._report(failure, entry)

    def record(self, entry: LedgerEntry) -> None:
        db = self.session_factory()
        try:
            payload = asdict(entry)
            payload["download_status"] = DownloadStatus(entry.download_status).value
            download_log_crud.create(db, payload)
        except Exception as exc:
            raise LogWriteFailure("record", exc) from exc
        finally:
            db.close()

    def update_file_counters(self, file_id: str, bytes_sent: int) -> None:
        db = self.session_factory()
        try:
            self.file_store.record_access(db, file_id, bytes_sent)
        except Exception as exc:
            raise LogWriteFailure("update_file_counters", exc) from exc
        finally:
            db.close()

    def _report(self, failure: LogWriteFailure, entry: LedgerEntry) -> None:
        operator_logger.error(
            "Download ledger write failed op=%s file_id=%s user_id=%s: %s",
            failure.operation,
            entry.file_id,
            entry.user_id,
            failure.cause,
        )

    # ----------------------------
    # 工作线程
    # ----------------------------
    @property
    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._worker = threading.Thread(target=self._run, name="download-ledger", daemon=True)
        self._worker.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        worker = self._worker
        if worker is None:
            return
        self.flush(timeout)
        # 哨兵放入失败说明队列仍满，工作线程是守护线程，进程退出时随之结束
        try:
            self._queue.put(None, timeout=timeout)
        except queue.Full:
            logger.warning("Download ledger stop: queue still full, abandoning worker")
        worker.join(timeout)
        self._worker = None

    def _run(self) -> None:
        while True:
            entry = self._queue.get()
            try:
                if entry is None:
                    return
                self.process(entry)
            except Exception:  # pragma: no cover - 工作线程不能退出
                logger.exception("Download ledger worker error")
            finally:
                self._queue.task_done()

    def _drain(self) -> None:
        while True:
            try:
                entry = self._queue.get_nowait()
            except queue.Empty:
                return
            try:
                if entry is not None:
                    self.process(entry)
            finally:
                self._queue.task_done()
