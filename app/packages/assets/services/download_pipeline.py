"""下载管线：认证 → 缓存查找 → 存储读取 → 按大小写入缓存 → 构造响应头。

所有可能失败的步骤都在 :meth:`DownloadPipeline.prepare` 中完成，返回的
:class:`PreparedDownload` 已包含完整的响应体与响应头，因此一旦开始写出
响应就不会再出现错误状态码。下载日志与计数更新由调用方在响应发送后
交给 :class:`DownloadLedger` 处理。

缓存条目记录写入时的文件版本；命中时与元数据中的版本比对，不一致视为
未命中并清除该条目，因此并发的内容替换不会让旧字节在缓存中复活。
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, NamedTuple, Optional
from urllib.parse import quote

from sqlalchemy.orm import Session

from app.packages.assets.cache.bounded_cache import BoundedCache
from app.packages.assets.core.constants import DEFAULT_MIME_TYPE
from app.packages.assets.core.enums import DownloadStatus
from app.packages.assets.core.exceptions import AuthRequired, FileNotFound, StoreFault
from app.packages.assets.core.logger import logger
from app.packages.assets.core.security import Principal
from app.packages.assets.models.file_asset import FileAsset
from app.packages.assets.services.download_ledger import DownloadLedger, LedgerEntry
from app.packages.assets.services.file_store import FileStore


@dataclass(frozen=True)
class RequestInfo:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referer: Optional[str] = None


@dataclass
class PreparedDownload:
    file_id: str
    body: bytes
    headers: dict[str, str]
    cache_hit: bool
    ledger_entry: LedgerEntry


class CachedBlob(NamedTuple):
    version: int
    body: bytes


def blob_cache_key(file_id: str) -> str:
    return f"blob:{file_id}"


def content_disposition(name: str, *, inline: bool = False) -> str:
    encoded = quote(name or "download", safe="")
    kind = "inline" if inline else "attachment"
    return f"{kind}; filename=\"{encoded}\"; filename*=UTF-8''{encoded}"


class DownloadPipeline:
    def __init__(
        self,
        blob_cache: BoundedCache,
        file_store: FileStore,
        ledger: DownloadLedger,
        *,
        cache_max_blob_bytes: int,
        cache_max_age: int = 3600,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.blob_cache = blob_cache
        self.file_store = file_store
        self.ledger = ledger
        self.cache_max_blob_bytes = cache_max_blob_bytes
        self.cache_max_age = cache_max_age
        self._clock = clock

    def prepare(
        self,
        db: Session,
        file_id: str,
        principal: Optional[Principal],
        request_info: Optional[RequestInfo] = None,
        *,
        inline: bool = False,
    ) -> PreparedDownload:
        """``inline=True`` 用于在线预览：响应头改为 inline，读取失败时不记下载日志。"""
        if principal is None:
            raise AuthRequired()
        info = request_info or RequestInfo()
        started = self._clock()
        key = blob_cache_key(file_id)

        cached: Optional[CachedBlob] = self.blob_cache.get(key)
        body: Optional[bytes] = None
        if cached is not None:
            # 缓存只保存内容，文件名、类型与版本仍需一次轻量的元数据读取
            try:
                asset = self.file_store.get_metadata(db, file_id)
            except FileNotFound:
                self.blob_cache.delete(key)
                raise
            if cached.version == asset.version:
                body = cached.body
            else:
                self.blob_cache.delete(key)
        else:
            asset = self.file_store.get_metadata(db, file_id)

        cache_hit = body is not None
        if body is None:
            try:
                body = self.file_store.get_blob(db, file_id)
            except StoreFault:
                if not inline:
                    elapsed_ms = self._elapsed_ms(started)
                    self.ledger.submit(
                        self._ledger_entry(asset, principal, info, 0, elapsed_ms, DownloadStatus.FAILED)
                    )
                raise
            self._populate(key, asset.version, body)

        elapsed_ms = self._elapsed_ms(started)
        headers = self.build_headers(asset, body, elapsed_ms, cache_hit=cache_hit, inline=inline)
        entry = self._ledger_entry(
            asset, principal, info, len(body), elapsed_ms, DownloadStatus.COMPLETED
        )
        return PreparedDownload(
            file_id=file_id,
            body=body,
            headers=headers,
            cache_hit=cache_hit,
            ledger_entry=entry,
        )

    def build_headers(
        self,
        asset: FileAsset,
        body: bytes,
        elapsed_ms: int,
        *,
        cache_hit: bool,
        inline: bool = False,
    ) -> dict[str, str]:
        return {
            "Content-Type": asset.mime_type or DEFAULT_MIME_TYPE,
            "Content-Disposition": content_disposition(asset.display_name, inline=inline),
            "Content-Length": str(len(body)),
            "Cache-Control": f"private, max-age={self.cache_max_age}",
            "X-Download-Time": f"{elapsed_ms}ms",
            "X-Cache": "HIT" if cache_hit else "MISS",
        }

    def evict(self, file_id: str) -> bool:
        return self.blob_cache.delete(blob_cache_key(file_id))

    def _populate(self, key: str, version: int, body: bytes) -> None:
        """尽力写入缓存：超过阈值的内容只返回不缓存，写入失败不影响下载。"""
        if len(body) >= self.cache_max_blob_bytes:
            return
        try:
            self.blob_cache.set(key, CachedBlob(version, body))
        except Exception:
            logger.warning("Blob cache populate failed for %s", key, exc_info=True)

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int(round((self._clock() - started) * 1000)))

    @staticmethod
    def _ledger_entry(
        asset: FileAsset,
        principal: Principal,
        info: RequestInfo,
        size: int,
        elapsed_ms: int,
        status: DownloadStatus,
    ) -> LedgerEntry:
        return LedgerEntry(
            file_id=asset.id,
            user_id=principal.id,
            user_email=principal.email or None,
            user_name=principal.display_name,
            user_role=principal.role,
            ip_address=info.ip_address,
            user_agent=info.user_agent,
            download_size=size,
            download_duration_ms=elapsed_ms,
            download_status=status,
            entity_type=asset.entity_type,
            entity_id=asset.entity_id,
            referer_page=info.referer,
        )
