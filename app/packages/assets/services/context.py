"""服务容器：在应用启动时显式构造缓存与各服务实例，挂载到 ``app.state``。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.packages.assets.cache.bounded_cache import BoundedCache
from app.packages.assets.core.config import Settings, get_settings
from app.packages.assets.core.logger import logger
from app.packages.assets.services.download_ledger import DownloadLedger
from app.packages.assets.services.download_pipeline import DownloadPipeline
from app.packages.assets.services.file_store import FileStore
from app.packages.assets.services.listing_cache import ListingCache
from app.packages.assets.services.ordering_service import OrderingService


@dataclass
class ServiceContext:
    settings: Settings
    blob_cache: BoundedCache
    response_cache: BoundedCache
    listings: ListingCache
    file_store: FileStore
    ledger: DownloadLedger
    pipeline: DownloadPipeline
    ordering: OrderingService

    def start(self) -> None:
        self.blob_cache.start()
        self.response_cache.start()
        self.ledger.start()
        logger.info(
            "Service context started (blob cache %ss/%d, response cache %ss/%d)",
            self.blob_cache.ttl_seconds,
            self.blob_cache.max_entries,
            self.response_cache.ttl_seconds,
            self.response_cache.max_entries,
        )

    def stop(self) -> None:
        self.ledger.stop()
        self.blob_cache.stop()
        self.response_cache.stop()
        logger.info("Service context stopped")


def _default_session_factory() -> Session:
    # 延迟读取，测试中替换 ``db_session.SessionLocal`` 后依然生效
    from app.packages.assets.db import session as db_session

    return db_session.SessionLocal()


def build_service_context(
    settings: Optional[Settings] = None,
    *,
    session_factory: Optional[Callable[[], Session]] = None,
) -> ServiceContext:
    settings = settings or get_settings()
    blob_cache = BoundedCache(
        "blob",
        ttl_seconds=settings.blob_cache_ttl_seconds,
        max_entries=settings.blob_cache_max_entries,
        sweep_interval_seconds=settings.cache_sweep_interval_seconds,
    )
    response_cache = BoundedCache(
        "response",
        ttl_seconds=settings.response_cache_ttl_seconds,
        max_entries=settings.response_cache_max_entries,
        sweep_interval_seconds=settings.cache_sweep_interval_seconds,
    )
    file_store = FileStore(upload_max_bytes=settings.upload_max_bytes)
    ledger = DownloadLedger(
        file_store,
        session_factory or _default_session_factory,
        max_pending=settings.ledger_queue_size,
    )
    pipeline = DownloadPipeline(
        blob_cache,
        file_store,
        ledger,
        cache_max_blob_bytes=settings.cache_max_blob_bytes,
        cache_max_age=settings.download_cache_max_age,
    )
    return ServiceContext(
        settings=settings,
        blob_cache=blob_cache,
        response_cache=response_cache,
        listings=ListingCache(response_cache),
        file_store=file_store,
        ledger=ledger,
        pipeline=pipeline,
        ordering=OrderingService(file_store),
    )
