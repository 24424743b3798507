"""下载运维接口：查看与清理缓存状态，仅管理员可用。"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.packages.assets.api.v1.schemas.files import FilesMutationResponse
from app.packages.assets.core.dependencies import get_services, require_operator
from app.packages.assets.core.logger import operator_logger
from app.packages.assets.core.responses import create_response
from app.packages.assets.core.security import Principal
from app.packages.assets.services.context import ServiceContext

router = APIRouter(prefix="/downloads", tags=["downloads"])


def _cache_status(services: ServiceContext) -> dict:
    return {
        "cacheSize": services.blob_cache.size(),
        "responseCacheSize": services.response_cache.size(),
        "ledgerPending": services.ledger.pending(),
    }


@router.get("/cache/status", response_model=FilesMutationResponse)
def cache_status(
    services: ServiceContext = Depends(get_services),
    _: Principal = Depends(require_operator),
):
    return create_response("获取缓存状态成功", _cache_status(services))


@router.post("/cache/clear", response_model=FilesMutationResponse)
def clear_cache(
    services: ServiceContext = Depends(get_services),
    principal: Principal = Depends(require_operator),
):
    blobs = services.blob_cache.clear()
    responses = services.listings.clear()
    operator_logger.info(
        "Caches cleared by %s (blob=%d, response=%d)", principal.id, blobs, responses
    )
    return create_response("缓存已清理", {"cleared": {"blob": blobs, "response": responses}, **_cache_status(services)})
