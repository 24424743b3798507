"""资产业务包：文件/文件夹存储、下载管线与下载账本。"""

from app.packages.types import AppPackage

from .api.v1 import api_router
from .core.config import get_settings
from .core.exceptions import (
    generic_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from .core.logger import logger, setup_logging
from .core.responses import create_response
from .db.init_db import init_db
from .services.context import build_service_context

package = AppPackage(
    name="assets",
    api_router=api_router,
    get_settings=get_settings,
    setup_logging=setup_logging,
    logger=logger,
    init_db=init_db,
    create_response=create_response,
    http_exception_handler=http_exception_handler,
    generic_exception_handler=generic_exception_handler,
    validation_exception_handler=validation_exception_handler,
    build_service_context=build_service_context,
)

__all__ = ["package", "api_router", "get_settings"]
