"""模型聚合导出，确保 ``Base.metadata`` 中注册全部数据表。"""

from app.packages.assets.models.base import Base
from app.packages.assets.models.download_log import DownloadLog
from app.packages.assets.models.file_asset import FileAsset, FileTag
from app.packages.assets.models.folder import Folder

__all__ = ["Base", "DownloadLog", "FileAsset", "FileTag", "Folder"]
