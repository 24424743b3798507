"""文件列表缓存：在响应缓存之上按实体维护代次号。

列表请求先记下实体当前代次，读库、序列化之后只有代次未变才回写缓存；
失效操作在同一把锁内递增代次并删除键。这样在读取期间发生的上传、排序
或删除不会被随后回写的旧列表覆盖。
"""

from __future__ import annotations

import threading
from typing import Any, Optional

from app.packages.assets.cache.bounded_cache import BoundedCache
from app.packages.assets.core.enums import EntityRef

Generation = tuple[int, int]


def listing_cache_key(ref: EntityRef, folder_id: Optional[str], *, all_folders: bool = False) -> str:
    scope = "*" if all_folders else (folder_id or "root")
    return f"files:{ref.kind.value}:{ref.id}:{scope}"


class ListingCache:
    def __init__(self, cache: BoundedCache) -> None:
        self.cache = cache
        self._lock = threading.Lock()
        self._generations: dict[str, int] = {}
        # clear() 会让所有实体的在途写入失效
        self._epoch = 0

    def get(self, key: str) -> Any:
        return self.cache.get(key)

    def generation(self, ref: EntityRef) -> Generation:
        with self._lock:
            return self._epoch, self._generations.get(str(ref), 0)

    def store(self, ref: EntityRef, generation: Generation, key: str, value: Any) -> bool:
        """代次未变时写入并返回 ``True``；否则丢弃这次结果。"""
        with self._lock:
            if (self._epoch, self._generations.get(str(ref), 0)) != generation:
                return False
            self.cache.set(key, value)
            return True

    def invalidate(self, ref: EntityRef, *folder_ids: Optional[str]) -> None:
        """删除给定文件夹（缺省为根目录）与全实体列表的缓存键。"""
        with self._lock:
            name = str(ref)
            self._generations[name] = self._generations.get(name, 0) + 1
            for folder_id in folder_ids or (None,):
                self.cache.delete(listing_cache_key(ref, folder_id))
            self.cache.delete(listing_cache_key(ref, None, all_folders=True))

    def clear(self) -> int:
        with self._lock:
            self._epoch += 1
            self._generations.clear()
            return self.cache.clear()

    def size(self) -> int:
        return self.cache.size()
