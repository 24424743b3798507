"""进程内有界缓存：TTL 惰性过期 + 容量上限 + 后台定时清扫。

淘汰策略为 FIFO（淘汰最早插入的条目），仅作为内存上限的兜底手段，
并非 LRU；读取不会刷新条目的位置。若将来需要按最近访问淘汰，应改为
有序字典并在每次命中时 ``move_to_end``。

缓存只是存储层的镜像：条目是否存在不代表文件是否存在。
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

from app.packages.assets.core.logger import logger

_MISSING = object()


class BoundedCache:
    """线程安全的有界缓存，所有变更都经由内部锁完成。"""

    def __init__(
        self,
        name: str,
        *,
        ttl_seconds: float,
        max_entries: int,
        sweep_interval_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self.name = name
        self.ttl_seconds = float(ttl_seconds)
        self.max_entries = int(max_entries)
        self.sweep_interval_seconds = float(sweep_interval_seconds)
        self._clock = clock
        # dict 保持插入顺序，首个键即最早插入的条目
        self._entries: Dict[Hashable, Tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # 读写接口
    # ------------------------------------------------------------------
    def get(self, key: Hashable, default: Any = None) -> Any:
        """返回未过期的值；过期条目在此处被移除并视为不存在。"""
        with self._lock:
            item = self._entries.get(key, _MISSING)
            if item is _MISSING:
                return default
            value, inserted_at = item
            if self._clock() - inserted_at >= self.ttl_seconds:
                del self._entries[key]
                return default
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            if key in self._entries:
                # 覆盖已有键：刷新值与时间戳，并移到队尾
                del self._entries[key]
            elif len(self._entries) >= self.max_entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
            self._entries[key] = (value, self._clock())

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, _MISSING) is not _MISSING

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    # ------------------------------------------------------------------
    # 定时清扫
    # ------------------------------------------------------------------
    def sweep(self) -> int:
        """移除所有超过 TTL 的条目，返回移除数量。"""
        with self._lock:
            current = self._clock()
            expired = [
                key
                for key, (_, inserted_at) in self._entries.items()
                if current - inserted_at >= self.ttl_seconds
            ]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Cache %s swept %d expired entries", self.name, len(expired))
        return len(expired)

    def start(self) -> None:
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop_event.clear()
        self._sweeper = threading.Thread(
            target=self._run_sweeper,
            name=f"cache-sweeper-{self.name}",
            daemon=True,
        )
        self._sweeper.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop_event.set()
        sweeper = self._sweeper
        if sweeper is not None:
            sweeper.join(timeout)
        self._sweeper = None

    def _run_sweeper(self) -> None:
        while not self._stop_event.wait(self.sweep_interval_seconds):
            try:
                self.sweep()
            except Exception:  # pragma: no cover - 清扫线程不能退出
                logger.exception("Cache %s sweep failed", self.name)
