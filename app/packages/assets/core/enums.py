"""枚举定义：约束实体类型、访问级别与下载状态的可选值。"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class EntityKind(str, Enum):
    """文件/文件夹可以归属的业务实体类型（封闭集合）。

    新增实体类型时只需在此追加成员，数据库中仍以 ``entity_type`` 字符串列保存。
    """

    PROJECTS = "projects"
    EPISODES = "episodes"
    SCRIPTS = "scripts"
    RADIO_STATIONS = "radio-stations"
    HACKATHONS = "hackathons"
    SUBMISSIONS = "submissions"
    TEAMS = "teams"


@dataclass(frozen=True)
class EntityRef:
    """实体关联：``(kind, id)`` 二元组，持久化时拆成 entity_type/entity_id 两列。"""

    kind: EntityKind
    id: str

    @classmethod
    def of(cls, kind: str | EntityKind, entity_id: str) -> "EntityRef":
        return cls(kind=EntityKind(kind), id=str(entity_id))

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


class AccessLevel(str, Enum):
    PRIVATE = "private"
    RESTRICTED = "restricted"
    PUBLIC = "public"


class DownloadStatus(str, Enum):
    """下载审计记录的状态标识。"""

    COMPLETED = "completed"
    FAILED = "failed"
    INTERRUPTED = "interrupted"
