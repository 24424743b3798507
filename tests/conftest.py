"""测试夹具：为 pytest 提供数据库与客户端的共享配置。"""

import os
from typing import Callable, Generator

TEST_DB_PATH = os.path.join(os.path.dirname(__file__), "test.db")
TEST_DATABASE_URL = f"sqlite:///{TEST_DB_PATH}"

# 必须在导入应用之前设置，模块级引擎按该地址创建
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)
os.environ.setdefault("LOG_DIR", os.path.join(os.path.dirname(__file__), ".logs"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from app.main import app  # noqa: E402
from app.packages.assets.core.dependencies import get_db  # noqa: E402
from app.packages.assets.core.enums import EntityRef  # noqa: E402
from app.packages.assets.db import session as db_session  # noqa: E402
from app.packages.assets.db.init_db import init_db  # noqa: E402
from app.packages.assets.models.base import Base  # noqa: E402
from app.packages.assets.services.context import ServiceContext  # noqa: E402
from app.packages.assets.services.file_store import FileDraft, FileStore  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def setup_test_database() -> Generator[None, None, None]:
    """创建隔离的 SQLite 测试数据库，并在会话结束后清理。"""
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)

    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db_session.engine = engine
    db_session.SessionLocal = TestingSessionLocal

    Base.metadata.create_all(bind=engine)
    init_db()
    yield

    engine.dispose()
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)


@pytest.fixture()
def db_session_fixture() -> Generator[Session, None, None]:
    """提供给测试用例使用的数据库会话。"""
    session = db_session.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(db_session_fixture):
    """构建 FastAPI TestClient，并注入测试专用的数据库依赖。"""
    def override_get_db() -> Generator[Session, None, None]:
        session = db_session.SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def services(client: TestClient) -> ServiceContext:
    """当前 TestClient 生命周期内的服务容器（缓存、账本、下载管线）。"""
    return client.app.state.services


@pytest.fixture()
def store() -> FileStore:
    return FileStore(upload_max_bytes=1024 * 1024)


@pytest.fixture()
def entity() -> EntityRef:
    """每个用例使用独立的实体，避免作用域之间互相影响。"""
    import uuid

    return EntityRef.of("projects", f"p-{uuid.uuid4().hex[:8]}")


@pytest.fixture()
def make_file(db_session_fixture: Session, store: FileStore, entity: EntityRef) -> Callable[..., str]:
    """直接通过存储层创建文件，返回文件 ID。"""

    def _make(content: bytes = b"hello", name: str = "a.txt", **kwargs) -> str:
        draft = FileDraft(entity=kwargs.pop("entity", entity), original_name=name, **kwargs)
        return store.create(db_session_fixture, draft, content).id

    return _make
