"""测试夹具：为 pytest 提供数据库、存储目录与客户端的共享配置。"""

import os
import tempfile
from pathlib import Path
from typing import Generator

# 必须在导入应用之前设置，配置对象是缓存的单例
_TEST_TMP = tempfile.mkdtemp(prefix="single_drive_tests_")
TEST_DB_PATH = os.path.join(os.path.dirname(__file__), "test.db")
TEST_DATABASE_URL = f"sqlite:///{TEST_DB_PATH}"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["STORAGE_ROOT"] = os.path.join(_TEST_TMP, "uploads")
os.environ["LOG_DIR"] = os.path.join(_TEST_TMP, "log")
os.environ.setdefault("APP_ACTIVE_PACKAGE", "drive")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from app.main import app
from app.packages.drive.core.dependencies import get_db, get_mirror
from app.packages.drive.db import session as db_session
from app.packages.drive.models.base import Base
from app.packages.drive.services.storage_backends import LocalMirror


@pytest.fixture(scope="session", autouse=True)
def setup_test_database() -> Generator[None, None, None]:
    """创建隔离的 SQLite 测试数据库，并在会话结束后清理。"""
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)

    engine = db_session.build_engine(TEST_DATABASE_URL)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db_session.engine = engine
    db_session.SessionLocal = TestingSessionLocal

    Base.metadata.create_all(bind=engine)
    yield

    engine.dispose()
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)


@pytest.fixture(autouse=True)
def reset_tables() -> Generator[None, None, None]:
    """每个用例使用空表；重建表同时重置 SQLite 的自增序列。"""
    Base.metadata.drop_all(bind=db_session.engine)
    Base.metadata.create_all(bind=db_session.engine)
    yield


@pytest.fixture()
def db() -> Generator[Session, None, None]:
    """提供给测试用例使用的数据库会话。"""
    session = db_session.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def storage_root(tmp_path: Path) -> Path:
    return tmp_path / "storage"


@pytest.fixture()
def mirror(storage_root: Path) -> LocalMirror:
    return LocalMirror(storage_root, chunk_size=1024, spool_max_bytes=4096)


@pytest.fixture()
def client(mirror: LocalMirror):
    """构建 FastAPI TestClient，并注入测试专用的数据库与存储依赖。"""
    def override_get_db() -> Generator[Session, None, None]:
        session = db_session.SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mirror] = lambda: mirror

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
