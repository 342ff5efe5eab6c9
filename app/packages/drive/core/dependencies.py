"""依赖注入模块：封装 FastAPI 中复用度高的依赖函数。"""

from collections.abc import Generator

from sqlalchemy.orm import Session

from app.packages.drive.db import session as db_session
from app.packages.drive.services.storage_backends import LocalMirror, build_mirror


def get_db() -> Generator[Session, None, None]:
    """生成一个数据库会话，并在请求结束后自动关闭。"""
    db = db_session.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_mirror() -> LocalMirror:
    """返回指向配置存储根目录的文件系统镜像。"""
    return build_mirror()
