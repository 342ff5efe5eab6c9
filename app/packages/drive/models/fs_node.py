"""统一的文件系统节点模型（文件与目录合并）。

存储规则：
- path：相对存储根目录的完整逻辑路径，不以 '/' 开头或结尾，例如 "a/b/c.txt"；全表唯一；
- name：当前节点名（basename），随 path 一同维护；
- is_dir：目录为 True，文件为 False，是判断目录的唯一依据（空文件的 size_bytes 同样为 0）；
- size_bytes：文件的字节数，目录恒为 0；mime_type 仅对文件有意义。
"""

from typing import Optional

from sqlalchemy import BigInteger, Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from app.packages.drive.models.base import Base, TimestampMixin


class FsNode(TimestampMixin, Base):
    __tablename__ = "fs_nodes"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    path: Mapped[str] = mapped_column(String(1024), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    is_dir: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    size_bytes: Mapped[int] = mapped_column(BigInteger, default=0)
    mime_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # SQLite 默认可能复用已删除的最大 id，显式开启 AUTOINCREMENT 保证 id 不被复用
    __table_args__ = {"sqlite_autoincrement": True}

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        kind = "dir" if self.is_dir else "file"
        return f"<FsNode id={self.id} {kind} path={self.path!r}>"
