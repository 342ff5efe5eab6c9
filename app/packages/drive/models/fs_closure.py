"""闭包表模型：记录每一对（祖先, 后代）可达关系及其距离。

- 每个节点恰有一条自身到自身的边（depth=0）；
- 对每个严格祖先恰有一条边，depth 等于两者之间的路径段数；
- 节点删除时，引用它的闭包行随外键级联删除。
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, func
from sqlalchemy.orm import Mapped, mapped_column

from app.packages.drive.models.base import Base


class FsClosure(Base):
    __tablename__ = "fs_closure"

    ancestor: Mapped[int] = mapped_column(
        Integer, ForeignKey("fs_nodes.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    descendant: Mapped[int] = mapped_column(
        Integer, ForeignKey("fs_nodes.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    depth: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    create_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
