"""FsNode CRUD：节点表与闭包表的全部树算法。

两张表只由本模块写入。所有方法都不提交事务，调用方（服务层）负责
在一次结构变更结束后统一 ``commit``，失败时 ``rollback``，保证不会留下半截数据。

闭包表约定：
- 每个节点有且仅有一条自环边 (id, id, 0)；
- 对每个严格祖先 A 有且仅有一条边 (A, id, d)，d 为两者之间的路径段数。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import Integer, insert, literal, or_, select, true
from sqlalchemy.orm import Session, aliased

from app.packages.drive.core.constants import SELF_EDGE_DEPTH
from app.packages.drive.core.exceptions import InvalidPathError, NodeConflictError, NodeNotFoundError
from app.packages.drive.core.logger import get_logger
from app.packages.drive.crud.base import CRUDBase
from app.packages.drive.models.fs_closure import FsClosure
from app.packages.drive.models.fs_node import FsNode
from app.packages.drive.utils.path_utils import (
    ancestors_of,
    base_name,
    join_path,
    norm_name,
    parent_of,
    replace_prefix,
)

logger = get_logger("crud.fs_node")

_CLOSURE_COLUMNS = ["ancestor", "descendant", "depth"]


@dataclass
class DeleteStats:
    nodes: int
    edges: int
    paths: list[str] = field(default_factory=list)


class CRUDFsNode(CRUDBase[FsNode]):
    # ----------------------------
    # 查询
    # ----------------------------
    def get_by_path(self, db: Session, path: str) -> FsNode | None:
        return self.query(db).filter(FsNode.path == path).first()

    def get_by_path_or_404(self, db: Session, path: str) -> FsNode:
        node = self.get_by_path(db, path)
        if node is None:
            raise NodeNotFoundError(f"节点不存在: {path}")
        return node

    def subtree_ids(self, db: Session, node_id: int) -> list[int]:
        """节点自身及其全部后代的 id。"""
        rows = db.query(FsClosure.descendant).filter(FsClosure.ancestor == node_id).all()
        return [row[0] for row in rows]

    def strict_ancestor_ids(self, db: Session, node_id: int) -> list[int]:
        rows = (
            db.query(FsClosure.ancestor)
            .filter(FsClosure.descendant == node_id, FsClosure.depth > SELF_EDGE_DEPTH)
            .all()
        )
        return [row[0] for row in rows]

    def is_ancestor(self, db: Session, *, ancestor_id: int, descendant_id: int) -> bool:
        """自身也视为自己的祖先（depth=0 的自环边）。"""
        row = (
            db.query(FsClosure.depth)
            .filter(FsClosure.ancestor == ancestor_id, FsClosure.descendant == descendant_id)
            .first()
        )
        return row is not None

    def has_children(self, db: Session, node_id: int) -> bool:
        row = (
            db.query(FsClosure.descendant)
            .filter(FsClosure.ancestor == node_id, FsClosure.depth > SELF_EDGE_DEPTH)
            .first()
        )
        return row is not None

    def subtree(self, db: Session, node_id: int) -> list[tuple[FsNode, int]]:
        """以 node_id 为根的子树，按深度、id 排序，附带到根的距离。"""
        rows = (
            db.query(FsNode, FsClosure.depth)
            .join(FsClosure, FsClosure.descendant == FsNode.id)
            .filter(FsClosure.ancestor == node_id)
            .order_by(FsClosure.depth, FsNode.id)
            .all()
        )
        return [(node, depth) for node, depth in rows]

    def list_edges(self, db: Session, *, depth: Optional[int] = None) -> list[FsClosure]:
        query = db.query(FsClosure)
        if depth is not None:
            query = query.filter(FsClosure.depth == depth)
        return query.order_by(FsClosure.ancestor, FsClosure.depth, FsClosure.descendant).all()

    def list_edges_named(self, db: Session) -> list[tuple[FsClosure, str, str, int]]:
        """闭包边及两端节点的路径，供调试接口使用。"""
        anc = aliased(FsNode)
        desc = aliased(FsNode)
        rows = (
            db.query(FsClosure, anc.path, desc.path, desc.size_bytes)
            .join(anc, anc.id == FsClosure.ancestor)
            .join(desc, desc.id == FsClosure.descendant)
            .order_by(FsClosure.ancestor, FsClosure.depth, FsClosure.descendant)
            .all()
        )
        return [(edge, anc_path, desc_path, size) for edge, anc_path, desc_path, size in rows]

    # ----------------------------
    # 创建
    # ----------------------------
    def create_node(
        self,
        db: Session,
        *,
        path: str,
        size: int = 0,
        is_dir: bool = False,
        parent_path: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> FsNode:
        """插入节点与自环边；父节点存在时继承父节点的整条祖先链（depth + 1）。

        ``parent_path`` 缺省时取 ``path`` 的上级目录，传入空串表示挂在根下。
        """
        if self.get_by_path(db, path) is not None:
            raise NodeConflictError(f"路径已存在: {path}")

        parent_key = parent_of(path) if parent_path is None else parent_path
        parent = self.get_by_path(db, parent_key) if parent_key else None
        if parent is not None and not parent.is_dir:
            raise InvalidPathError(f"父节点不是目录: {parent_key}")

        node = self.create(
            db,
            {
                "path": path,
                "name": base_name(path),
                "is_dir": is_dir,
                "size_bytes": 0 if is_dir else size,
                "mime_type": None if is_dir else mime_type,
            },
        )
        db.add(FsClosure(ancestor=node.id, descendant=node.id, depth=SELF_EDGE_DEPTH))
        if parent is not None:
            inherited = select(
                FsClosure.ancestor,
                literal(node.id, Integer),
                FsClosure.depth + 1,
            ).where(FsClosure.descendant == parent.id)
            db.execute(insert(FsClosure.__table__).from_select(_CLOSURE_COLUMNS, inherited))
        db.flush()
        return node

    def ensure_directory(self, db: Session, path: str) -> FsNode:
        """自顶向下补齐目录节点（已存在的目录保持不变），返回 ``path`` 对应的目录。"""
        node: FsNode | None = None
        for current in [*ancestors_of(path), path]:
            existing = self.get_by_path(db, current)
            if existing is None:
                existing = self.create_node(db, path=current, is_dir=True)
            elif not existing.is_dir:
                raise InvalidPathError(f"父节点不是目录: {current}")
            node = existing
        return node

    # ----------------------------
    # 重命名 / 移动
    # ----------------------------
    def rename_node(self, db: Session, path: str, new_name: str) -> tuple[str, str]:
        """原地改名：只改写子树的 path/name，闭包边保持不动。返回 (旧路径, 新路径)。"""
        node = self.get_by_path_or_404(db, path)
        old_path = node.path
        new_path = join_path(parent_of(old_path), norm_name(new_name))
        if new_path == old_path or self.get_by_path(db, new_path) is not None:
            raise NodeConflictError(f"目标路径已存在: {new_path}")

        self._rewrite_paths(db, self.subtree_ids(db, node.id), old_path, new_path)
        return old_path, new_path

    def move_node(self, db: Session, path: str, new_parent_path: str = "") -> tuple[str, str]:
        """把 ``path`` 整棵子树挂到 ``new_parent_path`` 下（空串为根）。返回 (旧路径, 新路径)。"""
        node = self.get_by_path_or_404(db, path)
        parent: FsNode | None = None
        if new_parent_path:
            parent = self.get_by_path(db, new_parent_path)
            if parent is None:
                raise NodeNotFoundError(f"目标父目录不存在: {new_parent_path}")
            if not parent.is_dir:
                raise InvalidPathError(f"目标不是目录: {new_parent_path}")
            if self.is_ancestor(db, ancestor_id=node.id, descendant_id=parent.id):
                raise InvalidPathError("不能将目录移动到自身或其子目录")

        old_path = node.path
        new_path = join_path(new_parent_path, node.name)
        if new_path == old_path or self.get_by_path(db, new_path) is not None:
            raise NodeConflictError(f"目标路径已存在: {new_path}")

        subtree_ids = self.subtree_ids(db, node.id)
        ancestor_ids = self.strict_ancestor_ids(db, node.id)

        # 断开：只删“旧祖先 -> 子树成员”的边，自环边与子树内部边保留
        detached = 0
        if ancestor_ids:
            detached = (
                db.query(FsClosure)
                .filter(FsClosure.descendant.in_(subtree_ids), FsClosure.ancestor.in_(ancestor_ids))
                .delete(synchronize_session=False)
            )

        # 重连：新父节点的每个祖先（含自身） x 子树每个成员（含自身）
        if parent is not None:
            supertree = aliased(FsClosure)
            subtree = aliased(FsClosure)
            pairs = (
                select(
                    supertree.ancestor,
                    subtree.descendant,
                    supertree.depth + subtree.depth + 1,
                )
                .select_from(supertree)
                .join(subtree, true())
                .where(supertree.descendant == parent.id, subtree.ancestor == node.id)
            )
            db.execute(insert(FsClosure.__table__).from_select(_CLOSURE_COLUMNS, pairs))

        self._rewrite_paths(db, subtree_ids, old_path, new_path)
        logger.debug(
            "move_node %s -> %s subtree=%s detached_edges=%s", old_path, new_path, len(subtree_ids), detached
        )
        return old_path, new_path

    def _rewrite_paths(self, db: Session, node_ids: list[int], old_prefix: str, new_prefix: str) -> None:
        for n in self.query(db).filter(FsNode.id.in_(node_ids)).all():
            n.path = replace_prefix(n.path, old_prefix, new_prefix)
            n.name = base_name(n.path)
        db.flush()

    # ----------------------------
    # 删除
    # ----------------------------
    def delete_subtree(self, db: Session, path: str) -> DeleteStats:
        """删除节点及其全部后代，连同引用它们的所有闭包边。"""
        node = self.get_by_path_or_404(db, path)
        ids = self.subtree_ids(db, node.id)
        paths = [row[0] for row in db.query(FsNode.path).filter(FsNode.id.in_(ids)).order_by(FsNode.path).all()]

        # 外键已声明 ON DELETE CASCADE；这里显式先删闭包边，不依赖存储是否启用级联
        edges = (
            db.query(FsClosure)
            .filter(or_(FsClosure.ancestor.in_(ids), FsClosure.descendant.in_(ids)))
            .delete(synchronize_session=False)
        )
        nodes = db.query(FsNode).filter(FsNode.id.in_(ids)).delete(synchronize_session=False)
        db.flush()
        return DeleteStats(nodes=nodes, edges=edges, paths=paths)

    def delete_leaf(self, db: Session, path: str) -> DeleteStats:
        """删除单个文件或空目录。"""
        node = self.get_by_path_or_404(db, path)
        if node.is_dir and self.has_children(db, node.id):
            raise NodeConflictError(f"目录非空: {path}")
        node_path = node.path
        edges = (
            db.query(FsClosure)
            .filter(or_(FsClosure.ancestor == node.id, FsClosure.descendant == node.id))
            .delete(synchronize_session=False)
        )
        self.hard_delete(db, node)
        db.flush()
        return DeleteStats(nodes=1, edges=edges, paths=[node_path])


fs_node_crud = CRUDFsNode(FsNode)
