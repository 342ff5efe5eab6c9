"""文件树构建：由节点表 + depth=1 的闭包边还原嵌套结构，只读。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from app.packages.drive.core.constants import CHILD_EDGE_DEPTH
from app.packages.drive.crud.fs_node import fs_node_crud


@dataclass
class TreeNode:
    id: int
    name: str
    path: str
    size: int
    is_dir: bool
    children: List["TreeNode"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "size": self.size,
            "is_dir": self.is_dir,
            "children": [child.to_dict() for child in self.children],
        }


class TreeBuilder:
    def build(self, db: Session) -> Dict[str, Any]:
        """返回 ``{"total": 节点数, "roots": [嵌套节点]}``，子节点与根节点均按 id 排序。

        没有任何入向 depth=1 边的节点即为根。空库返回 ``{"total": 0, "roots": []}``。
        """
        nodes = fs_node_crud.get_multi(db)
        tree_nodes = {
            n.id: TreeNode(id=n.id, name=n.name, path=n.path, size=int(n.size_bytes or 0), is_dir=bool(n.is_dir))
            for n in nodes
        }

        has_parent: set[int] = set()
        for edge in fs_node_crud.list_edges(db, depth=CHILD_EDGE_DEPTH):
            parent = tree_nodes.get(edge.ancestor)
            child = tree_nodes.get(edge.descendant)
            if parent is None or child is None:
                continue
            parent.children.append(child)
            has_parent.add(child.id)

        for tree_node in tree_nodes.values():
            tree_node.children.sort(key=lambda c: c.id)

        roots = [tree_nodes[n.id] for n in nodes if n.id not in has_parent]
        return {"total": len(nodes), "roots": [root.to_dict() for root in roots]}


tree_builder = TreeBuilder()
