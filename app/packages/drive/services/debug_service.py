"""调试查询：直接暴露节点表、闭包表与某个节点的子树，便于排查闭包数据。"""

from __future__ import annotations

from typing import Any, Dict

from sqlalchemy.orm import Session

from app.packages.drive.core.exceptions import NodeNotFoundError
from app.packages.drive.core.responses import create_response
from app.packages.drive.crud.fs_node import fs_node_crud
from app.packages.drive.services.file_service import serialize_node


class DebugService:
    def nodes(self, db: Session) -> Dict[str, Any]:
        items = [serialize_node(n) for n in fs_node_crud.get_multi(db)]
        return create_response("获取节点表成功", {"count": len(items), "items": items})

    def closure(self, db: Session) -> Dict[str, Any]:
        items = [
            {
                "ancestor": edge.ancestor,
                "descendant": edge.descendant,
                "depth": edge.depth,
                "ancestor_path": anc_path,
                "descendant_path": desc_path,
                "descendant_size": int(size or 0),
            }
            for edge, anc_path, desc_path, size in fs_node_crud.list_edges_named(db)
        ]
        return create_response("获取闭包表成功", {"count": len(items), "items": items})

    def subtree(self, db: Session, node_id: int) -> Dict[str, Any]:
        root = fs_node_crud.get(db, node_id)
        if root is None:
            raise NodeNotFoundError(f"节点不存在: {node_id}")
        items = [
            {
                "id": node.id,
                "path": node.path,
                "size": int(node.size_bytes or 0),
                "is_dir": bool(node.is_dir),
                "depth": depth,
            }
            for node, depth in fs_node_crud.subtree(db, node_id)
        ]
        return create_response(
            "获取子树成功",
            {"root_id": root.id, "root_path": root.path, "count": len(items), "items": items},
        )


debug_service = DebugService()
