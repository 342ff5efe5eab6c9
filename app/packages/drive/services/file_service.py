"""文件操作服务：协调元数据事务与文件系统镜像。

两套存储之间没有共享的提交协议，一致性策略如下：
- 新建目录 / 重命名 / 移动：先在事务内完成元数据变更并 flush，再操作文件系统；
  文件系统失败则回滚事务，提交失败则尝试把文件系统改回去。
- 删除：先提交元数据事务，再删除文件系统；文件系统失败不回滚，
  以“成功 + warning”返回，告知调用方两边可能已不一致。

并发的重叠移动可能让两边出现偏差，这是已知限制，不做加锁或重试。
"""

from __future__ import annotations

import mimetypes
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional
from urllib.parse import quote

from fastapi.responses import FileResponse, StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.packages.drive.core.constants import (
    HTTP_STATUS_BAD_REQUEST,
    LIST_FORMAT_FLAT,
    LIST_FORMAT_SIMPLE,
    LIST_FORMAT_TREE,
)
from app.packages.drive.core.exceptions import (
    AppException,
    NodeConflictError,
    NodeNotFoundError,
    StorageFailureError,
)
from app.packages.drive.core.logger import get_logger
from app.packages.drive.core.responses import create_response
from app.packages.drive.core.timezone import format_datetime
from app.packages.drive.crud.fs_node import fs_node_crud
from app.packages.drive.models.fs_node import FsNode
from app.packages.drive.services.storage_backends import StorageBackend
from app.packages.drive.services.tree_builder import tree_builder
from app.packages.drive.utils.path_utils import base_name, norm_rel_path

logger = get_logger("services.file")


@contextmanager
def unit_of_work(db: Session, op: str) -> Iterator[None]:
    """一次结构变更的事务体：业务异常回滚后原样抛出，数据库异常回滚后转为 StorageFailureError。

    只负责失败路径，提交交给 :func:`commit_or_compensate`。
    """
    try:
        yield
    except AppException:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("%s.rollback", op, exc_info=True)
        raise StorageFailureError(f"元数据事务执行失败: {op}") from exc


def commit_or_compensate(db: Session, op: str, *, compensate: Optional[Callable[[], None]] = None) -> None:
    """提交事务；失败时回滚并执行补偿动作（通常是把文件系统操作反向做一次）。"""
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("%s.commit_failed", op, exc_info=True)
        if compensate is not None:
            try:
                compensate()
            except AppException as comp_exc:
                logger.error("%s.compensate_failed detail=%s", op, comp_exc.detail, exc_info=True)
                raise StorageFailureError(
                    f"元数据事务提交失败，且文件系统未能恢复: {op}",
                    data={"warning": f"文件系统与元数据可能不一致: {comp_exc.detail}"},
                ) from exc
        raise StorageFailureError(f"元数据事务提交失败: {op}") from exc


def serialize_node(node: FsNode) -> Dict[str, Any]:
    return {
        "id": node.id,
        "name": node.name,
        "path": node.path,
        "size": int(node.size_bytes or 0),
        "is_dir": bool(node.is_dir),
        "mime_type": node.mime_type,
        "created_at": format_datetime(node.create_time),
    }


class FileService:
    # ----------------------------
    # 查询
    # ----------------------------
    def list_items(self, db: Session, *, format: Optional[str] = None) -> Dict[str, Any]:
        fmt = (format or LIST_FORMAT_TREE).strip().lower()
        if fmt in (LIST_FORMAT_SIMPLE, LIST_FORMAT_FLAT):
            items = [serialize_node(n) for n in fs_node_crud.get_multi(db)]
            return create_response("获取文件列表成功", items)
        if fmt == LIST_FORMAT_TREE:
            return create_response("获取文件树成功", tree_builder.build(db))
        raise AppException(f"不支持的列表格式: {format}", HTTP_STATUS_BAD_REQUEST)

    def info(self, *, name: str, mirror: StorageBackend) -> Dict[str, Any]:
        rel = norm_rel_path(name)
        return create_response("获取文件信息成功", mirror.stat(rel).to_dict())

    # ----------------------------
    # 下载
    # ----------------------------
    def download(self, *, name: str, mirror: StorageBackend):
        """单个文件直接返回；目录则打包为 zip。"""
        rel = norm_rel_path(name)
        target = mirror.resolve(rel)
        if not target.exists():
            raise NodeNotFoundError(f"文件不存在: {rel}")
        if target.is_dir():
            return self._zip_response(rel, mirror)
        media_type = mimetypes.guess_type(target.name)[0] or "application/octet-stream"
        return FileResponse(str(target), media_type=media_type, filename=target.name)

    def download_directory(self, *, dirname: str, mirror: StorageBackend) -> StreamingResponse:
        rel = norm_rel_path(dirname)
        return self._zip_response(rel, mirror)

    def _zip_response(self, rel: str, mirror: StorageBackend) -> StreamingResponse:
        chunks = mirror.package_subtree(rel)
        filename = f"{base_name(rel)}.zip"
        response = StreamingResponse(chunks, media_type="application/zip")
        response.headers["Content-Disposition"] = f"attachment; filename*=utf-8''{quote(filename)}"
        return response

    # ----------------------------
    # 目录与文件变更
    # ----------------------------
    def create_directory(self, db: Session, *, path: str, mirror: StorageBackend) -> Dict[str, Any]:
        """创建目录（缺失的上级目录一并补齐）；目录已存在时不做任何写入。"""
        rel = norm_rel_path(path)
        logger.info("createdir.start path=%s", rel)

        existing = fs_node_crud.get_by_path(db, rel)
        if existing is not None:
            if not existing.is_dir:
                raise NodeConflictError(f"同名文件已存在: {rel}")
            mirror.make_dirs(rel)
            return create_response("目录已存在", {"id": existing.id, "path": rel, "created": False})

        with unit_of_work(db, "createdir"):
            node = fs_node_crud.ensure_directory(db, rel)
            node_id = node.id
            mirror.make_dirs(rel)
        commit_or_compensate(db, "createdir")

        logger.info("createdir.done path=%s id=%s", rel, node_id)
        return create_response("目录创建成功", {"id": node_id, "path": rel, "created": True})

    def rename(self, db: Session, *, old_name: str, new_name: str, mirror: StorageBackend) -> Dict[str, Any]:
        rel = norm_rel_path(old_name)
        logger.info("rename.start path=%s new_name=%s", rel, new_name)

        with unit_of_work(db, "rename"):
            src, dst = fs_node_crud.rename_node(db, rel, new_name)
            mirror.rename(src, dst)
        commit_or_compensate(db, "rename", compensate=lambda: mirror.rename(dst, src))

        logger.info("rename.done %s -> %s", src, dst)
        return create_response("重命名成功", {"oldPath": src, "newPath": dst})

    def move(self, db: Session, *, path: str, new_parent: Optional[str], mirror: StorageBackend) -> Dict[str, Any]:
        rel = norm_rel_path(path)
        parent = norm_rel_path(new_parent, allow_root=True)
        logger.info("move.start path=%s new_parent=%s", rel, parent or "/")

        with unit_of_work(db, "move"):
            src, dst = fs_node_crud.move_node(db, rel, parent)
            mirror.move(src, dst)
        commit_or_compensate(db, "move", compensate=lambda: mirror.move(dst, src))

        logger.info("move.done %s -> %s", src, dst)
        return create_response("移动成功", {"oldPath": src, "newPath": dst})

    def delete_file(self, db: Session, *, name: str, mirror: StorageBackend) -> Dict[str, Any]:
        rel = norm_rel_path(name)
        logger.info("delete.start path=%s", rel)

        with unit_of_work(db, "delete"):
            stats = fs_node_crud.delete_leaf(db, rel)
        commit_or_compensate(db, "delete")

        warning = self._mirror_after_commit("delete", rel, lambda: mirror.remove(rel))
        logger.info("delete.done path=%s nodes=%s edges=%s", rel, stats.nodes, stats.edges)
        return create_response(
            "文件删除成功",
            {"path": rel, "nodesDeleted": stats.nodes, "edgesDeleted": stats.edges},
            warning=warning,
        )

    def delete_directory(self, db: Session, *, dirname: str, mirror: StorageBackend) -> Dict[str, Any]:
        rel = norm_rel_path(dirname)
        logger.info("deletedir.start path=%s", rel)

        if fs_node_crud.get_by_path(db, rel) is None:
            # 数据库无记录但磁盘上仍有目录：只清理磁盘
            if mirror.is_dir(rel):
                mirror.remove_tree(rel)
                logger.warning("deletedir.orphan path=%s removed from storage only", rel)
                return create_response("目录已删除（数据库无记录）", {"path": rel, "nodesDeleted": 0, "edgesDeleted": 0})
            raise NodeNotFoundError(f"目录不存在: {rel}")

        with unit_of_work(db, "deletedir"):
            stats = fs_node_crud.delete_subtree(db, rel)
        commit_or_compensate(db, "deletedir")

        warning = self._mirror_after_commit("deletedir", rel, lambda: mirror.remove_tree(rel))
        logger.info("deletedir.done path=%s nodes=%s edges=%s", rel, stats.nodes, stats.edges)
        return create_response(
            "目录及其内容删除成功",
            {"path": rel, "nodesDeleted": stats.nodes, "edgesDeleted": stats.edges, "paths": stats.paths},
            warning=warning,
        )

    def _mirror_after_commit(self, op: str, rel: str, action: Callable[[], None]) -> Optional[str]:
        """元数据已提交后的文件系统操作：失败不回滚，返回给调用方的警告文本。"""
        try:
            action()
        except AppException as exc:
            logger.warning("%s.mirror_failed path=%s detail=%s", op, rel, exc.detail)
            return f"元数据已更新，但文件系统操作失败，两者可能不一致: {exc.detail}"
        return None


file_service = FileService()
