"""上传入库：校验目标路径，写入文件系统，并在同一事务内完成元数据 upsert 与闭包连线。"""

from __future__ import annotations

import json
import mimetypes
from typing import Any, Dict, Optional

from fastapi import UploadFile
from sqlalchemy.orm import Session

from app.packages.drive.core.config import get_settings
from app.packages.drive.core.constants import HTTP_STATUS_BAD_REQUEST, HTTP_STATUS_PAYLOAD_TOO_LARGE
from app.packages.drive.core.exceptions import (
    AppException,
    InvalidPathError,
    NodeConflictError,
    NodeNotFoundError,
)
from app.packages.drive.core.logger import get_logger
from app.packages.drive.core.responses import create_response
from app.packages.drive.crud.fs_node import fs_node_crud
from app.packages.drive.models.fs_node import FsNode
from app.packages.drive.services.file_service import commit_or_compensate, serialize_node, unit_of_work
from app.packages.drive.services.storage_backends import StorageBackend
from app.packages.drive.utils.path_utils import base_name, join_path, norm_name, norm_rel_path

logger = get_logger("services.ingestion")


def _too_large(limit: int) -> AppException:
    return AppException(f"文件大小超过上限 {limit} 字节", HTTP_STATUS_PAYLOAD_TOO_LARGE)


async def read_upload(file: UploadFile, limit: int, chunk_size: int = 1024 * 1024) -> bytes:
    """分块读取上传内容，累计超过 ``limit`` 字节立即终止，不把超限文件整体读入内存。"""
    if file.size is not None and file.size > limit:
        raise _too_large(limit)
    chunks = []
    total = 0
    while True:
        chunk = await file.read(chunk_size)
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            raise _too_large(limit)
        chunks.append(chunk)
    return b"".join(chunks)


def parse_meta(raw: Optional[str]) -> Dict[str, Any]:
    """解析表单中的 ``meta`` 字段（JSON 对象，如 ``{"name": "a.txt", "capacity": 10}``）。"""
    if raw is None or not raw.strip():
        return {}
    try:
        meta = json.loads(raw)
    except ValueError as exc:
        raise AppException(f"元数据格式错误: {exc}", HTTP_STATUS_BAD_REQUEST) from exc
    if not isinstance(meta, dict):
        raise AppException("元数据必须是 JSON 对象", HTTP_STATUS_BAD_REQUEST)
    return meta


class IngestionService:
    def _resolve_destination(self, db: Session, destination: Optional[str], parent_id: Optional[int]) -> str:
        if parent_id is None:
            return norm_rel_path(destination, allow_root=True)
        parent = fs_node_crud.get(db, parent_id)
        if parent is None:
            raise NodeNotFoundError(f"父节点不存在: {parent_id}")
        if not parent.is_dir:
            raise InvalidPathError(f"父节点不是目录: {parent.path}")
        return parent.path

    def ingest(
        self,
        db: Session,
        *,
        destination: Optional[str],
        name: str,
        content: bytes,
        mirror: StorageBackend,
        size: Optional[int] = None,
        parent_id: Optional[int] = None,
        mime_type: Optional[str] = None,
    ) -> FsNode:
        """写入 ``<destination>/<name>`` 并返回对应节点。

        ``parent_id`` 指向已有目录时优先于 ``destination``。大小以实际字节数为准，
        ``size`` 仅用于核对。缺失的上级目录会一并建立目录节点。
        """
        settings = get_settings()
        actual_size = len(content)
        if actual_size > settings.max_upload_bytes:
            raise _too_large(settings.max_upload_bytes)
        if size is not None and size != actual_size:
            logger.warning("ingest.size_mismatch name=%s declared=%s actual=%s", name, size, actual_size)

        file_name = norm_name(base_name((name or "").replace("\\", "/")))
        dest_dir = self._resolve_destination(db, destination, parent_id)
        path = join_path(dest_dir, file_name)
        mime = mime_type or mimetypes.guess_type(file_name)[0]
        logger.info("ingest.start path=%s size=%s", path, actual_size)

        existed_on_disk = mirror.exists(path)
        with unit_of_work(db, "ingest"):
            node = fs_node_crud.get_by_path(db, path)
            if node is not None:
                if node.is_dir:
                    raise NodeConflictError(f"同名目录已存在: {path}")
                node.size_bytes = actual_size
                node.mime_type = mime
                fs_node_crud.save(db, node)
                db.flush()
            else:
                if dest_dir:
                    fs_node_crud.ensure_directory(db, dest_dir)
                node = fs_node_crud.create_node(db, path=path, size=actual_size, is_dir=False, mime_type=mime)
            mirror.write(path, content)

        compensate = None if existed_on_disk else (lambda: mirror.remove(path))
        commit_or_compensate(db, "ingest", compensate=compensate)
        db.refresh(node)

        logger.info("ingest.done path=%s id=%s", path, node.id)
        return node

    def upload(
        self,
        db: Session,
        *,
        filename: Optional[str],
        content: bytes,
        meta: Optional[str],
        path: Optional[str],
        parent_id: Optional[int],
        content_type: Optional[str],
        mirror: StorageBackend,
    ) -> Dict[str, Any]:
        info = parse_meta(meta)
        declared = info.get("capacity")
        node = self.ingest(
            db,
            destination=path,
            name=filename or info.get("name") or "",
            content=content,
            size=int(declared) if isinstance(declared, (int, float)) else None,
            parent_id=parent_id,
            mime_type=content_type if content_type and content_type != "application/octet-stream" else None,
            mirror=mirror,
        )
        return create_response("文件上传成功", serialize_node(node))


ingestion_service = IngestionService()
