"""文件与目录操作路由。

变更类接口（上传/新建目录/重命名/移动/删除）会同时修改元数据与存储目录；
查询类接口（列表/信息/下载）只读。
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.orm import Session

from app.packages.drive.api.v1.schemas.files import (
    CreateDirResponse,
    DeleteResponse,
    FileInfoResponse,
    FileListResponse,
    FileUploadResponse,
    PathChangeResponse,
)
from app.packages.drive.core.config import get_settings
from app.packages.drive.core.dependencies import get_db, get_mirror
from app.packages.drive.core.logger import logger
from app.packages.drive.services.file_service import file_service
from app.packages.drive.services.ingestion_service import ingestion_service, read_upload
from app.packages.drive.services.storage_backends import StorageBackend

router = APIRouter(tags=["files"])


@router.post("/upload", response_model=FileUploadResponse)
async def upload_file(
    file: UploadFile = File(...),
    meta: Optional[str] = Form(None),
    path: Optional[str] = Form(None),
    parent_id: Optional[int] = Form(None, alias="parentId"),
    db: Session = Depends(get_db),
    mirror: StorageBackend = Depends(get_mirror),
):
    content = await read_upload(file, get_settings().max_upload_bytes)
    logger.info("files.upload filename=%s path=%s parent_id=%s bytes=%s", file.filename, path, parent_id, len(content))
    return ingestion_service.upload(
        db,
        filename=file.filename,
        content=content,
        meta=meta,
        path=path,
        parent_id=parent_id,
        content_type=file.content_type,
        mirror=mirror,
    )


@router.get("/list", response_model=FileListResponse)
def list_items(
    format: str = Query("tree", pattern=r"^(simple|flat|tree)$"),
    db: Session = Depends(get_db),
):
    return file_service.list_items(db, format=format)


@router.get("/info", response_model=FileInfoResponse)
def file_info(
    name: str = Query(...),
    mirror: StorageBackend = Depends(get_mirror),
):
    return file_service.info(name=name, mirror=mirror)


@router.get("/download")
def download(
    name: str = Query(...),
    mirror: StorageBackend = Depends(get_mirror),
):
    return file_service.download(name=name, mirror=mirror)


@router.get("/downloaddir")
def download_directory(
    dirname: str = Query(...),
    mirror: StorageBackend = Depends(get_mirror),
):
    return file_service.download_directory(dirname=dirname, mirror=mirror)


@router.post("/createdir", response_model=CreateDirResponse)
def create_directory(
    path: str = Query(...),
    db: Session = Depends(get_db),
    mirror: StorageBackend = Depends(get_mirror),
):
    return file_service.create_directory(db, path=path, mirror=mirror)


@router.put("/rename", response_model=PathChangeResponse)
def rename(
    old_name: str = Query(..., alias="oldName"),
    new_name: str = Query(..., alias="newName"),
    db: Session = Depends(get_db),
    mirror: StorageBackend = Depends(get_mirror),
):
    return file_service.rename(db, old_name=old_name, new_name=new_name, mirror=mirror)


@router.put("/move", response_model=PathChangeResponse)
def move(
    oldpath: str = Query(...),
    newparent: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    mirror: StorageBackend = Depends(get_mirror),
):
    return file_service.move(db, path=oldpath, new_parent=newparent, mirror=mirror)


@router.delete("/delete", response_model=DeleteResponse)
def delete_file(
    name: str = Query(...),
    db: Session = Depends(get_db),
    mirror: StorageBackend = Depends(get_mirror),
):
    return file_service.delete_file(db, name=name, mirror=mirror)


@router.delete("/deletedir", response_model=DeleteResponse)
def delete_directory(
    dirname: str = Query(...),
    db: Session = Depends(get_db),
    mirror: StorageBackend = Depends(get_mirror),
):
    return file_service.delete_directory(db, dirname=dirname, mirror=mirror)
