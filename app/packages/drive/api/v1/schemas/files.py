"""文件与目录操作的响应模型。"""

from typing import Any, Optional

from pydantic import BaseModel

from app.packages.drive.api.v1.schemas.common import ResponseEnvelope


class FileNodeItem(BaseModel):
    id: int
    name: str
    path: str
    size: int
    is_dir: bool
    mime_type: Optional[str] = None
    created_at: Optional[str] = None


class FileTreeNode(BaseModel):
    id: int
    name: str
    path: str
    size: int
    is_dir: bool
    children: list["FileTreeNode"] = []


class FileTreeData(BaseModel):
    total: int
    roots: list[FileTreeNode]


class FileInfoData(BaseModel):
    name: str
    size: int
    mode: str
    mod_time: str
    is_directory: bool


class CreateDirData(BaseModel):
    id: int
    path: str
    created: bool


class PathChangeData(BaseModel):
    oldPath: str
    newPath: str
    warning: Optional[str] = None


class DeleteData(BaseModel):
    path: str
    nodesDeleted: int
    edgesDeleted: int
    paths: list[str] = []
    warning: Optional[str] = None


FileListResponse = ResponseEnvelope[Any]
FileUploadResponse = ResponseEnvelope[FileNodeItem]
FileInfoResponse = ResponseEnvelope[FileInfoData]
CreateDirResponse = ResponseEnvelope[CreateDirData]
PathChangeResponse = ResponseEnvelope[PathChangeData]
DeleteResponse = ResponseEnvelope[DeleteData]
