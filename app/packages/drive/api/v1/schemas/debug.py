"""调试接口的响应模型：节点表、闭包表与子树。"""

from typing import Optional

from pydantic import BaseModel

from app.packages.drive.api.v1.schemas.common import ResponseEnvelope


class DebugNodeItem(BaseModel):
    id: int
    path: str
    name: str
    size: int
    is_dir: bool
    mime_type: Optional[str] = None
    created_at: Optional[str] = None


class DebugNodeList(BaseModel):
    count: int
    items: list[DebugNodeItem]


class DebugClosureItem(BaseModel):
    ancestor: int
    descendant: int
    depth: int
    ancestor_path: str
    descendant_path: str
    descendant_size: int


class DebugClosureList(BaseModel):
    count: int
    items: list[DebugClosureItem]


class DebugSubtreeItem(BaseModel):
    id: int
    path: str
    size: int
    is_dir: bool
    depth: int


class DebugSubtree(BaseModel):
    root_id: int
    root_path: str
    count: int
    items: list[DebugSubtreeItem]


DebugNodeListResponse = ResponseEnvelope[DebugNodeList]
DebugClosureListResponse = ResponseEnvelope[DebugClosureList]
DebugSubtreeResponse = ResponseEnvelope[DebugSubtree]
