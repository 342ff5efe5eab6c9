"""调试路由：原样查看节点表、闭包表与子树。"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.packages.drive.api.v1.schemas.debug import (
    DebugClosureListResponse,
    DebugNodeListResponse,
    DebugSubtreeResponse,
)
from app.packages.drive.core.dependencies import get_db
from app.packages.drive.services.debug_service import debug_service

router = APIRouter(prefix="/debug", tags=["debug"])


@router.get("/nodes", response_model=DebugNodeListResponse)
def list_nodes(db: Session = Depends(get_db)):
    return debug_service.nodes(db)


@router.get("/closure", response_model=DebugClosureListResponse)
def list_closure(db: Session = Depends(get_db)):
    return debug_service.closure(db)


@router.get("/subtree/{node_id}", response_model=DebugSubtreeResponse)
def get_subtree(node_id: int, db: Session = Depends(get_db)):
    return debug_service.subtree(db, node_id)
