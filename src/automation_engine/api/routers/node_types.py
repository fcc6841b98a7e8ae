"""
节点类型 API 路由
"""
from fastapi import APIRouter, Depends
from typing import List, Dict, Any

from ..models import NodeTypeResponse
from ..dependencies import get_workflow_engine


router = APIRouter()


@router.get("", response_model=List[NodeTypeResponse])
async def list_node_types(engine = Depends(get_workflow_engine)) -> List[Dict[str, Any]]:
    """列出已注册的节点类型"""
    return [node_type.to_dict() for node_type in engine.list_node_types()]
