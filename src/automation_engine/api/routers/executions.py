"""
工作流执行 API 路由
"""
from fastapi import APIRouter, HTTPException, Depends, status
from typing import Dict, Any
import logging

from ..models import ExecutionResponse
from ..dependencies import get_workflow_engine
from ...exceptions import NotFoundError, WorkflowEngineError


logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/{execution_id}", response_model=ExecutionResponse)
async def get_execution(
    execution_id: str,
    engine = Depends(get_workflow_engine)
) -> Dict[str, Any]:
    """获取执行详情"""
    execution = await engine.get_execution(execution_id)
    if execution is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "not_found",
                "message": f"Execution not found: {execution_id}"
            }
        )

    return execution.to_dict()


@router.post("/{execution_id}/cancel", response_model=ExecutionResponse)
async def cancel_execution(
    execution_id: str,
    engine = Depends(get_workflow_engine)
) -> Dict[str, Any]:
    """取消运行中的执行"""
    try:
        execution = await engine.cancel_execution(execution_id)
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "message": str(e)}
        )
    except WorkflowEngineError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "invalid_state", "message": str(e)}
        )

    return execution.to_dict()
