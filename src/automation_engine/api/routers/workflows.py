"""
工作流管理 API 路由
"""
from fastapi import APIRouter, Body, HTTPException, Depends, Query, status
from typing import List, Optional, Dict, Any
import logging

from ..models import WorkflowResponse, WorkflowExecuteRequest, ExecutionResponse, SuccessResponse
from ..dependencies import get_workflow_engine
from ...exceptions import NotFoundError, WorkflowParseError, WorkflowValidationError
from ...models.workflow import WorkflowStatus


logger = logging.getLogger(__name__)
router = APIRouter()


def _validation_error(e: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={
            "error": "validation_error",
            "message": str(e),
            "errors": getattr(e, "errors", [])
        }
    )


def _not_found(workflow_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "error": "not_found",
            "message": f"Workflow not found: {workflow_id}"
        }
    )


@router.post("", response_model=WorkflowResponse, status_code=status.HTTP_201_CREATED)
async def create_workflow(
    definition: Dict[str, Any] = Body(..., description="工作流定义（camelCase 或 snake_case）"),
    created_by: Optional[str] = Query(None, description="创建者"),
    engine = Depends(get_workflow_engine)
) -> WorkflowResponse:
    """创建新的工作流"""
    try:
        workflow = await engine.create_workflow(definition, created_by=created_by)
    except (WorkflowValidationError, WorkflowParseError) as e:
        raise _validation_error(e)

    return WorkflowResponse.from_workflow(workflow)


@router.get("", response_model=List[WorkflowResponse])
async def list_workflows(
    workflow_status: Optional[WorkflowStatus] = Query(None, alias="status", description="按状态过滤"),
    owner: Optional[str] = Query(None, description="按创建者过滤"),
    engine = Depends(get_workflow_engine)
) -> List[WorkflowResponse]:
    """列出工作流"""
    if owner is not None:
        workflows = await engine.list_workflows_by_owner(owner)
        if workflow_status is not None:
            workflows = [w for w in workflows if w.status == workflow_status]
    else:
        workflows = await engine.list_workflows(workflow_status)

    return [WorkflowResponse.from_workflow(w) for w in workflows]


@router.get("/{workflow_id}")
async def get_workflow(
    workflow_id: str,
    engine = Depends(get_workflow_engine)
) -> Dict[str, Any]:
    """获取工作流完整定义（camelCase）"""
    workflow = await engine.get_workflow(workflow_id)
    if workflow is None:
        raise _not_found(workflow_id)

    return engine.parser.serialize(workflow)


@router.patch("/{workflow_id}", response_model=WorkflowResponse)
async def update_workflow(
    workflow_id: str,
    changes: Dict[str, Any] = Body(..., description="需要修改的字段"),
    engine = Depends(get_workflow_engine)
) -> WorkflowResponse:
    """部分更新工作流"""
    try:
        workflow = await engine.update_workflow(workflow_id, changes)
    except NotFoundError:
        raise _not_found(workflow_id)
    except (WorkflowValidationError, WorkflowParseError) as e:
        raise _validation_error(e)

    return WorkflowResponse.from_workflow(workflow)


@router.delete("/{workflow_id}", response_model=SuccessResponse)
async def delete_workflow(
    workflow_id: str,
    engine = Depends(get_workflow_engine)
) -> SuccessResponse:
    """删除工作流"""
    if not await engine.delete_workflow(workflow_id):
        raise _not_found(workflow_id)

    return SuccessResponse(message=f"Workflow {workflow_id} deleted")


@router.post("/{workflow_id}/execute", response_model=ExecutionResponse)
async def execute_workflow(
    workflow_id: str,
    request: Optional[WorkflowExecuteRequest] = None,
    engine = Depends(get_workflow_engine)
) -> Dict[str, Any]:
    """执行工作流，默认等待执行结束"""
    request = request or WorkflowExecuteRequest()
    if await engine.get_workflow(workflow_id) is None:
        raise _not_found(workflow_id)

    execution = await engine.execute_workflow(
        workflow_id,
        request.input,
        async_mode=request.async_mode
    )
    logger.info(f"Execution {execution.id} of workflow {workflow_id}: {execution.status.value}")

    return execution.to_dict()


@router.get("/{workflow_id}/executions", response_model=List[ExecutionResponse])
async def list_workflow_executions(
    workflow_id: str,
    engine = Depends(get_workflow_engine)
) -> List[Dict[str, Any]]:
    """列出工作流的执行记录（最新在前）"""
    if await engine.get_workflow(workflow_id) is None:
        raise _not_found(workflow_id)

    executions = await engine.list_executions(workflow_id)
    return [execution.to_dict() for execution in executions]
