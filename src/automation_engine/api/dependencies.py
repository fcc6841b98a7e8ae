"""
FastAPI 依赖注入
"""
from fastapi import HTTPException, Request, status
import logging

from ..core.engine import WorkflowEngine


logger = logging.getLogger(__name__)


def get_workflow_engine(request: Request) -> WorkflowEngine:
    """获取工作流引擎实例"""
    engine = getattr(request.app.state, "engine", None)

    if not engine:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "service_unavailable",
                "message": "Workflow engine not initialized"
            }
        )

    return engine
