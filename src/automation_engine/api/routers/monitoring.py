"""
监控 API 路由
"""
from fastapi import APIRouter, Depends
from datetime import datetime
import logging

from ..models import HealthCheckResponse, StatsResponse
from ..dependencies import get_workflow_engine
from ... import __version__


logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    engine = Depends(get_workflow_engine)
) -> HealthCheckResponse:
    """健康检查"""
    checks = {}

    try:
        await engine.list_workflows()
        checks["workflow_store"] = True
    except Exception as e:
        logger.error(f"Workflow store health check failed: {e}")
        checks["workflow_store"] = False

    checks["node_registry"] = len(engine.registry) > 0

    return HealthCheckResponse(
        status="healthy" if all(checks.values()) else "unhealthy",
        version=__version__,
        timestamp=datetime.utcnow(),
        checks=checks
    )


@router.get("/stats", response_model=StatsResponse)
async def get_stats(engine = Depends(get_workflow_engine)) -> StatsResponse:
    """引擎统计"""
    return StatsResponse(**await engine.get_stats())
