"""
FastAPI 应用主文件
"""
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
from typing import Optional

from .routers import workflows, executions, node_types, monitoring
from .middleware import RequestLoggingMiddleware
from .. import __version__
from ..config import Settings
from ..core.engine import WorkflowEngine
from ..exceptions import WorkflowEngineError


logger = logging.getLogger(__name__)


def create_app(engine: Optional[WorkflowEngine] = None, settings: Optional[Settings] = None) -> FastAPI:
    """创建 FastAPI 应用，未传入引擎时按配置新建一个内存引擎"""
    settings = settings or Settings.from_env()
    engine = engine or WorkflowEngine(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """应用生命周期管理"""
        logger.info("Starting Automation Engine API...")
        logger.info(f"Registered node types: {', '.join(t.id for t in engine.list_node_types())}")
        yield
        logger.info("Automation Engine API shut down")

    app = FastAPI(
        title="Automation Engine API",
        description="工作流自动化引擎 RESTful API",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json"
    )
    app.state.engine = engine
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(workflows.router, prefix="/api/v1/workflows", tags=["workflows"])
    app.include_router(executions.router, prefix="/api/v1/executions", tags=["executions"])
    app.include_router(node_types.router, prefix="/api/v1/node-types", tags=["node-types"])
    app.include_router(monitoring.router, prefix="/api/v1", tags=["monitoring"])

    @app.exception_handler(WorkflowEngineError)
    async def engine_exception_handler(request: Request, exc: WorkflowEngineError):
        """未在路由中转换的引擎异常"""
        logger.warning(f"Unhandled engine error: {exc}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": exc.to_dict()}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """全局异常处理器"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "request_id": getattr(request.state, "request_id", None)
            }
        )

    @app.get("/", tags=["root"])
    async def root():
        """API根路径"""
        return {
            "name": "Automation Engine API",
            "version": __version__,
            "status": "running",
            "docs": "/docs",
            "health": "/api/v1/health"
        }

    return app
