"""
Automation Engine API 主入口
"""
import logging
import uvicorn

from automation_engine.api import create_app
from automation_engine.config import Settings, configure_logging

# 加载环境变量
settings = Settings.from_env()

# 配置日志
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


if __name__ == "__main__":
    if settings.api_reload:
        # 开发模式
        uvicorn.run(
            "automation_engine.api.app:create_app",
            factory=True,
            host=settings.api_host,
            port=settings.api_port,
            reload=True,
            log_level=settings.log_level.lower()
        )
    else:
        logger.info(f"Serving on {settings.api_host}:{settings.api_port}")
        uvicorn.run(
            create_app(settings=settings),
            host=settings.api_host,
            port=settings.api_port,
            log_level=settings.log_level.lower()
        )
