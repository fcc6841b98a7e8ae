"""
运行配置

从环境变量（以及 .env 文件）读取服务与引擎的默认配置。
"""
import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .models.workflow import WorkflowSettings


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """服务与引擎配置"""
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = False
    log_level: str = "INFO"
    default_timeout_ms: float = 300000
    default_retry_attempts: int = 3
    default_retry_delay_ms: float = 5000

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> "Settings":
        """读取环境变量，未设置的项使用默认值"""
        if load_env_file:
            load_dotenv()

        return cls(
            api_host=os.getenv("API_HOST", cls.api_host),
            api_port=int(os.getenv("API_PORT", str(cls.api_port))),
            api_reload=_flag(os.getenv("API_RELOAD", "false")),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
            default_timeout_ms=float(os.getenv("DEFAULT_TIMEOUT_MS", str(cls.default_timeout_ms))),
            default_retry_attempts=int(os.getenv("DEFAULT_RETRY_ATTEMPTS", str(cls.default_retry_attempts))),
            default_retry_delay_ms=float(os.getenv("DEFAULT_RETRY_DELAY_MS", str(cls.default_retry_delay_ms))),
        )

    def workflow_defaults(self) -> WorkflowSettings:
        """未在定义中指定时使用的工作流设置"""
        return WorkflowSettings(
            timeout=self.default_timeout_ms,
            retry_attempts=self.default_retry_attempts,
            retry_delay=self.default_retry_delay_ms,
        )


def configure_logging(level: str = "INFO"):
    """入口处调用一次"""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
