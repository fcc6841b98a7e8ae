"""
REST API 服务
"""

from .app import create_app

__all__ = ["create_app"]
