"""
API 路由器
"""

from . import workflows, executions, node_types, monitoring

__all__ = ["workflows", "executions", "node_types", "monitoring"]
