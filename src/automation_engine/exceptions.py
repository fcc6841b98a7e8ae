"""
自动化引擎异常定义
"""
from typing import Any, Dict, List, Optional


class WorkflowEngineError(Exception):
    """工作流引擎基础异常"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


class WorkflowParseError(WorkflowEngineError):
    """工作流解析异常"""
    pass


class WorkflowValidationError(WorkflowEngineError):
    """工作流验证异常"""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = list(errors or [])
        if self.errors:
            message = f"{message}: {'; '.join(self.errors)}"
        super().__init__(message, {"validation_errors": self.errors})


class UnknownNodeTypeError(WorkflowValidationError):
    """节点类型未注册"""

    def __init__(self, type_id: str, node_id: Optional[str] = None):
        self.type_id = type_id
        self.node_id = node_id
        if node_id:
            message = f"Node '{node_id}' references unknown node type '{type_id}'"
        else:
            message = f"Unknown node type: {type_id}"
        super().__init__(message)
        self.details.update({"type_id": type_id, "node_id": node_id})


class NotFoundError(WorkflowEngineError):
    """资源不存在"""

    def __init__(self, resource: str, resource_id: str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            f"{resource.capitalize()} not found: {resource_id}",
            {"resource": resource, "id": resource_id}
        )


class ExpressionError(WorkflowEngineError):
    """表达式解析或求值异常"""

    def __init__(self, expression: str, message: str):
        self.expression = expression
        super().__init__(
            f"Invalid expression '{expression}': {message}",
            {"expression": expression}
        )


class WorkflowExecutionError(WorkflowEngineError):
    """工作流执行异常"""
    pass


class CircularDependencyError(WorkflowExecutionError):
    """循环依赖或不可达节点"""

    def __init__(self, node_ids: List[str]):
        self.node_ids = sorted(node_ids)
        super().__init__(
            "Workflow has circular dependencies or unreachable nodes: "
            f"{', '.join(self.node_ids)}",
            {"node_ids": self.node_ids}
        )


class NodeExecutionError(WorkflowExecutionError):
    """节点执行异常（重试耗尽）"""

    def __init__(self, node_id: str, attempts: int, cause: Optional[BaseException] = None):
        self.node_id = node_id
        self.attempts = attempts
        self.cause = cause
        details: Dict[str, Any] = {"node_id": node_id, "attempts": attempts}
        if cause is not None:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__
        super().__init__(
            f"Node '{node_id}' execution failed after {attempts} attempt(s): {cause}",
            details
        )


class WorkflowTimeoutError(WorkflowExecutionError):
    """工作流超时异常"""

    def __init__(self, timeout_ms: float):
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Workflow execution exceeded timeout of {timeout_ms:g}ms",
            {"timeout_ms": timeout_ms}
        )


class WorkflowCancelledError(WorkflowExecutionError):
    """工作流取消异常"""
    pass
