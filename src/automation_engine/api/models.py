"""
API 请求和响应模型
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from ..models.workflow import Workflow


# 工作流相关模型

class WorkflowResponse(BaseModel):
    """工作流摘要"""
    id: str = Field(..., description="工作流ID")
    name: str = Field(..., description="工作流名称")
    description: Optional[str] = Field(None, description="描述")
    version: str = Field(..., description="版本号")
    status: str = Field(..., description="工作流状态")
    trigger_type: str = Field(..., description="触发方式")
    node_count: int = Field(..., description="节点数量")
    edge_count: int = Field(..., description="边数量")
    created_by: str = Field(..., description="创建者")
    created_at: datetime = Field(..., description="创建时间")
    updated_at: datetime = Field(..., description="更新时间")
    last_executed: Optional[datetime] = Field(None, description="最近执行时间")
    execution_count: int = Field(0, description="执行次数")
    success_rate: float = Field(0.0, description="成功率")
    average_execution_time: float = Field(0.0, description="平均执行时间（毫秒）")

    @classmethod
    def from_workflow(cls, workflow: Workflow) -> "WorkflowResponse":
        metadata = workflow.metadata
        return cls(
            id=workflow.id,
            name=workflow.name,
            description=workflow.description,
            version=workflow.version,
            status=workflow.status.value,
            trigger_type=workflow.trigger_type.value,
            node_count=len(workflow.nodes),
            edge_count=len(workflow.edges),
            created_by=metadata.created_by,
            created_at=metadata.created_at,
            updated_at=metadata.updated_at,
            last_executed=metadata.last_executed,
            execution_count=metadata.execution_count,
            success_rate=metadata.success_rate,
            average_execution_time=metadata.average_execution_time,
        )


# 执行相关模型

class WorkflowExecuteRequest(BaseModel):
    """执行工作流请求"""
    input: Dict[str, Any] = Field(default_factory=dict, description="输入数据，覆盖同名工作流变量")
    async_mode: bool = Field(False, description="是否后台执行")


class NodeExecutionInfo(BaseModel):
    """节点执行信息"""
    node_id: str = Field(..., description="节点ID")
    status: str = Field(..., description="执行状态")
    attempts: int = Field(0, description="尝试次数")
    started_at: Optional[datetime] = Field(None, description="开始时间")
    completed_at: Optional[datetime] = Field(None, description="结束时间")
    duration: Optional[float] = Field(None, description="执行时长（毫秒）")
    error: Optional[str] = Field(None, description="错误信息")
    branch: Optional[str] = Field(None, description="条件节点选择的分支")
    compensated: bool = Field(False, description="是否已补偿")


class ExecutionResponse(BaseModel):
    """执行响应"""
    id: str = Field(..., description="执行ID")
    workflow_id: str = Field(..., description="工作流ID")
    status: str = Field(..., description="执行状态")
    started_at: datetime = Field(..., description="开始时间")
    completed_at: Optional[datetime] = Field(None, description="结束时间")
    execution_time: float = Field(0.0, description="执行时长（毫秒）")
    error: Optional[str] = Field(None, description="错误信息")
    error_type: Optional[str] = Field(None, description="错误类型")
    node_results: Dict[str, Any] = Field(default_factory=dict, description="节点输出")
    variables: Dict[str, Any] = Field(default_factory=dict, description="运行变量")
    node_executions: Dict[str, NodeExecutionInfo] = Field(default_factory=dict, description="节点执行信息")


# 节点类型

class NodePortInfo(BaseModel):
    id: str
    name: str
    type: str = "object"
    required: bool = True


class NodeTypeResponse(BaseModel):
    """节点类型描述"""
    id: str = Field(..., description="节点类型ID")
    name: str = Field(..., description="名称")
    category: str = Field(..., description="类别")
    description: str = Field("", description="描述")
    inputs: List[NodePortInfo] = Field(default_factory=list, description="输入端口")
    outputs: List[NodePortInfo] = Field(default_factory=list, description="输出端口")
    config_schema: Dict[str, Any] = Field(default_factory=dict, description="配置的 JSON Schema")
    supports_compensation: bool = Field(False, description="是否支持回滚补偿")


# 通用模型

class SuccessResponse(BaseModel):
    """成功响应"""
    success: bool = Field(True, description="是否成功")
    message: str = Field(..., description="消息")
    data: Optional[Dict[str, Any]] = Field(None, description="额外数据")


class HealthCheckResponse(BaseModel):
    """健康检查响应"""
    status: str = Field(..., description="健康状态", examples=["healthy", "unhealthy"])
    version: str = Field(..., description="版本号")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="时间戳")
    checks: Dict[str, bool] = Field(default_factory=dict, description="各组件检查结果")


class StatsResponse(BaseModel):
    """引擎统计"""
    total_workflows: int = Field(..., description="工作流总数")
    active_workflows: int = Field(..., description="激活的工作流数")
    total_executions: int = Field(..., description="执行总数")
    successful_executions: int = Field(..., description="成功执行数")
    average_execution_time: float = Field(..., description="平均执行时间（毫秒）")
