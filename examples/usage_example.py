"""
工作流引擎使用示例
"""
import asyncio
from pathlib import Path
import logging

from pydantic import BaseModel

from automation_engine import WorkflowEngine
from automation_engine.config import Settings
from automation_engine.core.registry import NodeCategory, NodeType
from automation_engine.integrations import EventType
from automation_engine.models.workflow import NodeStatus


# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


class InventoryConfig(BaseModel):
    sku: str
    quantity: int = 1


async def reserve_stock(config: InventoryConfig, context):
    """示例自定义节点：预留库存"""
    return {"sku": config.sku, "reserved": config.quantity}


async def release_stock(config: InventoryConfig, context, result):
    """回滚时释放库存"""
    print(f"释放库存: {config.sku} x {result['reserved']}")


def setup_workflow_engine() -> WorkflowEngine:
    """设置工作流引擎"""
    engine = WorkflowEngine(settings=Settings.from_env())

    engine.register_node_type(NodeType(
        id="reserve_stock",
        name="Reserve Stock",
        category=NodeCategory.ACTION,
        description="Reserve inventory for an order",
        config_schema=InventoryConfig,
        execute=reserve_stock,
        compensate=release_stock,
    ))

    engine.on(EventType.WORKFLOW_COMPLETED, lambda e: print(f"完成: {e.execution_id} ({e.execution_time:.1f}ms)"))
    engine.on(EventType.WORKFLOW_FAILED, lambda e: print(f"失败: {e.execution_id} - {e.error}"))
    return engine


async def example_branching_workflow(engine: WorkflowEngine):
    """条件分支示例"""
    print("\n=== 条件分支示例 ===")

    workflow = await engine.create_workflow(Path(__file__).parent / "order_review.yaml")
    print(f"创建工作流: {workflow.id}")

    for amount in (80, 250):
        execution = await engine.execute_workflow(workflow.id, {"amount": amount})
        skipped = execution.nodes_with_status(NodeStatus.SKIPPED)
        print(f"金额 {amount}: {execution.status.value}, 跳过节点: {skipped}")


async def example_rollback(engine: WorkflowEngine):
    """回滚示例"""
    print("\n=== 回滚示例 ===")

    workflow = await engine.create_workflow({
        "name": "Reserve then charge",
        "nodes": [
            {"id": "start", "type": "trigger"},
            {"id": "reserve", "type": "reserve_stock", "config": {"sku": "SKU-1", "quantity": 2}},
            {"id": "charge", "type": "webhook", "config": {"url": "https://payments.example.com/charge"}},
        ],
        "edges": [
            {"source": "start", "target": "reserve"},
            {"source": "reserve", "target": "charge"},
        ],
        "settings": {"errorHandling": "rollback", "retryAttempts": 0},
    })

    # 让支付接口返回错误，触发回滚
    engine.channels.webhook.responses["https://payments.example.com/charge"] = {"status_code": 503}

    execution = await engine.execute_workflow(workflow.id)
    print(f"执行状态: {execution.status.value}, 错误: {execution.error}")
    print(f"reserve 已补偿: {execution.get_node_execution('reserve').compensated}")


async def example_cancellation(engine: WorkflowEngine):
    """后台执行与取消示例"""
    print("\n=== 取消示例 ===")

    workflow = await engine.create_workflow({
        "name": "Slow workflow",
        "nodes": [
            {"id": "start", "type": "trigger"},
            {"id": "wait", "type": "delay", "config": {"duration": 10, "unit": "seconds"}},
        ],
        "edges": [{"source": "start", "target": "wait"}],
    })

    execution = await engine.execute_workflow(workflow.id, async_mode=True)
    await asyncio.sleep(0.2)
    await engine.cancel_execution(execution.id, "Operator cancelled")
    await engine.wait_for_execution(execution.id, timeout=5)
    print(f"执行状态: {execution.status.value}")


async def main():
    """主函数"""
    engine = setup_workflow_engine()

    await example_branching_workflow(engine)
    await example_rollback(engine)
    await example_cancellation(engine)

    print(f"\n引擎统计: {await engine.get_stats()}")


if __name__ == "__main__":
    asyncio.run(main())
