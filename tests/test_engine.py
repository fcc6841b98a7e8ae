"""
引擎门面测试：执行入口、统计与事件
"""
import asyncio

import pytest

from automation_engine.exceptions import NotFoundError, WorkflowEngineError
from automation_engine.integrations import EventType
from automation_engine.models.execution import ExecutionContext, ExecutionStatus


class TestExecuteWorkflow:
    """execute_workflow 不抛异常"""

    @pytest.mark.asyncio
    async def test_unknown_workflow_returns_failed_execution(self, engine):
        execution = await engine.execute_workflow("missing")

        assert execution.status == ExecutionStatus.FAILED
        assert execution.error == "Workflow not found: missing"
        assert execution.error_type == NotFoundError.__name__
        assert await engine.get_execution(execution.id) is execution

    @pytest.mark.asyncio
    async def test_runs_are_isolated(self, engine, workflow_factory):
        """并发执行互不共享变量"""
        definition = workflow_factory(
            [
                {"id": "wait", "type": "delay", "config": {"duration": 20}},
                {"id": "set", "type": "action", "config": {"assign": {"seen": "${who}"}}},
            ],
            [
                {"source": "start", "target": "wait"},
                {"source": "wait", "target": "set"},
            ],
        )
        workflow = await engine.create_workflow(definition)

        first, second = await asyncio.gather(
            engine.execute_workflow(workflow.id, {"who": "first"}),
            engine.execute_workflow(workflow.id, {"who": "second"}),
        )

        assert first.variables["seen"] == "first"
        assert second.variables["seen"] == "second"
        assert first.id != second.id

    @pytest.mark.asyncio
    async def test_update_during_run_does_not_affect_run(self, engine, workflow_factory):
        """执行使用定义快照"""
        definition = workflow_factory(
            [{"id": "wait", "type": "delay", "config": {"duration": 50}}],
            [{"source": "start", "target": "wait"}],
        )
        workflow = await engine.create_workflow(definition)

        execution = await engine.execute_workflow(workflow.id, async_mode=True)
        await engine.update_workflow(workflow.id, {"nodes": [{"id": "start", "type": "trigger"}], "edges": []})
        await engine.wait_for_execution(execution.id, timeout=2)

        assert execution.status == ExecutionStatus.COMPLETED
        assert "wait" in execution.node_results

    @pytest.mark.asyncio
    async def test_list_executions_newest_first(self, engine, workflow_factory):
        workflow = await engine.create_workflow(workflow_factory([]))

        ids = []
        for _ in range(3):
            ids.append((await engine.execute_workflow(workflow.id)).id)
            await asyncio.sleep(0.001)

        listed = [e.id for e in await engine.list_executions(workflow.id)]
        assert listed == list(reversed(ids))


class TestCancelExecution:
    """取消执行"""

    @pytest.mark.asyncio
    async def test_cancel_unknown_execution(self, engine):
        with pytest.raises(NotFoundError):
            await engine.cancel_execution("missing")

    @pytest.mark.asyncio
    async def test_cancel_finished_execution(self, engine, workflow_factory):
        workflow = await engine.create_workflow(workflow_factory([]))
        execution = await engine.execute_workflow(workflow.id)

        with pytest.raises(WorkflowEngineError):
            await engine.cancel_execution(execution.id)


class TestStats:
    """执行统计"""

    @pytest.mark.asyncio
    async def test_running_averages(self, engine, workflow_factory):
        definition = workflow_factory(
            [{"id": "maybe", "type": "condition", "config": {"expression": "ok"}},
             {"id": "bad", "type": "boom", "config": {}}],
            [{"source": "start", "target": "maybe"},
             {"source": "maybe", "target": "bad", "sourceHandle": "false"}],
        )
        workflow = await engine.create_workflow(definition)

        await engine.execute_workflow(workflow.id, {"ok": True})
        await engine.execute_workflow(workflow.id, {"ok": True})
        failed = await engine.execute_workflow(workflow.id, {"ok": False})
        assert failed.status == ExecutionStatus.FAILED

        metadata = (await engine.get_workflow(workflow.id)).metadata
        assert metadata.execution_count == 3
        assert metadata.success_rate == pytest.approx(2 / 3)
        assert metadata.last_executed == failed.completed_at
        assert metadata.average_execution_time >= 0

    @pytest.mark.asyncio
    async def test_execution_count_is_monotonic(self, engine, workflow_factory):
        workflow = await engine.create_workflow(workflow_factory([]))

        counts = []
        for _ in range(4):
            await engine.execute_workflow(workflow.id)
            counts.append((await engine.get_workflow(workflow.id)).metadata.execution_count)

        assert counts == [1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_concurrent_runs_all_counted(self, engine, workflow_factory):
        workflow = await engine.create_workflow(workflow_factory([]))

        await asyncio.gather(*(engine.execute_workflow(workflow.id) for _ in range(5)))

        metadata = (await engine.get_workflow(workflow.id)).metadata
        assert metadata.execution_count == 5
        assert metadata.success_rate == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_deleted_workflow_is_not_recorded(self, engine, workflow_factory):
        definition = workflow_factory(
            [{"id": "wait", "type": "delay", "config": {"duration": 30}}],
            [{"source": "start", "target": "wait"}],
        )
        workflow = await engine.create_workflow(definition)

        execution = await engine.execute_workflow(workflow.id, async_mode=True)
        assert await engine.delete_workflow(workflow.id) is True
        await engine.wait_for_execution(execution.id, timeout=2)

        assert execution.status == ExecutionStatus.COMPLETED
        assert await engine.get_workflow(workflow.id) is None
        assert workflow.id not in engine.store._locks

    @pytest.mark.asyncio
    async def test_wait_timeout_leaves_run_going(self, engine, workflow_factory):
        """等待超时只影响调用方，后台执行继续"""
        definition = workflow_factory(
            [{"id": "wait", "type": "delay", "config": {"duration": 200}}],
            [{"source": "start", "target": "wait"}],
        )
        workflow = await engine.create_workflow(definition)

        execution = await engine.execute_workflow(workflow.id, async_mode=True)
        with pytest.raises(asyncio.TimeoutError):
            await engine.wait_for_execution(execution.id, timeout=0.05)
        assert execution.status == ExecutionStatus.RUNNING

        finished = await engine.wait_for_execution(execution.id, timeout=2)

        assert finished is execution
        assert execution.status == ExecutionStatus.COMPLETED
        assert (await engine.get_workflow(workflow.id)).metadata.execution_count == 1

    @pytest.mark.asyncio
    async def test_engine_stats(self, engine, workflow_factory):
        active = await engine.create_workflow({**workflow_factory([]), "status": "active"})
        await engine.create_workflow(workflow_factory([]))
        await engine.execute_workflow(active.id)
        await engine.execute_workflow("missing")

        stats = await engine.get_stats()

        assert stats["total_workflows"] == 2
        assert stats["active_workflows"] == 1
        assert stats["total_executions"] == 2
        assert stats["successful_executions"] == 1


class TestEvents:
    """生命周期事件"""

    @pytest.mark.asyncio
    async def test_lifecycle_events(self, engine, workflow_factory):
        received = []
        for event_type in EventType:
            engine.on(event_type, lambda event: received.append(event.event_type))

        workflow = await engine.create_workflow(workflow_factory([]))
        await engine.execute_workflow(workflow.id)
        await engine.update_workflow(workflow.id, {"description": "changed"})
        await engine.delete_workflow(workflow.id)

        assert received == [
            EventType.WORKFLOW_CREATED,
            EventType.WORKFLOW_COMPLETED,
            EventType.WORKFLOW_UPDATED,
            EventType.WORKFLOW_DELETED,
        ]

    @pytest.mark.asyncio
    async def test_failed_event_carries_error(self, engine):
        failures = []
        engine.on("workflow_failed", failures.append)

        execution = await engine.execute_workflow("missing")

        assert failures[0].execution_id == execution.id
        assert "not found" in failures[0].error

    @pytest.mark.asyncio
    async def test_cancelled_event(self, engine, workflow_factory):
        cancelled = []
        engine.on(EventType.WORKFLOW_CANCELLED, cancelled.append)
        definition = workflow_factory(
            [{"id": "wait", "type": "delay", "config": {"duration": 2, "unit": "seconds"}}],
            [{"source": "start", "target": "wait"}],
        )
        workflow = await engine.create_workflow(definition)

        execution = await engine.execute_workflow(workflow.id, async_mode=True)
        await asyncio.sleep(0.05)
        await engine.cancel_execution(execution.id)
        await engine.wait_for_execution(execution.id, timeout=2)
        await asyncio.sleep(0.01)

        assert [event.execution_id for event in cancelled] == [execution.id]


class TestExecutionContext:
    """执行上下文"""

    def test_results_are_write_once(self):
        context = ExecutionContext(workflow_id="wf", execution_id="ex")
        context.record_result("a", {"x": 1})

        with pytest.raises(WorkflowEngineError):
            context.record_result("a", {"x": 2})
        assert context.get_node_result("a") == {"x": 1}

    def test_resolve_keeps_type_for_whole_reference(self):
        context = ExecutionContext(
            workflow_id="wf",
            execution_id="ex",
            variables={"items": [1, 2], "name": "Ada"},
            node_results={"n1": {"out": {"score": 9}}},
        )

        assert context.resolve("${items}") == [1, 2]
        assert context.resolve("${nodes.n1.out.score}") == 9
        assert context.resolve("Hi ${name}, ${missing}!") == "Hi Ada, !"
        assert context.resolve({"list": ["${vars.name}"]}) == {"list": ["Ada"]}
        assert context.resolve("${items.1}") == 2
