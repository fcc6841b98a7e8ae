"""
API 端点测试
"""
import time

import pytest
from fastapi.testclient import TestClient

from automation_engine.api import create_app
from automation_engine.api.models import WorkflowResponse


@pytest.fixture
def client(engine, settings):
    """使用测试引擎创建测试客户端"""
    app = create_app(engine=engine, settings=settings)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def created(client, sample_workflow):
    response = client.post("/api/v1/workflows", json=sample_workflow)
    assert response.status_code == 201
    return response.json()


class TestRootAndMonitoring:
    """根路径、健康检查与统计"""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "running"
        assert data["health"] == "/api/v1/health"

    def test_health(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["checks"] == {"workflow_store": True, "node_registry": True}

    def test_request_id_header(self, client):
        response = client.get("/", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"
        assert "X-Process-Time" in response.headers

    def test_node_types(self, client):
        response = client.get("/api/v1/node-types")

        assert response.status_code == 200
        ids = [item["id"] for item in response.json()]
        assert "condition" in ids
        assert "record" in ids

    def test_stats(self, client, created):
        client.post(f"/api/v1/workflows/{created['id']}/execute")

        response = client.get("/api/v1/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["total_workflows"] == 1
        assert data["total_executions"] == 1
        assert data["successful_executions"] == 1


class TestWorkflowAPI:
    """工作流 API 测试类"""

    @pytest.mark.asyncio
    async def test_response_model_from_workflow(self, engine, sample_workflow):
        workflow = await engine.create_workflow(sample_workflow)

        response = WorkflowResponse.from_workflow(workflow)

        assert response.id == workflow.id
        assert response.node_count == 4
        assert response.created_by == "alice"

    def test_create_workflow(self, created):
        assert created["name"] == "Order Review"
        assert created["node_count"] == 4
        assert created["edge_count"] == 3
        assert created["created_by"] == "alice"
        assert created["status"] == "draft"

    def test_create_with_owner_query(self, client, sample_workflow):
        response = client.post("/api/v1/workflows", params={"created_by": "bob"}, json=sample_workflow)

        assert response.json()["created_by"] == "bob"

    def test_create_invalid_workflow(self, client, workflow_factory):
        definition = workflow_factory([], [{"source": "start", "target": "ghost"}])

        response = client.post("/api/v1/workflows", json=definition)

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["error"] == "validation_error"
        assert any("ghost" in error for error in detail["errors"])

    def test_list_workflows(self, client, created, sample_workflow):
        client.post("/api/v1/workflows", params={"created_by": "bob"},
                    json={**sample_workflow, "status": "active"})

        assert len(client.get("/api/v1/workflows").json()) == 2
        assert [w["id"] for w in client.get("/api/v1/workflows", params={"status": "draft"}).json()] == [created["id"]]
        assert len(client.get("/api/v1/workflows", params={"owner": "bob"}).json()) == 1
        assert client.get("/api/v1/workflows", params={"owner": "bob", "status": "draft"}).json() == []

    def test_get_workflow_returns_definition(self, client, created):
        response = client.get(f"/api/v1/workflows/{created['id']}")

        assert response.status_code == 200
        data = response.json()
        assert data["triggerType"] == "manual"
        assert data["edges"][1]["sourceHandle"] == "true"
        assert data["metadata"]["executionCount"] == 0

    def test_get_workflow_not_found(self, client):
        response = client.get("/api/v1/workflows/missing")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "not_found"

    def test_update_workflow(self, client, created):
        response = client.patch(f"/api/v1/workflows/{created['id']}", json={"status": "active"})

        assert response.status_code == 200
        assert response.json()["status"] == "active"

    def test_update_invalid(self, client, created):
        response = client.patch(f"/api/v1/workflows/{created['id']}", json={"status": "sleeping"})

        assert response.status_code == 400

    def test_update_not_found(self, client):
        response = client.patch("/api/v1/workflows/missing", json={"name": "x"})

        assert response.status_code == 404

    def test_delete_workflow(self, client, created):
        response = client.delete(f"/api/v1/workflows/{created['id']}")

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert client.delete(f"/api/v1/workflows/{created['id']}").status_code == 404


class TestExecutionAPI:
    """执行相关接口"""

    def test_execute_workflow(self, client, created):
        response = client.post(f"/api/v1/workflows/{created['id']}/execute", json={"input": {"amount": 500}})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["node_results"]["check"]["branch"] == "true"
        assert data["node_executions"]["approve"]["status"] == "skipped"

    def test_execute_without_body(self, client, created):
        response = client.post(f"/api/v1/workflows/{created['id']}/execute")

        assert response.status_code == 200
        assert response.json()["variables"]["approved"] is True

    def test_execute_not_found(self, client):
        response = client.post("/api/v1/workflows/missing/execute", json={})

        assert response.status_code == 404

    def test_get_and_list_executions(self, client, created):
        first = client.post(f"/api/v1/workflows/{created['id']}/execute").json()
        second = client.post(f"/api/v1/workflows/{created['id']}/execute").json()

        fetched = client.get(f"/api/v1/executions/{first['id']}")
        listed = client.get(f"/api/v1/workflows/{created['id']}/executions")

        assert fetched.status_code == 200
        assert fetched.json()["workflow_id"] == created["id"]
        assert [e["id"] for e in listed.json()] == [second["id"], first["id"]]

    def test_execution_not_found(self, client):
        response = client.get("/api/v1/executions/missing")

        assert response.status_code == 404
        assert client.post("/api/v1/executions/missing/cancel").status_code == 404

    def test_cancel_finished_execution_conflicts(self, client, created):
        execution = client.post(f"/api/v1/workflows/{created['id']}/execute").json()

        response = client.post(f"/api/v1/executions/{execution['id']}/cancel")

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "invalid_state"

    def test_cancel_running_execution(self, client, workflow_factory):
        definition = workflow_factory(
            [{"id": "wait", "type": "delay", "config": {"duration": 5, "unit": "seconds"}}],
            [{"source": "start", "target": "wait"}],
        )
        workflow = client.post("/api/v1/workflows", json=definition).json()
        execution = client.post(
            f"/api/v1/workflows/{workflow['id']}/execute", json={"async_mode": True}
        ).json()
        assert execution["status"] == "running"

        response = client.post(f"/api/v1/executions/{execution['id']}/cancel")
        assert response.status_code == 200

        status = None
        for _ in range(50):
            status = client.get(f"/api/v1/executions/{execution['id']}").json()["status"]
            if status != "running":
                break
            time.sleep(0.02)
        assert status == "cancelled"
