"""
工作流解析器测试
"""
import json

import pytest
import yaml

from automation_engine.core.parser import WorkflowParser, to_camel, to_snake
from automation_engine.exceptions import WorkflowParseError, WorkflowValidationError
from automation_engine.models.workflow import ErrorHandling, TriggerType, WorkflowSettings, WorkflowStatus


YAML_WORKFLOW = """
workflow:
  name: Nightly Report
  trigger_type: scheduled
  trigger_config:
    cron: "0 2 * * *"
  variables:
    recipients: [ops@example.com]
  nodes:
    - id: start
      type: trigger
    - id: notify
      type: email
      name: Send report
      position: {x: 120, y: 40}
      config:
        to: ops@example.com
        subject: Report
  edges:
    - from: start
      to: notify
  settings:
    retry_attempts: 1
    error_handling: continue
"""


@pytest.fixture
def parser():
    return WorkflowParser()


class TestParse:
    """解析各种来源"""

    def test_parse_yaml_string(self, parser):
        workflow = parser.parse(YAML_WORKFLOW)

        assert workflow.name == "Nightly Report"
        assert workflow.trigger_type == TriggerType.SCHEDULED
        assert workflow.trigger_config == {"cron": "0 2 * * *"}
        assert [n.id for n in workflow.nodes] == ["start", "notify"]
        assert workflow.nodes[1].position.x == 120
        assert workflow.edges[0].source == "start"
        assert workflow.edges[0].target == "notify"
        assert workflow.settings.retry_attempts == 1
        assert workflow.settings.error_handling == ErrorHandling.CONTINUE

    def test_parse_camel_case_dict(self, parser, sample_workflow):
        workflow = parser.parse(sample_workflow)

        assert workflow.metadata.created_by == "alice"
        assert workflow.edges[1].source_handle == "true"
        assert workflow.settings.retry_delay == 0
        assert workflow.nodes[0].name == "Start"
        assert workflow.nodes[1].name == "check"

    def test_config_keys_kept_verbatim(self, parser, workflow_factory):
        definition = workflow_factory([{"id": "a", "type": "action", "config": {"assign": {"someKey": 1}}}])

        workflow = parser.parse(definition)

        assert workflow.nodes[1].config == {"assign": {"someKey": 1}}

    def test_parse_files(self, parser, tmp_path, sample_workflow):
        yaml_file = tmp_path / "flow.yaml"
        yaml_file.write_text(YAML_WORKFLOW, encoding="utf-8")
        json_file = tmp_path / "flow.json"
        json_file.write_text(json.dumps(sample_workflow), encoding="utf-8")

        assert parser.parse(yaml_file).name == "Nightly Report"
        assert parser.parse(str(json_file)).name == "Order Review"

    def test_unsupported_file_format(self, parser, tmp_path):
        path = tmp_path / "flow.txt"
        path.write_text("name: x", encoding="utf-8")

        with pytest.raises(WorkflowParseError, match="Unsupported file format"):
            parser.parse_file(path)

    def test_malformed_yaml(self, parser):
        with pytest.raises(WorkflowParseError):
            parser.parse("name: [unclosed\nnodes: {")

    def test_not_a_mapping(self, parser):
        with pytest.raises(WorkflowParseError):
            parser.parse("- just\n- a list\n")


class TestParseErrors:
    """结构错误全部收集"""

    def test_errors_collected(self, parser):
        with pytest.raises(WorkflowValidationError) as exc_info:
            parser.parse({
                "name": "Broken",
                "status": "sleeping",
                "nodes": [{"type": "trigger"}, {"id": "x"}],
                "edges": [{"source": "x"}],
                "settings": {"retryAttempts": "many", "errorHandling": "panic"},
            })

        errors = exc_info.value.errors
        assert len(errors) == 6
        assert any("status 'sleeping'" in error for error in errors)
        assert any("settings.retry_attempts" in error for error in errors)


class TestSettings:
    """默认设置"""

    def test_default_settings_applied(self, workflow_factory):
        parser = WorkflowParser(WorkflowSettings(timeout=1000, retry_attempts=5, retry_delay=10))

        workflow = parser.parse(workflow_factory([], retryDelay=20))

        assert workflow.settings.timeout == 1000
        assert workflow.settings.retry_attempts == 5
        assert workflow.settings.retry_delay == 20
        assert parser.default_settings.retry_delay == 10


class TestSerialize:
    """序列化"""

    def test_serialize_camel_case(self, parser, sample_workflow):
        workflow = parser.parse(sample_workflow)

        data = parser.serialize(workflow)

        assert data["triggerType"] == "manual"
        assert data["settings"]["retryAttempts"] == 0
        assert data["metadata"]["createdBy"] == "alice"
        assert data["edges"][2]["sourceHandle"] == "false"

    def test_serialized_form_parses_back(self, parser, sample_workflow):
        workflow = parser.parse(sample_workflow)

        again = parser.parse(parser.serialize(workflow))

        assert again.id == workflow.id
        assert [e.id for e in again.edges] == [e.id for e in workflow.edges]
        assert again.status == WorkflowStatus.DRAFT

    def test_dump_yaml(self, parser, sample_workflow):
        text = parser.dump(parser.parse(sample_workflow), "yaml")

        assert yaml.safe_load(text)["name"] == "Order Review"
        with pytest.raises(WorkflowParseError):
            parser.dump(parser.parse(sample_workflow), "xml")


def test_key_conversion():
    assert to_snake("retryAttempts") == "retry_attempts"
    assert to_snake("already_snake") == "already_snake"
    assert to_camel("source_handle") == "sourceHandle"
