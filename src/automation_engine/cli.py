"""
Automation Engine CLI
"""
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, Tuple

import click
import yaml

from .config import Settings, configure_logging
from .core.engine import WorkflowEngine
from .exceptions import WorkflowEngineError, WorkflowValidationError
from .models.execution import ExecutionStatus


def _parse_inputs(pairs: Tuple[str, ...], input_file: str = None) -> Dict[str, Any]:
    """合并 --input-file 与 --input k=v，值按 YAML 标量解析"""
    data: Dict[str, Any] = {}
    if input_file:
        loaded = yaml.safe_load(Path(input_file).read_text(encoding="utf-8"))
        if loaded is not None and not isinstance(loaded, dict):
            raise click.BadParameter("input file must contain a mapping", param_hint="--input-file")
        data.update(loaded or {})

    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got '{pair}'", param_hint="--input")
        data[key.strip()] = yaml.safe_load(value) if value else ""
    return data


def _echo_errors(error: WorkflowEngineError):
    click.secho(f"Error: {error}", fg="red", err=True)
    if isinstance(error, WorkflowValidationError):
        for item in error.errors:
            click.echo(f"  - {item}", err=True)


@click.group()
@click.option('--log-level', default=None, help='Logging level (default: LOG_LEVEL or INFO)')
@click.pass_context
def cli(ctx, log_level):
    """Automation Engine CLI"""
    settings = Settings.from_env()
    configure_logging(log_level or settings.log_level)
    ctx.obj = settings


@cli.command()
@click.argument('workflow_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--input', 'inputs', multiple=True, help='Input variable as key=value (repeatable)')
@click.option('--input-file', type=click.Path(exists=True, dir_okay=False), help='YAML/JSON file with input variables')
@click.pass_obj
def run(settings, workflow_file, inputs, input_file):
    """Run a workflow from file"""
    input_data = _parse_inputs(inputs, input_file)

    async def _run():
        engine = WorkflowEngine(settings=settings)
        workflow = await engine.create_workflow(Path(workflow_file))
        click.echo(f"Created workflow: {workflow.id} ({workflow.name})")
        return await engine.execute_workflow(workflow.id, input_data)

    try:
        execution = asyncio.run(_run())
    except WorkflowEngineError as e:
        _echo_errors(e)
        sys.exit(1)

    click.echo(json.dumps(execution.to_dict(), indent=2, ensure_ascii=False, default=str))
    if execution.status != ExecutionStatus.COMPLETED:
        click.secho(f"Execution {execution.status.value}: {execution.error}", fg="red", err=True)
        sys.exit(1)


@cli.command()
@click.argument('workflow_file', type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def validate(settings, workflow_file):
    """Validate a workflow file without executing it"""
    engine = WorkflowEngine(settings=settings)
    try:
        workflow = engine.parser.parse_file(workflow_file)
        engine.store.validate(workflow)
    except WorkflowEngineError as e:
        _echo_errors(e)
        sys.exit(1)

    click.secho(
        f"Workflow '{workflow.name}' is valid "
        f"({len(workflow.nodes)} nodes, {len(workflow.edges)} edges)",
        fg="green"
    )


@cli.command('node-types')
@click.pass_obj
def node_types(settings):
    """List registered node types"""
    engine = WorkflowEngine(settings=settings)
    for node_type in engine.list_node_types():
        click.echo(f"{node_type.id:<14} {node_type.category.value:<14} {node_type.description}")


@cli.command()
@click.option('--host', default=None, help='Host to bind to')
@click.option('--port', default=None, type=int, help='Port to bind to')
@click.option('--reload', is_flag=True, help='Enable auto-reload')
@click.pass_obj
def serve(settings, host, port, reload):
    """Start the API server"""
    import uvicorn

    host = host or settings.api_host
    port = port or settings.api_port
    reload = reload or settings.api_reload

    click.echo(f"Starting API server on {host}:{port}")
    uvicorn.run(
        "automation_engine.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=settings.log_level.lower()
    )


def main():
    cli()


if __name__ == '__main__':
    main()
