"""
FlowForge CLI
"""
import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Dict

import click
import yaml
from pydantic import ValidationError

from .config import ScheduleDefinition, load_settings
from .exceptions import FlowExecutionError, FlowForgeError
from .execution.executor import FlowExecutor
from .execution.registry import MethodRegistry
from .models.execution import TriggerSource
from .models.flow import Flow
from .runtime import configure_logging, run_scheduler
from .scheduling.calculator import next_cron_time
from .scheduling.cron import to_cron_expression
from .scheduling.dynamic_inputs import resolve_dynamic_inputs
from .storage.repository import InMemoryExecutionRepository


def _load_document(path: str) -> Dict[str, Any]:
    with open(path, 'r', encoding='utf-8') as f:
        if path.endswith('.yaml') or path.endswith('.yml'):
            document = yaml.safe_load(f)
        else:
            document = json.load(f)
    if not isinstance(document, dict):
        raise click.ClickException(f"{path} does not contain a mapping")
    return document


def _parse_datetime(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"not an ISO-8601 datetime: {value}") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_inputs(pairs) -> Dict[str, Any]:
    inputs = {}
    for pair in pairs:
        key, sep, value = pair.partition('=')
        if not sep:
            raise click.BadParameter(f"expected KEY=VALUE, got {pair!r}")
        inputs[key] = value
    return inputs


@click.group()
@click.option('--log-level', default=None, help='Log level (defaults to LOG_LEVEL or INFO)')
@click.pass_context
def cli(ctx, log_level):
    """FlowForge scheduler CLI"""
    settings = load_settings(log_level=log_level)
    configure_logging(settings.log_level)
    ctx.obj = settings


@cli.command()
@click.option('--database-url', default=None, help='SQLAlchemy async database URL')
@click.option('--module', 'modules', multiple=True, help='Node method module (repeatable)')
@click.pass_obj
def serve(settings, database_url, modules):
    """Run the scheduler daemon"""
    if database_url:
        settings = settings.model_copy(update={"database_url": database_url})
    if modules:
        settings = settings.model_copy(update={"method_modules": list(settings.method_modules) + list(modules)})

    click.echo("Starting scheduler")
    asyncio.run(run_scheduler(settings))


@cli.command()
@click.argument('schedule_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--count', default=5, show_default=True, help='Number of upcoming runs to show')
@click.option('--from', 'start', default=None, help='Reference time (ISO-8601, default now)')
@click.pass_obj
def preview(settings, schedule_file, count, start):
    """Show the cron expression and upcoming runs of a schedule file"""
    document = _load_document(schedule_file)
    try:
        definition = ScheduleDefinition.model_validate(document.get("schedule", document))
    except ValidationError as e:
        raise click.ClickException(f"Invalid schedule definition:\n{e}")

    schedule = definition.to_schedule(settings.default_timezone)
    try:
        expression = to_cron_expression(schedule)
        moment = _parse_datetime(start) if start else datetime.now(timezone.utc)
        click.echo(f"cron: {expression} ({schedule.timezone})")
        for _ in range(count):
            moment = next_cron_time(expression, moment, schedule.timezone)
            click.echo(moment.isoformat())
    except FlowForgeError as e:
        raise click.ClickException(str(e))


@cli.command()
@click.argument('template')
@click.option('--timezone', 'tz_name', default=None, help='IANA timezone (default FLOWFORGE_DEFAULT_TIMEZONE)')
@click.option('--now', default=None, help='Reference time (ISO-8601, default now)')
@click.option('--last-execution', default=None, help='Previous run time (ISO-8601)')
@click.pass_obj
def resolve(settings, template, tz_name, now, last_execution):
    """Resolve an input template (JSON object or path to a YAML/JSON file)"""
    if template.lstrip().startswith('{'):
        try:
            input_data = json.loads(template)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"invalid JSON: {e}")
    else:
        input_data = _load_document(template)

    context = {
        "timezone": tz_name or settings.default_timezone,
        "last_execution": _parse_datetime(last_execution) if last_execution else None,
    }
    try:
        resolved = resolve_dynamic_inputs(
            input_data, context, now=_parse_datetime(now) if now else None
        )
    except FlowForgeError as e:
        raise click.ClickException(str(e))
    click.echo(json.dumps(resolved, indent=2, default=str))


@cli.command()
@click.argument('flow_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--input', '-i', 'input_pairs', multiple=True, help='Global input KEY=VALUE (repeatable)')
@click.option('--module', '-m', 'modules', multiple=True, help='Node method module (repeatable)')
@click.option('--user', 'user_id', default=None, help='User the run is attributed to')
@click.pass_obj
def run(settings, flow_file, input_pairs, modules, user_id):
    """Execute a flow file once"""
    flow = Flow.from_dict(_load_document(flow_file))
    inputs = _parse_inputs(input_pairs)

    registry = MethodRegistry()
    registry.load_plugins(list(settings.method_modules) + list(modules))
    executor = FlowExecutor(InMemoryExecutionRepository(), registry)

    async def _run():
        return await executor.execute_flow(
            flow, inputs, user_id=user_id or flow.user_id, triggered_by=TriggerSource.MANUAL
        )

    try:
        execution = asyncio.run(_run())
    except FlowExecutionError as e:
        click.echo(json.dumps(e.execution.to_dict(), indent=2, default=str))
        raise click.ClickException(str(e))
    except FlowForgeError as e:
        raise click.ClickException(str(e))

    click.echo(json.dumps(execution.to_dict(), indent=2, default=str))


def main():
    """Main entry point"""
    cli()


if __name__ == '__main__':
    main()
