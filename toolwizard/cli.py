"""Command line entry point: list, validate and run tools in the console."""

import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import typer
import yaml

from .engine.config import EngineSettings, load_settings
from .engine.engine import WizardEngine, WizardStatus
from .engine.errors import ToolLoadError, ToolWizardError
from .engine.loader import ToolLoader
from .engine.schema import StepType

logger = logging.getLogger(__name__)

app = typer.Typer(help="Run declarative multi-step tools.")

MAX_TRANSITIONS = 200


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        force=True,
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def _settings(config: Optional[Path], verbose: bool) -> EngineSettings:
    try:
        settings = load_settings(config)
    except ToolWizardError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=2)
    configure_logging(verbose or settings.verbose)
    return settings


def _loader(settings: EngineSettings) -> ToolLoader:
    return ToolLoader(settings.catalog_dir) if settings.catalog_dir else ToolLoader()


def _read_answers(path: Optional[Path]) -> Dict[str, Any]:
    if path is None:
        return {}
    if not path.exists():
        typer.echo(f"Error: answers file not found: {path}", err=True)
        raise typer.Exit(code=2)
    with open(path, 'r') as f:
        answers = yaml.safe_load(f) or {}
    if not isinstance(answers, dict):
        typer.echo("Error: answers file must map step ids to field values", err=True)
        raise typer.Exit(code=2)
    return answers


@app.command('list')
def list_tools(
    config: Optional[Path] = typer.Option(None, help="Path to toolwizard.yaml"),
    verbose: bool = typer.Option(False, '--verbose', '-v'),
):
    """List the tools in the catalog."""
    loader = _loader(_settings(config, verbose))
    tools = loader.list_tools()
    if not tools:
        typer.echo(f"No tools found in {loader.catalog_dir}")
        return
    for tool_id in tools:
        typer.echo(tool_id)


@app.command()
def validate(
    tool_id: str,
    config: Optional[Path] = typer.Option(None, help="Path to toolwizard.yaml"),
    verbose: bool = typer.Option(False, '--verbose', '-v'),
):
    """Load a tool and check its declaration."""
    loader = _loader(_settings(config, verbose))
    try:
        tool = loader.load_tool(tool_id)
    except ToolLoadError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"{tool.id}: {len(tool.steps)} step(s) OK")
    for step in tool.steps:
        following = tool.successor(step)
        typer.echo(f"  {step.id} ({step.type.value}) -> {following.id if following else '-'}")


@app.command()
def run(
    tool_id: str,
    answers: Optional[Path] = typer.Option(None, help="YAML mapping of stepId -> {fieldId: value}"),
    remote: bool = typer.Option(False, help="Fetch the tool definition from the API instead of the catalog"),
    interactive: bool = typer.Option(False, '--interactive', '-i', help="Prompt for fields missing from answers"),
    config: Optional[Path] = typer.Option(None, help="Path to toolwizard.yaml"),
    verbose: bool = typer.Option(False, '--verbose', '-v'),
):
    """Run a tool in the console.

    Answers come from a YAML file, from prompts (--interactive), or both.
    Button actions are chosen per step with a ``_action`` key in that
    step's answers.
    """
    settings = _settings(config, verbose)
    inputs = _read_answers(answers)
    engine = WizardEngine(
        settings.create_backend(),
        loader=None if remote else _loader(settings),
        poll_interval=settings.poll_interval,
    )

    if not engine.load_tool(tool_id):
        typer.echo(f"Error: {engine.session.load_error}", err=True)
        raise typer.Exit(code=1)

    exit_code = drive(engine, inputs, interactive=interactive)
    raise typer.Exit(code=exit_code)


def prompt_fields(engine: WizardEngine, step_id: str) -> None:
    """Ask for every visible field in order; answers may reveal more fields."""
    asked = set()
    while True:
        pending = [view for view in engine.view().fields if view.field.id not in asked]
        if not pending:
            return
        view = pending[0]
        asked.add(view.field.id)

        spec = view.field
        if spec.type == 'checkbox':
            engine.update_field(step_id, spec.id, typer.confirm(spec.label, default=bool(view.value)))
            continue
        if view.options:
            typer.echo(f"{spec.label} options: {', '.join(str(option.value) for option in view.options)}")
        value = typer.prompt(spec.label, default='' if view.value is None else str(view.value), show_default=False)
        if value != '':
            engine.update_field(step_id, spec.id, value)


def drive(engine: WizardEngine, inputs: Dict[str, Any], interactive: bool = False) -> int:
    """Feed answers step by step until the tool completes or stops.

    Returns:
        Process exit code: 0 on completion, 1 otherwise
    """
    for _ in range(MAX_TRANSITIONS):
        if engine.status == WizardStatus.COMPLETED:
            typer.echo("Completed.")
            return 0

        step = engine.current_step
        if step is None:
            typer.echo("Error: no current step", err=True)
            return 1

        typer.echo(f"== {step.title or step.id}")
        if step.description:
            typer.echo(step.description)

        values = dict(inputs.get(step.id) or {})
        action_id = values.pop('_action', None)
        rows = values.pop('rows', None)
        for spec in step.fields:
            if spec.id in values:
                engine.update_field(step.id, spec.id, values[spec.id])
        if rows is not None:
            engine.merge_form_data(step.id, {'rows': rows})
        if interactive and step.id not in inputs:
            prompt_fields(engine, step.id)

        if step.type == StepType.ERROR:
            typer.echo(f"Error: {engine.session.error or step.title}", err=True)
            return 1

        if not engine.advance_step(step.id, action_id):
            view = engine.view()
            for field_id, message in view.validation_errors.items():
                typer.echo(f"  {field_id}: {message}", err=True)
            if view.error:
                typer.echo(f"Error: {view.error}", err=True)
            return 1

        if engine.session.message:
            typer.echo(engine.session.message.message)

        if engine.session.job is not None:
            typer.echo(f"Waiting for job {engine.session.job.action_id}...")
            engine.wait_for_job()
            if engine.session.error and engine.current_step and engine.current_step.id == step.id:
                typer.echo(f"Error: {engine.session.error}", err=True)
                return 1

    logger.error("Stopped after %d transitions", MAX_TRANSITIONS)
    return 1


if __name__ == '__main__':
    app()
