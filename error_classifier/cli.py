"""cli.py: command-line entry point for the error classifier.

Uses **Click** for command parsing and **Rich** for output.

Usage examples::

    error-classifier classify --status 429
    error-classifier classify --status 500 --message "connection refused" --json
    error-classifier health
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.table import Table

from error_classifier import __version__
from error_classifier.config import ClassifierConfig, load_config
from error_classifier.schema import Classification, HealthReport
from error_classifier.service import ErrorClassificationService

console = Console()


# ── formatting helpers ─────────────────────────────────────────────


def format_confidence(confidence: float) -> str:
    """Format *confidence* (0.0-1.0) as a coloured percentage."""
    pct = confidence * 100
    if pct >= 85:
        return f"[green]{pct:.0f}%[/green]"
    if pct >= 60:
        return f"[yellow]{pct:.0f}%[/yellow]"
    return f"[red]{pct:.0f}%[/red]"


def classification_table(result: Classification) -> Table:
    table = Table(title="Error Classification", show_header=False)
    table.add_column("Field", style="bold cyan")
    table.add_column("Value")
    table.add_row("Classification", result.classification)
    table.add_row("Action", result.action.value)
    table.add_row("Confidence", format_confidence(result.confidence))
    table.add_row(
        "Max retries",
        str(result.max_retries) if result.max_retries is not None else "-",
    )
    if result.delay_seconds is not None:
        table.add_row("Delay", f"{result.delay_seconds:g}s")
    table.add_row("Learning", "yes" if result.learning_enabled else "no")
    table.add_row("Source", result.model_source.value)
    return table


def health_table(report: HealthReport) -> Table:
    table = Table(title="Classifier Health", show_header=False)
    table.add_column("Field", style="bold cyan")
    table.add_column("Value")
    table.add_row("Mode", report.mode.value)
    table.add_row("Breaker", f"{report.breaker_state.value} ({report.breaker_failures} failures)")
    table.add_row("Cache size", str(report.cache_size))
    table.add_row("Queue size", str(report.queue_size))
    file_style = "green" if report.file_count_healthy else "red"
    table.add_row("Training files", f"[{file_style}]{report.file_count}[/{file_style}]")
    table.add_row("Training path", report.training_data_path)
    return table


# ── async runners ──────────────────────────────────────────────────


async def _classify(config: ClassifierConfig, context: Dict[str, Any]) -> Classification:
    async with ErrorClassificationService(config) as service:
        return await service.classify(context)


async def _health(config: ClassifierConfig) -> HealthReport:
    async with ErrorClassificationService(config) as service:
        return await service.health()


# ── Click group ────────────────────────────────────────────────────


@click.group()
@click.version_option(version=__version__, prog_name="error-classifier")
@click.option(
    "--config",
    "config_path",
    default=None,
    envvar="ERROR_CLASSIFIER_CONFIG",
    help="Path to a YAML config file.",
    type=click.Path(),
)
@click.option(
    "--no-remote",
    is_flag=True,
    default=False,
    help="Use the decision tree only; never call the remote classifier.",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], no_remote: bool) -> None:
    """Classify transport/application errors and advise on retries."""
    ctx.ensure_object(dict)
    try:
        config = load_config(config_path)
    except Exception as exc:
        raise click.ClickException(f"Invalid configuration: {exc}") from exc
    if no_remote:
        config = replace(config, remote=replace(config.remote, enabled=False))
    ctx.obj["config"] = config


@cli.command()
@click.option("--status", "-s", type=int, default=None, help="HTTP status code.")
@click.option("--message", "-m", default=None, help="Error message text.")
@click.option("--source", default=None, help="Calling system.")
@click.option("--target", default=None, help="Called system.")
@click.option("--retry-count", type=int, default=None, help="Retries already made.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON.")
@click.pass_context
def classify(
    ctx: click.Context,
    status: Optional[int],
    message: Optional[str],
    source: Optional[str],
    target: Optional[str],
    retry_count: Optional[int],
    as_json: bool,
) -> None:
    """Classify one error."""
    context = {
        "httpStatus": status,
        "errorMessage": message,
        "sourceSystem": source,
        "targetSystem": target,
        "retryCount": retry_count,
    }
    result = asyncio.run(
        _classify(ctx.obj["config"], {k: v for k, v in context.items() if v is not None})
    )
    if as_json:
        click.echo(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2))
    else:
        console.print(classification_table(result))


@cli.command()
@click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON.")
@click.pass_context
def health(ctx: click.Context, as_json: bool) -> None:
    """Show the classifier's resilience state."""
    report = asyncio.run(_health(ctx.obj["config"]))
    if as_json:
        click.echo(report.model_dump_json(indent=2))
    else:
        console.print(health_table(report))


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
