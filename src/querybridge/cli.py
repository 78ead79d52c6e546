#!/usr/bin/env python3
"""Command line interface for running query batches."""
import json
import pathlib
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table as RichTable
from typing_extensions import Annotated

from querybridge import BatchRequest, QueryBridge
from querybridge.common.logger import configure_logging
from querybridge.common.settings import settings
from querybridge.normalization.table import Table

app = typer.Typer(
    name="querybridge",
    help="Run query batches against wide-column, metrics and object-storage datasources.",
    no_args_is_help=True,
    add_completion=False,
)

console = Console()

ConfigOption = Annotated[Optional[pathlib.Path], typer.Option("--config", help="Path to datasource config YAML")]


@app.callback()
def global_callback(
    env: Annotated[Optional[str], typer.Option("--env", "-e", help="Environment name (e.g. dev, prod).")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
):
    """
    QueryBridge CLI Entry Point.
    """
    if env:
        settings.configure_env(env)
    if verbose:
        configure_logging(level="DEBUG")


@app.command()
def run(
    queries_file: Annotated[pathlib.Path, typer.Argument(help="JSON file holding a batch request")],
    config: ConfigOption = None,
    timeout: Annotated[Optional[float], typer.Option(help="Batch deadline in seconds")] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the raw response as JSON")] = False,
):
    """
    Execute a batch of queries and print one table per query.
    """
    config = config or pathlib.Path(settings.datasource_config_path)
    if not queries_file.exists():
        console.print(f"[bold red]Batch file not found:[/bold red] {queries_file}")
        raise typer.Exit(code=1)

    payload = json.loads(queries_file.read_text(encoding="utf-8"))
    if isinstance(payload, list):
        payload = {"queries": payload}
    request = BatchRequest.model_validate(payload)
    if timeout is not None:
        request = request.model_copy(update={"timeout_sec": timeout})

    with QueryBridge(ds_config_path=config) as bridge:
        response = bridge.query_data(request)

    if as_json:
        console.print_json(response.model_dump_json())
        raise typer.Exit(code=1 if response.errors else 0)

    for ref_id, result in response.results.items():
        if result.error is not None:
            hint = " [yellow](retryable)[/yellow]" if result.error.is_retryable else ""
            console.print(
                f"[bold red]{ref_id}[/bold red] {result.error.error_code.value}: {result.error.message}{hint}"
            )
            continue
        console.print(render_table(ref_id, result.table))

    if response.errors:
        raise typer.Exit(code=1)


@app.command()
def datasources(config: ConfigOption = None):
    """
    List configured datasources.
    """
    config = config or pathlib.Path(settings.datasource_config_path)
    with QueryBridge(ds_config_path=config) as bridge:
        listing = RichTable(title="Datasources")
        listing.add_column("ID", style="cyan")
        listing.add_column("Type")
        listing.add_column("Host")
        for ds in bridge.list_datasources():
            listing.add_row(ds.id, ds.type, ds.host or "-")
    console.print(listing)


def render_table(title: str, table: Table) -> RichTable:
    rendered = RichTable(title=f"{title} ({table.row_count} rows)")
    for column in table.columns:
        rendered.add_column(f"{column.name}\n[dim]{column.kind.value}[/dim]")
    for row in table.to_row_dicts():
        rendered.add_row(*["" if value is None else str(value) for value in row.values()])
    return rendered


if __name__ == "__main__":
    app()
