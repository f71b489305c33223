"""Main CLI application entry point."""

import sys
from typing import Optional
import typer
from rich.console import Console

from .commands import (
    config_command,
    probe_command,
    status_command,
)

# Create Typer app
app = typer.Typer(
    name="tradewire",
    help="tradewire - Resilient transport for broker REST APIs",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Rich console for output
console = Console()


@app.command(name="probe")
def probe(
    path: str = typer.Argument(
        ...,
        help="Request path, e.g. /v2/clock",
    ),
    method: str = typer.Option(
        "GET",
        "--method", "-X",
        help="HTTP method",
    ),
    workers: Optional[int] = typer.Option(
        None,
        "--workers", "-w",
        min=1,
        help="Concurrent workers (default from config)",
    ),
    requests_per_worker: int = typer.Option(
        10,
        "--requests", "-n",
        min=0,
        help="Requests sent by each worker",
    ),
    data: bool = typer.Option(
        False,
        "--data",
        help="Send to the market data URL",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Overall deadline in seconds",
    ),
    config: Optional[str] = typer.Option(
        None,
        "--config", "-c",
        help="Path to configuration file",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable verbose output with technical details",
    ),
):
    """
    Probe an endpoint from several concurrent workers.

    Each worker owns its own transport; all of them share one retry engine,
    rate limiter and circuit breaker.
    """
    probe_command(
        path=path,
        method=method,
        workers=workers,
        requests_per_worker=requests_per_worker,
        use_data_url=data,
        timeout=timeout,
        config_path=config,
        verbose=verbose,
        console=console,
    )


@app.command(name="status")
def status(
    config: Optional[str] = typer.Option(
        None,
        "--config", "-c",
        help="Path to configuration file",
    ),
):
    """Show retry, rate limit and circuit breaker settings."""
    status_command(config_path=config, console=console)


@app.command(name="config")
def config_cmd(
    init: bool = typer.Option(
        False,
        "--init",
        help="Create default configuration file",
    ),
    path: Optional[str] = typer.Option(
        None,
        "--path",
        help="Configuration file path",
    ),
    show: bool = typer.Option(
        False,
        "--show",
        help="Show current configuration",
    ),
):
    """
    Manage configuration.

    Create or view configuration files.
    """
    config_command(
        init=init,
        path=path,
        show=show,
        console=console,
    )


def main():
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
