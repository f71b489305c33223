"""CLI command implementations."""

from typing import Optional
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from ...application.commands.run_workers import RunWorkersCommand, WorkerGroupReport
from ...infrastructure.config.config_loader import ConfigLoader
from ...infrastructure.di.container import DIContainer
from ...infrastructure.presentation.error_presenter import ErrorPresenter
from ...infrastructure.resilience import CancellationToken, RetryEngine
from ...infrastructure.transport import HttpRequest


def _print_engine_status(engine: RetryEngine, console: Console) -> None:
    limiter = engine.get_rate_limit_status()
    console.print("\n[bold]Rate Limiter:[/bold]")
    console.print(f"  Tokens: {limiter.tokens:.2f} / {limiter.max_tokens:.0f}")
    console.print(f"  Refill rate: {limiter.refill_rate:.3f} tokens/s")

    breaker = engine.get_circuit_breaker_status()
    console.print("\n[bold]Circuit Breaker:[/bold]")
    if breaker is None:
        console.print("  Disabled")
        return

    color = {"closed": "green", "half_open": "yellow", "open": "red"}[breaker.state.value]
    console.print(f"  State: [{color}]{breaker.state.value}[/{color}]")
    console.print(f"  Failures: {breaker.failure_count}")
    console.print(f"  Half-open successes: {breaker.success_count}")
    console.print(f"  Can execute: {breaker.can_execute}")


def _print_report(report: WorkerGroupReport, console: Console) -> None:
    table = Table(title="Workers")
    table.add_column("Worker", style="cyan")
    table.add_column("Succeeded", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Errors")
    table.add_column("Time (s)", justify="right")

    for worker in report.workers:
        errors = ", ".join(f"{name} x{count}" for name, count in sorted(worker.errors.items()))
        if worker.cancelled:
            errors = f"{errors} (cancelled)".strip()
        table.add_row(
            worker.worker_id,
            str(worker.successes),
            str(worker.failures),
            errors or "-",
            f"{worker.elapsed_seconds:.2f}",
        )

    console.print(table)
    console.print(
        f"\n[bold]Total:[/bold] {report.successes} succeeded, "
        f"{report.failures} failed in {report.elapsed_seconds:.2f}s"
    )


def probe_command(
    path: str,
    method: str,
    workers: Optional[int],
    requests_per_worker: int,
    use_data_url: bool,
    timeout: Optional[float],
    config_path: Optional[str],
    verbose: bool,
    console: Console,
):
    """
    Execute probe command.

    Args:
        path: Request path, e.g. /v2/clock
        method: HTTP method
        workers: Worker count (config value if None)
        requests_per_worker: Requests each worker sends
        use_data_url: Send to the market data URL instead of the trading URL
        timeout: Overall deadline in seconds
        config_path: Config file path
        verbose: Verbose output
        console: Rich console
    """
    console.print(Panel.fit(
        "[bold]tradewire Probe[/bold]",
        border_style="blue"
    ))

    try:
        container = DIContainer.create(config_path)
    except Exception as e:
        console.print(f"\n{ErrorPresenter.present(e, verbose=verbose)}")
        raise SystemExit(1)

    command = RunWorkersCommand(
        requests=[HttpRequest(method=method.upper(), path=path, use_data_url=use_data_url)],
        num_workers=workers or container.config.workers.count,
        requests_per_worker=requests_per_worker,
    )
    cancel_token = CancellationToken(timeout=timeout)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task(
            f"Probing {path} with {command.num_workers} workers...", total=None
        )

        try:
            report = container.worker_group.handle(command, cancel_token=cancel_token)
            progress.update(task, description="[green]Probe complete!")

        except KeyboardInterrupt:
            cancel_token.cancel("interrupted")
            progress.update(task, description="[yellow]Probe cancelled")
            console.print(f"\n{ErrorPresenter.present(KeyboardInterrupt(), verbose=verbose)}")
            raise SystemExit(1)

        except Exception as e:
            progress.update(task, description="[red]Probe failed!")
            console.print(f"\n{ErrorPresenter.present(e, verbose=verbose)}")
            raise SystemExit(1)

        finally:
            container.close()

    console.print("")
    _print_report(report, console)
    _print_engine_status(container.engine, console)

    if report.failures:
        raise SystemExit(1)


def status_command(config_path: Optional[str], console: Console):
    """
    Execute status command.

    Shows the effective retry, rate limit and circuit breaker settings.
    """
    console.print(Panel.fit(
        "[bold]tradewire Status[/bold]",
        border_style="blue"
    ))

    try:
        container = DIContainer.create(config_path)
    except Exception as e:
        console.print(f"\n{ErrorPresenter.present(e)}")
        raise SystemExit(1)

    retry = container.engine.config
    console.print("\n[bold]Retry:[/bold]")
    console.print(f"  Max attempts: {retry.max_attempts}")
    console.print(f"  Backoff: {retry.base_delay}s x{retry.backoff_multiplier} (cap {retry.max_delay}s)")
    console.print(f"  Jitter: {retry.jitter_fraction}")
    console.print(f"\n[bold]Transport:[/bold] {container.config.transport.base_url}")

    _print_engine_status(container.engine, console)


def config_command(
    init: bool,
    path: Optional[str],
    show: bool,
    console: Console,
):
    """
    Execute config command.

    Args:
        init: Create default config
        path: Config file path
        show: Show current config
        console: Rich console
    """
    console.print(Panel.fit(
        "[bold]tradewire Configuration[/bold]",
        border_style="blue"
    ))

    if init:
        try:
            config_path = ConfigLoader.create_default_config(path)
            console.print(f"\n[green]Configuration file created: {config_path}[/green]")
        except Exception as e:
            console.print(f"\n{ErrorPresenter.present(e)}")
            raise SystemExit(1)

    elif show:
        try:
            config = ConfigLoader.load(path)
            console.print("\n[bold]Current Configuration:[/bold]")
            console.print(config.to_yaml(), markup=False)
        except Exception as e:
            console.print(f"\n{ErrorPresenter.present(e)}")
            raise SystemExit(1)

    else:
        config_info = ConfigLoader.get_config_info()

        console.print("\n[bold]Configuration Files:[/bold]")
        if config_info["existing_configs"]:
            for cfg in config_info["existing_configs"]:
                console.print(f"  [green]{cfg}[/green]")
        else:
            console.print("  No configuration files found")

        console.print("\n[bold]Environment Overrides:[/bold]")
        if config_info["env_overrides"]:
            for env_var in config_info["env_overrides"]:
                console.print(f"  {env_var}")
        else:
            console.print("  None")

        console.print("\n[bold]Default Locations:[/bold]")
        for default_path in config_info["default_paths"]:
            console.print(f"  {default_path}")
