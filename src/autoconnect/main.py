"""Main entry point for the autoconnect system."""

import argparse
import asyncio
import signal
import sys
from typing import List, Optional

import uvicorn
from rich.table import Table

from autoconnect.adapters import get_adapter
from autoconnect.core import AutomationController, LogBus, RunResult, WorkflowStep, playwright_session
from autoconnect.core.errors import AlreadyRunningError, ConfigurationError
from autoconnect.gateway import create_app
from autoconnect.utils import AutomationConfig, config, console, create_progress, log

_STEP_LABELS = {
    WorkflowStep.IDLE: "Idle",
    WorkflowStep.LOGGING_IN: "Logging in",
    WorkflowStep.NAVIGATING: "Opening suggestions",
    WorkflowStep.SCANNING: "Scanning list",
    WorkflowStep.CONNECTING: "Connecting",
    WorkflowStep.COMPLETED: "Completed",
    WorkflowStep.ERROR: "Stopped",
}


def build_controller(log_bus: LogBus, headless: Optional[bool] = None) -> AutomationController:
    """Wire a controller to the Playwright driver and the LinkedIn adapter."""
    return AutomationController(
        log_bus=log_bus,
        driver_factory=playwright_session,
        adapter=get_adapter("linkedin"),
        browser_options=config.browser_options(headless=headless),
        artifacts_dir=config.artifacts_dir,
    )


async def run_automation(run_config: AutomationConfig) -> Optional[RunResult]:
    """
    Run the workflow once in the terminal with a live progress bar.

    Args:
        run_config: Settings for this run

    Returns:
        RunResult, or None when the run could not start
    """
    log_bus = LogBus(capacity=config.log_buffer_size)
    controller = build_controller(log_bus, headless=run_config.headless)

    console.print("\n[bold blue]🚀 Starting LinkedIn automation[/bold blue]")
    console.print(f"[bold]Max connections:[/bold] {run_config.max_connections}")
    console.print(f"[bold]Min mutual connections:[/bold] {run_config.min_mutual_connections}\n")

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, lambda: asyncio.ensure_future(controller.stop()))
    except NotImplementedError:
        # Windows event loops do not support signal handlers
        pass

    try:
        with create_progress() as progress:
            task = progress.add_task(_STEP_LABELS[WorkflowStep.IDLE], total=run_config.max_connections)

            def on_status(state):
                progress.update(
                    task,
                    completed=state.progress.connections_sent,
                    description=_STEP_LABELS[state.current_step],
                )

            controller.on_status_change(on_status)
            return await controller.start(run_config)
    except (AlreadyRunningError, ConfigurationError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return None
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except NotImplementedError:
            pass


def show_summary(result: Optional[RunResult]):
    """Show summary of a finished run."""
    if not result:
        return

    state = result.status
    progress = state.progress

    console.print("\n[bold cyan]═══ Execution Summary ═══[/bold cyan]\n")

    table = Table(show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Status", "✅ completed" if result.success else ("⏹ stopped" if result.cancelled else "❌ error"))
    table.add_row("Candidates found", str(progress.candidates_discovered))
    table.add_row("Evaluated", str(progress.candidates_evaluated))
    table.add_row("Connections sent", f"{progress.connections_sent}/{progress.max_connections}")
    table.add_row("Skipped", str(progress.skipped))
    table.add_row("Success rate", f"{progress.success_rate:.1f}%")
    table.add_row("Duration", f"{state.duration_seconds() or 0:.1f}s")
    if result.error:
        table.add_row("Last error", result.error)

    console.print(table)


def show_config(run_config: AutomationConfig):
    """Print the effective configuration with the password hidden."""
    table = Table(title="Effective Configuration", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in run_config.redacted().items():
        table.add_row(key, str(value))

    options = config.browser_options(headless=run_config.headless)
    table.add_row("browser_type", options.browser_type)
    table.add_row("user_data_dir", str(options.user_data_dir))
    table.add_row("artifacts_dir", str(config.artifacts_dir))

    console.print(table)


def validate_config(run_config: AutomationConfig) -> bool:
    """Print validation results; True when the configuration is usable."""
    errors = run_config.validate_settings()
    if not errors:
        console.print("[green]✓ Configuration is valid[/green]")
        return True

    console.print("[red]✗ Configuration is invalid:[/red]")
    for error in errors:
        console.print(f"  • {error}")
    return False


def serve(host: str, port: int, headless: Optional[bool] = None):
    """Run the dashboard API."""
    log_bus = LogBus(capacity=config.log_buffer_size)
    controller = build_controller(log_bus, headless=headless)
    app = create_app(
        controller,
        log_bus,
        lambda: config.automation_config(headless=headless),
    )
    console.print(f"[bold blue]Dashboard API on http://{host}:{port}/api[/bold blue]")
    uvicorn.run(app, host=host, port=port, log_level=config.log_level.lower())


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="autoconnect - LinkedIn connection automation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run once in the terminal
  python -m autoconnect --run --max-connections 20 --min-mutual 5

  # Serve the dashboard API
  python -m autoconnect --serve --port 8000

  # Check settings from .env and config/automation.yaml
  python -m autoconnect --validate-config
  python -m autoconnect --show-config
        """
    )

    # Commands
    parser.add_argument("--run", action="store_true", help="Run the automation once")
    parser.add_argument("--serve", action="store_true", help="Serve the dashboard API")
    parser.add_argument("--validate-config", action="store_true", help="Validate configuration and exit")
    parser.add_argument("--show-config", action="store_true", help="Show effective configuration")

    # Optional parameters
    parser.add_argument("--headless", action="store_true", default=None, help="Run in headless mode")
    parser.add_argument("--max-connections", type=int, help="Maximum connection requests to send")
    parser.add_argument("--min-mutual", type=int, help="Minimum mutual connections required")
    parser.add_argument("--host", type=str, default=config.dashboard_host, help="Dashboard host")
    parser.add_argument("--port", type=int, default=config.dashboard_port, help="Dashboard port")

    args = parser.parse_args(argv)

    run_config = config.automation_config(
        headless=args.headless,
        max_connections=args.max_connections,
        min_mutual_connections=args.min_mutual,
    )

    if args.show_config:
        show_config(run_config)
        return

    if args.validate_config:
        sys.exit(0 if validate_config(run_config) else 1)

    try:
        if args.serve:
            serve(args.host, args.port, headless=args.headless)
        elif args.run:
            if not validate_config(run_config):
                sys.exit(1)
            result = asyncio.run(run_automation(run_config))
            show_summary(result)
            if not result or not result.success:
                sys.exit(1)
        else:
            parser.print_help()
            return

    except KeyboardInterrupt:
        console.print("\n[yellow]⚠️  Interrupted by user[/yellow]")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n[red]❌ Error: {e}[/red]")
        log.exception("Fatal error")
        sys.exit(1)


if __name__ == "__main__":
    main()
