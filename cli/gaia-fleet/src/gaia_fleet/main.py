# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: MIT
#
# Permission is hereby granted, free of charge, to any person obtaining a
# copy of this software and associated documentation files (the "Software"),
# to deal in the Software without restriction, including without limitation
# the rights to use, copy, modify, merge, publish, distribute, sublicense,
# and/or sell copies of the Software, and to permit persons to whom the
# Software is furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in
# all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL
# THE AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING
# FROM, OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER
# DEALINGS IN THE SOFTWARE.

from typing import Annotated, Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from gaia_fleet.config.loader import resolve_fleet_config, save_fleet_config
from gaia_fleet.config.models import FleetConfig
from gaia_fleet.core.orchestrator import Orchestrator, ProvisionSummary
from gaia_fleet.core.selector import ModelSelector
from gaia_fleet.core.store import NodeStore
from gaia_fleet.errors import ConfigurationError, FleetError, PreflightError
from gaia_fleet.ui.menu import ManagementMenu, render_status_table
from gaia_fleet.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

# Exit codes
EXIT_SUCCESS = 0
EXIT_VALIDATION_ERROR = 1
EXIT_SYSTEM_ERROR = 2

# Commands that change node state and therefore write to the install log
_LOGGED_COMMANDS = {'provision', 'start', 'stop', 'restart', 'menu'}

console = Console()

app = typer.Typer(
    help='gaia-fleet: Provision and manage multiple GaiaNet nodes on a single host.',
    no_args_is_help=True,
    add_completion=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


class AppContext:
    """Context object to share configuration across commands."""

    def __init__(self, config: FleetConfig):
        self.config = config
        self.verbose = False
        self._orchestrator: Optional[Orchestrator] = None

    @property
    def orchestrator(self) -> Orchestrator:
        if self._orchestrator is None:
            self._orchestrator = build_orchestrator(self.config)
        return self._orchestrator


def build_orchestrator(config: FleetConfig) -> Orchestrator:
    return Orchestrator(config)


@app.callback()
def main_callback(
    ctx: typer.Context,
    config_file: Annotated[
        Optional[str], typer.Option('-c', '--config', help='YAML fleet configuration file.')
    ] = None,
    install_root: Annotated[
        Optional[str], typer.Option('--install-root', help='Directory holding the node directories and install log.')
    ] = None,
    base_port: Annotated[
        Optional[int], typer.Option('--base-port', help='Node i listens on base-port + i.')
    ] = None,
    advisory: Annotated[
        Optional[bool],
        typer.Option(
            '--advisory/--strict', help='Treat memory and disk shortfalls as advisories instead of failures.'
        ),
    ] = None,
    supervisor: Annotated[
        Optional[str], typer.Option('--supervisor', help="Process supervisor: 'auto', 'local' or 'screen'.")
    ] = None,
    verbose: Annotated[
        bool, typer.Option('-v', '--verbose', help='Enable verbose output including debug information.')
    ] = False,
):
    """
    Main callback that runs before any command.
    Resolves the fleet configuration once and configures logging.
    """
    mode = None if advisory is None else ('advisory' if advisory else 'strict')
    try:
        config = resolve_fleet_config(
            config_file,
            install_root=install_root,
            base_port=base_port,
            mode=mode,
            supervisor=supervisor,
        )
    except ConfigurationError as e:
        typer.echo(f"ERROR: Configuration error: {e}", err=True)
        raise typer.Exit(code=EXIT_VALIDATION_ERROR) from e

    log_file = None
    if ctx.invoked_subcommand in _LOGGED_COMMANDS:
        log_file = str(NodeStore(config.install_root, config.base_port, config.session_prefix).log_file)
    try:
        setup_logging(log_file=log_file, verbose=verbose, fresh=ctx.invoked_subcommand == 'provision')
    except OSError as e:
        typer.echo(f"ERROR: Cannot open install log {log_file}: {e}", err=True)
        raise typer.Exit(code=EXIT_SYSTEM_ERROR) from e

    app_ctx = AppContext(config)
    app_ctx.verbose = verbose
    ctx.obj = app_ctx
    logger.debug(f"Effective configuration: {config.to_dict()}")


def _load_nodes(app_ctx: AppContext) -> Orchestrator:
    """Return an orchestrator bound to the nodes already under the install root."""
    orchestrator = app_ctx.orchestrator
    if not orchestrator.load_existing():
        logger.error(f"No nodes found under {app_ctx.config.install_root}. Run 'gaia-fleet provision' first.")
        raise typer.Exit(code=EXIT_VALIDATION_ERROR)
    return orchestrator


def _run_command(fn, description: str):
    """Run fn, mapping fleet errors to exit codes."""
    try:
        return fn()
    except typer.Exit:
        raise
    except (PreflightError, ConfigurationError) as e:
        logger.error(f"❌ {e}")
        raise typer.Exit(code=EXIT_VALIDATION_ERROR) from e
    except ValueError as e:
        logger.error(str(e))
        raise typer.Exit(code=EXIT_VALIDATION_ERROR) from e
    except FleetError as e:
        logger.error(f"{description} failed: {e}")
        raise typer.Exit(code=EXIT_SYSTEM_ERROR) from e
    except Exception as e:
        logger.error(f"{description} error: {e}")
        raise typer.Exit(code=EXIT_SYSTEM_ERROR) from e


def print_summary(summary: ProvisionSummary) -> None:
    table = Table(title=f"Provisioned nodes ({summary.model.identifier})")
    table.add_column("Node", justify="right")
    table.add_column("Port", justify="right")
    table.add_column("State")
    table.add_column("Error")
    for record in summary.records:
        table.add_row(str(record.index), str(record.port), str(record.state), record.last_error_message or '')
    console.print(table)
    if summary.advisory_nodes is not None and summary.advisory_nodes < summary.requested_nodes:
        console.print(
            f"[yellow]Node count reduced from {summary.requested_nodes} to {summary.advisory_nodes} "
            f"by the preflight advisory[/yellow]"
        )


@app.command()
def provision(
    ctx: typer.Context,
    nodes: Annotated[
        Optional[int], typer.Option('-n', '--nodes', min=1, help='Number of nodes to provision.')
    ] = None,
    model: Annotated[
        Optional[str], typer.Option('-m', '--model', help="Model configuration id (see 'gaia-fleet models').")
    ] = None,
    no_menu: Annotated[
        bool, typer.Option('--no-menu', help='Exit after provisioning instead of opening the management menu.')
    ] = False,
):
    """
    Validate the host, pick a model and bring up the nodes.
    """
    app_ctx: AppContext = ctx.obj
    orchestrator = app_ctx.orchestrator

    summary = _run_command(lambda: orchestrator.provision(node_count=nodes, model_override=model), "Provisioning")
    print_summary(summary)

    if no_menu:
        if not summary.running:
            raise typer.Exit(code=EXIT_SYSTEM_ERROR)
        return

    raise typer.Exit(code=ManagementMenu(orchestrator, console=console).run())


@app.command()
def preflight(ctx: typer.Context):
    """
    Check memory, disk and port availability without touching any node.
    """
    app_ctx: AppContext = ctx.obj
    report = _run_command(app_ctx.orchestrator.preflight, "Preflight")
    if report.advisory:
        console.print(f"[yellow]Advisory: run at most {report.advisory.recommended_nodes} node(s)[/yellow]")
    else:
        console.print("[green]Host passes all preflight checks[/green]")


@app.command()
def profile(ctx: typer.Context):
    """
    Show detected accelerators and the model that would be selected.
    """
    app_ctx: AppContext = ctx.obj
    orchestrator = app_ctx.orchestrator
    host = _run_command(orchestrator.profile, "Hardware detection")
    choice = orchestrator.selector.select(host, app_ctx.config.model)

    table = Table(title="Hardware profile", show_header=False)
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("Accelerators", str(host.accelerator_count))
    table.add_row("Accelerator", host.accelerator_name or '-')
    table.add_row(
        "Accelerator memory", f"{host.accelerator_memory_mb} MB" if host.accelerator_memory_mb is not None else '-'
    )
    table.add_row("CPU cores", str(host.cpu_core_count))
    table.add_row("Selected model", f"{choice.identifier} ({choice.label})")
    console.print(table)


@app.command(name="models")
def list_models():
    """
    List the available model configurations.
    """
    table = Table(title="Model configurations")
    table.add_column("#", justify="right")
    table.add_column("Id")
    table.add_column("Description")
    table.add_column("Config URL", overflow="fold")
    for number, choice in enumerate(ModelSelector().choices(), start=1):
        table.add_row(str(number), choice.identifier, choice.label, choice.url)
    console.print(table)


@app.command()
def config(
    ctx: typer.Context,
    write: Annotated[
        Optional[str], typer.Option('-w', '--write', help='Save the effective configuration to this YAML file.')
    ] = None,
):
    """
    Print the effective configuration, optionally saving it as YAML.
    """
    app_ctx: AppContext = ctx.obj
    console.print(yaml.dump(app_ctx.config.to_dict(), default_flow_style=False, sort_keys=False), markup=False)
    if write:
        save_fleet_config(write, app_ctx.config)


@app.command()
def status(ctx: typer.Context):
    """
    Show the status of every node under the install root.
    """
    orchestrator = _load_nodes(ctx.obj)
    console.print(_run_command(lambda: render_status_table(orchestrator), "Status"))


@app.command()
def start(
    ctx: typer.Context,
    index: Annotated[int, typer.Argument(help='Node number.')],
):
    """
    Start one node.
    """
    orchestrator = _load_nodes(ctx.obj)
    result = _run_command(lambda: orchestrator.start(index), "Start")
    if not result.ok:
        raise typer.Exit(code=EXIT_SYSTEM_ERROR)


@app.command()
def stop(
    ctx: typer.Context,
    index: Annotated[int, typer.Argument(help='Node number.')],
):
    """
    Stop one node.
    """
    orchestrator = _load_nodes(ctx.obj)
    result = _run_command(lambda: orchestrator.stop(index), "Stop")
    if not result.ok:
        raise typer.Exit(code=EXIT_SYSTEM_ERROR)


@app.command()
def restart(ctx: typer.Context):
    """
    Restart every node.
    """
    orchestrator = _load_nodes(ctx.obj)
    results = _run_command(orchestrator.restart_all, "Restart")
    if not all(result.ok for result in results):
        raise typer.Exit(code=EXIT_SYSTEM_ERROR)


@app.command()
def info(
    ctx: typer.Context,
    index: Annotated[int, typer.Argument(help='Node number.')],
):
    """
    Show the node binary's info output for one node.
    """
    orchestrator = _load_nodes(ctx.obj)
    output = _run_command(lambda: orchestrator.info(index), "Info")
    console.print(output or "(no output)", markup=False)


@app.command()
def attach(
    ctx: typer.Context,
    index: Annotated[int, typer.Argument(help='Node number.')],
):
    """
    Attach the terminal to a running node.
    """
    orchestrator = _load_nodes(ctx.obj)
    raise typer.Exit(code=_run_command(lambda: orchestrator.attach(index), "Attach"))


@app.command()
def menu(ctx: typer.Context):
    """
    Open the management menu for the nodes under the install root.
    """
    orchestrator = _load_nodes(ctx.obj)
    raise typer.Exit(code=ManagementMenu(orchestrator, console=console).run())


def cli():
    """Main entry point for the gaia-fleet CLI."""
    app()


if __name__ == '__main__':
    cli()
