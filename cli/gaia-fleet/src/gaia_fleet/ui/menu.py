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

"""Interactive node management menu."""

from typing import Callable, Optional

from rich.console import Console
from rich.table import Table

from gaia_fleet.config.models import NodeState
from gaia_fleet.core.orchestrator import Orchestrator
from gaia_fleet.utils.logging import get_logger

logger = get_logger(__name__)

MENU_TITLE = "GaiaNet Node Management Menu"
MENU_OPTIONS = [
    ('1', "Check node status"),
    ('2', "Show node info"),
    ('3', "Start a node"),
    ('4', "Stop a node"),
    ('5', "Restart all nodes"),
    ('6', "Attach to a node"),
    ('7', "Exit"),
]
EXIT_CHOICE = '7'

_STATE_STYLES = {
    NodeState.RUNNING: 'bold green',
    NodeState.STOPPED: 'yellow',
}


def render_status_table(orchestrator: Orchestrator) -> Table:
    """Build a status table, querying the supervisor for each node."""
    table = Table(title="GaiaNet nodes")
    table.add_column("Node", justify="right")
    table.add_column("Port", justify="right")
    table.add_column("Status")
    table.add_column("Model")
    table.add_column("Directory")
    table.add_column("Last error")

    for record, status in orchestrator.statuses():
        style = _STATE_STYLES.get(status, '')
        if record.state == NodeState.UNINITIALIZED:
            label = f"[red]{NodeState.UNINITIALIZED}[/red]"
        else:
            label = f"[{style}]{status}[/{style}]"
        table.add_row(
            str(record.index),
            str(record.port),
            label,
            record.model.identifier if record.model else '-',
            str(record.data_dir),
            record.last_error_message or '',
        )
    return table


class ManagementMenu:
    """Menu loop over stdin/stdout.

    Every per-node action asks for an index in 1..N; invalid input is reported
    and the loop continues. Only the exit choice (or end of input) leaves it.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        console: Optional[Console] = None,
        input_fn: Callable[[str], str] = input,
    ):
        self.orchestrator = orchestrator
        self.console = console or Console()
        self.input_fn = input_fn
        self.actions = {
            '1': self.show_status,
            '2': self.show_info,
            '3': self.start_node,
            '4': self.stop_node,
            '5': self.restart_all,
            '6': self.attach_node,
        }

    def _print_menu(self) -> None:
        self.console.rule(MENU_TITLE)
        for key, label in MENU_OPTIONS:
            self.console.print(f"{key}) {label}")
        self.console.rule()

    def _ask_index(self) -> Optional[int]:
        upper = self.orchestrator.node_count
        raw = self.input_fn(f"Enter node number (1-{upper}): ").strip()
        try:
            index = int(raw)
        except ValueError:
            index = None
        if index is None or not self.orchestrator.valid_index(index):
            self.console.print(f"[red]❌ Invalid node number: '{raw}' (expected 1-{upper})[/red]")
            logger.debug(f"Rejected node number input: {raw!r}")
            return None
        return index

    def show_status(self) -> None:
        self.console.print(render_status_table(self.orchestrator))

    def show_info(self) -> None:
        for record in self.orchestrator.records():
            self.console.print(f"[bold]Node {record.index} info:[/bold]")
            self.console.print(self.orchestrator.info(record.index) or "(no output)", markup=False)
            self.console.rule(style="dim")

    def start_node(self) -> None:
        index = self._ask_index()
        if index is not None:
            self.orchestrator.start(index)

    def stop_node(self) -> None:
        index = self._ask_index()
        if index is not None:
            self.orchestrator.stop(index)

    def restart_all(self) -> None:
        self.orchestrator.restart_all()

    def attach_node(self) -> None:
        index = self._ask_index()
        if index is not None:
            self.orchestrator.attach(index)

    def run(self) -> int:
        """Run the loop until the operator exits. Returns the process exit code."""
        while True:
            self._print_menu()
            try:
                choice = self.input_fn("Enter your choice: ").strip()
                if choice == EXIT_CHOICE:
                    break
                action = self.actions.get(choice)
                if action is None:
                    self.console.print(f"[red]❌ Invalid choice: '{choice}'[/red]")
                    continue
                action()
            except (EOFError, KeyboardInterrupt):
                self.console.print()
                break
        logger.info("Exiting...")
        return 0
