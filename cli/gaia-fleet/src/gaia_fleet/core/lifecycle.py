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

"""Node lifecycle state machine.

    UNINITIALIZED --init--> INITIALIZED --start--> RUNNING --stop--> STOPPED
                                                      ^                 |
                                                      +------start------+

Restart is stop followed by start. Every operation returns an
OperationResult; node-scoped errors are recorded on the record
(``last_error``) and never raised to the caller.
"""

from dataclasses import dataclass
from typing import Optional

from gaia_fleet.config.models import ModelChoice, NodeRecord, NodeState
from gaia_fleet.core.node_binary import NodeBinary
from gaia_fleet.core.store import NodeStore
from gaia_fleet.core.supervisor import ProcessSupervisor
from gaia_fleet.downloads.node_config import ConfigFetcher, parse_node_config
from gaia_fleet.errors import (
    ConfigFetchError,
    ConfigWriteError,
    InitFailed,
    InvalidConfig,
    InvalidTransition,
    NodeError,
    StartFailed,
)
from gaia_fleet.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class OperationResult:
    index: int
    ok: bool
    state: NodeState
    error: Optional[NodeError] = None


class NodeLifecycle:
    """Applies lifecycle operations to NodeRecords."""

    def __init__(self, store: NodeStore, supervisor: ProcessSupervisor, binary: NodeBinary, fetcher: ConfigFetcher):
        self.store = store
        self.supervisor = supervisor
        self.binary = binary
        self.fetcher = fetcher

    def _succeed(self, record: NodeRecord, state: NodeState) -> OperationResult:
        record.state = state
        record.last_error = None
        return OperationResult(index=record.index, ok=True, state=state)

    def _fail(self, record: NodeRecord, error: NodeError, state: Optional[NodeState] = None) -> OperationResult:
        if state is not None:
            record.state = state
        record.last_error = error
        logger.error(f"Node {record.index}: {error.message}")
        return OperationResult(index=record.index, ok=False, state=record.state, error=error)

    def init(self, record: NodeRecord, choice: ModelChoice) -> OperationResult:
        """Fetch, validate and persist the configuration, then run the binary's init.

        The configuration file is removed again when init fails, so a later
        run still sees the node as UNINITIALIZED and retries it.
        """
        if record.state != NodeState.UNINITIALIZED:
            return self._fail(record, InvalidTransition(record.index, 'init', str(record.state)))

        logger.info(f"Initializing node {record.index} with {choice.identifier} (port {record.port})...")

        try:
            data = self.fetcher.fetch(choice.url)
        except RuntimeError as e:
            return self._fail(record, ConfigFetchError(record.index, str(e)))

        try:
            parse_node_config(data)
        except ValueError as e:
            return self._fail(record, InvalidConfig(record.index, f"{choice.url}: {e}"))

        try:
            config_path = self.store.persist_config(record.index, data)
        except ConfigWriteError as e:
            return self._fail(record, e)

        result = self.binary.init(config_path, record.data_dir)
        if not result.ok:
            # config.json marks a node as initialized on the next load.
            self.store.discard_config(record.index)
            detail = f": {result.output}" if result.output else ''
            return self._fail(record, InitFailed(record.index, f"init exited with code {result.returncode}{detail}"))

        self.store.persist_model(record.index, choice.identifier)
        record.model = choice
        logger.info(f"✓ Node {record.index} initialized")
        return self._succeed(record, NodeState.INITIALIZED)

    def start(self, record: NodeRecord) -> OperationResult:
        """Spawn the node in the background. A node already running is left alone."""
        if self.supervisor.is_running(record.session_id):
            logger.info(f"Node {record.index} is already running (session {record.session_id})")
            return self._succeed(record, NodeState.RUNNING)

        if record.state == NodeState.UNINITIALIZED:
            return self._fail(record, StartFailed(record.index, "node has not been initialized"))

        logger.info(f"Starting node {record.index} on port {record.port}...")
        argv = self.binary.start_argv(record.port, record.data_dir)
        spawn = self.supervisor.spawn(
            record.session_id, argv, cwd=str(record.data_dir), log_path=str(self.store.log_path(record.index))
        )
        if not spawn.ok:
            return self._fail(record, StartFailed(record.index, spawn.error), state=NodeState.STOPPED)

        pid = f" (pid {spawn.pid})" if spawn.pid else ''
        logger.info(f"✓ Node {record.index} running in session {record.session_id}{pid}")
        return self._succeed(record, NodeState.RUNNING)

    def stop(self, record: NodeRecord) -> OperationResult:
        """Terminate the node's session. A missing session already satisfies the goal."""
        found = self.supervisor.terminate(record.session_id)
        if found:
            logger.info(f"Stopped node {record.index}")
        else:
            logger.info(f"Node {record.index} was not running")

        if record.state == NodeState.UNINITIALIZED:
            return self._succeed(record, NodeState.UNINITIALIZED)
        return self._succeed(record, NodeState.STOPPED)

    def restart(self, record: NodeRecord) -> OperationResult:
        """Best-effort stop, then start."""
        try:
            self.stop(record)
        except Exception as e:
            # A stale or broken session must not block the start phase.
            logger.warning(f"Node {record.index}: stop failed during restart, starting anyway: {e}")
        return self.start(record)

    def status(self, record: NodeRecord) -> NodeState:
        """Report RUNNING or STOPPED from the supervisor, never from the cached state."""
        running = self.supervisor.is_running(record.session_id)
        if running:
            if record.state != NodeState.UNINITIALIZED:
                record.state = NodeState.RUNNING
            return NodeState.RUNNING

        if record.state == NodeState.RUNNING:
            logger.warning(f"Node {record.index} is no longer running")
            record.state = NodeState.STOPPED
        return NodeState.STOPPED

    def info(self, record: NodeRecord) -> str:
        """Return the node binary's info output for this node."""
        if record.state == NodeState.UNINITIALIZED:
            return "not initialized"
        result = self.binary.info(record.data_dir)
        if not result.ok:
            logger.warning(f"Node {record.index}: info exited with code {result.returncode}")
        return result.output

    def attach(self, record: NodeRecord) -> int:
        """Hand the terminal to the node's output. Returns the attach exit code."""
        if self.status(record) != NodeState.RUNNING:
            logger.error(f"Node {record.index} is not running")
            return 1
        logger.info(f"Attaching to node {record.index} session...")
        return self.supervisor.attach(record.session_id, str(self.store.log_path(record.index)))
