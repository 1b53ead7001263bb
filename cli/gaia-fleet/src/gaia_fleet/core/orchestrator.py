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

"""Fleet orchestrator.

Coordinates the full provisioning sequence: host preflight, hardware
profiling, model selection, then init and start for each node index in turn.
A failure on one node is logged and the batch continues with the next index;
only preflight failures abort the run.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from gaia_fleet.config.models import FleetConfig, HostProfile, ModelChoice, NodeRecord, NodeState, PreflightReport
from gaia_fleet.core.lifecycle import NodeLifecycle, OperationResult
from gaia_fleet.core.node_binary import NodeBinary
from gaia_fleet.core.selector import ModelSelector
from gaia_fleet.core.store import NodeStore
from gaia_fleet.core.supervisor import ProcessSupervisor, create_supervisor
from gaia_fleet.downloads.node_config import ConfigFetcher
from gaia_fleet.host.hardware import HardwareProfiler
from gaia_fleet.host.validator import HostValidator
from gaia_fleet.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ProvisionSummary:
    model: ModelChoice
    records: List[NodeRecord] = field(default_factory=list)
    requested_nodes: int = 0
    advisory_nodes: Optional[int] = None

    @property
    def running(self) -> List[NodeRecord]:
        return [r for r in self.records if r.state == NodeState.RUNNING]

    @property
    def failed(self) -> List[NodeRecord]:
        return [r for r in self.records if r.state != NodeState.RUNNING]


class Orchestrator:
    """Composes the preflight, selection and lifecycle components."""

    def __init__(
        self,
        config: FleetConfig,
        validator: Optional[HostValidator] = None,
        profiler: Optional[HardwareProfiler] = None,
        selector: Optional[ModelSelector] = None,
        store: Optional[NodeStore] = None,
        supervisor: Optional[ProcessSupervisor] = None,
        binary: Optional[NodeBinary] = None,
        fetcher: Optional[ConfigFetcher] = None,
        lifecycle: Optional[NodeLifecycle] = None,
    ):
        self.config = config
        self.validator = validator or HostValidator(config.thresholds, config.install_root, node_count=config.node_count)
        self.profiler = profiler or HardwareProfiler()
        self.selector = selector or ModelSelector()
        self.store = store or NodeStore(config.install_root, config.base_port, config.session_prefix)
        if lifecycle is None:
            lifecycle = NodeLifecycle(
                self.store,
                supervisor or create_supervisor(config.supervisor),
                binary or NodeBinary(config.node_binary),
                fetcher
                or ConfigFetcher(
                    retries=config.fetch_retries, backoff=config.fetch_backoff, timeout=config.fetch_timeout
                ),
            )
        self.lifecycle = lifecycle
        self.node_count = config.node_count

    def preflight(self, node_count: Optional[int] = None) -> PreflightReport:
        """Run host validation. PreflightError propagates to the caller."""
        return self.validator.validate(node_count or self.config.node_count)

    def profile(self, host: Optional[HostProfile] = None) -> HostProfile:
        return self.profiler.profile(host)

    def _init_with_attempts(self, record: NodeRecord, choice: ModelChoice) -> OperationResult:
        attempts = max(1, self.config.init_attempts)
        result = self.lifecycle.init(record, choice)
        for attempt in range(2, attempts + 1):
            if result.ok:
                break
            logger.warning(f"Retrying init of node {record.index} (attempt {attempt}/{attempts})")
            result = self.lifecycle.init(record, choice)
        return result

    def provision_node(self, index: int, choice: ModelChoice) -> NodeRecord:
        """Init (when needed) then start one node. Failures are recorded on the record."""
        record = self.store.create_or_get(index)

        if record.state == NodeState.UNINITIALIZED:
            if not self._init_with_attempts(record, choice).ok:
                logger.error(f"Failed to initialize node {index}, skipping")
                return record
        else:
            logger.info(f"Node {index} already initialized, reusing its configuration")

        if not self.lifecycle.start(record).ok:
            logger.error(f"Failed to start node {index}, skipping")
        return record

    def provision(self, node_count: Optional[int] = None, model_override: Optional[str] = None) -> ProvisionSummary:
        """Run the full provisioning sequence.

        Raises:
            PreflightError: If the host fails validation
        """
        requested = node_count or self.config.node_count
        report = self.preflight(requested)

        count = requested
        if report.max_nodes is not None and report.max_nodes < requested:
            logger.warning(f"Reducing node count from {requested} to {report.max_nodes} per preflight advisory")
            count = report.max_nodes

        host = self.profile(report.host)
        choice = self.selector.select(host, model_override or self.config.model)

        self.node_count = count
        summary = ProvisionSummary(model=choice, requested_nodes=requested, advisory_nodes=report.max_nodes)
        for index in range(1, count + 1):
            summary.records.append(self.provision_node(index, choice))

        if summary.failed:
            logger.warning(f"{len(summary.running)}/{count} nodes running; failed: {[r.index for r in summary.failed]}")
        else:
            logger.info(f"✓ All {count} nodes running")
        return summary

    def load_existing(self) -> List[NodeRecord]:
        """Load the nodes already present under the install root."""
        records = self.store.discover()
        if records:
            self.node_count = max(record.index for record in records)
        return records

    def valid_index(self, index: int) -> bool:
        return 1 <= index <= self.node_count

    def record(self, index: int) -> NodeRecord:
        """Return the record for a managed index.

        Raises:
            ValueError: If index is outside 1..node_count
        """
        if not self.valid_index(index):
            raise ValueError(f"Invalid node number {index}: must be between 1 and {self.node_count}")
        return self.store.create_or_get(index)

    def records(self) -> List[NodeRecord]:
        return [self.store.create_or_get(index) for index in range(1, self.node_count + 1)]

    def statuses(self) -> List[Tuple[NodeRecord, NodeState]]:
        return [(record, self.lifecycle.status(record)) for record in self.records()]

    def start(self, index: int) -> OperationResult:
        return self.lifecycle.start(self.record(index))

    def stop(self, index: int) -> OperationResult:
        return self.lifecycle.stop(self.record(index))

    def restart_all(self) -> List[OperationResult]:
        logger.info("Restarting all nodes...")
        results = [self.lifecycle.restart(record) for record in self.records()]
        if all(result.ok for result in results):
            logger.info("✓ All nodes restarted")
        return results

    def info(self, index: int) -> str:
        return self.lifecycle.info(self.record(index))

    def attach(self, index: int) -> int:
        return self.lifecycle.attach(self.record(index))
