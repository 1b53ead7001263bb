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

"""Configuration and record data models for gaia-fleet."""

import enum
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional

from gaia_fleet.constants import (
    DEFAULT_BASE_PORT,
    DEFAULT_FETCH_BACKOFF_SECONDS,
    DEFAULT_FETCH_RETRIES,
    DEFAULT_INIT_ATTEMPTS,
    DEFAULT_INSTALL_ROOT,
    DEFAULT_NODE_BINARY,
    DEFAULT_NODE_COUNT,
    MIN_DISK_GB,
    MIN_MEMORY_GB,
    PER_NODE_MEMORY_GB,
    PORT_PROBE_COUNT,
    SESSION_PREFIX,
)


@dataclass(frozen=True)
class Thresholds:
    """Preflight thresholds."""

    min_memory_gb: int = MIN_MEMORY_GB
    min_disk_gb: int = MIN_DISK_GB
    base_port: int = DEFAULT_BASE_PORT
    port_probe_count: int = PORT_PROBE_COUNT
    per_node_memory_gb: int = PER_NODE_MEMORY_GB
    mode: str = 'strict'  # 'strict' or 'advisory'

    @property
    def probed_ports(self) -> List[int]:
        return list(range(self.base_port, self.base_port + self.port_probe_count))


@dataclass(frozen=True)
class FleetConfig:
    """Central, immutable configuration object for a gaia-fleet run."""

    install_root: str = DEFAULT_INSTALL_ROOT
    node_count: int = DEFAULT_NODE_COUNT
    node_binary: str = DEFAULT_NODE_BINARY
    session_prefix: str = SESSION_PREFIX
    supervisor: str = 'auto'  # 'auto', 'local', 'screen'
    model: Optional[str] = None  # user override of the recommended model
    init_attempts: int = DEFAULT_INIT_ATTEMPTS
    fetch_retries: int = DEFAULT_FETCH_RETRIES
    fetch_backoff: float = DEFAULT_FETCH_BACKOFF_SECONDS
    fetch_timeout: Optional[float] = None
    thresholds: Thresholds = field(default_factory=Thresholds)

    @property
    def base_port(self) -> int:
        return self.thresholds.base_port

    def with_overrides(self, **overrides: Any) -> 'FleetConfig':
        """Return a copy with the non-None overrides applied.

        Threshold fields (e.g. ``base_port``, ``mode``) are routed to the
        nested Thresholds object.
        """
        threshold_fields = set(Thresholds.__dataclass_fields__)
        top_level = {k: v for k, v in overrides.items() if v is not None and k not in threshold_fields}
        nested = {k: v for k, v in overrides.items() if v is not None and k in threshold_fields}
        thresholds = replace(self.thresholds, **nested) if nested else self.thresholds
        return replace(self, thresholds=thresholds, **top_level)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for serialization."""
        return {
            'install_root': self.install_root,
            'node_count': self.node_count,
            'node_binary': self.node_binary,
            'session_prefix': self.session_prefix,
            'supervisor': self.supervisor,
            'model': self.model,
            'init_attempts': self.init_attempts,
            'fetch_retries': self.fetch_retries,
            'fetch_backoff': self.fetch_backoff,
            'fetch_timeout': self.fetch_timeout,
            'preflight': {
                'min_memory_gb': self.thresholds.min_memory_gb,
                'min_disk_gb': self.thresholds.min_disk_gb,
                'base_port': self.thresholds.base_port,
                'port_probe_count': self.thresholds.port_probe_count,
                'per_node_memory_gb': self.thresholds.per_node_memory_gb,
                'mode': self.thresholds.mode,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FleetConfig':
        """Create config from dictionary, falling back to defaults for absent keys."""
        defaults = cls()
        preflight = data.get('preflight') or {}
        thresholds = Thresholds(
            min_memory_gb=preflight.get('min_memory_gb', defaults.thresholds.min_memory_gb),
            min_disk_gb=preflight.get('min_disk_gb', defaults.thresholds.min_disk_gb),
            base_port=preflight.get('base_port', defaults.thresholds.base_port),
            port_probe_count=preflight.get('port_probe_count', defaults.thresholds.port_probe_count),
            per_node_memory_gb=preflight.get('per_node_memory_gb', defaults.thresholds.per_node_memory_gb),
            mode=preflight.get('mode', defaults.thresholds.mode),
        )
        return cls(
            install_root=data.get('install_root', defaults.install_root),
            node_count=data.get('node_count', defaults.node_count),
            node_binary=data.get('node_binary', defaults.node_binary),
            session_prefix=data.get('session_prefix', defaults.session_prefix),
            supervisor=data.get('supervisor', defaults.supervisor),
            model=data.get('model'),
            init_attempts=data.get('init_attempts', defaults.init_attempts),
            fetch_retries=data.get('fetch_retries', defaults.fetch_retries),
            fetch_backoff=data.get('fetch_backoff', defaults.fetch_backoff),
            fetch_timeout=data.get('fetch_timeout'),
            thresholds=thresholds,
        )


@dataclass(frozen=True)
class ModelChoice:
    """A model configuration a node can be initialized with."""

    identifier: str
    url: str
    label: str


@dataclass
class HostProfile:
    """Resources observed on the host. Recomputed on demand, never persisted."""

    memory_gb: int = 0
    disk_gb_available: int = 0
    ports_in_use: FrozenSet[int] = frozenset()
    accelerator_count: int = 0
    accelerator_name: Optional[str] = None
    accelerator_memory_mb: Optional[int] = None
    cpu_core_count: int = 1

    @property
    def has_accelerator(self) -> bool:
        return self.accelerator_count > 0


@dataclass
class Advisory:
    """Non-fatal preflight recommendation."""

    recommended_nodes: int
    reasons: List[str] = field(default_factory=list)


@dataclass
class PreflightReport:
    """Outcome of a passing preflight. ``advisory`` is None on a clean pass."""

    host: HostProfile
    advisory: Optional[Advisory] = None

    @property
    def max_nodes(self) -> Optional[int]:
        return self.advisory.recommended_nodes if self.advisory else None


class NodeState(enum.Enum):
    UNINITIALIZED = 'uninitialized'
    INITIALIZED = 'initialized'
    RUNNING = 'running'
    STOPPED = 'stopped'

    def __str__(self) -> str:
        return self.value


@dataclass
class NodeRecord:
    """State of one node. Port and data directory never change after creation."""

    index: int
    data_dir: Path
    port: int
    session_id: str
    state: NodeState = NodeState.UNINITIALIZED
    model: Optional[ModelChoice] = None
    last_error: Optional[Exception] = None

    @property
    def last_error_message(self) -> Optional[str]:
        if self.last_error is None:
            return None
        return getattr(self.last_error, 'message', str(self.last_error))
