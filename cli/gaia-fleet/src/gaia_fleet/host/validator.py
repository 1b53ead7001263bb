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

"""Host preflight validation.

Checks total memory, free disk at the install root and the availability of the
node ports before any node is touched. Memory and disk shortfalls are fatal in
strict mode and downgrade to an Advisory (reduced node count) in advisory mode.
A bound port is always fatal.
"""

import errno
import socket
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional

import psutil

from gaia_fleet.config.models import Advisory, HostProfile, PreflightReport, Thresholds
from gaia_fleet.constants import DEFAULT_NODE_COUNT
from gaia_fleet.errors import InsufficientDisk, InsufficientMemory, PortInUse
from gaia_fleet.utils.logging import get_logger

logger = get_logger(__name__)

_GIB = 1024**3


def _nearest_existing_path(path: str) -> str:
    """Walk up from path until an existing directory is found."""
    current = Path(path).expanduser().absolute()
    while not current.exists() and current != current.parent:
        current = current.parent
    return str(current)


def _port_is_bound(port: int) -> bool:
    """Fallback check used when the connection table cannot be read."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.bind(('0.0.0.0', port))
    except OSError as e:
        return e.errno in (errno.EADDRINUSE, errno.EACCES)
    finally:
        sock.close()
    return False


class HostProbe:
    """Reads system state through psutil."""

    def memory_gb(self) -> int:
        """Total memory in whole GB, matching ``free -g``."""
        return int(psutil.virtual_memory().total // _GIB)

    def disk_gb_available(self, path: str) -> int:
        """Free disk in whole GB on the filesystem holding path."""
        return int(psutil.disk_usage(_nearest_existing_path(path)).free // _GIB)

    def bound_ports(self, candidates: Iterable[int]) -> FrozenSet[int]:
        """Return which of the candidate TCP ports are already bound."""
        candidates = set(candidates)
        try:
            connections = psutil.net_connections(kind='tcp')
        except (psutil.AccessDenied, PermissionError):
            logger.debug("Connection table not readable, probing ports by binding")
            return frozenset(port for port in candidates if _port_is_bound(port))

        bound = set()
        for conn in connections:
            if conn.status == psutil.CONN_LISTEN and conn.laddr and conn.laddr.port in candidates:
                bound.add(conn.laddr.port)
        return frozenset(bound)


class HostValidator:
    """Validates the host against a fixed set of thresholds."""

    def __init__(
        self,
        thresholds: Thresholds,
        install_root: str,
        probe: Optional[HostProbe] = None,
        node_count: int = DEFAULT_NODE_COUNT,
    ):
        self.thresholds = thresholds
        self.install_root = install_root
        self.probe = probe or HostProbe()
        self.node_count = node_count

    @property
    def advisory_mode(self) -> bool:
        return self.thresholds.mode == 'advisory'

    def recommended_nodes(self, memory_gb: int) -> int:
        return max(1, memory_gb // self.thresholds.per_node_memory_gb)

    def ports_to_probe(self, node_count: Optional[int] = None) -> List[int]:
        """The fixed probe range plus the port of every node to be provisioned."""
        t = self.thresholds
        count = node_count or self.node_count
        node_ports = range(t.base_port + 1, t.base_port + count + 1)
        return sorted(set(t.probed_ports) | set(node_ports))

    def validate(self, node_count: Optional[int] = None) -> PreflightReport:
        """Run the preflight checks.

        Args:
            node_count: Nodes about to be provisioned. Defaults to the count
                given at construction.

        Returns:
            PreflightReport: Observed host resources, plus an Advisory when a
            shortfall was tolerated in advisory mode.

        Raises:
            InsufficientMemory: Memory below minimum in strict mode
            InsufficientDisk: Disk below minimum in strict mode
            PortInUse: A probed port is already bound (any mode)
        """
        t = self.thresholds
        logger.info("Checking system requirements...")

        memory_gb = self.probe.memory_gb()
        disk_gb = self.probe.disk_gb_available(self.install_root)
        ports = self.ports_to_probe(node_count)
        bound = self.probe.bound_ports(ports)
        host = HostProfile(memory_gb=memory_gb, disk_gb_available=disk_gb, ports_in_use=bound)
        logger.debug(f"Host resources: memory={memory_gb}GB disk={disk_gb}GB bound_ports={sorted(bound)}")

        reasons: List[str] = []
        if memory_gb < t.min_memory_gb:
            if not self.advisory_mode:
                raise InsufficientMemory(memory_gb, t.min_memory_gb)
            reasons.append(f"memory {memory_gb}GB below recommended {t.min_memory_gb}GB")

        if disk_gb < t.min_disk_gb:
            if not self.advisory_mode:
                raise InsufficientDisk(disk_gb, t.min_disk_gb)
            reasons.append(f"disk {disk_gb}GB below recommended {t.min_disk_gb}GB")

        for port in ports:
            if port in bound:
                raise PortInUse(port)

        if not reasons:
            logger.info(f"✓ System requirements met ({memory_gb}GB memory, {disk_gb}GB disk free)")
            return PreflightReport(host=host)

        advisory = Advisory(recommended_nodes=self.recommended_nodes(memory_gb), reasons=reasons)
        for reason in reasons:
            logger.warning(f"Preflight advisory: {reason}")
        logger.warning(f"Recommended maximum node count: {advisory.recommended_nodes}")
        return PreflightReport(host=host, advisory=advisory)
