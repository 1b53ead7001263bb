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

"""
Pytest configuration and shared fakes.
"""
import logging
import subprocess
from typing import Dict, FrozenSet, List, Optional, Sequence

import pytest

from gaia_fleet.config.models import FleetConfig, Thresholds
from gaia_fleet.core.lifecycle import NodeLifecycle
from gaia_fleet.core.node_binary import NodeBinary
from gaia_fleet.core.orchestrator import Orchestrator
from gaia_fleet.core.selector import config_url
from gaia_fleet.core.store import NodeStore
from gaia_fleet.core.supervisor import ProcessSupervisor, SpawnResult
from gaia_fleet.host.hardware import HardwareProfiler
from gaia_fleet.host.validator import HostValidator
from gaia_fleet.utils.logging import ROOT_LOGGER_NAME

VALID_CONFIG = b'{"chat": "https://example.com/model.gguf", "prompt_template": "llama-3-chat"}'


class FakeProbe:
    """Host probe returning fixed resource readings."""

    def __init__(self, memory_gb: int = 32, disk_gb: int = 100, bound: FrozenSet[int] = frozenset()):
        self.memory = memory_gb
        self.disk = disk_gb
        self.bound = frozenset(bound)

    def memory_gb(self) -> int:
        return self.memory

    def disk_gb_available(self, path: str) -> int:
        return self.disk

    def bound_ports(self, candidates) -> FrozenSet[int]:
        return frozenset(port for port in candidates if port in self.bound)


class FakeSupervisor(ProcessSupervisor):
    """In-memory supervisor; sessions are live until terminated or killed."""

    name = 'fake'

    def __init__(self):
        self.sessions: Dict[str, int] = {}
        self.spawned: List[str] = []
        self.argvs: Dict[str, List[str]] = {}
        self.fail_spawn: set = set()
        self.fail_terminate: set = set()
        self.attached: List[str] = []
        self._next_pid = 1000

    def spawn(self, session_id: str, argv: Sequence[str], cwd: str, log_path: str) -> SpawnResult:
        self.spawned.append(session_id)
        if session_id in self.fail_spawn:
            return SpawnResult(error="process exited immediately with code 1")
        self._next_pid += 1
        self.sessions[session_id] = self._next_pid
        self.argvs[session_id] = list(argv)
        return SpawnResult(pid=self._next_pid)

    def terminate(self, session_id: str) -> bool:
        if session_id in self.fail_terminate:
            raise RuntimeError(f"cannot signal {session_id}")
        return self.sessions.pop(session_id, None) is not None

    def list_sessions(self, prefix: str) -> List[str]:
        return sorted(name for name in self.sessions if name.startswith(prefix))

    def is_running(self, session_id: str) -> bool:
        return session_id in self.sessions

    def attach(self, session_id: str, log_path: str) -> int:
        self.attached.append(session_id)
        return 0

    def kill(self, session_id: str) -> None:
        """Simulate a process dying outside of the supervisor's control."""
        self.sessions.pop(session_id, None)


class FakeRunner:
    """Stand-in for subprocess.run recording every argv."""

    def __init__(self, returncode: int = 0, stdout: str = '', stderr: str = ''):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.calls: List[List[str]] = []

    def __call__(self, argv, **kwargs) -> subprocess.CompletedProcess:
        self.calls.append(list(argv))
        return subprocess.CompletedProcess(argv, self.returncode, self.stdout, self.stderr)


class FakeFetcher:
    """Serves configuration bytes per URL; unknown URLs fail like a 404."""

    def __init__(self, payloads: Optional[Dict[str, bytes]] = None, default: Optional[bytes] = VALID_CONFIG):
        self.payloads = payloads or {}
        self.default = default
        self.fetched: List[str] = []
        self.responses: List[bytes] = []

    def fetch(self, url: str) -> bytes:
        self.fetched.append(url)
        if self.responses:
            return self.responses.pop(0)
        if url in self.payloads:
            return self.payloads[url]
        if self.default is None:
            raise RuntimeError(f"Failed to download configuration from {url}. Error chain: HTTPError [HTTP 404]")
        return self.default


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo setup_logging() between tests so caplog keeps receiving records."""
    yield
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True


def nvidia_smi(output: str) -> HardwareProfiler:
    """Profiler whose nvidia-smi prints output."""
    return HardwareProfiler(
        run_command=FakeRunner(stdout=output), which=lambda name: f"/usr/bin/{name}", cpu_count=lambda: 8
    )


def cpu_only(cores: int = 8) -> HardwareProfiler:
    return HardwareProfiler(run_command=FakeRunner(), which=lambda name: None, cpu_count=lambda: cores)


@pytest.fixture
def install_root(tmp_path) -> str:
    return str(tmp_path / 'gaianet')


@pytest.fixture
def fleet_config(install_root) -> FleetConfig:
    return FleetConfig(
        install_root=install_root,
        node_count=3,
        node_binary='/opt/gaianet/bin/gaianet',
        supervisor='local',
        thresholds=Thresholds(min_memory_gb=16, min_disk_gb=50, base_port=8080, port_probe_count=4),
    )


@pytest.fixture
def store(fleet_config) -> NodeStore:
    return NodeStore(fleet_config.install_root, fleet_config.base_port, fleet_config.session_prefix)


@pytest.fixture
def supervisor() -> FakeSupervisor:
    return FakeSupervisor()


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner(stdout='Node ID: 0xabc')


@pytest.fixture
def binary(fleet_config, runner) -> NodeBinary:
    return NodeBinary(fleet_config.node_binary, run_command=runner)


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def lifecycle(store, supervisor, binary, fetcher) -> NodeLifecycle:
    return NodeLifecycle(store, supervisor, binary, fetcher)


@pytest.fixture
def make_orchestrator(fleet_config, store, supervisor, binary, fetcher):
    """Build an Orchestrator over the shared fakes with the given host readings."""

    def factory(
        probe: Optional[FakeProbe] = None,
        profiler: Optional[HardwareProfiler] = None,
        config: Optional[FleetConfig] = None,
    ) -> Orchestrator:
        config = config or fleet_config
        return Orchestrator(
            config,
            validator=HostValidator(config.thresholds, config.install_root, probe=probe or FakeProbe()),
            profiler=profiler or nvidia_smi("NVIDIA A100-SXM4-80GB, 81920"),
            store=store,
            supervisor=supervisor,
            binary=binary,
            fetcher=fetcher,
        )

    return factory


@pytest.fixture
def mixtral_url() -> str:
    return config_url('mixtral-12.7b')
