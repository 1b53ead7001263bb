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

"""Process supervision for detached node processes.

Each node runs under a session identifier derived from its index. Supervisors
spawn a detached process for a session, terminate it, list live sessions and
attach the terminal to a session's output.
"""

import os
import re
import shutil
import subprocess
import sys
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

import psutil

from gaia_fleet.constants import SESSION_ENV_VAR
from gaia_fleet.utils.logging import get_logger

logger = get_logger(__name__)

TERMINATE_GRACE_SECONDS = 10
ATTACH_POLL_SECONDS = 0.5


@dataclass
class SpawnResult:
    """Outcome of a spawn. ``pid`` is None when the spawn failed."""

    pid: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ProcessSupervisor(ABC):
    """Abstract base class for process supervisors."""

    name = 'abstract'

    @abstractmethod
    def spawn(self, session_id: str, argv: Sequence[str], cwd: str, log_path: str) -> SpawnResult:
        """Start argv as a detached background process tagged with session_id."""

    @abstractmethod
    def terminate(self, session_id: str) -> bool:
        """Terminate the session. Returns False when no such session exists."""

    @abstractmethod
    def list_sessions(self, prefix: str) -> List[str]:
        """Return the live session identifiers starting with prefix."""

    @abstractmethod
    def attach(self, session_id: str, log_path: str) -> int:
        """Connect the terminal to the session's output until detached."""

    def is_running(self, session_id: str) -> bool:
        return session_id in self.list_sessions(session_id)


class LocalSupervisor(ProcessSupervisor):
    """Spawns nodes directly in their own process session.

    Processes are located by the GAIA_FLEET_SESSION environment variable set
    at spawn time, which children of the node binary inherit. Output goes to
    the node's log file.
    """

    name = 'local'

    def __init__(
        self,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
        grace_seconds: float = TERMINATE_GRACE_SECONDS,
    ):
        self.popen = popen
        self.grace_seconds = grace_seconds
        self._children: Dict[str, subprocess.Popen] = {}

    def _reap_children(self) -> None:
        for session_id, child in list(self._children.items()):
            if child.poll() is not None:
                logger.debug(f"Session {session_id} exited with code {child.returncode}")
                del self._children[session_id]

    def _tagged_processes(self) -> Dict[str, List[psutil.Process]]:
        self._reap_children()
        sessions: Dict[str, List[psutil.Process]] = {}
        for proc in psutil.process_iter(['pid']):
            try:
                tag = proc.environ().get(SESSION_ENV_VAR)
                if tag and proc.status() != psutil.STATUS_ZOMBIE:
                    sessions.setdefault(tag, []).append(proc)
            except (psutil.AccessDenied, psutil.NoSuchProcess, psutil.ZombieProcess):
                continue
        return sessions

    def spawn(self, session_id: str, argv: Sequence[str], cwd: str, log_path: str) -> SpawnResult:
        env = os.environ.copy()
        env[SESSION_ENV_VAR] = session_id
        logger.debug(f"Command: {list(argv)} (session={session_id}, cwd={cwd})")
        try:
            with open(log_path, 'ab') as log:
                child = self.popen(
                    list(argv),
                    cwd=cwd,
                    env=env,
                    stdin=subprocess.DEVNULL,
                    stdout=log,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
        except OSError as e:
            return SpawnResult(error=f"failed to spawn {argv[0]}: {e}")

        returncode = child.poll()
        if returncode is not None and returncode != 0:
            return SpawnResult(error=f"process exited immediately with code {returncode} (see {log_path})")

        self._children[session_id] = child
        return SpawnResult(pid=child.pid)

    def terminate(self, session_id: str) -> bool:
        processes = self._tagged_processes().get(session_id, [])
        if not processes:
            return False

        for proc in processes:
            try:
                proc.terminate()
            except psutil.NoSuchProcess:
                continue
        _, alive = psutil.wait_procs(processes, timeout=self.grace_seconds)
        for proc in alive:
            logger.warning(f"Session {session_id}: pid {proc.pid} ignored SIGTERM, killing")
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                continue

        child = self._children.pop(session_id, None)
        if child is not None:
            child.poll()
        return True

    def list_sessions(self, prefix: str) -> List[str]:
        return sorted(tag for tag in self._tagged_processes() if tag.startswith(prefix))

    def is_running(self, session_id: str) -> bool:
        return session_id in self._tagged_processes()

    def attach(self, session_id: str, log_path: str) -> int:
        print(f"Following {log_path} (press Ctrl-C to detach)")
        try:
            with open(log_path, 'r', errors='replace') as log:
                while True:
                    line = log.readline()
                    if line:
                        sys.stdout.write(line)
                        sys.stdout.flush()
                        continue
                    if not self.is_running(session_id):
                        print(f"Session {session_id} has exited")
                        return 0
                    time.sleep(ATTACH_POLL_SECONDS)
        except FileNotFoundError:
            logger.error(f"No output log found at {log_path}")
            return 1
        except KeyboardInterrupt:
            print()
            return 0


_SCREEN_SESSION_PATTERN = re.compile(r'^\s*(\d+)\.(\S+)\s')


class ScreenSupervisor(ProcessSupervisor):
    """Runs each node inside a detached GNU screen session."""

    name = 'screen'

    def __init__(self, run_command: Callable[..., subprocess.CompletedProcess] = subprocess.run):
        self.run_command = run_command

    def _sessions(self) -> Dict[str, int]:
        # screen -ls exits non-zero in several versions even when sessions exist
        result = self.run_command(['screen', '-ls'], capture_output=True, text=True, check=False)
        sessions = {}
        for line in result.stdout.splitlines():
            match = _SCREEN_SESSION_PATTERN.match(line)
            if match:
                sessions[match.group(2)] = int(match.group(1))
        return sessions

    def spawn(self, session_id: str, argv: Sequence[str], cwd: str, log_path: str) -> SpawnResult:
        cmd = ['screen', '-dmS', session_id, *argv]
        logger.debug(f"Command: {cmd} (cwd={cwd})")
        try:
            result = self.run_command(cmd, capture_output=True, text=True, check=False, cwd=cwd)
        except OSError as e:
            return SpawnResult(error=f"failed to run screen: {e}")
        if result.returncode != 0:
            return SpawnResult(error=f"screen exited with code {result.returncode}: {result.stderr.strip()}")
        return SpawnResult(pid=self._sessions().get(session_id))

    def terminate(self, session_id: str) -> bool:
        pid = self._sessions().get(session_id)
        if pid is None:
            return False
        result = self.run_command(
            ['screen', '-S', f"{pid}.{session_id}", '-X', 'quit'], capture_output=True, text=True, check=False
        )
        return result.returncode == 0

    def list_sessions(self, prefix: str) -> List[str]:
        return sorted(name for name in self._sessions() if name.startswith(prefix))

    def is_running(self, session_id: str) -> bool:
        return session_id in self._sessions()

    def attach(self, session_id: str, log_path: str) -> int:
        pid = self._sessions().get(session_id)
        if pid is None:
            logger.error(f"No screen session named {session_id}")
            return 1
        print("Detach with Ctrl-A D")
        return self.run_command(['screen', '-r', f"{pid}.{session_id}"], check=False).returncode


def create_supervisor(supervisor_type: str, which: Callable[[str], Optional[str]] = shutil.which) -> ProcessSupervisor:
    """Factory function to create the appropriate supervisor."""
    if supervisor_type == 'auto':
        supervisor_type = 'screen' if which('screen') else 'local'
        logger.debug(f"Auto-selected '{supervisor_type}' process supervisor")
    if supervisor_type == 'local':
        return LocalSupervisor()
    elif supervisor_type == 'screen':
        return ScreenSupervisor()
    else:
        raise ValueError(f"Unknown supervisor type: {supervisor_type}")
