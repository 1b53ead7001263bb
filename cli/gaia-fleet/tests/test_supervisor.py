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

"""Tests for process supervisors."""
import shutil

import pytest
from conftest import FakeRunner

from gaia_fleet.core.supervisor import LocalSupervisor, ScreenSupervisor, create_supervisor

SCREEN_LS = """There are screens on:
\t31337.gaianet-node-1\t(10/18/2026 09:12:01 AM)\t(Detached)
\t31338.gaianet-node-2\t(Detached)
\t4242.other-session\t(Attached)
3 Sockets in /run/screen/S-root.
"""


def test_screen_sessions_are_parsed():
    supervisor = ScreenSupervisor(run_command=FakeRunner(returncode=1, stdout=SCREEN_LS))

    assert supervisor.list_sessions('gaianet-node') == ['gaianet-node-1', 'gaianet-node-2']
    assert supervisor.is_running('gaianet-node-2')
    assert not supervisor.is_running('gaianet-node-3')


def test_screen_spawn_and_terminate():
    runner = FakeRunner(stdout=SCREEN_LS)
    supervisor = ScreenSupervisor(run_command=runner)

    spawn = supervisor.spawn('gaianet-node-1', ['gaianet', 'start'], cwd='/tmp', log_path='/tmp/node.log')
    assert spawn.ok
    assert spawn.pid == 31337
    assert runner.calls[0] == ['screen', '-dmS', 'gaianet-node-1', 'gaianet', 'start']

    assert supervisor.terminate('gaianet-node-1')
    assert runner.calls[-1] == ['screen', '-S', '31337.gaianet-node-1', '-X', 'quit']


def test_screen_terminate_unknown_session():
    supervisor = ScreenSupervisor(run_command=FakeRunner(stdout="No Sockets found in /run/screen/S-root.\n"))
    assert supervisor.terminate('gaianet-node-9') is False


def test_screen_spawn_failure():
    supervisor = ScreenSupervisor(run_command=FakeRunner(returncode=1, stderr='Must be connected to a terminal.'))

    result = supervisor.spawn('gaianet-node-1', ['gaianet', 'start'], cwd='/tmp', log_path='/tmp/node.log')

    assert not result.ok
    assert 'terminal' in result.error


def test_create_supervisor():
    assert isinstance(create_supervisor('auto', which=lambda name: None), LocalSupervisor)
    assert isinstance(create_supervisor('auto', which=lambda name: '/usr/bin/screen'), ScreenSupervisor)
    assert isinstance(create_supervisor('local'), LocalSupervisor)
    with pytest.raises(ValueError):
        create_supervisor('systemd')


class ExitedPopen:
    """Popen stand-in for a process that died right after exec."""

    pid = 777
    returncode = 1

    def __init__(self, argv, **kwargs):
        self.kwargs = kwargs

    def poll(self):
        return self.returncode


def test_local_spawn_reports_immediate_exit(tmp_path):
    supervisor = LocalSupervisor(popen=ExitedPopen)

    result = supervisor.spawn('gaianet-node-1', ['gaianet', 'start'], cwd=str(tmp_path), log_path=str(tmp_path / 'n.log'))

    assert not result.ok
    assert 'code 1' in result.error


def test_local_spawn_missing_binary(tmp_path):
    result = LocalSupervisor().spawn(
        'gaianet-node-1', [str(tmp_path / 'no-such-binary')], cwd=str(tmp_path), log_path=str(tmp_path / 'n.log')
    )
    assert not result.ok


@pytest.mark.skipif(shutil.which('sleep') is None, reason="requires sleep")
def test_local_session_lifecycle(tmp_path):
    supervisor = LocalSupervisor(grace_seconds=5)
    session = f"gaia-fleet-test-{tmp_path.name}"

    result = supervisor.spawn(session, ['sleep', '30'], cwd=str(tmp_path), log_path=str(tmp_path / 'node.log'))
    try:
        assert result.ok
        assert result.pid is not None
        assert supervisor.is_running(session)
        assert supervisor.list_sessions('gaia-fleet-test-') == [session]
    finally:
        assert supervisor.terminate(session)

    assert not supervisor.is_running(session)
    assert supervisor.terminate(session) is False
