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

"""Wrapper around the external node binary."""

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Union

from gaia_fleet.utils.logging import get_logger

logger = get_logger(__name__)

PathLike = Union[str, Path]


@dataclass
class CommandResult:
    returncode: int
    output: str = ''

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class NodeBinary:
    """Builds and runs node binary command lines.

    ``init`` and ``info`` run to completion; ``start`` is only turned into an
    argv, which a ProcessSupervisor spawns in the background.
    """

    def __init__(self, path: str, run_command: Callable[..., subprocess.CompletedProcess] = subprocess.run):
        self.path = path
        self.run_command = run_command

    def init_argv(self, config_path: PathLike, data_dir: PathLike) -> List[str]:
        return [self.path, 'init', '--config', str(config_path), '--data-dir', str(data_dir)]

    def start_argv(self, port: int, data_dir: PathLike) -> List[str]:
        return [self.path, 'start', '--port', str(port), '--data-dir', str(data_dir)]

    def info_argv(self, data_dir: PathLike) -> List[str]:
        return [self.path, 'info', '--data-dir', str(data_dir)]

    def _run(self, argv: List[str], cwd: PathLike) -> CommandResult:
        logger.debug(f"Command: {argv}")
        try:
            result = self.run_command(
                argv, cwd=str(cwd), capture_output=True, text=True, check=False
            )
        except OSError as e:
            return CommandResult(returncode=127, output=f"failed to run {self.path}: {e}")
        output = (result.stdout or '') + (result.stderr or '')
        return CommandResult(returncode=result.returncode, output=output.strip())

    def init(self, config_path: PathLike, data_dir: PathLike) -> CommandResult:
        return self._run(self.init_argv(config_path, data_dir), cwd=data_dir)

    def info(self, data_dir: PathLike) -> CommandResult:
        return self._run(self.info_argv(data_dir), cwd=data_dir)
