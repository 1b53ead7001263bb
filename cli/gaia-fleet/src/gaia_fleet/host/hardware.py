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

"""Accelerator and CPU detection."""

import shutil
import subprocess
from typing import Callable, List, Optional

import psutil

from gaia_fleet.config.models import HostProfile
from gaia_fleet.utils.logging import get_logger

logger = get_logger(__name__)

NVIDIA_SMI = 'nvidia-smi'
NVIDIA_SMI_QUERY = [
    NVIDIA_SMI,
    '--query-gpu=name,memory.total',
    '--format=csv,noheader,nounits',
]


def _parse_memory_mb(value: str) -> Optional[int]:
    try:
        return int(float(value.strip()))
    except ValueError:
        return None


class HardwareProfiler:
    """Detects accelerators via nvidia-smi and CPU cores via psutil.

    CPU-only hosts are a supported mode: a missing or failing nvidia-smi
    yields accelerator_count == 0, never an error.
    """

    def __init__(
        self,
        run_command: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        which: Callable[[str], Optional[str]] = shutil.which,
        cpu_count: Optional[Callable[[], Optional[int]]] = None,
    ):
        self.run_command = run_command
        self.which = which
        self.cpu_count = cpu_count or (lambda: psutil.cpu_count(logical=True))

    def _query_accelerators(self) -> List[str]:
        if not self.which(NVIDIA_SMI):
            logger.debug("nvidia-smi not found")
            return []
        try:
            result = self.run_command(NVIDIA_SMI_QUERY, capture_output=True, text=True, check=False)
        except OSError as e:
            logger.debug(f"nvidia-smi failed to run: {e}")
            return []
        if result.returncode != 0:
            logger.debug(f"nvidia-smi exited with code {result.returncode}: {result.stderr.strip()}")
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def profile(self, host: Optional[HostProfile] = None) -> HostProfile:
        """Fill the accelerator and CPU fields of a HostProfile.

        Args:
            host: Profile from the preflight step to extend. A new one is
                created when omitted.

        Returns:
            HostProfile: The same (or new) profile with hardware fields set.
        """
        host = host if host is not None else HostProfile()
        lines = self._query_accelerators()

        host.accelerator_count = len(lines)
        if lines:
            # Only the first enumerated accelerator is used for model ranking.
            fields = [part.strip() for part in lines[0].split(',')]
            host.accelerator_name = fields[0] or None
            host.accelerator_memory_mb = _parse_memory_mb(fields[1]) if len(fields) > 1 else None
            logger.info(f"✓ Found {len(lines)} NVIDIA GPU(s): {host.accelerator_name}")
        else:
            host.accelerator_name = None
            host.accelerator_memory_mb = None
            logger.info("No NVIDIA GPU detected (running on CPU)")

        host.cpu_core_count = self.cpu_count() or 1
        logger.debug(f"CPU cores: {host.cpu_core_count}")
        return host
