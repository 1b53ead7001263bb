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

"""Tests for accelerator detection."""
from conftest import FakeRunner, nvidia_smi

from gaia_fleet.config.models import HostProfile
from gaia_fleet.host.hardware import NVIDIA_SMI_QUERY, HardwareProfiler


def test_first_gpu_is_profiled():
    host = nvidia_smi("NVIDIA A100-SXM4-80GB, 81920\nNVIDIA A100-SXM4-80GB, 81920\n").profile()

    assert host.accelerator_count == 2
    assert host.accelerator_name == 'NVIDIA A100-SXM4-80GB'
    assert host.accelerator_memory_mb == 81920
    assert host.has_accelerator


def test_query_uses_csv_without_units():
    runner = FakeRunner(stdout="Tesla T4, 15360\n")
    HardwareProfiler(run_command=runner, which=lambda name: '/usr/bin/nvidia-smi', cpu_count=lambda: 4).profile()

    assert runner.calls == [NVIDIA_SMI_QUERY]


def test_missing_nvidia_smi_means_cpu_only():
    runner = FakeRunner()
    host = HardwareProfiler(run_command=runner, which=lambda name: None, cpu_count=lambda: 12).profile()

    assert host.accelerator_count == 0
    assert host.accelerator_name is None
    assert host.cpu_core_count == 12
    assert runner.calls == []


def test_failing_nvidia_smi_means_cpu_only():
    runner = FakeRunner(returncode=9, stderr="NVIDIA-SMI has failed because it couldn't communicate with the driver")
    host = HardwareProfiler(run_command=runner, which=lambda name: '/usr/bin/nvidia-smi', cpu_count=lambda: 2).profile()

    assert not host.has_accelerator


def test_unparseable_memory_is_unknown():
    assert nvidia_smi("Mystery GPU, [N/A]\n").profile().accelerator_memory_mb is None


def test_unknown_cpu_count_defaults_to_one():
    host = HardwareProfiler(run_command=FakeRunner(), which=lambda name: None, cpu_count=lambda: None).profile()
    assert host.cpu_core_count == 1


def test_existing_profile_is_extended():
    preflight = HostProfile(memory_gb=64, disk_gb_available=500)

    host = nvidia_smi("NVIDIA H100 80GB HBM3, 81559\n").profile(preflight)

    assert host is preflight
    assert host.memory_gb == 64
    assert host.accelerator_name == 'NVIDIA H100 80GB HBM3'
