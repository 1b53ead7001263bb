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

"""Tests for console and install log formatting."""
import re

from gaia_fleet.utils.logging import get_logger, setup_logging


def test_get_logger_namespaces_names():
    assert get_logger('gaia_fleet.core.store').name == 'gaia_fleet.core.store'
    assert get_logger('tests').name == 'gaia_fleet.tests'


def test_install_log_format(tmp_path, capsys):
    log_file = tmp_path / 'installation.log'
    setup_logging(log_file=str(log_file))
    logger = get_logger('gaia_fleet.test')

    logger.info("Starting node 1 on port 8081...")
    logger.warning("Node 2 is no longer running")
    logger.debug("hidden")

    lines = log_file.read_text().splitlines()
    assert re.match(r'^\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\] \[INFO\] Starting node 1 on port 8081\.\.\.$', lines[0])
    assert lines[1].endswith('[WARN] Node 2 is no longer running')
    assert len(lines) == 2

    out = capsys.readouterr().out
    assert "Starting node 1 on port 8081...\n" in out
    assert "WARN: Node 2 is no longer running" in out
    assert "hidden" not in out


def test_verbose_debug_stays_on_console(tmp_path, capsys):
    log_file = tmp_path / 'installation.log'
    log_file.write_text("previous run\n")

    setup_logging(log_file=str(log_file), verbose=True, fresh=True)
    logger = get_logger('gaia_fleet.test')
    logger.debug("details")
    logger.info("Node 1 initialized")

    assert "DEBUG: details" in capsys.readouterr().out
    lines = log_file.read_text().splitlines()
    assert len(lines) == 1
    assert lines[0].endswith('[INFO] Node 1 initialized')


def test_append_keeps_previous_lines(tmp_path):
    log_file = tmp_path / 'installation.log'
    log_file.write_text("previous run\n")

    setup_logging(log_file=str(log_file))
    get_logger('gaia_fleet.test').error("boom")

    lines = log_file.read_text().splitlines()
    assert lines[0] == "previous run"
    assert lines[1].endswith('[ERROR] boom')
