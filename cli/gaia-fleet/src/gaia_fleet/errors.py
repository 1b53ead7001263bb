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

"""Exception hierarchy for gaia-fleet.

Preflight and configuration errors are fatal to a run. Node errors are scoped to
a single node index and never abort sibling nodes.
"""

from typing import Optional


class FleetError(Exception):
    """Base class for all gaia-fleet errors."""


class ConfigurationError(FleetError):
    """Invalid fleet configuration (YAML file or CLI values)."""


class PreflightError(FleetError):
    """Host does not satisfy the preflight requirements."""


class InsufficientMemory(PreflightError):
    def __init__(self, observed_gb: int, required_gb: int):
        self.observed_gb = observed_gb
        self.required_gb = required_gb
        super().__init__(f"Insufficient memory: {observed_gb}GB available, {required_gb}GB required")


class InsufficientDisk(PreflightError):
    def __init__(self, observed_gb: int, required_gb: int):
        self.observed_gb = observed_gb
        self.required_gb = required_gb
        super().__init__(f"Insufficient disk space: {observed_gb}GB available, {required_gb}GB required")


class PortInUse(PreflightError):
    def __init__(self, port: int):
        self.port = port
        super().__init__(f"Port {port} is already in use")


class NodeError(FleetError):
    """Failure of an operation on a single node."""

    def __init__(self, index: int, message: str):
        self.index = index
        self.message = message
        super().__init__(f"node {index}: {message}")


class ConfigFetchError(NodeError):
    pass


class InvalidConfig(NodeError):
    pass


class ConfigWriteError(NodeError):
    pass


class InitFailed(NodeError):
    pass


class StartFailed(NodeError):
    pass


class InvalidTransition(NodeError):
    def __init__(self, index: int, operation: str, state: str, detail: Optional[str] = None):
        self.operation = operation
        self.state = state
        message = f"cannot {operation} a node in state '{state}'"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(index, message)
