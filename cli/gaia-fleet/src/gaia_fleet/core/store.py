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

"""Node records and their on-disk layout under the install root."""

import os
import re
from pathlib import Path
from typing import Dict, List, Optional

from gaia_fleet.config.models import ModelChoice, NodeRecord, NodeState
from gaia_fleet.constants import (
    INSTALL_LOG_FILENAME,
    NODE_CONFIG_FILENAME,
    NODE_DIR_PREFIX,
    NODE_LOG_FILENAME,
    NODE_MODEL_FILENAME,
)
from gaia_fleet.core.selector import build_catalog
from gaia_fleet.errors import ConfigWriteError
from gaia_fleet.utils.logging import get_logger

logger = get_logger(__name__)

_NODE_DIR_PATTERN = re.compile(rf'^{re.escape(NODE_DIR_PREFIX)}(\d+)$')


class NodeStore:
    """In-memory map of node index to NodeRecord, mirrored to the filesystem.

    Layout::

        <install_root>/installation.log
        <install_root>/node-<index>/config.json
        <install_root>/node-<index>/model
        <install_root>/node-<index>/node.log
    """

    def __init__(self, install_root: str, base_port: int, session_prefix: str):
        self.install_root = Path(install_root)
        self.base_port = base_port
        self.session_prefix = session_prefix
        self._records: Dict[int, NodeRecord] = {}

    @property
    def log_file(self) -> Path:
        return self.install_root / INSTALL_LOG_FILENAME

    def node_dir(self, index: int) -> Path:
        return self.install_root / f"{NODE_DIR_PREFIX}{index}"

    def port(self, index: int) -> int:
        return self.base_port + index

    def session_id(self, index: int) -> str:
        return f"{self.session_prefix}-{index}"

    def config_path(self, index: int) -> Path:
        return self.node_dir(index) / NODE_CONFIG_FILENAME

    def log_path(self, index: int) -> Path:
        return self.node_dir(index) / NODE_LOG_FILENAME

    def model_path(self, index: int) -> Path:
        return self.node_dir(index) / NODE_MODEL_FILENAME

    def create_or_get(self, index: int) -> NodeRecord:
        """Return the record for index, creating it and its directory if needed.

        A directory that already holds a configuration file (left by an
        earlier run) yields an INITIALIZED record, with its model when the
        model file names a catalog entry.

        Raises:
            ValueError: If index is not a positive integer
            OSError: If the node directory cannot be created
        """
        if isinstance(index, bool) or not isinstance(index, int) or index < 1:
            raise ValueError(f"Node index must be a positive integer, got {index!r}")

        record = self._records.get(index)
        if record is not None:
            return record

        data_dir = self.node_dir(index)
        os.makedirs(data_dir, exist_ok=True)

        state = NodeState.INITIALIZED if self.config_path(index).is_file() else NodeState.UNINITIALIZED
        record = NodeRecord(
            index=index,
            data_dir=data_dir,
            port=self.port(index),
            session_id=self.session_id(index),
            state=state,
            model=self._load_model(index) if state == NodeState.INITIALIZED else None,
        )
        self._records[index] = record
        logger.debug(f"Node {index}: dir={data_dir} port={record.port} state={state}")
        return record

    def get(self, index: int) -> NodeRecord:
        return self._records[index]

    def __contains__(self, index: int) -> bool:
        return index in self._records

    def __len__(self) -> int:
        return len(self._records)

    def persist_config(self, index: int, data: bytes) -> Path:
        """Write the node's configuration file.

        A partially written file is removed before the error is raised.

        Raises:
            ConfigWriteError: On any I/O failure
        """
        path = self.config_path(index)
        try:
            os.makedirs(path.parent, exist_ok=True)
            with open(path, 'wb') as f:
                f.write(data)
        except OSError as e:
            self.discard_config(index)
            raise ConfigWriteError(index, f"failed to write {path}: {e}") from e
        logger.debug(f"Node {index}: configuration written to {path}")
        return path

    def discard_config(self, index: int) -> None:
        """Remove the node's configuration and model files so it reloads as UNINITIALIZED."""
        for path in (self.config_path(index), self.model_path(index)):
            try:
                if path.is_file():
                    path.unlink()
            except OSError as e:
                logger.warning(f"Node {index}: could not remove {path}: {e}")

    def persist_model(self, index: int, identifier: str) -> None:
        """Record which catalog model the node was initialized with."""
        path = self.model_path(index)
        try:
            path.write_text(identifier + '\n', encoding='utf-8')
        except OSError as e:
            logger.warning(f"Node {index}: could not record model in {path}: {e}")

    def _load_model(self, index: int) -> Optional[ModelChoice]:
        path = self.model_path(index)
        if not path.is_file():
            return None
        try:
            identifier = path.read_text(encoding='utf-8').strip()
        except OSError as e:
            logger.warning(f"Node {index}: could not read {path}: {e}")
            return None
        choice = build_catalog().get(identifier)
        if choice is None:
            logger.debug(f"Node {index}: unknown model '{identifier}' in {path}")
        return choice

    def discover(self) -> List[NodeRecord]:
        """Load records for every node directory already present under the install root."""
        if not self.install_root.is_dir():
            return []
        for entry in sorted(self.install_root.iterdir()):
            match = _NODE_DIR_PATTERN.match(entry.name)
            if entry.is_dir() and match and int(match.group(1)) >= 1:
                self.create_or_get(int(match.group(1)))
        return self.all()

    def all(self) -> List[NodeRecord]:
        return [self._records[index] for index in sorted(self._records)]
