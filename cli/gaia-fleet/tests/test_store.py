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

"""Tests for NodeStore layout and record bookkeeping."""
import os

import pytest

from gaia_fleet.config.models import NodeState
from gaia_fleet.core.store import NodeStore
from gaia_fleet.errors import ConfigWriteError


def test_records_have_distinct_ports_and_directories(store):
    records = [store.create_or_get(index) for index in (1, 2, 3)]

    assert [r.port for r in records] == [8081, 8082, 8083]
    assert len({r.data_dir for r in records}) == 3
    assert [r.session_id for r in records] == ['gaianet-node-1', 'gaianet-node-2', 'gaianet-node-3']
    for record in records:
        assert record.data_dir.is_dir()
        assert record.state == NodeState.UNINITIALIZED


def test_create_or_get_returns_the_same_record(store):
    first = store.create_or_get(2)
    first.state = NodeState.RUNNING

    assert store.create_or_get(2) is first
    assert 2 in store
    assert len(store) == 1


@pytest.mark.parametrize("index", [0, -1, 1.5, '1', True])
def test_create_or_get_rejects_invalid_indices(store, index):
    with pytest.raises(ValueError):
        store.create_or_get(index)


def test_existing_config_is_rediscovered_as_initialized(install_root):
    first = NodeStore(install_root, 8080, 'gaianet-node')
    first.create_or_get(1)
    first.persist_config(1, b'{}')
    first.create_or_get(2)

    second = NodeStore(install_root, 8080, 'gaianet-node')
    records = second.discover()

    assert [r.index for r in records] == [1, 2]
    assert records[0].state == NodeState.INITIALIZED
    assert records[1].state == NodeState.UNINITIALIZED


def test_discover_ignores_unrelated_entries(install_root):
    store = NodeStore(install_root, 8080, 'gaianet-node')
    os.makedirs(os.path.join(install_root, 'node-0'))
    os.makedirs(os.path.join(install_root, 'node-x'))
    os.makedirs(os.path.join(install_root, 'bin'))
    open(os.path.join(install_root, 'node-4'), 'w').close()

    assert store.discover() == []


def test_discover_without_install_root(tmp_path):
    assert NodeStore(str(tmp_path / 'missing'), 8080, 'gaianet-node').discover() == []


def test_persist_config_writes_bytes(store):
    store.create_or_get(1)
    path = store.persist_config(1, b'{"a": 1}')

    assert path == store.config_path(1)
    assert path.read_bytes() == b'{"a": 1}'


def test_persist_config_failure_raises_node_error(store):
    record = store.create_or_get(1)
    # A directory where the file should go makes the write fail.
    os.makedirs(store.config_path(1))

    with pytest.raises(ConfigWriteError) as exc_info:
        store.persist_config(record.index, b'{}')
    assert exc_info.value.index == 1


def test_partial_write_leaves_no_config(store, monkeypatch):
    store.create_or_get(1)
    real_open = open

    class FullDisk:
        def __init__(self, path, mode):
            self.f = real_open(path, mode)

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            self.f.close()

        def write(self, data):
            self.f.write(data[:1])
            raise OSError(28, 'No space left on device')

    monkeypatch.setattr('gaia_fleet.core.store.open', FullDisk, raising=False)

    with pytest.raises(ConfigWriteError):
        store.persist_config(1, b'{"a": 1}')
    assert not store.config_path(1).exists()


def test_model_file_is_read_back(install_root):
    first = NodeStore(install_root, 8080, 'gaianet-node')
    first.create_or_get(1)
    first.persist_config(1, b'{}')
    first.persist_model(1, 'phi-2')
    first.create_or_get(2)
    first.persist_config(2, b'{}')
    first.persist_model(2, 'gpt-17')

    records = NodeStore(install_root, 8080, 'gaianet-node').discover()

    assert records[0].model.identifier == 'phi-2'
    assert records[1].state == NodeState.INITIALIZED
    assert records[1].model is None


def test_discard_config_resets_to_uninitialized(install_root):
    first = NodeStore(install_root, 8080, 'gaianet-node')
    first.create_or_get(1)
    first.persist_config(1, b'{}')
    first.persist_model(1, 'phi-2')

    first.discard_config(1)

    assert not first.model_path(1).exists()
    assert NodeStore(install_root, 8080, 'gaianet-node').create_or_get(1).state == NodeState.UNINITIALIZED
