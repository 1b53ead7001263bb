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

"""Central constants for gaia-fleet - single source of truth."""

import os

# Install root used when neither the CLI nor the config file names one.
# GAIA_INSTALL_DIR is the variable the GaiaNet installer scripts read.
INSTALL_DIR_ENV_VAR = 'GAIA_INSTALL_DIR'
DEFAULT_INSTALL_ROOT = os.path.join(os.path.expanduser('~'), 'gaianet')
DEFAULT_NODE_BINARY = os.path.join(DEFAULT_INSTALL_ROOT, 'bin', 'gaianet')

# Persisted layout under the install root
NODE_DIR_PREFIX = 'node-'
NODE_CONFIG_FILENAME = 'config.json'
NODE_MODEL_FILENAME = 'model'
NODE_LOG_FILENAME = 'node.log'
INSTALL_LOG_FILENAME = 'installation.log'

# Node defaults
DEFAULT_NODE_COUNT = 3
DEFAULT_BASE_PORT = 8080
SESSION_PREFIX = 'gaianet-node'

# Environment variable used by the local supervisor to tag spawned nodes
SESSION_ENV_VAR = 'GAIA_FLEET_SESSION'

# Preflight thresholds
MIN_MEMORY_GB = 16
MIN_DISK_GB = 50
PORT_PROBE_COUNT = 4
PER_NODE_MEMORY_GB = 4

PREFLIGHT_MODES = {'strict', 'advisory'}
SUPERVISOR_TYPES = {'auto', 'local', 'screen'}

# Retry defaults for fetching remote node configurations
DEFAULT_FETCH_RETRIES = 3
DEFAULT_FETCH_BACKOFF_SECONDS = 2
DEFAULT_INIT_ATTEMPTS = 1

### MODEL CATALOG ###
NODE_CONFIGS_BASE_URL = 'https://raw.githubusercontent.com/GaiaNet-AI/node-configs/main'

# Display order matches the installer's model menu.
MODEL_CATALOG = {
    'llama-3.1-8b-instruct': 'LLaMA 3 (8B) - Best for GPU Servers',
    'mistral-7b-instruct': 'Mistral 7B - Mid-range GPUs (Tesla T4, 3090)',
    'mixtral-12.7b': 'Mixtral 12.7B - High-end GPUs (A100, H100)',
    'phi-2': 'Phi-2 (2.7B) - Best for CPU Servers',
    'llama-2-7b-cpu': 'LLaMA 2 (7B) - CPU Optimized',
    'tiny-llama-1b': 'TinyLLaMA (1.1B) - Ultra-lightweight CPU Model',
}

HIGH_END_MODEL = 'mixtral-12.7b'
MID_RANGE_MODEL = 'mistral-7b-instruct'
GPU_FALLBACK_MODEL = 'llama-3.1-8b-instruct'

# Accelerator name substrings, most specific first
ACCELERATOR_MODEL_RULES = [
    (('H100', 'A100'), HIGH_END_MODEL),
    (('T4', '3090'), MID_RANGE_MODEL),
]

# (minimum VRAM in MB, model) for accelerators no name rule matched
VRAM_MODEL_RULES = [
    (24000, 'mixtral-12.7b'),
    (16000, 'llama-3.1-8b-instruct'),
    (12000, 'mistral-7b-instruct'),
    (8000, 'phi-2'),
    (0, 'tiny-llama-1b'),
]

# (minimum logical cores, model) for CPU-only hosts
CPU_MODEL_RULES = [
    (16, 'llama-2-7b-cpu'),
    (8, 'phi-2'),
    (0, 'tiny-llama-1b'),
]
