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

"""Fleet configuration file loading and saving."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from gaia_fleet.config.models import FleetConfig
from gaia_fleet.constants import INSTALL_DIR_ENV_VAR, PREFLIGHT_MODES, SUPERVISOR_TYPES
from gaia_fleet.errors import ConfigurationError

_INT_FIELDS = ['node_count', 'init_attempts', 'fetch_retries']
_PREFLIGHT_INT_FIELDS = ['min_memory_gb', 'min_disk_gb', 'base_port', 'port_probe_count', 'per_node_memory_gb']
_STRING_FIELDS = ['install_root', 'node_binary', 'session_prefix']


def save_fleet_config(config_file: str, config: FleetConfig) -> None:
    """Save a fleet configuration to a YAML file.

    Args:
        config_file: Path to the configuration file to save
        config: Configuration to serialize
    """
    try:
        resolved_path = Path(config_file).resolve()
        os.makedirs(resolved_path.parent, exist_ok=True)

        with open(config_file, 'w') as f:
            yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
        os.chmod(config_file, 0o600)
        print(f"✓ Configuration saved to: {config_file}")
    except OSError as e:
        print(f"Error saving configuration to {config_file}: {e}")
        raise SystemExit(1) from e


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_config_data(data: Dict[str, Any]) -> None:
    """Validate the structure of a fleet configuration mapping.

    Raises:
        ConfigurationError: On the first invalid field
    """
    for name in _STRING_FIELDS:
        if name in data and (not isinstance(data[name], str) or not data[name].strip()):
            raise ConfigurationError(f"{name} must be a non-empty string")

    for name in _INT_FIELDS:
        if name in data and (not _is_int(data[name]) or data[name] < 1):
            raise ConfigurationError(f"{name} must be a positive integer")

    supervisor = data.get('supervisor')
    if supervisor is not None and supervisor not in SUPERVISOR_TYPES:
        raise ConfigurationError(f"supervisor must be one of {sorted(SUPERVISOR_TYPES)}, got '{supervisor}'")

    model = data.get('model')
    if model is not None and not isinstance(model, str):
        raise ConfigurationError("model must be a string when provided")

    for name in ('fetch_backoff', 'fetch_timeout'):
        value = data.get(name)
        if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0):
            raise ConfigurationError(f"{name} must be a non-negative number")

    preflight = data.get('preflight')
    if preflight is None:
        return
    if not isinstance(preflight, dict):
        raise ConfigurationError("preflight must be a dictionary when provided")
    for name in _PREFLIGHT_INT_FIELDS:
        if name in preflight and (not _is_int(preflight[name]) or preflight[name] < 0):
            raise ConfigurationError(f"preflight.{name} must be a non-negative integer")
    if preflight.get('per_node_memory_gb') == 0:
        raise ConfigurationError("preflight.per_node_memory_gb must be greater than zero")
    mode = preflight.get('mode')
    if mode is not None and mode not in PREFLIGHT_MODES:
        raise ConfigurationError(f"preflight.mode must be one of {sorted(PREFLIGHT_MODES)}, got '{mode}'")


def read_config_data(config_file: str) -> Dict[str, Any]:
    """Load and validate the raw mapping stored in a YAML configuration file.

    Args:
        config_file: Path to the configuration file to load

    Returns:
        Dict containing only the keys present in the file

    Raises:
        SystemExit: If the configuration file cannot be loaded or is invalid
    """
    try:
        with open(config_file, 'r') as f:
            config_data = yaml.safe_load(f)

        if config_data is None:
            config_data = {}
        if not isinstance(config_data, dict):
            raise ConfigurationError("Configuration file must contain a dictionary")

        validate_config_data(config_data)
        for name in ('install_root', 'node_binary'):
            if name in config_data:
                config_data[name] = os.path.expanduser(config_data[name])

        print(f"✓ Configuration loaded from: {config_file}")
        return config_data

    except FileNotFoundError:
        print(f"Error: Configuration file not found: {config_file}")
        raise SystemExit(1) from None
    except yaml.YAMLError as e:
        print(f"Error: Invalid YAML in configuration file {config_file}: {e}")
        raise SystemExit(1) from e
    except ConfigurationError as e:
        print(f"Error: Invalid configuration in {config_file}: {e}")
        raise SystemExit(1) from e


def load_fleet_config(config_file: str) -> FleetConfig:
    """Load a fleet configuration from a YAML file, with defaults for absent keys."""
    return FleetConfig.from_dict(read_config_data(config_file))


def resolve_fleet_config(config_file: Optional[str] = None, **overrides: Any) -> FleetConfig:
    """Build the effective configuration.

    Precedence: CLI overrides > config file > GAIA_INSTALL_DIR > defaults.

    Raises:
        ConfigurationError: If the resulting configuration is out of range
    """
    data: Dict[str, Any] = {}
    env_root = os.environ.get(INSTALL_DIR_ENV_VAR)
    if env_root:
        data['install_root'] = os.path.expanduser(env_root)
    if config_file:
        data.update(read_config_data(config_file))

    if overrides.get('install_root'):
        overrides['install_root'] = os.path.expanduser(overrides['install_root'])
    config = FleetConfig.from_dict(data).with_overrides(**overrides)

    if config.node_count < 1:
        raise ConfigurationError("node count must be at least 1")
    if config.thresholds.mode not in PREFLIGHT_MODES:
        raise ConfigurationError(f"preflight mode must be one of {sorted(PREFLIGHT_MODES)}")
    if config.supervisor not in SUPERVISOR_TYPES:
        raise ConfigurationError(f"supervisor must be one of {sorted(SUPERVISOR_TYPES)}")
    if config.thresholds.per_node_memory_gb < 1:
        raise ConfigurationError("per-node memory must be at least 1GB")
    return config
