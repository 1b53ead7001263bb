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

"""Hardware profile to model configuration selection."""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from gaia_fleet.config.models import HostProfile, ModelChoice
from gaia_fleet.constants import (
    ACCELERATOR_MODEL_RULES,
    CPU_MODEL_RULES,
    GPU_FALLBACK_MODEL,
    MODEL_CATALOG,
    NODE_CONFIGS_BASE_URL,
    VRAM_MODEL_RULES,
)
from gaia_fleet.utils.logging import get_logger

logger = get_logger(__name__)

Predicate = Callable[[HostProfile], bool]


def config_url(identifier: str) -> str:
    return f"{NODE_CONFIGS_BASE_URL}/{identifier}/config.json"


def build_catalog() -> Dict[str, ModelChoice]:
    """Build the model catalog in display order."""
    return {
        identifier: ModelChoice(identifier=identifier, url=config_url(identifier), label=label)
        for identifier, label in MODEL_CATALOG.items()
    }


def _name_contains(*needles: str) -> Predicate:
    upper = [needle.upper() for needle in needles]

    def predicate(host: HostProfile) -> bool:
        name = (host.accelerator_name or '').upper()
        return host.has_accelerator and any(needle in name for needle in upper)

    return predicate


def _vram_at_least(minimum_mb: int) -> Predicate:
    def predicate(host: HostProfile) -> bool:
        return host.has_accelerator and host.accelerator_memory_mb is not None and host.accelerator_memory_mb >= minimum_mb

    return predicate


def _cpu_cores_at_least(minimum: int) -> Predicate:
    def predicate(host: HostProfile) -> bool:
        return not host.has_accelerator and host.cpu_core_count >= minimum

    return predicate


def _has_accelerator(host: HostProfile) -> bool:
    return host.has_accelerator


@dataclass(frozen=True)
class SelectionRule:
    description: str
    predicate: Predicate
    model: str


def build_rules() -> Tuple[SelectionRule, ...]:
    """Ordered rules, evaluated top to bottom; the first match wins.

    Accelerator name rules come first (most specific first), then VRAM rules
    for unrecognised accelerators, an explicit GPU fallback, and the CPU-only
    core count rules. The last CPU rule has a zero threshold, so every
    profile matches some rule.
    """
    rules: List[SelectionRule] = []
    for needles, model in ACCELERATOR_MODEL_RULES:
        rules.append(SelectionRule(f"accelerator name contains {'/'.join(needles)}", _name_contains(*needles), model))
    for minimum_mb, model in VRAM_MODEL_RULES:
        rules.append(SelectionRule(f"accelerator VRAM >= {minimum_mb}MB", _vram_at_least(minimum_mb), model))
    rules.append(SelectionRule("accelerator present", _has_accelerator, GPU_FALLBACK_MODEL))
    for minimum, model in CPU_MODEL_RULES:
        rules.append(SelectionRule(f"CPU-only with >= {minimum} cores", _cpu_cores_at_least(minimum), model))
    return tuple(rules)


class ModelSelector:
    """Maps a hardware profile to a ModelChoice."""

    def __init__(self, catalog: Optional[Dict[str, ModelChoice]] = None, rules: Optional[Tuple[SelectionRule, ...]] = None):
        self.catalog = catalog if catalog is not None else build_catalog()
        self.rules = rules if rules is not None else build_rules()

    def choices(self) -> List[ModelChoice]:
        return list(self.catalog.values())

    def recommend(self, host: HostProfile) -> ModelChoice:
        for rule in self.rules:
            if rule.predicate(host):
                logger.debug(f"Model rule matched: {rule.description} -> {rule.model}")
                return self.catalog[rule.model]
        raise ValueError("No model selection rule matched the host profile")

    def select(self, host: HostProfile, override: Optional[str] = None) -> ModelChoice:
        """Select the model configuration for this run.

        A known override wins unconditionally. An unknown override is reported
        and the hardware recommendation is used instead.
        """
        if override:
            if override in self.catalog:
                logger.info(f"Using requested model: {override}")
                return self.catalog[override]
            logger.warning(
                f"Unknown model '{override}' requested, falling back to the recommended model. "
                f"Known models: {', '.join(self.catalog)}"
            )

        choice = self.recommend(host)
        logger.info(f"Selected model: {choice.identifier} ({choice.label})")
        return choice
