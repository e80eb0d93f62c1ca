# Copyright 2025 NeuroBM Contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""
Common interface for RBM energy models.

Every energy variant implements the same capability set so a training
driver can alternate positive and negative phases without knowing which
variant it holds. Variants register under a name and are picked when the
model is built.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Type
import torch
import torch.nn as nn
import logging

logger = logging.getLogger(__name__)

_ENERGY_MODELS: Dict[str, Type['EnergyModel']] = {}


class EnergyModel(nn.Module, ABC):
    """Capability set shared by all RBM energy variants."""

    @abstractmethod
    def reset(self) -> None:
        """Allocate and initialize parameter and gradient buffers."""

    @abstractmethod
    def free_energy(self, visible: torch.Tensor) -> torch.Tensor:
        """Free energy of visible vectors."""

    @abstractmethod
    def phase(self, visible: torch.Tensor, gradient: torch.Tensor) -> torch.Tensor:
        """Write one phase's gradient statistics into ``gradient``."""

    @abstractmethod
    def sample_hidden(self, visible: torch.Tensor, generator: Optional[torch.Generator] = None) -> Any:
        """Draw a hidden configuration given visible vectors."""

    @abstractmethod
    def sample_visible(self, hidden: Any, generator: Optional[torch.Generator] = None) -> torch.Tensor:
        """Draw visible vectors given a hidden configuration."""

    @abstractmethod
    def hidden_mean(self, visible: torch.Tensor, generator: Optional[torch.Generator] = None) -> Any:
        """Conditional mean of the hidden layer."""

    @abstractmethod
    def visible_mean(self, hidden: Any) -> torch.Tensor:
        """Conditional mean of the visible layer."""


def register_energy_model(name: str) -> Callable[[Type[EnergyModel]], Type[EnergyModel]]:
    """Class decorator adding an energy variant to the registry."""

    def decorator(cls: Type[EnergyModel]) -> Type[EnergyModel]:
        if name in _ENERGY_MODELS:
            raise ValueError(f"Energy model '{name}' is already registered")
        _ENERGY_MODELS[name] = cls
        return cls

    return decorator


def available_energy_models() -> list:
    return sorted(_ENERGY_MODELS)


def build_energy_model(kind: str, **kwargs: Any) -> EnergyModel:
    """
    Construct a registered energy variant.

    Args:
        kind: Registered variant name (e.g. ``"spike_slab"``)
        **kwargs: Constructor arguments of the variant

    Returns:
        model: Ready-to-use energy model
    """
    if kind not in _ENERGY_MODELS:
        raise ValueError(
            f"Unknown energy model: {kind}. Available: {available_energy_models()}"
        )

    logger.debug(f"Building energy model '{kind}'")
    return _ENERGY_MODELS[kind](**kwargs)
