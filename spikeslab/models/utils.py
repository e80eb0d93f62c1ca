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
Sampling utilities for spike-and-slab Boltzmann machines

This module provides:
- Bernoulli and Gaussian samplers driven by an explicit random generator
- The composite spike/slab hidden state
- A Gibbs sampler that works with any energy model
"""

from dataclasses import dataclass
from typing import Optional, Union
import torch
import torch.nn as nn
import logging

logger = logging.getLogger(__name__)


def sample_bernoulli(
    probs: torch.Tensor,
    generator: Optional[torch.Generator] = None
) -> torch.Tensor:
    """
    Sample from Bernoulli distribution.

    Args:
        probs: Bernoulli probabilities
        generator: Random generator (if None, the global torch generator)

    Returns:
        samples: Binary samples with the same shape as ``probs``
    """
    return torch.bernoulli(probs, generator=generator)


def sample_gaussian(
    mean: torch.Tensor,
    std: Union[float, torch.Tensor] = 1.0,
    generator: Optional[torch.Generator] = None
) -> torch.Tensor:
    """
    Sample from Gaussian distribution.

    Args:
        mean: Mean values
        std: Standard deviation, scalar or broadcastable to ``mean``
        generator: Random generator (if None, the global torch generator)

    Returns:
        samples: Gaussian samples with the same shape as ``mean``
    """
    noise = torch.randn(
        mean.shape, generator=generator, dtype=mean.dtype, device=mean.device
    )
    return mean + std * noise


@dataclass
class HiddenState:
    """
    Hidden configuration of a spike-and-slab RBM.

    ``spike`` holds one binary (or mean) value per hidden unit and ``slab``
    the continuous pool of each unit, column ``i`` belonging to unit ``i``.
    Both may carry a leading batch dimension.
    """

    spike: torch.Tensor  # [..., n_hidden]
    slab: torch.Tensor   # [..., pool_size, n_hidden]

    @property
    def n_hidden(self) -> int:
        return self.spike.shape[-1]

    @property
    def pool_size(self) -> int:
        return self.slab.shape[-2]

    def flatten(self) -> torch.Tensor:
        """
        Pack into ``[..., n_hidden + pool_size * n_hidden]``.

        Spikes come first, then the slab pools one unit at a time: the K slab
        values of unit i occupy ``n_hidden + i*K`` to ``n_hidden + (i+1)*K``.
        """
        batch_shape = self.spike.shape[:-1]
        return torch.cat(
            [self.spike, self.slab.transpose(-1, -2).reshape(*batch_shape, -1)], dim=-1
        )

    @classmethod
    def from_flat(cls, flat: torch.Tensor, n_hidden: int, pool_size: int) -> 'HiddenState':
        """Unpack a vector produced by ``flatten``."""
        if flat.shape[-1] != n_hidden + pool_size * n_hidden:
            raise ValueError(
                f"Expected {n_hidden + pool_size * n_hidden} hidden values, "
                f"got {flat.shape[-1]}"
            )
        batch_shape = flat.shape[:-1]
        spike = flat[..., :n_hidden]
        slab = flat[..., n_hidden:].reshape(*batch_shape, n_hidden, pool_size).transpose(-1, -2)
        return cls(spike=spike, slab=slab)

    def clone(self) -> 'HiddenState':
        return HiddenState(self.spike.clone(), self.slab.clone())


class GibbsSampler:
    """Block Gibbs sampler for spike-and-slab energy models."""

    def __init__(self, n_steps: int = 100, generator: Optional[torch.Generator] = None):
        """
        Initialize Gibbs sampler.

        Args:
            n_steps: Number of Gibbs steps between collected samples
            generator: Random generator passed to every sampling call
        """
        if n_steps <= 0:
            raise ValueError("n_steps must be positive")

        self.n_steps = n_steps
        self.generator = generator

    def step(self, model: nn.Module, visible: torch.Tensor) -> torch.Tensor:
        """Run one visible -> hidden -> visible round."""
        hidden = model.sample_hidden(visible, generator=self.generator)
        return model.sample_visible(hidden, generator=self.generator)

    def sample(
        self,
        model: nn.Module,
        initial_state: torch.Tensor,
        n_samples: int = 1
    ) -> torch.Tensor:
        """
        Generate samples using Gibbs sampling.

        Args:
            model: Energy model exposing ``sample_hidden``/``sample_visible``
            initial_state: Initial visible state [n_visible] or [batch_size, n_visible]
            n_samples: Number of samples to collect

        Returns:
            samples: Collected visible states [n_samples, *initial_state.shape]
        """
        if not (hasattr(model, 'sample_hidden') and hasattr(model, 'sample_visible')):
            raise ValueError("Model doesn't support Gibbs sampling")

        samples = []
        current_state = initial_state.clone()

        for _ in range(n_samples):
            for _ in range(self.n_steps):
                current_state = self.step(model, current_state)

            samples.append(current_state.clone())

        logger.debug(f"Collected {n_samples} samples with {self.n_steps} Gibbs steps each")
        return torch.stack(samples, dim=0)
