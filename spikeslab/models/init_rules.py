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
Initialization rules for flat parameter buffers.

A rule is any callable ``rule(buffer, n_elem)`` that fills the first
``n_elem`` entries of ``buffer`` in place. Rules know nothing about the
model's layout.
"""

from typing import Any, Callable, Dict, Optional
import torch
import numpy as np
import logging

logger = logging.getLogger(__name__)

InitializationRule = Callable[[torch.Tensor, int], None]


class ZeroInitialization:
    """Leave the buffer at zero."""

    def __call__(self, buffer: torch.Tensor, n_elem: int) -> None:
        buffer[:n_elem].zero_()


class ConstantInitialization:
    """Fill the buffer with one value."""

    def __init__(self, value: float = 1.0):
        self.value = value

    def __call__(self, buffer: torch.Tensor, n_elem: int) -> None:
        buffer[:n_elem].fill_(self.value)


class GaussianInitialization:
    """
    Draw every element from N(mean, std^2).

    Args:
        mean: Mean of the distribution
        std: Standard deviation
        random_seed: Seed for a private generator (if None, global RNG)
    """

    def __init__(self, mean: float = 0.0, std: float = 1.0, random_seed: Optional[int] = None):
        if std < 0:
            raise ValueError("std must be non-negative")
        self.mean = mean
        self.std = std
        self.random_seed = random_seed

    def __call__(self, buffer: torch.Tensor, n_elem: int) -> None:
        generator = None
        if self.random_seed is not None:
            generator = torch.Generator(device=buffer.device).manual_seed(self.random_seed)
        values = torch.randn(n_elem, generator=generator, dtype=buffer.dtype, device=buffer.device)
        buffer[:n_elem].copy_(values * self.std + self.mean)


class XavierInitialization(GaussianInitialization):
    """Gaussian initialization with std = sqrt(2 / (fan_in + fan_out))."""

    def __init__(self, fan_in: int, fan_out: int, random_seed: Optional[int] = None):
        std = np.sqrt(2.0 / (fan_in + fan_out))
        super().__init__(mean=0.0, std=float(std), random_seed=random_seed)


class SpikeSlabInitialization:
    """
    Wrap another rule and then set the trailing spike bias and visible
    penalty entries to fixed values.

    The visible penalty is used as a divisor, so generic rules that may draw
    it near zero are usually wrapped by this one.

    Args:
        base: Rule used for the whole buffer first
        n_hidden: Number of spike bias entries preceding the visible penalty
        spike_bias: Value for every spike bias
        visible_penalty: Value for the visible penalty
    """

    def __init__(
        self,
        base: InitializationRule,
        n_hidden: int,
        spike_bias: float = 0.0,
        visible_penalty: float = 1.0
    ):
        if visible_penalty <= 0:
            raise ValueError("visible_penalty must be positive")
        self.base = base
        self.n_hidden = n_hidden
        self.spike_bias = spike_bias
        self.visible_penalty = visible_penalty

    def __call__(self, buffer: torch.Tensor, n_elem: int) -> None:
        self.base(buffer, n_elem)
        buffer[n_elem - 1 - self.n_hidden:n_elem - 1].fill_(self.spike_bias)
        buffer[n_elem - 1] = self.visible_penalty


INITIALIZATION_RULES = {
    'zero': ZeroInitialization,
    'constant': ConstantInitialization,
    'gaussian': GaussianInitialization,
    'xavier': XavierInitialization,
}


def get_initialization_rule(name: str, **kwargs: Any) -> InitializationRule:
    """
    Create an initialization rule by name.

    Args:
        name: One of ``INITIALIZATION_RULES``
        **kwargs: Arguments for the rule's constructor

    Returns:
        rule: Callable filling a buffer in place
    """
    if name not in INITIALIZATION_RULES:
        raise ValueError(
            f"Unknown initialization rule: {name}. "
            f"Available: {sorted(INITIALIZATION_RULES)}"
        )
    return INITIALIZATION_RULES[name](**kwargs)
