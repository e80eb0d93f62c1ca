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
Flat parameter buffer layout for the spike-and-slab RBM.

All learned parameters live in one contiguous vector so that an optimizer
can treat the model as a single tensor. The layout hands out views into
that vector:

    [ weight (D*K*N) | spike bias (N) | visible penalty (1) ]

The weight block is stored column-major: element (d, k, i) sits at flat
index d + k*D + i*D*K, so the D x K filter of hidden unit i is one
contiguous run of D*K values starting at i*D*K.

Gradient buffers share the exact same layout.
"""

from typing import NamedTuple, Tuple
import torch


class ParameterViews(NamedTuple):
    """Structured views aliasing one flat buffer."""

    weight: torch.Tensor           # [n_visible, pool_size, n_hidden]
    spike_bias: torch.Tensor       # [n_hidden]
    visible_penalty: torch.Tensor  # [1, 1]


class ParameterLayout:
    """
    Offsets and shapes of the structured views over a flat buffer.

    The layout owns no memory; ``views`` slices whatever congruent buffer
    it is given, so parameter and gradient buffers are addressed the same
    way.
    """

    def __init__(self, n_visible: int, n_hidden: int, pool_size: int):
        if n_visible <= 0 or n_hidden <= 0 or pool_size <= 0:
            raise ValueError("Number of units and pool size must be positive")

        self.n_visible = n_visible
        self.n_hidden = n_hidden
        self.pool_size = pool_size

    @property
    def weight_shape(self) -> Tuple[int, int, int]:
        return (self.n_visible, self.pool_size, self.n_hidden)

    @property
    def weight_size(self) -> int:
        return self.n_visible * self.pool_size * self.n_hidden

    @property
    def spike_bias_offset(self) -> int:
        return self.weight_size

    @property
    def visible_penalty_offset(self) -> int:
        return self.weight_size + self.n_hidden

    @property
    def size(self) -> int:
        """Total number of elements: D*K*N + N + 1."""
        return self.visible_penalty_offset + 1

    def allocate(
        self,
        dtype: torch.dtype = torch.float32,
        device: torch.device = None
    ) -> torch.Tensor:
        """Allocate a zero-filled buffer with this layout."""
        return torch.zeros(self.size, dtype=dtype, device=device)

    def views(self, buffer: torch.Tensor) -> ParameterViews:
        """
        Build aliasing views over ``buffer``.

        Args:
            buffer: Flat, contiguous tensor of length ``self.size``

        Returns:
            views: Weight tensor, spike bias and visible penalty views

        Raises:
            ValueError: If the buffer does not match the layout
        """
        if buffer.dim() != 1 or buffer.numel() != self.size:
            raise ValueError(
                f"Expected a flat buffer of {self.size} elements, "
                f"got shape {tuple(buffer.shape)}"
            )
        if not buffer.is_contiguous():
            raise ValueError("Parameter buffer must be contiguous")

        # Stored as [N, K, D] and exposed as [D, K, N]
        weight = buffer[:self.weight_size].view(
            self.n_hidden, self.pool_size, self.n_visible
        ).permute(2, 1, 0)
        spike_bias = buffer[self.spike_bias_offset:self.visible_penalty_offset]
        visible_penalty = buffer[self.visible_penalty_offset:self.size].view(1, 1)

        return ParameterViews(weight, spike_bias, visible_penalty)

    def __repr__(self) -> str:
        return (
            f"ParameterLayout(n_visible={self.n_visible}, "
            f"n_hidden={self.n_hidden}, pool_size={self.pool_size}, "
            f"size={self.size})"
        )
