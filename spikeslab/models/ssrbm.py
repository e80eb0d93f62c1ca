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
Spike-and-Slab Restricted Boltzmann Machine

This module implements the ssRBM energy model with:
- Gaussian visible units with a learned scalar precision (visible penalty)
- Hidden units made of a binary spike and a pool of Gaussian slab variables
- Closed-form conditionals for block Gibbs sampling
- Rejection sampling of visible vectors inside a ball of fixed radius
- Per-phase gradient statistics for contrastive divergence

All learned parameters live in one flat buffer; ``weight``, ``spike_bias``
and ``visible_penalty`` are views into it. The slab penalty is a fixed
hyperparameter and is not part of the buffer.
"""

from typing import Any, Dict, Optional, Union, Literal
import math
import torch
import torch.nn as nn
import torch.nn.functional as F
import logging
from pathlib import Path

from .base import EnergyModel, register_energy_model
from .init_rules import (
    InitializationRule,
    SpikeSlabInitialization,
    XavierInitialization,
    ZeroInitialization
)
from .layout import ParameterLayout, ParameterViews
from .utils import HiddenState, sample_bernoulli, sample_gaussian

logger = logging.getLogger(__name__)

FailurePolicy = Literal["warn", "raise", "project"]


class SamplingFailedError(RuntimeError):
    """Rejection sampling could not place a visible sample inside the radius."""

    def __init__(self, message: str, samples: torch.Tensor, norms: torch.Tensor):
        super().__init__(message)
        self.samples = samples
        self.norms = norms


@register_energy_model("spike_slab")
class SpikeSlabRBM(EnergyModel):
    """
    Spike-and-slab RBM over continuous visible vectors.

    Energy-derived conditionals (W_i is the [n_visible, pool_size] block of
    hidden unit i, lambda_s the slab penalty, lambda_v the visible penalty):

        p(spike_i = 1 | v) = sigmoid(||W_i^T v||^2 / (2 lambda_s) + b_i)
        E[slab_i | v, spike] = spike_i W_i^T v / lambda_s
        E[v | spike, slab] = sum_i W_i slab_i spike_i / lambda_v
    """

    MAX_SAMPLING_TRIALS = 10

    def __init__(
        self,
        n_visible: int,
        n_hidden: int,
        pool_size: int = 2,
        slab_penalty: float = 8.0,
        radius: float = 1.0,
        batch_size: int = 1,
        initialization: Optional[InitializationRule] = None,
        on_sampling_failure: FailurePolicy = "warn",
        random_seed: Optional[int] = None,
        device: Optional[torch.device] = None,
        dtype: torch.dtype = torch.float32,
    ):
        """
        Initialize spike-and-slab RBM.

        Args:
            n_visible: Number of visible units (D)
            n_hidden: Number of hidden spike units (N)
            pool_size: Number of slab units per spike (K)
            slab_penalty: Fixed precision of the slab units
            radius: Visible samples must have a Euclidean norm below this value
            batch_size: Number of chains kept in ``negative_samples``
            initialization: Rule filling the flat parameter buffer in place
                (default: Xavier weights, zero spike bias, unit visible penalty)
            on_sampling_failure: What ``sample_visible`` does when all trials
                land outside the radius ('warn', 'raise' or 'project')
            random_seed: Seed for the model's random generator
            device: Device to place tensors on
            dtype: Data type for tensors
        """
        super().__init__()

        if n_visible <= 0 or n_hidden <= 0 or pool_size <= 0:
            raise ValueError("Number of units and pool size must be positive")
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if slab_penalty <= 0:
            raise ValueError("slab_penalty must be positive")
        if radius <= 0:
            raise ValueError("radius must be positive")
        if on_sampling_failure not in ("warn", "raise", "project"):
            raise ValueError("on_sampling_failure must be 'warn', 'raise' or 'project'")

        self.n_visible = n_visible
        self.n_hidden = n_hidden
        self.pool_size = pool_size
        self._slab_penalty = float(slab_penalty)
        self.radius = float(radius)
        self.batch_size = batch_size
        self.on_sampling_failure = on_sampling_failure
        self.random_seed = random_seed
        self._device = device or torch.device('cpu')
        self._dtype = dtype

        self.layout = ParameterLayout(n_visible, n_hidden, pool_size)

        if initialization is None:
            initialization = SpikeSlabInitialization(
                XavierInitialization(n_visible * pool_size, n_hidden, random_seed=random_seed),
                n_hidden=n_hidden,
                spike_bias=0.0,
                visible_penalty=1.0
            )
        self.initialization = initialization

        self.generator = torch.Generator(device=self.device)
        if random_seed is not None:
            self.generator.manual_seed(random_seed)
        else:
            self.generator.seed()

        # Number of draws made by the last sample_visible call
        self.last_sampling_trials = 0
        self.is_reset = False

        self.reset()

    @property
    def slab_penalty(self) -> float:
        """Precision of the slab units, fixed for the model lifetime."""
        return self._slab_penalty

    # Views and placement are derived from the live parameter so they follow
    # .to(), .double() and load_state_dict(assign=True).
    @property
    def dtype(self) -> torch.dtype:
        parameter = self._parameters.get('parameter')
        return self._dtype if parameter is None else parameter.dtype

    @property
    def device(self) -> torch.device:
        parameter = self._parameters.get('parameter')
        return self._device if parameter is None else parameter.device

    @property
    def weight(self) -> torch.Tensor:
        """Weight view [n_visible, pool_size, n_hidden] into the parameter buffer."""
        return self.layout.views(self.parameter.data).weight

    @property
    def spike_bias(self) -> torch.Tensor:
        """Spike bias view [n_hidden] into the parameter buffer."""
        return self.layout.views(self.parameter.data).spike_bias

    @property
    def visible_penalty(self) -> torch.Tensor:
        """Visible penalty view [1, 1] into the parameter buffer."""
        return self.layout.views(self.parameter.data).visible_penalty

    def reset(self) -> None:
        """
        Allocate parameter, gradient and scratch buffers, install the
        structured views and run the initialization rule.
        """
        self.is_reset = False
        layout = self.layout

        self.parameter = nn.Parameter(
            layout.allocate(self.dtype, self.device), requires_grad=False
        )
        for name in ('positive_gradient', 'negative_gradient', 'temp_negative_gradient'):
            self.register_buffer(name, layout.allocate(self.dtype, self.device), persistent=False)

        self.register_buffer(
            'negative_samples',
            torch.zeros(self.batch_size, self.n_visible, dtype=self.dtype, device=self.device),
            persistent=False
        )
        self.register_buffer(
            'visible_mean_buffer',
            torch.zeros(self.n_visible, dtype=self.dtype, device=self.device),
            persistent=False
        )
        self.register_buffer(
            'spike_mean_buffer',
            torch.zeros(self.n_hidden, dtype=self.dtype, device=self.device),
            persistent=False
        )
        self.register_buffer(
            'spike_samples',
            torch.zeros(self.n_hidden, dtype=self.dtype, device=self.device),
            persistent=False
        )
        self.register_buffer(
            'slab_mean_buffer',
            torch.zeros(self.pool_size, self.n_hidden, dtype=self.dtype, device=self.device),
            persistent=False
        )

        self.initialization(self.parameter.data, layout.size)

        if self.visible_penalty.item() <= 0:
            logger.warning(
                f"Visible penalty initialized to {self.visible_penalty.item():.4g}; "
                f"it is used as a divisor and should be positive"
            )

        self.is_reset = True
        logger.info(f"Reset {self!r} with {layout.size} parameters")

    def parameter_views(self) -> ParameterViews:
        """Structured views over the parameter buffer."""
        return self.layout.views(self.parameter.data)

    def gradient_views(self, gradient: torch.Tensor) -> ParameterViews:
        """Structured views over a gradient buffer with the parameter layout."""
        return self.layout.views(gradient)

    def _check_ready(self) -> None:
        if not self.is_reset:
            raise RuntimeError("Model buffers are not initialized; call reset() first")

    def _prepare_visible(self, visible: torch.Tensor) -> torch.Tensor:
        self._check_ready()
        visible = torch.as_tensor(visible, dtype=self.dtype, device=self.device)
        if visible.dim() == 0 or visible.shape[-1] != self.n_visible:
            raise ValueError(
                f"Expected visible vectors with {self.n_visible} units, "
                f"got shape {tuple(visible.shape)}"
            )
        return visible

    def _check_spike(self, spike: torch.Tensor) -> None:
        if spike.dim() == 0 or spike.shape[-1] != self.n_hidden:
            raise ValueError(
                f"Expected {self.n_hidden} spike units, got shape {tuple(spike.shape)}"
            )

    def _check_slab(self, slab: torch.Tensor) -> None:
        if slab.dim() < 2 or tuple(slab.shape[-2:]) != (self.pool_size, self.n_hidden):
            raise ValueError(
                f"Expected slab of shape [..., {self.pool_size}, {self.n_hidden}], "
                f"got {tuple(slab.shape)}"
            )

    def _as_hidden_state(self, hidden: Union[HiddenState, torch.Tensor]) -> HiddenState:
        if not isinstance(hidden, HiddenState):
            hidden = HiddenState.from_flat(
                torch.as_tensor(hidden, dtype=self.dtype, device=self.device),
                self.n_hidden,
                self.pool_size
            )
        self._check_spike(hidden.spike)
        self._check_slab(hidden.slab)
        if hidden.spike.shape[:-1] != hidden.slab.shape[:-2]:
            raise ValueError("Spike and slab batch dimensions differ")
        return hidden

    def _project(self, visible: torch.Tensor) -> torch.Tensor:
        """W_i^T v for every hidden unit, as columns: [..., pool_size, n_hidden]."""
        return torch.einsum('dkn,...d->...kn', self.weight, visible)

    def free_energy(self, visible: torch.Tensor) -> torch.Tensor:
        """
        Compute the free energy of visible vectors.

        F(v) = 0.5 lambda_v v^T v - 0.5 N K log(2 pi / lambda_s)
               - sum_i softplus(b_i - ||W_i^T v||^2 / (2 lambda_s))

        Args:
            visible: Visible vectors [n_visible] or [batch_size, n_visible]

        Returns:
            free_energy: Scalar tensor, or [batch_size]
        """
        visible = self._prepare_visible(visible)

        quadratic = self._project(visible).pow(2).sum(dim=-2) / (2.0 * self.slab_penalty)

        free_energy = 0.5 * self.visible_penalty[0, 0] * (visible * visible).sum(dim=-1)
        free_energy = free_energy - 0.5 * self.n_hidden * self.pool_size * math.log(
            2.0 * math.pi / self.slab_penalty
        )
        free_energy = free_energy - F.softplus(self.spike_bias - quadratic).sum(dim=-1)

        return free_energy

    def spike_mean(self, visible: torch.Tensor) -> torch.Tensor:
        """
        Probability of each spike being active, slab marginalized.

        Args:
            visible: Visible vectors [..., n_visible]

        Returns:
            spike_mean: Probabilities in [0, 1], [..., n_hidden]
        """
        visible = self._prepare_visible(visible)
        activation = self._project(visible).pow(2).sum(dim=-2) / (2.0 * self.slab_penalty)
        return torch.sigmoid(activation + self.spike_bias)

    def sample_spike(
        self,
        spike_mean: torch.Tensor,
        generator: Optional[torch.Generator] = None
    ) -> torch.Tensor:
        """Independent Bernoulli draw for every spike."""
        self._check_spike(spike_mean)
        return sample_bernoulli(spike_mean, generator or self.generator)

    def slab_mean(self, visible: torch.Tensor, spike: torch.Tensor) -> torch.Tensor:
        """
        Conditional mean of the slabs given visible vectors and spikes.

        Columns of inactive spikes are exactly zero.

        Args:
            visible: Visible vectors [..., n_visible]
            spike: Spike states [..., n_hidden]

        Returns:
            slab_mean: [..., pool_size, n_hidden]
        """
        visible = self._prepare_visible(visible)
        spike = torch.as_tensor(spike, dtype=self.dtype, device=self.device)
        self._check_spike(spike)
        return spike.unsqueeze(-2) * self._project(visible) / self.slab_penalty

    def sample_slab(
        self,
        slab_mean: torch.Tensor,
        generator: Optional[torch.Generator] = None
    ) -> torch.Tensor:
        """Gaussian draw per slab entry with variance 1 / slab_penalty."""
        self._check_slab(slab_mean)
        std = 1.0 / math.sqrt(self.slab_penalty)
        return sample_gaussian(slab_mean, std, generator or self.generator)

    def hidden_mean(
        self,
        visible: torch.Tensor,
        generator: Optional[torch.Generator] = None
    ) -> HiddenState:
        """
        Conditional mean of the hidden layer used for reconstruction.

        The spike part is the spike probability; the slab part is the slab
        mean given one sampled spike configuration.
        """
        spike_mean = self.spike_mean(visible)
        spike = self.sample_spike(spike_mean, generator)
        return HiddenState(spike=spike_mean, slab=self.slab_mean(visible, spike))

    def sample_hidden(
        self,
        visible: torch.Tensor,
        generator: Optional[torch.Generator] = None
    ) -> HiddenState:
        """
        Draw a full hidden configuration given visible vectors.

        Args:
            visible: Visible vectors [..., n_visible]
            generator: Random generator (default: the model's generator)

        Returns:
            hidden: Binary spikes and sampled slabs
        """
        spike = self.sample_spike(self.spike_mean(visible), generator)
        slab = self.sample_slab(self.slab_mean(visible, spike), generator)
        return HiddenState(spike=spike, slab=slab)

    def visible_mean(self, hidden: Union[HiddenState, torch.Tensor]) -> torch.Tensor:
        """
        Conditional mean of the visible units.

        Args:
            hidden: Hidden state, or its flat packing [..., n_hidden * (1 + pool_size)]

        Returns:
            visible_mean: [..., n_visible]
        """
        self._check_ready()
        hidden = self._as_hidden_state(hidden)
        spike = hidden.spike.to(self.dtype)
        slab = hidden.slab.to(self.dtype)

        mean = torch.einsum('dkn,...kn,...n->...d', self.weight, slab, spike)
        return mean / self.visible_penalty[0, 0]

    def sample_visible(
        self,
        hidden: Union[HiddenState, torch.Tensor],
        generator: Optional[torch.Generator] = None
    ) -> torch.Tensor:
        """
        Draw visible vectors by rejection sampling inside ``radius``.

        Each row is drawn from N(visible_mean, 1 / visible_penalty) until its
        norm is below the radius, for at most ``MAX_SAMPLING_TRIALS`` draws.
        Rows still outside after the last draw are handled according to
        ``on_sampling_failure``.

        Args:
            hidden: Hidden state, or its flat packing
            generator: Random generator (default: the model's generator)

        Returns:
            visible: [..., n_visible]

        Raises:
            SamplingFailedError: If the policy is 'raise' and a row was never accepted
        """
        generator = generator or self.generator
        mean = self.visible_mean(hidden)
        std = 1.0 / math.sqrt(self.visible_penalty.item())

        rows = mean.reshape(-1, self.n_visible)
        samples = torch.empty_like(rows)
        pending = torch.ones(rows.shape[0], dtype=torch.bool, device=rows.device)

        trials = 0
        while trials < self.MAX_SAMPLING_TRIALS and bool(pending.any()):
            index = pending.nonzero(as_tuple=True)[0]
            draw = sample_gaussian(rows[index], std, generator)
            samples[index] = draw
            trials += 1

            accepted = torch.norm(draw, dim=-1) < self.radius
            pending[index[accepted]] = False

        self.last_sampling_trials = trials

        if bool(pending.any()):
            self._handle_sampling_failure(samples, pending)

        if mean.dim() == 1:
            self.visible_mean_buffer.copy_(mean)

        return samples.reshape(mean.shape)

    def _handle_sampling_failure(self, samples: torch.Tensor, pending: torch.Tensor) -> None:
        norms = torch.norm(samples[pending], dim=-1)
        message = (
            f"{int(pending.sum())} visible sample(s) still outside radius {self.radius} "
            f"after {self.MAX_SAMPLING_TRIALS} trials (norms: {norms.tolist()})"
        )

        if self.on_sampling_failure == "raise":
            raise SamplingFailedError(message, samples.clone(), norms)

        if self.on_sampling_failure == "project":
            # Scale onto the ball, strictly inside the radius
            scale = self.radius * (1.0 - 1e-6) / norms
            samples[pending] = samples[pending] * scale.unsqueeze(-1)
            logger.warning(f"{message}; projected onto the radius ball")
            return

        logger.warning(f"{message}; keeping the last draw")

    def phase(
        self,
        visible: torch.Tensor,
        gradient: torch.Tensor,
        generator: Optional[torch.Generator] = None
    ) -> torch.Tensor:
        """
        Compute one phase of gradient statistics.

        Called once with a data vector (positive phase) and once with a model
        sample (negative phase); combining them is left to the caller.

        Args:
            visible: One visible vector [n_visible]
            gradient: Flat buffer with the parameter layout, overwritten in place
            generator: Random generator for the spike draw

        Returns:
            gradient: The same buffer
        """
        visible = self._prepare_visible(visible)
        if visible.dim() != 1:
            raise ValueError("phase expects a single visible vector")
        grad_views = self.gradient_views(gradient)

        spike_mean = self.spike_mean(visible)
        spike = self.sample_spike(spike_mean, generator)
        slab_mean = self.slab_mean(visible, spike)

        self.spike_mean_buffer.copy_(spike_mean)
        self.spike_samples.copy_(spike)
        self.slab_mean_buffer.copy_(slab_mean)

        # Outer product scaled by the spike probability, not the sampled spike
        grad_views.weight.copy_(
            torch.einsum('d,kn,n->dkn', visible, slab_mean, spike_mean)
        )
        grad_views.spike_bias.copy_(spike_mean)
        grad_views.visible_penalty.fill_(-0.5 * torch.dot(visible, visible).item())

        return gradient

    def gibbs(
        self,
        visible: torch.Tensor,
        steps: int = 1,
        generator: Optional[torch.Generator] = None
    ) -> torch.Tensor:
        """
        Run ``steps`` rounds of block Gibbs sampling from ``visible``.

        The final states are also written to ``negative_samples`` when they
        fit; with more chains than ``batch_size`` the buffer is left as is
        and a debug message is logged.

        Args:
            visible: Starting visible vectors [n_visible] or [batch_size, n_visible]
            steps: Number of hidden/visible rounds
            generator: Random generator (default: the model's generator)

        Returns:
            visible: Visible states after the last round
        """
        if steps <= 0:
            raise ValueError("steps must be positive")

        visible = self._prepare_visible(visible)
        for _ in range(steps):
            hidden = self.sample_hidden(visible, generator)
            visible = self.sample_visible(hidden, generator)

        chains = visible.reshape(-1, self.n_visible)
        if chains.shape[0] <= self.batch_size:
            self.negative_samples[:chains.shape[0]].copy_(chains)
        else:
            logger.debug(
                f"gibbs ran {chains.shape[0]} chains but negative_samples holds "
                f"{self.batch_size}; negative_samples left unchanged"
            )

        return visible

    def get_config(self) -> Dict[str, Any]:
        return {
            'n_visible': self.n_visible,
            'n_hidden': self.n_hidden,
            'pool_size': self.pool_size,
            'slab_penalty': self.slab_penalty,
            'radius': self.radius,
            'batch_size': self.batch_size,
            'on_sampling_failure': self.on_sampling_failure,
            'random_seed': self.random_seed,
        }

    def save_checkpoint(self, filepath: Path) -> None:
        """Save model checkpoint."""
        checkpoint = {
            'model_state_dict': self.state_dict(),
            'config': self.get_config(),
            'dtype': str(self.dtype).replace('torch.', ''),
        }
        torch.save(checkpoint, filepath)
        logger.info(f"Checkpoint saved to {filepath}")

    @classmethod
    def load_checkpoint(cls, filepath: Path, device: Optional[torch.device] = None) -> 'SpikeSlabRBM':
        """Load model from checkpoint."""
        checkpoint = torch.load(filepath, map_location=device)
        config = checkpoint['config']

        model = cls(
            device=device,
            dtype=getattr(torch, checkpoint.get('dtype', 'float32')),
            initialization=SpikeSlabInitialization(ZeroInitialization(), n_hidden=config['n_hidden']),
            **config
        )
        # Copies into the existing buffer, so the views stay aliased
        model.load_state_dict(checkpoint['model_state_dict'])

        logger.info(f"Checkpoint loaded from {filepath}")
        return model

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"SpikeSlabRBM("
            f"n_visible={self.n_visible}, "
            f"n_hidden={self.n_hidden}, "
            f"pool_size={self.pool_size}, "
            f"slab_penalty={self.slab_penalty}, "
            f"radius={self.radius})"
        )
