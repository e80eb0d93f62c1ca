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
Models module for spikeslab.

This module provides the spike-and-slab RBM and its building blocks:
- SpikeSlabRBM: ssRBM energy model with Gibbs conditionals and phase statistics
- EnergyModel: Interface shared by energy variants, with a construction-time registry
- ParameterLayout: Flat parameter buffer with aliasing structured views
- Initialization rules and sampling utilities
"""

from .base import EnergyModel, available_energy_models, build_energy_model, register_energy_model
from .layout import ParameterLayout, ParameterViews
from .ssrbm import SpikeSlabRBM, SamplingFailedError
from .init_rules import (
    ZeroInitialization,
    ConstantInitialization,
    GaussianInitialization,
    XavierInitialization,
    SpikeSlabInitialization,
    get_initialization_rule
)
from .utils import (
    sample_bernoulli,
    sample_gaussian,
    HiddenState,
    GibbsSampler
)

__version__ = "0.1.0"
__all__ = [
    # Core models
    "SpikeSlabRBM",
    "SamplingFailedError",
    "EnergyModel",
    "available_energy_models",
    "build_energy_model",
    "register_energy_model",

    # Parameter layout
    "ParameterLayout",
    "ParameterViews",

    # Initialization rules
    "ZeroInitialization",
    "ConstantInitialization",
    "GaussianInitialization",
    "XavierInitialization",
    "SpikeSlabInitialization",
    "get_initialization_rule",

    # Utility functions
    "sample_bernoulli",
    "sample_gaussian",
    "HiddenState",
    "GibbsSampler"
]
