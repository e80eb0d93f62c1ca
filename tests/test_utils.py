#!/usr/bin/env python3
"""
Unit tests for sampling utilities and initialization rules.
"""

import unittest
import torch
import numpy as np
from pathlib import Path
import sys

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))

from spikeslab.models import (
    ConstantInitialization,
    GaussianInitialization,
    GibbsSampler,
    HiddenState,
    SpikeSlabInitialization,
    SpikeSlabRBM,
    XavierInitialization,
    ZeroInitialization,
    get_initialization_rule,
    sample_bernoulli,
    sample_gaussian,
)


class TestSamplers(unittest.TestCase):
    """Test cases for the Bernoulli and Gaussian samplers."""

    def test_sample_bernoulli(self):
        """Test Bernoulli samples are binary and follow the probabilities."""
        probs = torch.full((20000,), 0.3)
        samples = sample_bernoulli(probs, torch.Generator().manual_seed(0))

        self.assertTrue(torch.all((samples == 0) | (samples == 1)))
        self.assertAlmostEqual(samples.mean().item(), 0.3, delta=0.02)

    def test_sample_gaussian(self):
        """Test Gaussian samples have the requested moments."""
        mean = torch.full((20000,), 2.0, dtype=torch.float64)
        samples = sample_gaussian(mean, 0.5, torch.Generator().manual_seed(0))

        self.assertEqual(samples.dtype, torch.float64)
        self.assertAlmostEqual(samples.mean().item(), 2.0, delta=0.02)
        self.assertAlmostEqual(samples.std().item(), 0.5, delta=0.02)

    def test_generator_reproducibility(self):
        """Test that equal generator seeds give equal draws."""
        mean = torch.zeros(10)
        first = sample_gaussian(mean, 1.0, torch.Generator().manual_seed(5))
        second = sample_gaussian(mean, 1.0, torch.Generator().manual_seed(5))

        self.assertTrue(torch.equal(first, second))


class TestHiddenState(unittest.TestCase):
    """Test cases for HiddenState packing."""

    def test_flatten_layout(self):
        """Test that the flat packing puts spikes first."""
        spike = torch.tensor([1.0, 0.0, 1.0])
        slab = torch.arange(6, dtype=torch.float32).reshape(2, 3)
        hidden = HiddenState(spike=spike, slab=slab)

        flat = hidden.flatten()
        self.assertEqual(flat.shape, (9,))
        self.assertTrue(torch.equal(flat[:3], spike))
        # Slab pools are packed one unit at a time
        self.assertTrue(torch.equal(flat[3:5], slab[:, 0]))
        self.assertTrue(torch.equal(flat[7:9], slab[:, 2]))

        restored = HiddenState.from_flat(flat, n_hidden=3, pool_size=2)
        self.assertTrue(torch.equal(restored.slab, slab))
        self.assertEqual(restored.n_hidden, 3)
        self.assertEqual(restored.pool_size, 2)

    def test_batched_from_flat(self):
        """Test unpacking with a leading batch dimension."""
        flat = torch.randn(4, 3 + 2 * 3)
        hidden = HiddenState.from_flat(flat, n_hidden=3, pool_size=2)

        self.assertEqual(hidden.spike.shape, (4, 3))
        self.assertEqual(hidden.slab.shape, (4, 2, 3))
        self.assertTrue(torch.equal(hidden.slab[:, :, 1], flat[:, 5:7]))

    def test_from_flat_rejects_wrong_size(self):
        """Test that a flat vector of the wrong length is refused."""
        with self.assertRaises(ValueError):
            HiddenState.from_flat(torch.zeros(8), n_hidden=3, pool_size=2)


class TestGibbsSampler(unittest.TestCase):
    """Test cases for GibbsSampler."""

    def setUp(self):
        """Set up test fixtures."""
        self.rbm = SpikeSlabRBM(n_visible=5, n_hidden=4, pool_size=2, radius=50.0, random_seed=1)

    def test_sample_shapes(self):
        """Test collected sample shapes."""
        sampler = GibbsSampler(n_steps=3, generator=torch.Generator().manual_seed(0))
        samples = sampler.sample(self.rbm, torch.zeros(8, 5), n_samples=4)

        self.assertEqual(samples.shape, (4, 8, 5))
        self.assertTrue(torch.all(torch.norm(samples, dim=-1) < self.rbm.radius))

    def test_sampler_reproducibility(self):
        """Test that seeded samplers give equal chains."""
        first = GibbsSampler(2, torch.Generator().manual_seed(9)).sample(self.rbm, torch.zeros(5), 3)
        second = GibbsSampler(2, torch.Generator().manual_seed(9)).sample(self.rbm, torch.zeros(5), 3)

        self.assertTrue(torch.equal(first, second))

    def test_invalid_arguments(self):
        """Test invalid step counts and models."""
        with self.assertRaises(ValueError):
            GibbsSampler(n_steps=0)
        with self.assertRaises(ValueError):
            GibbsSampler(n_steps=1).sample(torch.nn.Linear(2, 2), torch.zeros(2))


class TestInitializationRules(unittest.TestCase):
    """Test cases for initialization rules."""

    def test_zero_and_constant(self):
        """Test the trivial rules."""
        buffer = torch.ones(6)
        ZeroInitialization()(buffer, 6)
        self.assertTrue(torch.all(buffer == 0))

        ConstantInitialization(0.25)(buffer, 6)
        self.assertTrue(torch.all(buffer == 0.25))

    def test_gaussian_is_seeded(self):
        """Test that seeded Gaussian rules are reproducible."""
        first = torch.zeros(1000)
        second = torch.zeros(1000)
        GaussianInitialization(mean=1.0, std=0.1, random_seed=3)(first, 1000)
        GaussianInitialization(mean=1.0, std=0.1, random_seed=3)(second, 1000)

        self.assertTrue(torch.equal(first, second))
        self.assertAlmostEqual(first.mean().item(), 1.0, delta=0.02)

    def test_xavier_std(self):
        """Test the Xavier standard deviation."""
        rule = XavierInitialization(fan_in=30, fan_out=20)
        self.assertAlmostEqual(rule.std, np.sqrt(2.0 / 50))

    def test_spike_slab_initialization(self):
        """Test that spike bias and visible penalty are set after the base rule."""
        buffer = torch.zeros(10)
        SpikeSlabInitialization(ConstantInitialization(3.0), n_hidden=2,
                                spike_bias=-1.0, visible_penalty=4.0)(buffer, 10)

        self.assertTrue(torch.all(buffer[:7] == 3.0))
        self.assertTrue(torch.all(buffer[7:9] == -1.0))
        self.assertEqual(buffer[9].item(), 4.0)

        with self.assertRaises(ValueError):
            SpikeSlabInitialization(ZeroInitialization(), n_hidden=2, visible_penalty=0.0)

    def test_get_initialization_rule(self):
        """Test rule lookup by name."""
        self.assertIsInstance(get_initialization_rule('gaussian', std=0.2), GaussianInitialization)
        with self.assertRaises(ValueError):
            get_initialization_rule('orthogonal')


if __name__ == '__main__':
    unittest.main()
