#!/usr/bin/env python3
"""
Unit tests for the flat parameter buffer layout.
"""

import unittest
import torch
from pathlib import Path
import sys

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))

from spikeslab.models.layout import ParameterLayout


class TestParameterLayout(unittest.TestCase):
    """Test cases for ParameterLayout."""

    def test_size_and_offsets(self):
        """Test the buffer size D*K*N + N + 1 for several shapes."""
        for n_visible, n_hidden, pool_size in [(1, 1, 1), (4, 2, 2), (7, 5, 3), (16, 8, 1)]:
            with self.subTest(n_visible=n_visible, n_hidden=n_hidden, pool_size=pool_size):
                layout = ParameterLayout(n_visible, n_hidden, pool_size)
                weight_size = n_visible * pool_size * n_hidden

                self.assertEqual(layout.size, weight_size + n_hidden + 1)
                self.assertEqual(layout.spike_bias_offset, weight_size)
                self.assertEqual(layout.visible_penalty_offset, weight_size + n_hidden)

    def test_views_partition_buffer(self):
        """Test that the views tile the buffer exactly."""
        layout = ParameterLayout(5, 3, 2)
        buffer = torch.arange(layout.size, dtype=torch.float64)
        views = layout.views(buffer)

        self.assertEqual(views.weight.shape, (5, 2, 3))
        self.assertEqual(views.spike_bias.shape, (3,))
        self.assertEqual(views.visible_penalty.shape, (1, 1))

        # Every element is addressed exactly once
        covered = torch.cat([
            views.weight.permute(2, 1, 0).reshape(-1),
            views.spike_bias,
            views.visible_penalty.reshape(-1)
        ])
        self.assertTrue(torch.equal(covered, buffer))

    def test_weight_is_column_major(self):
        """Test that each hidden unit owns one contiguous D x K block."""
        layout = ParameterLayout(4, 3, 2)
        buffer = torch.arange(layout.size, dtype=torch.float64)
        views = layout.views(buffer)
        block = 4 * 2

        self.assertEqual(views.weight[1, 0, 0].item(), 1.0)
        self.assertEqual(views.weight[0, 1, 0].item(), 4.0)
        self.assertEqual(views.weight[0, 0, 1].item(), float(block))
        for unit in range(3):
            expected = buffer[unit * block:(unit + 1) * block].view(2, 4).t()
            self.assertTrue(torch.equal(views.weight[:, :, unit], expected))

    def test_views_share_storage(self):
        """Test that writes through a view reach the buffer."""
        layout = ParameterLayout(3, 2, 2)
        buffer = layout.allocate(torch.float32)
        views = layout.views(buffer)

        views.spike_bias.fill_(2.0)
        views.visible_penalty.fill_(5.0)
        views.weight[:, :, 1] = 1.0

        self.assertEqual(buffer[-1].item(), 5.0)
        self.assertTrue(torch.all(buffer[layout.spike_bias_offset:layout.visible_penalty_offset] == 2.0))
        self.assertEqual(buffer[:layout.weight_size].sum().item(), 3 * 2)

    def test_rejects_mismatched_buffer(self):
        """Test that incongruent buffers are refused."""
        layout = ParameterLayout(3, 2, 2)

        with self.assertRaises(ValueError):
            layout.views(torch.zeros(layout.size + 1))
        with self.assertRaises(ValueError):
            layout.views(torch.zeros(1, layout.size))
        with self.assertRaises(ValueError):
            layout.views(torch.zeros(2 * layout.size)[::2])

    def test_invalid_sizes(self):
        """Test that non-positive sizes are rejected."""
        with self.assertRaises(ValueError):
            ParameterLayout(0, 2, 2)
        with self.assertRaises(ValueError):
            ParameterLayout(3, 2, 0)


if __name__ == '__main__':
    unittest.main()
