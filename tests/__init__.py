"""
spikeslab Test Suite

Test Structure:
- test_models.py: Tests for the spike-and-slab RBM and the energy model registry
- test_layout.py: Tests for the flat parameter buffer layout
- test_utils.py: Tests for samplers, hidden state packing and initialization rules
- test_config.py: Tests for configuration loading and model construction

Usage:
    # Run all tests
    python tests/run_tests.py

    # Run specific test module
    python tests/run_tests.py --test test_models

    # Stop on first failure
    python tests/run_tests.py --failfast
"""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
