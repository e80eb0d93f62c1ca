#!/usr/bin/env python3
"""
Test runner for the spikeslab test suite.
"""

import unittest
import importlib.util
import sys
import time
from pathlib import Path
import argparse

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))


class SummaryTextTestResult(unittest.TextTestResult):
    """Test result that counts successes for the summary."""

    def __init__(self, stream, descriptions, verbosity):
        super().__init__(stream, descriptions, verbosity)
        self.success_count = 0

    def addSuccess(self, test):
        super().addSuccess(test)
        self.success_count += 1


class SummaryTextTestRunner(unittest.TextTestRunner):
    """Test runner printing a short summary."""

    resultclass = SummaryTextTestResult

    def run(self, test):
        print("🧪 spikeslab Test Suite")
        print("=" * 50)

        start_time = time.time()
        result = super().run(test)
        end_time = time.time()

        print("\n" + "=" * 50)
        print(f"⏱️  Total time: {end_time - start_time:.2f} seconds")
        print(f"✅ Passed: {result.success_count}")
        print(f"❌ Failed: {len(result.failures)}")
        print(f"💥 Errors: {len(result.errors)}")
        print(f"⏭️  Skipped: {len(result.skipped)}")

        for test, _ in result.failures + result.errors:
            print(f"  - {test}")

        return result


def discover_tests(test_dir: Path, pattern: str = "test_*.py") -> unittest.TestSuite:
    """Discover and load tests from directory."""
    loader = unittest.TestLoader()
    return loader.discover(str(test_dir), pattern=pattern, top_level_dir=str(test_dir.parent))


def load_test_module(test_name: str) -> unittest.TestSuite:
    """Load a single test module from this directory."""
    test_file = Path(__file__).parent / f"{test_name}.py"
    if not test_file.exists():
        raise ValueError(f"Could not find test: {test_name}")

    spec = importlib.util.spec_from_file_location(test_name, test_file)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return unittest.TestLoader().loadTestsFromModule(module)


def main():
    """Main test runner function."""
    parser = argparse.ArgumentParser(description='Run spikeslab tests')
    parser.add_argument('--test', type=str, help='Run specific test module')
    parser.add_argument('--pattern', type=str, default='test_*.py',
                        help='Test file pattern')
    parser.add_argument('--verbosity', type=int, default=2, choices=[0, 1, 2],
                        help='Test verbosity level')
    parser.add_argument('--failfast', action='store_true',
                        help='Stop on first failure')

    args = parser.parse_args()

    test_dir = Path(__file__).parent
    if args.test:
        suite = load_test_module(args.test)
    else:
        suite = discover_tests(test_dir, args.pattern)

    runner = SummaryTextTestRunner(verbosity=args.verbosity, failfast=args.failfast, buffer=True)
    result = runner.run(suite)

    sys.exit(0 if result.wasSuccessful() else 1)


if __name__ == '__main__':
    main()
