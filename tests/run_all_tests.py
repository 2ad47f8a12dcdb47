"""
Run all tests for the Memtable implementation

This script runs all test suites and reports results.
"""

import sys
import unittest
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

# Import test modules
from test_memtable import (
    TestMemtableSet,
    TestMemtableDelete,
    TestMemtableGet,
    TestMemtableInvariants,
    TestMemtableScan,
    TestMemtableIterator,
    TestMemtableConfig,
    TestMemtableValidation,
)


def run_all_tests():
    """Run all test suites"""
    loader = unittest.TestLoader()
    suite = unittest.TestSuite()

    print("=" * 70)
    print("Running Memtable Test Suite")
    print("=" * 70)
    print()

    print("Loading Memtable tests...")
    for case in (TestMemtableSet, TestMemtableDelete, TestMemtableGet,
                 TestMemtableInvariants, TestMemtableScan, TestMemtableIterator,
                 TestMemtableConfig, TestMemtableValidation):
        suite.addTests(loader.loadTestsFromTestCase(case))

    print()
    print("=" * 70)
    print(f"Total tests to run: {suite.countTestCases()}")
    print("=" * 70)
    print()

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)

    print()
    print("=" * 70)
    print("TEST SUMMARY")
    print("=" * 70)
    print(f"Tests run: {result.testsRun}")
    print(f"Successes: {result.testsRun - len(result.failures) - len(result.errors)}")
    print(f"Failures: {len(result.failures)}")
    print(f"Errors: {len(result.errors)}")
    print(f"Skipped: {len(result.skipped)}")
    print("=" * 70)

    if result.wasSuccessful():
        print("✓ ALL TESTS PASSED!")
        return 0
    else:
        print("✗ SOME TESTS FAILED")
        return 1


if __name__ == '__main__':
    exit_code = run_all_tests()
    sys.exit(exit_code)
