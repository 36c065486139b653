#!/usr/bin/env python3
"""
Test Runner for Universal Memory MCP

Quick test runner script for the root directory.
Runs the pytest suite under tests/.

Usage:
    python run_tests.py
    python run_tests.py -v
    python run_tests.py -k search
"""

import sys
import subprocess
from pathlib import Path

def main():
    """Run the test suite"""
    test_dir = Path(__file__).parent / "tests"

    if not test_dir.exists():
        print(f"Error: Test directory not found: {test_dir}")
        sys.exit(1)

    # Pass through any arguments (like -v or -k)
    cmd = [sys.executable, "-m", "pytest", str(test_dir)] + sys.argv[1:]

    print(f"Running: {' '.join(cmd)}\n")
    result = subprocess.run(cmd)

    sys.exit(result.returncode)

if __name__ == "__main__":
    main()
