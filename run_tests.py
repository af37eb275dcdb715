#!/usr/bin/env python
"""Test runner script for hostscope.

This script provides a convenient way to run tests with different options.
"""
from __future__ import annotations

import argparse
import subprocess
import sys

PLATFORM_MARKERS = ("linux", "macos", "windows", "freebsd", "solaris")


def main():
    parser = argparse.ArgumentParser(description="Run hostscope tests")
    parser.add_argument(
        "--platform",
        choices=PLATFORM_MARKERS,
        help="Run only tests for one OS driver",
    )
    parser.add_argument(
        "--integration",
        action="store_true",
        help="Run only integration tests",
    )
    parser.add_argument(
        "--coverage",
        action="store_true",
        help="Run with coverage report",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Verbose output",
    )
    parser.add_argument(
        "--file",
        help="Run specific test file",
    )
    parser.add_argument(
        "--install",
        action="store_true",
        help="Install test dependencies first",
    )

    args = parser.parse_args()

    if args.install:
        print("Installing test dependencies...")
        result = subprocess.run(
            [sys.executable, "-m", "pip", "install", "-e", ".[test]"],
            check=False,
        )
        if result.returncode != 0:
            print("Failed to install dependencies")
            return 1
        print()

    cmd = [sys.executable, "-m", "pytest"]

    if args.verbose:
        cmd.append("-v")

    if args.platform:
        cmd.extend(["-m", args.platform])
    elif args.integration:
        cmd.extend(["-m", "integration"])

    if args.coverage:
        cmd.extend(["--cov=hostscope", "--cov-report=term-missing"])

    if args.file:
        cmd.append(args.file)
    else:
        cmd.append("tests")

    print(f"Running: {' '.join(cmd)}")
    print()
    result = subprocess.run(cmd, check=False)
    return result.returncode


if __name__ == "__main__":
    sys.exit(main())
