#!/usr/bin/env python
"""Test runner script for vzlogger-mqtt.

Wraps pytest with the options used during development.
"""
from __future__ import annotations

import argparse
import subprocess
import sys


def main():
    parser = argparse.ArgumentParser(description="Run vzlogger-mqtt tests")
    parser.add_argument(
        "--threaded",
        action="store_true",
        help="Run only tests that start a real network thread",
    )
    parser.add_argument(
        "--skip-threaded",
        action="store_true",
        help="Skip tests that start a real network thread",
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

    if args.threaded:
        cmd.extend(["-m", "threaded"])
    elif args.skip_threaded:
        cmd.extend(["-m", "not threaded"])

    if args.coverage:
        cmd.extend(["--cov=vzlogger_mqtt", "--cov-report=term-missing"])

    cmd.append(args.file or "tests")

    print(f"Running: {' '.join(cmd)}")
    print()
    result = subprocess.run(cmd, check=False)
    return result.returncode


if __name__ == "__main__":
    sys.exit(main())
