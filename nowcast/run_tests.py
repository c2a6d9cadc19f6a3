#!/usr/bin/env python3
"""
Test runner for nowcast

Runs against SQLite and an in-process fake Redis, so neither Postgres nor a
Redis server is needed.
"""
import argparse
import os
import subprocess
import sys
from pathlib import Path

PACKAGE_DIR = Path(__file__).parent

def build_command(args, extra) -> list:
    cmd = [sys.executable, "-m", "pytest", "-v", "-W", "ignore::DeprecationWarning"]

    if args.coverage:
        cmd += ["--cov=nowcast", "--cov-report=term-missing"]
        if args.html:
            cmd.append("--cov-report=html")

    if args.keyword:
        cmd += ["-k", args.keyword]

    cmd.append(str(PACKAGE_DIR / "tests"))
    return cmd + extra

def run_tests() -> int:
    """Run the suite with the testing environment switched on"""
    parser = argparse.ArgumentParser(description="Run the nowcast test suite")
    parser.add_argument("--no-cov", dest="coverage", action="store_false", help="Skip coverage")
    parser.add_argument("--html", action="store_true", help="Also write an HTML coverage report")
    parser.add_argument("-k", dest="keyword", help="Only run tests matching this expression")
    args, extra = parser.parse_known_args()

    env = os.environ.copy()
    env["ENVIRONMENT"] = "testing"
    env["TESTING"] = "true"
    env["PYTHONPATH"] = str(PACKAGE_DIR.parent)

    cmd = build_command(args, extra)
    print(f"Running: {' '.join(cmd)}")

    result = subprocess.run(cmd, env=env)
    print("\n✅ All tests passed!" if result.returncode == 0 else "\n❌ Tests failed!")
    return result.returncode

if __name__ == "__main__":
    sys.exit(run_tests())
