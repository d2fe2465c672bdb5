#!/usr/bin/env python3
"""
Run the formatters, linters, type checker and test suite for Flashdeck.

Extra command line arguments are passed on to pytest, e.g.
``./run_checks.py -k session``.
"""

import subprocess
import sys
from typing import List, Tuple

# Colors for terminal output
GREEN = "\033[92m"
RED = "\033[91m"
RESET = "\033[0m"
YELLOW = "\033[93m"
CYAN = "\033[96m"

PACKAGES = ["flashdeck", "config"]


def run_command(command: List[str], description: str) -> Tuple[bool, str]:
    """Run a command and return whether it succeeded along with its output."""
    print(f"{CYAN}Running {description}...{RESET}")
    try:
        output = subprocess.check_output(command, stderr=subprocess.STDOUT).decode("utf-8")
        print(f"{GREEN}✓ {description} passed{RESET}")
        return True, output
    except FileNotFoundError:
        print(f"{RED}✗ {description} failed: {command[0]} is not installed{RESET}")
        return False, f"{command[0]} not found; install the dev extra"
    except subprocess.CalledProcessError as e:
        print(f"{RED}✗ {description} failed{RESET}")
        return False, e.output.decode("utf-8")


def main(pytest_args: List[str]) -> int:
    """Run all checks and tests."""
    checks = [
        ("Black", ["black", "--check", *PACKAGES, "tests"], "Black code formatting"),
        ("isort", ["isort", "--check", *PACKAGES, "tests"], "isort import sorting"),
        ("flake8", ["flake8", *PACKAGES, "tests"], "flake8 linting"),
        ("mypy", ["mypy", *PACKAGES], "mypy type checking"),
        (
            "pytest",
            [
                "pytest",
                "--cov=flashdeck",
                "--cov=config",
                "--cov-report=term-missing",
                *pytest_args,
            ],
            "pytest with coverage",
        ),
    ]

    results = []
    for name, command, description in checks:
        success, output = run_command(command, description)
        results.append((name, success, output))

    all_passed = all(success for _, success, _ in results)

    print("\n" + "=" * 50)
    print(f"{CYAN}SUMMARY:{RESET}")
    for name, success, _ in results:
        status = f"{GREEN}PASSED{RESET}" if success else f"{RED}FAILED{RESET}"
        print(f"{name}: {status}")

    if not all_passed:
        print("\n" + "=" * 50)
        print(f"{YELLOW}DETAILS OF FAILED CHECKS:{RESET}")
        for name, success, output in results:
            if not success:
                print(f"\n{CYAN}{name} output:{RESET}")
                print(output)

    return 0 if all_passed else 1


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
