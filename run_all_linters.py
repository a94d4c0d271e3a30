#!/usr/bin/env python3
"""Run the formatters, linters and the test suite in one go.

Steps, in order:
1. Black format check
2. isort import-order check
3. Ruff static checks
4. Pylint analysis
5. pytest

Output is collected and failures are repeated in a summary at the end.
"""

from pathlib import Path
import subprocess
import sys

ROOT = Path(__file__).parent
PACKAGES = ["app", "core", "infrastructure"]
RULE = "=" * 60


def _banner(*lines: str) -> None:
    print(f"\n{RULE}")
    for line in lines:
        print(line)
    print(RULE)


def run_command(cmd: list[str], description: str) -> tuple[bool, str]:
    """Run `cmd` from the repository root and return (success, output)."""
    _banner(f"Running: {description}", f"Command: {' '.join(cmd)}")

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=False, cwd=ROOT)
    except OSError as e:
        print(f"FAILED to start: {e}")
        return False, str(e)

    success = result.returncode == 0
    output = result.stdout + result.stderr
    print("OK" if success else "FAILED")
    if output.strip():
        print("\nOutput:")
        print(output)
    return success, output


def main() -> None:
    python = sys.executable
    commands = [
        ([python, "-m", "black", ".", "--check"], "Black format check"),
        ([python, "-m", "isort", ".", "--check-only"], "isort import order"),
        ([python, "-m", "ruff", "check", "."], "Ruff"),
        ([python, "-m", "pylint", *PACKAGES, "main.py"], "Pylint"),
        ([python, "-m", "pytest", "-q"], "pytest"),
    ]

    results = [(description, *run_command(cmd, description)) for cmd, description in commands]

    _banner("Summary")
    all_passed = all(success for _, success, _ in results)
    for name, ok, _ in results:
        print(f"{name}: {'passed' if ok else 'FAILED'}")

    if not all_passed:
        print("\nFailure details:")
        for name, ok, output in results:
            if output.strip() and not ok:
                print(f"\n--- {name} ---\n{output}")

    sys.exit(0 if all_passed else 1)


if __name__ == "__main__":
    main()
