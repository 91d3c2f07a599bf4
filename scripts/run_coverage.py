#!/usr/bin/env python3
"""Coverage runner for the mksrga packages.

Runs each member's unit tests under pytest-cov, combines the data and prints
a report. With ``--without-mocks`` a second pass excludes every test marked
``uses_mock`` (see the root conftest.py) and lists the files whose coverage
depends on mocked tests, i.e. code the emulator never exercises.

Usage:
    # All members, terminal and HTML reports
    python scripts/run_coverage.py

    # One member only
    python scripts/run_coverage.py --package mksrga-protocol

    # Compare against a run without mocked tests
    python scripts/run_coverage.py --without-mocks
"""

from __future__ import annotations

import argparse
import json
import os
import subprocess
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent
COVERAGE_DIR = PROJECT_ROOT / "coverage"

PACKAGES = [
    "mksrga-protocol",
    "mksrga-recorder",
]


def _coverage_env(data_file: Path) -> dict[str, str]:
    env = dict(os.environ)
    env["COVERAGE_FILE"] = str(data_file)
    return env


def run_tests(
    packages: list[str],
    label: str,
    marker: str | None,
    verbose: bool,
) -> tuple[bool, Path]:
    """Run the unit tests of *packages* and combine their coverage.

    Args:
        packages: Member directories to test.
        label: Name of this run, used for the data file names.
        marker: Optional ``-m`` expression passed to pytest.
        verbose: Pass ``-v`` to pytest.

    Returns:
        ``(all_passed, combined_data_file)``.
    """
    all_passed = True
    data_files = []
    for pkg in packages:
        pkg_path = PROJECT_ROOT / pkg
        test_path = pkg_path / "tests" / "unit"
        if not test_path.exists():
            continue

        print(f"\n=== {label}: {pkg} ===")
        data_file = COVERAGE_DIR / f".coverage.{label}.{pkg}"
        data_files.append(data_file)
        cmd = [
            sys.executable,
            "-m",
            "pytest",
            f"--cov={pkg_path / 'src'}",
            "--cov-report=",
            str(test_path),
        ]
        if marker:
            cmd += ["-m", marker]
        if verbose:
            cmd.append("-v")
        result = subprocess.run(cmd, cwd=PROJECT_ROOT, env=_coverage_env(data_file), check=False)
        # exit code 5 means every test was deselected
        if result.returncode not in (0, 5):
            all_passed = False

    combined = COVERAGE_DIR / f".coverage.{label}"
    existing = [str(f) for f in data_files if f.exists()]
    if existing:
        subprocess.run(
            [sys.executable, "-m", "coverage", "combine", "--keep", *existing],
            cwd=PROJECT_ROOT,
            env=_coverage_env(combined),
            check=False,
        )
    return all_passed, combined


def export_json(data_file: Path) -> dict[str, float]:
    """Return per-file percent covered from a combined data file."""
    out = data_file.with_suffix(".json")
    subprocess.run(
        [sys.executable, "-m", "coverage", "json", "-q", "-o", str(out)],
        cwd=PROJECT_ROOT,
        env=_coverage_env(data_file),
        check=False,
    )
    if not out.exists():
        return {}
    with open(out, encoding="utf-8") as f:
        data = json.load(f)
    return {
        name.replace(str(PROJECT_ROOT) + "/", ""): info["summary"]["percent_covered"]
        for name, info in data.get("files", {}).items()
    }


def print_mock_dependence(full: dict[str, float], unmocked: dict[str, float]) -> None:
    """Print files that lose coverage when mocked tests are excluded."""
    rows = sorted(
        ((name, pct, unmocked.get(name, 0.0)) for name, pct in full.items()),
        key=lambda row: row[1] - row[2],
        reverse=True,
    )
    print("\nCoverage reached only through mocked tests:")
    print("-" * 72)
    for name, pct, without in rows:
        if pct - without > 0.05:
            print(f"  {name}: {pct:.1f}% -> {without:.1f}% without mocks")


def main() -> int:
    """Main entry point.

    Returns:
        Exit code.
    """
    parser = argparse.ArgumentParser(
        description="Run unit tests with coverage",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--package", "-p",
        action="append",
        dest="packages",
        help="Member package to test (repeatable)",
    )
    parser.add_argument(
        "--without-mocks", "-m",
        action="store_true",
        help="Also run without mocked tests and compare",
    )
    parser.add_argument("--quiet", "-q", action="store_true", help="Minimal output")
    args = parser.parse_args()

    COVERAGE_DIR.mkdir(exist_ok=True)
    packages = args.packages or PACKAGES

    passed, combined = run_tests(packages, "all", None, verbose=not args.quiet)
    env = _coverage_env(combined)
    subprocess.run(
        [sys.executable, "-m", "coverage", "report", "--show-missing"],
        cwd=PROJECT_ROOT, env=env, check=False,
    )
    subprocess.run(
        [sys.executable, "-m", "coverage", "html", "-d", str(COVERAGE_DIR / "html")],
        cwd=PROJECT_ROOT, env=env, check=False,
    )
    print(f"\nCoverage HTML report: {COVERAGE_DIR / 'html' / 'index.html'}")

    if args.without_mocks:
        _, unmocked = run_tests(packages, "unmocked", "not uses_mock", verbose=False)
        print_mock_dependence(export_json(combined), export_json(unmocked))

    return 0 if passed else 1


if __name__ == "__main__":
    sys.exit(main())
