#!/usr/bin/env python3
"""Roblox Audio Analysis API — Environment Setup Checker

Validates that the external media tools, Python packages and configuration
are present before running the service for the first time.

Usage:
    python scripts/setup_check.py            # full check
    python scripts/setup_check.py --quick    # skip the ffprobe smoke test
"""
from __future__ import annotations

import argparse
import importlib
import shutil
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple

try:
    import yaml
except ImportError:
    print("ERROR: PyYAML not installed.  Run: pip install pyyaml")
    sys.exit(1)

# ── Paths ─────────────────────────────────────────────────────────────────────
REPO_ROOT = Path(__file__).parent.parent
CONFIG_DIR = REPO_ROOT / "backend" / "config"
SETTINGS_YAML = CONFIG_DIR / "settings.yaml"

# ── ANSI colours ──────────────────────────────────────────────────────────────
GREEN  = "\033[92m"
YELLOW = "\033[93m"
RED    = "\033[91m"
BLUE   = "\033[94m"
RESET  = "\033[0m"
BOLD   = "\033[1m"


def ok(msg: str) -> str:
    return f"  {GREEN}✓{RESET}  {msg}"


def warn(msg: str) -> str:
    return f"  {YELLOW}⚠{RESET}  {msg}"


def err(msg: str) -> str:
    return f"  {RED}✗{RESET}  {msg}"


def section(title: str) -> None:
    print(f"\n{BOLD}{BLUE}━━ {title} ━━{RESET}")


# ── Result accumulator ────────────────────────────────────────────────────────
@dataclass
class CheckResult:
    passed: int = 0
    warned: int = 0
    failed: int = 0
    messages: List[Tuple[str, str]] = field(default_factory=list)

    def add(self, level: str, msg: str) -> None:
        self.messages.append((level, msg))
        if level == "ok":
            self.passed += 1
        elif level == "warn":
            self.warned += 1
        else:
            self.failed += 1

    def print_summary(self) -> None:
        section("Summary")
        for level, msg in self.messages:
            if level == "ok":
                print(ok(msg))
            elif level == "warn":
                print(warn(msg))
            else:
                print(err(msg))

        print()
        total = self.passed + self.warned + self.failed
        print(f"  {GREEN}{self.passed}{RESET} passed  "
              f"{YELLOW}{self.warned}{RESET} warnings  "
              f"{RED}{self.failed}{RESET} failed  "
              f"({total} checks)")

    @property
    def exit_code(self) -> int:
        return 0 if self.failed == 0 else 1


# ── Individual checks ─────────────────────────────────────────────────────────


def _load_settings() -> dict:
    if not SETTINGS_YAML.exists():
        return {}
    with open(SETTINGS_YAML) as f:
        return yaml.safe_load(f) or {}


def check_python_version(result: CheckResult) -> None:
    section("Python")
    major, minor = sys.version_info[:2]
    ver = f"{major}.{minor}"
    if (major, minor) >= (3, 9):
        print(ok(f"Python {ver}"))
        result.add("ok", f"Python {ver}")
    else:
        print(err(f"Python {ver} — need 3.9+"))
        result.add("fail", f"Python {ver} — need 3.9+")


def check_media_tools(result: CheckResult, settings: dict, quick: bool) -> None:
    section("Media tools")

    sampler = settings.get("sampler", {})
    tools = {
        "ffmpeg":  (sampler.get("ffmpeg", "ffmpeg"),   "Measures per-window loudness"),
        "ffprobe": (sampler.get("ffprobe", "ffprobe"), "Reads track duration"),
    }
    for name, (cmd, purpose) in tools.items():
        path = shutil.which(cmd)
        if not path:
            print(err(f"{name} not found — {purpose}"))
            result.add("fail", f"{name} missing")
            continue
        print(ok(f"{name}: {path}"))
        result.add("ok", f"{name} found")

        if quick:
            continue
        proc = subprocess.run([cmd, "-version"], capture_output=True, text=True)
        if proc.returncode == 0:
            first_line = (proc.stdout.splitlines() or ["?"])[0]
            print(ok(f"{name} runs: {first_line}"))
            result.add("ok", f"{name} runs")
        else:
            print(err(f"{name} -version exited with {proc.returncode}"))
            result.add("fail", f"{name} does not run")


def check_python_packages(result: CheckResult) -> None:
    section("Python packages")

    required = ["fastapi", "uvicorn", "pydantic", "yaml", "dotenv", "requests", "pytest"]
    for pkg in required:
        try:
            importlib.import_module(pkg)
            print(ok(f"{pkg}"))
            result.add("ok", f"Package: {pkg}")
        except ImportError:
            print(err(f"{pkg} not installed"))
            result.add("fail", f"Package missing: {pkg}")


def check_config_files(result: CheckResult) -> None:
    section("Configuration files")

    if SETTINGS_YAML.exists():
        print(ok("settings.yaml"))
        result.add("ok", "Config: settings.yaml")
    else:
        print(err(f"settings.yaml: not found at {SETTINGS_YAML}"))
        result.add("fail", "Config missing: settings.yaml")


def check_scratch_dir(result: CheckResult, settings: dict) -> None:
    section("Scratch directory")

    raw = settings.get("paths", {}).get("scratch_dir", "temp")
    path = Path(raw)
    if not path.is_absolute():
        path = REPO_ROOT / path

    if path.exists():
        leftovers = [p for p in path.iterdir() if p.is_file()]
        print(ok(f"scratch: {path}"))
        result.add("ok", "Dir: scratch")
        if leftovers:
            print(warn(f"{len(leftovers)} leftover scratch file(s) in {path}"))
            result.add("warn", f"{len(leftovers)} leftover scratch file(s)")
    else:
        path.mkdir(parents=True, exist_ok=True)
        print(ok(f"scratch: created {path}"))
        result.add("ok", "Dir created: scratch")


# ── Main ──────────────────────────────────────────────────────────────────────


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Roblox Audio Analysis API environment setup checker"
    )
    parser.add_argument("--quick", action="store_true", help="Skip tool smoke tests")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    result = CheckResult()
    settings = _load_settings()

    print(f"\n{BOLD}Roblox Audio Analysis API — Setup Checker{RESET}")
    print(f"Repo root: {REPO_ROOT}")

    check_python_version(result)
    check_media_tools(result, settings, quick=args.quick)
    check_python_packages(result)
    check_config_files(result)
    check_scratch_dir(result, settings)

    result.print_summary()
    print()

    if result.failed == 0 and result.warned == 0:
        print(f"{GREEN}{BOLD}✓ All checks passed — ready to analyze audio!{RESET}\n")
    elif result.failed == 0:
        print(f"{YELLOW}{BOLD}⚠ Setup complete with warnings.{RESET}\n")
    else:
        print(f"{RED}{BOLD}✗ {result.failed} check(s) failed — resolve errors before "
              f"starting the service.{RESET}\n")

    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
