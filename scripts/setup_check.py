#!/usr/bin/env python3
"""
Setup Check - Is this machine ready to run message-clearance?

Usage: python scripts/setup_check.py

Verifies: Python version, installed dependencies, an OpenRouter key
(stored or OPENROUTER_API_KEY), and that the settings database is writable.
"""

import importlib.util
import os
import sys
from pathlib import Path

GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
RESET = "\033[0m"

REQUIRED_PACKAGES = {
    "httpx": "httpx",
    "pydantic": "pydantic",
    "typer": "typer",
    "rich": "rich",
}
TEST_PACKAGES = {
    "pytest": "pytest",
    "pytest_asyncio": "pytest-asyncio",
}

results = {"pass": 0, "fail": 0, "warn": 0}


def check(name: str, condition: bool, fix: str = "") -> bool:
    if condition:
        print(f"  {GREEN}PASS{RESET}  {name}")
        results["pass"] += 1
    else:
        print(f"  {RED}FAIL{RESET}  {name}")
        if fix:
            print(f"        FIX: {fix}")
        results["fail"] += 1
    return condition


def warn(name: str, condition: bool, note: str = "") -> None:
    if not condition:
        print(f"  {YELLOW}WARN{RESET}  {name}")
        if note:
            print(f"        NOTE: {note}")
        results["warn"] += 1


def check_api_key() -> None:
    from message_clearance.config import API_KEY_PREFIX, load_config
    from message_clearance.storage.settings import SettingsStore

    config = load_config()
    try:
        settings = SettingsStore(config.db_path)
    except OSError as e:
        check(f"Database writable: {config.db_path}", False, str(e))
        return
    check(f"Database writable: {config.db_path}", True)

    has_key = check(
        "OpenRouter API key configured",
        settings.has_api_key,
        "message-clearance key set sk-or-...  (or export OPENROUTER_API_KEY)",
    )
    if has_key:
        warn(
            f"API key starts with {API_KEY_PREFIX}",
            settings.is_valid_format,
            "OpenRouter keys normally start with sk-or-; it will still be tried",
        )


def main():
    print("\nmessage-clearance setup check\n")

    v = sys.version_info
    check(f"Python {v.major}.{v.minor}.{v.micro}", v >= (3, 10), "Python 3.10+ required")

    print()
    installed = True
    for module, dist in REQUIRED_PACKAGES.items():
        found = importlib.util.find_spec(module) is not None
        installed = check(f"{dist} installed", found, "pip install -e .") and installed
    for module, dist in TEST_PACKAGES.items():
        warn(
            f"{dist} installed",
            importlib.util.find_spec(module) is not None,
            "Needed for the test suite: pip install -e '.[test]'",
        )

    print()
    root = Path(__file__).resolve().parent.parent
    src = root / "src"
    if src.is_dir() and str(src) not in sys.path:
        sys.path.insert(0, str(src))
    if installed:
        check_api_key()
    else:
        warn("API key check skipped", False, "Install dependencies first")

    level = os.getenv("MESSAGE_CLEARANCE_LOG_LEVEL", "WARNING")
    print(f"\n  Log level: {level}")

    print(f"\n{'=' * 40}")
    print(f"  {GREEN}{results['pass']} passed{RESET}, ", end="")
    if results["fail"]:
        print(f"{RED}{results['fail']} failed{RESET}, ", end="")
    if results["warn"]:
        print(f"{YELLOW}{results['warn']} warnings{RESET}", end="")
    print()
    print(f"{'=' * 40}\n")

    sys.exit(1 if results["fail"] else 0)


if __name__ == "__main__":
    main()
