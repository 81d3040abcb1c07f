#!/usr/bin/env python3
"""
Environment check

Reports which required and optional environment variables are set before a
deploy. Secret values are masked.

Usage:
    python scripts/check_env.py                 # reads the process env + .env
    python scripts/check_env.py --env-file prod.env

Exit code 1 when a required variable is missing.
"""

import os
import sys
import argparse
from typing import Dict, List, Mapping, Tuple

from dotenv import dotenv_values

REQUIRED_VARS = [
    "SECRET_KEY",
    "ANTHROPIC_API_KEY",
]

# At least one of each group
REQUIRED_GROUPS = [
    ("DATABASE_URL", "POSTGRES_PASSWORD"),
]

OPTIONAL_VARS = [
    "API_BASE_URL",
    "AI_MODEL",
    "REDIS_URL",
    "CORS_ORIGINS",
    "SENTRY_DSN",
]

SECRET_MARKERS = ("KEY", "SECRET", "PASSWORD", "TOKEN", "DSN")


def mask(name: str, value: str) -> str:
    if any(marker in name for marker in SECRET_MARKERS):
        return f"{value[:4]}..." if len(value) > 8 else "***"
    return value


def check_environment(env: Mapping[str, str]) -> Tuple[bool, List[str]]:
    """Returns (all_required_present, report_lines)."""
    lines = ["Required:"]
    ok = True

    for name in REQUIRED_VARS:
        value = env.get(name)
        if value:
            lines.append(f"  [OK] {name}: {mask(name, value)}")
        else:
            lines.append(f"  [MISSING] {name}")
            ok = False

    for group in REQUIRED_GROUPS:
        present = [name for name in group if env.get(name)]
        if present:
            lines.append(f"  [OK] {' or '.join(group)}: {present[0]} set")
        else:
            lines.append(f"  [MISSING] {' or '.join(group)}")
            ok = False

    lines.append("Optional:")
    for name in OPTIONAL_VARS:
        value = env.get(name)
        if value:
            lines.append(f"  [OK] {name}: {mask(name, value)}")
        else:
            lines.append(f"  [--] {name}: not set")

    return ok, lines


def load_environment(env_file: str) -> Dict[str, str]:
    """Process environment wins over the file, as in the app's settings."""
    values = {k: v for k, v in dotenv_values(env_file).items() if v is not None}
    values.update(os.environ)
    return values


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Check required environment variables")
    parser.add_argument("--env-file", default=".env", help="dotenv file to read (default: .env)")
    args = parser.parse_args(argv)

    ok, lines = check_environment(load_environment(args.env_file))
    print("\n".join(lines))
    print()
    if ok:
        print("All required variables are set")
        return 0
    print(f"Missing required variables. Copy .env.example to {args.env_file} and fill it in.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
