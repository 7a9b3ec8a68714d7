"""CLI entry point for configuration introspection.

Usage:
    python -m authorforge.config
    python -m authorforge.config --env-file .env
    python -m authorforge.config --json
"""

import argparse
import json
import sys

from authorforge.exceptions import ConfigurationError

from .loader import load_settings


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="python -m authorforge.config",
        description="Print the effective AuthorForge configuration (secrets redacted).",
    )
    parser.add_argument("--env-file", help="Path to a .env file to load")
    parser.add_argument("--json", action="store_true", help="Output as JSON")
    args = parser.parse_args(argv)

    try:
        settings = load_settings(env_file=args.env_file)
    except (ConfigurationError, FileNotFoundError) as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        return 1

    summary = settings.redacted_summary()
    if args.json:
        print(json.dumps(summary, indent=2))
    else:
        print("=== Effective Configuration ===")
        for key, value in summary.items():
            print(f"  {key}: {value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
