#!/usr/bin/env python3
"""
Convenience script for running Alembic migrations.

Usage:
    python migrate.py current           # Show current migration
    python migrate.py upgrade head      # Apply all migrations
    python migrate.py downgrade -1      # Downgrade one migration
    python migrate.py revision -m "Description"  # Create new migration (--autogenerate is automatic)
    python migrate.py history           # Show migration history
"""

import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(override=True)


def main() -> None:
    config_path = Path(__file__).parent / "migrations" / "alembic.ini"

    args = sys.argv[1:]
    if args and args[0] == "revision" and "--autogenerate" not in args:
        args.insert(1, "--autogenerate")

    cmd = [sys.executable, "-m", "alembic", "-c", str(config_path)] + args

    try:
        result = subprocess.run(cmd, check=False)
        sys.exit(result.returncode)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        sys.exit(1)
    except OSError as e:
        print(f"Error running migration command: {e}")
        sys.exit(1)


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    main()
