#!/usr/bin/env python3
"""
Migration management script for Ticketing Service.
Thin wrapper over the alembic CLI.
"""

import os
import subprocess
import argparse
from pathlib import Path


def run_command(args, description):
    """Run an alembic command and report the outcome."""
    print(f"{description}...")
    try:
        result = subprocess.run(["alembic", *args], check=True, capture_output=True, text=True)
        print(f"{description} completed successfully")
        if result.stdout:
            print(result.stdout)
        return True
    except subprocess.CalledProcessError as e:
        print(f"{description} failed")
        if e.stdout:
            print("STDOUT:", e.stdout)
        if e.stderr:
            print("STDERR:", e.stderr)
        return False


def main():
    parser = argparse.ArgumentParser(description="Ticketing Service Migration Manager")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    create_parser = subparsers.add_parser("create", help="Create a new migration")
    create_parser.add_argument("message", help="Migration message")

    upgrade_parser = subparsers.add_parser("upgrade", help="Apply migrations")
    upgrade_parser.add_argument("--revision", default="head", help="Target revision (default: head)")

    downgrade_parser = subparsers.add_parser("downgrade", help="Downgrade migrations")
    downgrade_parser.add_argument("revision", help="Target revision")

    subparsers.add_parser("current", help="Show current database revision")
    subparsers.add_parser("history", help="Show migration history")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    os.chdir(Path(__file__).parent)

    if args.command == "create":
        run_command(["revision", "--autogenerate", "-m", args.message], f"Creating migration: {args.message}")
    elif args.command == "upgrade":
        run_command(["upgrade", args.revision], f"Upgrading database to {args.revision}")
    elif args.command == "downgrade":
        run_command(["downgrade", args.revision], f"Downgrading database to {args.revision}")
    elif args.command == "current":
        run_command(["current"], "Showing current database revision")
    elif args.command == "history":
        run_command(["history"], "Showing migration history")


if __name__ == "__main__":
    main()
