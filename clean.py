#!/usr/bin/env python3
"""Clean up logs, captures, and data directories."""

import argparse
import shutil
from pathlib import Path


def clean_directory(dir_path: Path) -> int:
    """Remove all contents of a directory but keep the directory itself.

    Returns:
        Number of entries removed.
    """
    if not dir_path.exists():
        print(f"  {dir_path} does not exist, skipping")
        return 0

    if not dir_path.is_dir():
        print(f"  {dir_path} is not a directory, skipping")
        return 0

    count = 0
    for item in dir_path.iterdir():
        if item.is_file():
            item.unlink()
            count += 1
        elif item.is_dir():
            shutil.rmtree(item)
            count += 1

    print(f"  Removed {count} items from {dir_path}")
    return count


TARGETS = {
    "all": [Path("logs"), Path("captures"), Path("data")],
    "log": [Path("logs")],
    "cap": [Path("captures")],
    "data": [Path("data")],
}


def main(argv=None) -> None:
    """Clean logs, captures, and data directories."""
    parser = argparse.ArgumentParser(
        description="Clean up project directories",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python clean.py        # Clean logs and captures (default)
  python clean.py all    # Clean logs, captures, and stored locations
  python clean.py log    # Clean only the logs/ directory
  python clean.py cap    # Clean only the captures/ directory
  python clean.py data   # Clean only the data/ directory (locations, last visited kingdom)
        """,
    )
    parser.add_argument(
        "target",
        nargs="?",
        default=None,
        choices=sorted(TARGETS),
        help="What to clean. If omitted, cleans logs and captures.",
    )

    args = parser.parse_args(argv)

    if args.target is None:
        dirs_to_clean = [Path("logs"), Path("captures")]
        print("Cleaning logs and captures directories (default)...")
    else:
        dirs_to_clean = TARGETS[args.target]
        if args.target == "all":
            print("Cleaning all project directories...")
        else:
            print(f"Cleaning {args.target} directory...")

    for dir_path in dirs_to_clean:
        clean_directory(dir_path)

    print("Done!")


if __name__ == "__main__":
    main()
