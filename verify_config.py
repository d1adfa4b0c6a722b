#!/usr/bin/env python3
"""Check a jobfeed config file before deploying it.

Usage:
    python verify_config.py [path]   # defaults to config.example.yaml
"""

import sys
from pathlib import Path

from jobfeed.config.loader import validate_config_file


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    config_path = Path(argv[0]) if argv else Path("config.example.yaml")
    if not config_path.exists():
        print(f"{config_path} not found")
        return 1
    return 0 if validate_config_file(config_path) else 1


if __name__ == "__main__":
    sys.exit(main())
