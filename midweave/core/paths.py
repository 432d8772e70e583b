#!/usr/bin/env python3
"""
paths.py
-------------------
Path constants for the Midweave project.

The project structure:
    ROOT/
    ├── midweave/      # Library code
    ├── data/          # Local cache database
    └── logs/          # Application logs

ROOT defaults to the checkout containing the package and can be moved
elsewhere with the MIDWEAVE_HOME environment variable (useful when the
package is installed into site-packages).
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import os
from pathlib import Path


def _get_project_root() -> Path:
    """
    Determine project root directory.

    Returns:
        Path object for project root

    Raises:
        RuntimeError: If project root cannot be determined or validated
    """
    override = os.environ.get("MIDWEAVE_HOME")
    if override:
        return Path(override).expanduser().resolve()

    current_file = Path(__file__).resolve()

    # Navigate up: paths.py -> core/ -> midweave/ -> ROOT/
    root = current_file.parent.parent.parent

    if not (root / "midweave").is_dir():
        raise RuntimeError(
            f"Cannot determine valid project root. "
            f"Expected {root / 'midweave'} to exist. "
            f"Current file: {current_file}"
        )

    return root


# ----- Project directory -----
ROOT: Path = _get_project_root()
DATA_DIR = ROOT / "data"

# --- Local cache ---
CACHE_DIR = DATA_DIR / "cache"
CACHE_DB_PATH = CACHE_DIR / "midweave.db"

# --- Logs ---
LOG_DIR = ROOT / "logs"

# --- Configuration ---
CONFIG_PATH = ROOT / "midweave.yaml"
