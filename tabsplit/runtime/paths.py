"""Centralized path management for local (anonymous) storage.

Anonymous sessions keep receipts and images on disk instead of the remote
services. Everything lives under one data directory:

    <data_dir>/
    ├── receipts.json   - locally persisted receipts
    └── images/         - locally stored receipt originals
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def _default_data_dir() -> Path:
    env_dir = os.environ.get("TABSPLIT_DATA_DIR")
    if env_dir:
        return Path(env_dir).expanduser()
    return Path("~/.local/share/tabsplit").expanduser()


@dataclass
class DataPaths:
    """Container for local fallback storage paths."""

    root: Path = field(default_factory=_default_data_dir)

    def __post_init__(self) -> None:
        self.root = Path(self.root).expanduser().resolve()

    @property
    def receipts_json(self) -> Path:
        """JSON file backing the local receipt store."""
        return self.root / "receipts.json"

    @property
    def images(self) -> Path:
        """Directory backing the local object store."""
        return self.root / "images"

    def ensure_directories(self) -> None:
        """Create the data directories if they don't exist."""
        self.images.mkdir(parents=True, exist_ok=True)


_paths: DataPaths | None = None


def get_paths() -> DataPaths:
    """Get the singleton DataPaths instance."""
    global _paths
    if _paths is None:
        _paths = DataPaths()
    return _paths


def set_data_dir(root: Path) -> DataPaths:
    """Point local storage at ``root`` (used by the CLI and tests)."""
    global _paths
    _paths = DataPaths(root=root)
    return _paths
