# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #

"""Utilities for resolving ledger storage locations.

Every component that touches the check-in ledger on disk goes through the same
resolver, which honours the ``DCK_DATA_DIR`` environment override and falls back
to ``config/checkin`` relative to the working directory.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Optional

logger = logging.getLogger("dck.ledger.paths")

DEFAULT_DATA_DIR = Path("config/checkin")


@dataclass(frozen=True)
class LedgerPaths:
    """Concrete filesystem locations used by the ledger store."""

    data_dir: Path
    groups_dir: Path
    global_users_file: Path
    cycle_stats_file: Path
    config_file: Path
    checkin_log_file: Path

    @classmethod
    def from_base_dir(cls, base_dir: Path, *, create_missing: bool = True) -> "LedgerPaths":
        """Create a :class:`LedgerPaths` instance rooted at ``base_dir``.

        Parameters
        ----------
        base_dir:
            Directory that should contain all ledger files.
        create_missing:
            When ``True`` (default) the required directories are created on
            demand.  Existing files are left untouched; the store seeds empty
            files lazily on first write.
        """

        base_dir = Path(base_dir).expanduser()
        groups_dir = base_dir / "groups"
        if create_missing:
            groups_dir.mkdir(parents=True, exist_ok=True)

        return cls(
            data_dir=base_dir,
            groups_dir=groups_dir,
            global_users_file=base_dir / "global_users.json",
            cycle_stats_file=base_dir / "cycle_stats.json",
            config_file=base_dir / "config.json",
            checkin_log_file=base_dir / "checkin_logs.json",
        )

    def group_file(self, group_id: str) -> Path:
        """Return the ledger file for ``group_id``."""

        return self.groups_dir / f"{_safe_component(group_id)}.json"


def _safe_component(value: str) -> str:
    # Group ids come from chat platforms; keep them to a single path segment
    cleaned = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in str(value))
    return cleaned or "_"


def backup_path(path: Path) -> Path:
    """Location of the previous version kept next to ``path``."""

    return path.with_name(path.name + ".bak")


_paths_cache: Optional[LedgerPaths] = None
_paths_lock = Lock()


def _resolve_base_dir() -> Path:
    """Determine the base directory honouring the env override."""

    env_override = os.getenv("DCK_DATA_DIR")
    if env_override:
        logger.debug("Using ledger data directory from DCK_DATA_DIR=%s", env_override)
        return Path(env_override)

    logger.debug("Falling back to default ledger data directory: %s", DEFAULT_DATA_DIR)
    return DEFAULT_DATA_DIR


def get_ledger_paths(*, create_missing: bool = True) -> LedgerPaths:
    """Return cached ledger paths, ensuring the layout exists when required."""

    global _paths_cache
    with _paths_lock:
        if _paths_cache is None:
            _paths_cache = LedgerPaths.from_base_dir(_resolve_base_dir(), create_missing=create_missing)
        elif create_missing:
            _paths_cache = LedgerPaths.from_base_dir(_paths_cache.data_dir, create_missing=True)
        return _paths_cache


def clear_ledger_paths_cache() -> None:
    """Reset the cached ledger paths (useful for tests)."""

    global _paths_cache
    with _paths_lock:
        _paths_cache = None
