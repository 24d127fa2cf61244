# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #

"""Registry of re-entrant locks addressed by key."""

from __future__ import annotations

from contextlib import ExitStack, contextmanager
from threading import Lock, RLock
from typing import Dict, Hashable, Iterator


class KeyedLocks:
    """Hands out one :class:`threading.RLock` per key.

    Locks are created on first use and kept for the lifetime of the registry;
    the key space (users x scopes) is bounded by the size of the ledger.
    """

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: Dict[Hashable, RLock] = {}

    def get(self, key: Hashable) -> RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = RLock()
            return lock

    @contextmanager
    def hold(self, *keys: Hashable) -> Iterator[None]:
        """Acquire the locks for ``keys`` in the given order; release on every path."""
        with ExitStack() as stack:
            for key in keys:
                stack.enter_context(self.get(key))
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


def global_user_key(user_id: str) -> tuple:
    return ("global", str(user_id))


def group_user_key(group_id: str, user_id: str) -> tuple:
    return ("group", str(group_id), str(user_id))
