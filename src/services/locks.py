from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from domain.base_types import GroupId


class GroupLockRegistry:
    """One mutex per group, created on first use and kept for the life of the registry.

    Mutations of the same group are serialized; different groups never wait on each other.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[GroupId, threading.Lock] = {}

    def lock_for(self, group_id: GroupId) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(group_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[group_id] = lock
            return lock

    @contextmanager
    def exclusive(self, group_id: GroupId) -> Iterator[None]:
        with self.lock_for(group_id):
            yield
