"""
Per-folder serialization.

Reconciliation passes and manual overrides on the same folder must not
interleave: the greedy pass consumes documents as it goes, so two passes
writing at once could link one document twice. Different folders share no
state and run freely in parallel.
"""

import asyncio
import weakref


class FolderLockRegistry:
    """
    One asyncio.Lock per folder id.

    Locks are held weakly; a folder's lock lives as long as someone is
    holding or waiting on it.

    Serialization holds within a single process only. Run the API with one
    worker (WEB_CONCURRENCY=1); separate workers each have their own
    registry and can reconcile the same folder at once.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock_for(self, folder_id: str) -> asyncio.Lock:
        lock = self._locks.get(folder_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[folder_id] = lock
        return lock


# Process-wide registry
folder_locks = FolderLockRegistry()
