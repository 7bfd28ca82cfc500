"""
This module provides the hierarchical key/value store shared by the agility components.

The store is a tree addressed by tuples of keys, e.g. ("solis", date_index, time_index).
Each component only gets a handle (`StoreHandle`) on its own sub-tree and never holds
a copy of the data.

Classes:
    - HierarchicalStore: abstract path based interface.
    - MemoryStore: nested-dict implementation, used directly in tests.
    - JsonFileStore: MemoryStore that is persisted to a JSON file after every write
      or batch of writes.
    - StoreHandle: view on a named sub-tree of a store.
"""

import contextlib
import json
import logging
import os
import threading

logger = logging.getLogger("__main__")
logger.info("[STORE] loading module ")


def _sort_key(key):
    # integer keys sort numerically and before text keys
    if isinstance(key, int):
        return (0, key, "")
    return (1, 0, str(key))


def _normalize_key(key):
    if isinstance(key, str) and key.lstrip("-").isdigit():
        return int(key)
    return key


class HierarchicalStore:
    """
    Abstract hierarchical store. Paths are tuples of keys; integer keys are ordered
    numerically which is what the time indexed sub-trees rely on.
    """

    def get(self, path, default=None):
        """Return the value stored at `path` or `default`."""
        raise NotImplementedError

    def set(self, path, value):
        """Store `value` at `path`, creating intermediate nodes."""
        raise NotImplementedError

    def exists(self, path):
        """True if a value or a sub-tree exists at `path`."""
        raise NotImplementedError

    def delete(self, path):
        """Delete the value or sub-tree at `path`. Missing paths are ignored."""
        raise NotImplementedError

    def child_keys(self, path):
        """Return the keys directly below `path` in ascending order."""
        raise NotImplementedError

    def batch(self):
        """Context manager grouping several writes; stores may defer persisting them."""
        return contextlib.nullcontext(self)

    def handle(self, *root):
        """Return a `StoreHandle` on the sub-tree below `root`."""
        return StoreHandle(self, tuple(root))


class MemoryStore(HierarchicalStore):
    """
    In-memory implementation backed by nested dictionaries.
    """

    def __init__(self, data=None):
        self._data = data if data is not None else {}
        self.lock = threading.RLock()
        self._batch_depth = 0
        self._dirty = False

    def _node(self, path):
        node = self._data
        for key in path:
            if not isinstance(node, dict) or key not in node:
                return None
            node = node[key]
        return node

    def get(self, path, default=None):
        with self.lock:
            node = self._node(tuple(path))
            if node is None:
                return default
            return node

    def set(self, path, value):
        path = tuple(path)
        if not path:
            raise ValueError("Cannot set the root of the store")
        with self.lock:
            node = self._data
            for key in path[:-1]:
                child = node.get(key)
                if not isinstance(child, dict):
                    child = {}
                    node[key] = child
                node = child
            node[path[-1]] = value
            self._mark_changed()

    def exists(self, path):
        with self.lock:
            return self._node(tuple(path)) is not None

    def delete(self, path):
        path = tuple(path)
        with self.lock:
            if not path:
                self._data.clear()
                self._mark_changed()
                return
            parent = self._node(path[:-1])
            if isinstance(parent, dict) and path[-1] in parent:
                del parent[path[-1]]
                self._mark_changed()

    def child_keys(self, path):
        with self.lock:
            node = self._node(tuple(path))
            if not isinstance(node, dict):
                return []
            return sorted(node.keys(), key=_sort_key)

    @contextlib.contextmanager
    def batch(self):
        """
        Group writes: `_changed` runs once when the outermost batch exits, and only
        if something was written. Other threads are held off for the duration.
        """
        with self.lock:
            self._batch_depth += 1
            try:
                yield self
            finally:
                self._batch_depth -= 1
                if self._batch_depth == 0 and self._dirty:
                    self._dirty = False
                    self._changed()

    def _mark_changed(self):
        if self._batch_depth:
            self._dirty = True
        else:
            self._changed()

    def _changed(self):
        """Hook called after every mutation, or once per batch."""


class JsonFileStore(MemoryStore):
    """
    MemoryStore persisted to a JSON file.

    The whole tree is rewritten synchronously after every mutation, so a write has
    reached the file before the calling operation continues. Inside `batch()` the
    rewrite happens once, when the batch exits.
    """

    def __init__(self, filename):
        self.filename = filename
        super().__init__(self.__load())
        logger.info("[STORE] Using store file %s", self.filename)

    def __load(self):
        if not os.path.exists(self.filename):
            return {}
        try:
            with open(self.filename, "r", encoding="utf-8") as f:
                return self.__restore_keys(json.load(f))
        except (OSError, ValueError) as e:
            logger.error(
                "[STORE] Failed to load store file %s: %s - starting empty",
                self.filename,
                e,
            )
            return {}

    def __restore_keys(self, node):
        # JSON turns integer keys into strings
        if not isinstance(node, dict):
            return node
        return {
            _normalize_key(key): self.__restore_keys(value)
            for key, value in node.items()
        }

    def _changed(self):
        tmp_filename = self.filename + ".tmp"
        with open(tmp_filename, "w", encoding="utf-8") as f:
            json.dump(self._data, f)
        os.replace(tmp_filename, self.filename)


class StoreHandle:
    """
    Read/write handle on one named sub-tree of a `HierarchicalStore`.
    All paths given to the handle are relative to its root.
    """

    def __init__(self, store, root):
        self.store = store
        self.root = tuple(root)

    def _path(self, path):
        if not isinstance(path, tuple):
            path = (path,)
        return self.root + path

    def get(self, path=(), default=None):
        """Return the value at the relative `path`."""
        return self.store.get(self._path(path), default)

    def set(self, path, value):
        """Store `value` at the relative `path`."""
        self.store.set(self._path(path), value)

    def exists(self, path=()):
        """True if the relative `path` exists."""
        return self.store.exists(self._path(path))

    def delete(self, path=()):
        """Delete the relative `path`; an empty path deletes the whole sub-tree."""
        self.store.delete(self._path(path))

    def child_keys(self, path=()):
        """Keys directly below the relative `path`, ascending."""
        return self.store.child_keys(self._path(path))

    def batch(self):
        """Group writes on the underlying store, see `HierarchicalStore.batch`."""
        return self.store.batch()
