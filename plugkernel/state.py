"""
Per-plugin state scoping.

All plugin state lives in one mapping owned by the kernel. Each plugin gets a
PluginState handle scoped to its identity: entries are keyed by
``(namespace, key)``, so isolation is by key rather than by separate storage.
There is no locking: two pending operations touching the same key can still
interleave at await points.
"""

from __future__ import annotations

from typing import Any, Iterator

from .exceptions import StateError

__all__ = [
    "StateStore",
    "PluginState",
]

class StateStore:
    """Process-wide key/value mapping handed out as scoped handles."""

    def __init__(self):
        self._data: dict[tuple[str, str], Any] = {}
        self._handles: dict[str, PluginState] = {}

    def scoped(self, namespace: str) -> "PluginState":
        """
        Get the state handle for a namespace, creating it on first request.

        Args:
            namespace: Plugin identity (usually the plugin name)

        Returns:
            The cached PluginState for that namespace
        """
        if not namespace:
            raise StateError(namespace, "namespace must be a non-empty string")

        handle = self._handles.get(namespace)
        if handle is None:
            handle = PluginState(self._data, namespace)
            self._handles[namespace] = handle
        return handle

    def namespaces(self) -> list[str]:
        """List namespaces that have requested a handle."""
        return list(self._handles)

    def __len__(self) -> int:
        return len(self._data)


class PluginState:
    """Key/value view over one plugin's slice of a StateStore."""

    def __init__(self, data: dict[tuple[str, str], Any], namespace: str):
        self._data = data
        self.namespace = namespace

    def _key(self, key: str) -> tuple[str, str]:
        return (self.namespace, key)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value, or *default* if unset."""
        return self._data.get(self._key(key), default)

    def set(self, key: str, value: Any) -> Any:
        """Set a value and return it."""
        self._data[self._key(key)] = value
        return value

    def has(self, key: str) -> bool:
        """Check whether a key is set."""
        return self._key(key) in self._data

    def delete(self, key: str) -> bool:
        """
        Delete a key.

        Returns:
            True if the key existed
        """
        return self._data.pop(self._key(key), _MISSING) is not _MISSING

    def clear(self) -> int:
        """
        Remove every key owned by this plugin.

        Returns:
            Number of keys removed
        """
        owned = [k for k in self._data if k[0] == self.namespace]
        for k in owned:
            del self._data[k]
        return len(owned)

    def keys(self) -> list[str]:
        """List this plugin's keys."""
        return [k[1] for k in self._data if k[0] == self.namespace]

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __repr__(self) -> str:
        return f"PluginState(namespace={self.namespace!r}, keys={len(self.keys())})"


_MISSING = object()
