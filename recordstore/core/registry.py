"""
Explicit registry of stores keyed by name and version.

Populate it at start-up (pass ``registry=`` to `Store` or call `register`);
look stores up through the instance you were handed. There is no module-level
registry.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import TYPE_CHECKING, Dict, Mapping, Optional, Tuple

from recordstore.errors import ConfigurationError

if TYPE_CHECKING:
    from recordstore.core.store import Store


def _version_key(version: str) -> Tuple[int, ...]:
    """Numeric sort key for dotted versions; non-numeric parts count as 0."""
    parts = []
    for part in version.split("."):
        digits = "".join(ch for ch in part if ch.isdigit())
        parts.append(int(digits) if digits else 0)
    return tuple(parts)


class StoreRegistry:
    def __init__(self) -> None:
        self._by_name: Dict[str, Dict[str, "Store"]] = {}

    def register(self, store: "Store") -> None:
        versions = self._by_name.setdefault(store.store_name, {})
        if store.version in versions:
            raise ConfigurationError(
                f"Store '{store.store_name}' version {store.version} is already registered"
            )
        versions[store.version] = store

    def get(self, name: str, version: str) -> Optional["Store"]:
        """
        Resolve a store for a requested version.

        Returns the exact version when registered, otherwise the newest
        registered version older than the one requested, otherwise None.
        """
        versions = self._by_name.get(name)
        if not versions:
            return None
        if version in versions:
            return versions[version]
        wanted = _version_key(version)
        older = [v for v in versions if _version_key(v) < wanted]
        if not older:
            return None
        return versions[max(older, key=_version_key)]

    def stores(self, version: str) -> Mapping[str, "Store"]:
        """Read-only name -> store view resolved for one API version."""
        resolved = {}
        for name in self._by_name:
            store = self.get(name, version)
            if store is not None:
                resolved[name] = store
        return MappingProxyType(resolved)

    def names(self) -> list[str]:
        return sorted(self._by_name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name


__all__ = ["StoreRegistry"]
