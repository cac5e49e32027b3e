"""
Lifecycle stages and the hook pipeline.

Plugins are plain objects. For each `HookStage` a plugin may define a method
named after the stage value (``on_before_insert``, ``on_put``...). The
`HookManager` calls those methods in registration order; the first exception
stops the stage and propagates to the caller.
"""

from __future__ import annotations

import contextlib
from enum import Enum
from typing import TYPE_CHECKING, Any, ContextManager, Generator, List, Optional

from recordstore.core.context import HookContext
from recordstore.utils.logging import get_logger

if TYPE_CHECKING:
    from recordstore.core.store import Store

log = get_logger(__name__)


class HookStage(str, Enum):
    BEFORE_VALIDATE = "on_before_validate"
    CHECK_PERMISSIONS = "on_check_permissions"
    VALIDATE = "on_validate"
    FETCH = "on_fetch"
    BEFORE_INSERT = "on_before_insert"
    INSERT = "on_insert"
    AFTER_INSERT = "on_after_insert"
    BEFORE_PUT = "on_before_put"
    PUT = "on_put"
    AFTER_PUT = "on_after_put"
    QUERY = "on_query"
    DELETE = "on_delete"
    AFTER_DELETE = "on_after_delete"


class StorePlugin:
    """
    Optional base class for plugins.

    Subclasses set `name` and implement any of the ``on_*`` stage methods.
    `transaction()` returns the scope write requests run in; the default
    opens none.
    """

    name: str = "plugin"

    def install(self, store: "Store") -> None:
        log.info(
            f"Plugin '{self.name}' installed on store '{store.store_name}'",
            extra={"plugin": self.name, "store": store.store_name},
        )

    def transaction(self, context: HookContext) -> ContextManager[Any]:
        return contextlib.nullcontext()


class HookManager:
    """Ordered registry of plugins and dispatcher of stage callbacks."""

    def __init__(self) -> None:
        self._plugins: List[Any] = []

    @property
    def plugins(self) -> List[Any]:
        return list(self._plugins)

    def register(self, plugin: Any, store: Optional["Store"] = None) -> None:
        self._plugins.append(plugin)
        install = getattr(plugin, "install", None)
        if store is not None and callable(install):
            install(store)

    def call_hook(self, stage: HookStage, context: HookContext) -> None:
        for plugin in self._plugins:
            callback = getattr(plugin, stage.value, None)
            if callable(callback):
                log.debug(
                    f"Calling {stage.value} on {type(plugin).__name__}",
                    extra={"stage": stage.value, "store": context.store.store_name},
                )
                callback(context)

    @contextlib.contextmanager
    def transaction(self, context: HookContext) -> Generator[None, None, None]:
        """Enter every plugin's transaction scope, first registered outermost."""
        with contextlib.ExitStack() as stack:
            for plugin in self._plugins:
                scope = getattr(plugin, "transaction", None)
                if callable(scope):
                    stack.enter_context(scope(context))
            yield


__all__ = ["HookManager", "HookStage", "StorePlugin"]
