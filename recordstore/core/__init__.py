"""
Store core: request contexts, the hook pipeline, the orchestrator and the
store registry.
"""

from recordstore.core.context import HookContext, RequestContext
from recordstore.core.hooks import HookManager, HookStage, StorePlugin
from recordstore.core.registry import StoreRegistry
from recordstore.core.store import Store

__all__ = [
    "HookContext",
    "HookManager",
    "HookStage",
    "RequestContext",
    "Store",
    "StorePlugin",
    "StoreRegistry",
]
