"""
recordstore - a pluggable, hook-driven record store over PostgreSQL.

A `Store` walks each CRUD request through an ordered pipeline of lifecycle
hooks. Plugins fulfill those hooks:

- `SqlStoragePlugin` reads and writes the backing table
- `PositioningPlugin` maintains a user-visible ordering column per group,
  shifting rows to make room when a record is placed before another

Stores are looked up by name and API version through an explicit
`StoreRegistry`.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from recordstore.config import Settings, get_settings
from recordstore.core import (
    HookContext,
    HookManager,
    HookStage,
    RequestContext,
    Store,
    StorePlugin,
    StoreRegistry,
)
from recordstore.errors import (
    BadRequestError,
    ConfigurationError,
    ForbiddenError,
    MethodNotImplementedError,
    NotFoundError,
    PreconditionFailedError,
    ServiceUnavailableError,
    StoreError,
    UnauthorizedError,
    UnprocessableEntityError,
)
from recordstore.infrastructure import SqlExecutor
from recordstore.plugins import PositioningPlugin, SqlStoragePlugin
from recordstore.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Core
    "HookContext",
    "HookManager",
    "HookStage",
    "RequestContext",
    "Store",
    "StorePlugin",
    "StoreRegistry",
    # Plugins
    "PositioningPlugin",
    "SqlExecutor",
    "SqlStoragePlugin",
    # Errors
    "BadRequestError",
    "ConfigurationError",
    "ForbiddenError",
    "MethodNotImplementedError",
    "NotFoundError",
    "PreconditionFailedError",
    "ServiceUnavailableError",
    "StoreError",
    "UnauthorizedError",
    "UnprocessableEntityError",
    # Logging
    "configure_logging",
    "get_logger",
]
