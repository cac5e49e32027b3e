"""
Plugins package for recordstore.

Re-exports the storage and positioning plugins so downstream code can import
from `recordstore.plugins` directly.
"""

from recordstore.plugins.positioning import (
    Absent,
    BeforeId,
    PlaceLast,
    PositioningPlugin,
    PositionResolver,
    SqlPositionRepository,
    build_group_condition,
    parse_directive,
)
from recordstore.plugins.sql import SqlStoragePlugin

__all__ = [
    # Storage
    "SqlStoragePlugin",
    # Positioning
    "Absent",
    "BeforeId",
    "PlaceLast",
    "PositionResolver",
    "PositioningPlugin",
    "SqlPositionRepository",
    "build_group_condition",
    "parse_directive",
]
