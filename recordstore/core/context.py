"""
Request and hook contexts threaded through the store pipeline.

One `RequestContext` belongs to one request. The store hands it to each hook
stage in turn; a stage owns it until it returns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from recordstore.core.store import Store


@dataclass
class RequestContext:
    """
    Mutable per-request state.

    Attributes
    ----------
    body : dict
        Payload to persist. Hooks may rewrite it in place.
    params : dict
        Path identifiers (e.g. ``{"id": 12}``).
    record : dict | None
        Row fetched or written by the storage plugin.
    options : dict
        Query options: ``conditions``, ``sort``, ``skip``, ``limit``.
    remote : bool
        True when the request came through an outer surface (HTTP) and
        the store's ``handle_*`` switches apply.
    """

    body: Dict[str, Any] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
    record: Optional[Dict[str, Any]] = None
    options: Dict[str, Any] = field(default_factory=dict)
    remote: bool = False
    data: List[Dict[str, Any]] = field(default_factory=list)
    grand_total: Optional[int] = None


@dataclass(frozen=True)
class HookContext:
    """What every hook receives: the store running the request and the request itself."""

    store: "Store"
    request: RequestContext


__all__ = ["HookContext", "RequestContext"]
