"""
The store orchestrator.

A `Store` owns no storage of its own. Each CRUD entry point walks a fixed
sequence of `HookStage`s and lets the registered plugins do the work; write
operations run the storage-facing stages inside the transaction scope the
plugins provide, so a failure in any hook leaves nothing committed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from recordstore.config import get_settings
from recordstore.core.context import HookContext, RequestContext
from recordstore.core.hooks import HookManager, HookStage
from recordstore.errors import (
    BadRequestError,
    ConfigurationError,
    MethodNotImplementedError,
    NotFoundError,
    UnprocessableEntityError,
)
from recordstore.utils.logging import get_logger

if TYPE_CHECKING:
    from recordstore.core.registry import StoreRegistry

log = get_logger(__name__)


class Store:
    """
    Hook-driven CRUD orchestrator for one named, versioned store.

    Parameters
    ----------
    store_name, version : str
        Identity of the store; both are required.
    schema : type[BaseModel] | None
        Pydantic model the request body is validated against on post/put.
    id_property : str
        Name of the identifier field in params and rows.
    handle_post, handle_put, handle_get, handle_get_query, handle_delete : bool
        Whether remote requests may use the matching entry point.
    default_limit_on_queries : int | None
        Page size used by query plugins when the request gives none.
    registry : StoreRegistry | None
        Registry the store adds itself to on construction.
    """

    def __init__(
        self,
        store_name: str,
        version: str,
        *,
        schema: Optional[Type[BaseModel]] = None,
        id_property: str = "id",
        handle_post: bool = False,
        handle_put: bool = False,
        handle_get: bool = False,
        handle_get_query: bool = False,
        handle_delete: bool = False,
        default_limit_on_queries: Optional[int] = None,
        registry: Optional["StoreRegistry"] = None,
    ) -> None:
        if not store_name or not version:
            raise ConfigurationError("A store must define a store_name and version")
        self.store_name = store_name
        self.version = version
        self.schema = schema
        self.id_property = id_property
        self.handle_post = handle_post
        self.handle_put = handle_put
        self.handle_get = handle_get
        self.handle_get_query = handle_get_query
        self.handle_delete = handle_delete
        self.default_limit_on_queries = (
            default_limit_on_queries or get_settings().store_default_limit
        )
        self.hook_manager = HookManager()
        if registry is not None:
            registry.register(self)

    def __repr__(self) -> str:
        return f"Store({self.store_name!r}, {self.version!r})"

    def use(self, plugin: Any) -> "Store":
        """Register a plugin; hooks run in registration order."""
        self.hook_manager.register(plugin, self)
        return self

    # CRUD entry points

    def post(self, request: RequestContext) -> Optional[Dict[str, Any]]:
        """Insert the request body as a new record and return the stored row."""
        self._check_handled(self.handle_post, request)
        context = HookContext(self, request)

        self.hook_manager.call_hook(HookStage.BEFORE_VALIDATE, context)
        self._validate_body(request)
        self.hook_manager.call_hook(HookStage.CHECK_PERMISSIONS, context)
        self.hook_manager.call_hook(HookStage.VALIDATE, context)

        with self.hook_manager.transaction(context):
            self.hook_manager.call_hook(HookStage.BEFORE_INSERT, context)
            self.hook_manager.call_hook(HookStage.INSERT, context)
            self.hook_manager.call_hook(HookStage.AFTER_INSERT, context)

        return request.record

    def put(self, request: RequestContext) -> Optional[Dict[str, Any]]:
        """Update the record named by params, or create it when missing."""
        self._check_handled(self.handle_put, request)
        self._validate_params(request)
        context = HookContext(self, request)

        self.hook_manager.call_hook(HookStage.BEFORE_VALIDATE, context)
        self._validate_body(request)
        self.hook_manager.call_hook(HookStage.CHECK_PERMISSIONS, context)
        self.hook_manager.call_hook(HookStage.VALIDATE, context)

        with self.hook_manager.transaction(context):
            if request.record is None:
                self.hook_manager.call_hook(HookStage.FETCH, context)
            self.hook_manager.call_hook(HookStage.BEFORE_PUT, context)
            self.hook_manager.call_hook(HookStage.PUT, context)
            self.hook_manager.call_hook(HookStage.AFTER_PUT, context)

        return request.record

    def get(self, request: RequestContext) -> Dict[str, Any]:
        self._check_handled(self.handle_get, request)
        self._validate_params(request)
        context = HookContext(self, request)

        self.hook_manager.call_hook(HookStage.FETCH, context)
        if not request.record:
            raise NotFoundError(f"{self.store_name} record {request.params[self.id_property]!r} not found")
        self.hook_manager.call_hook(HookStage.CHECK_PERMISSIONS, context)
        return request.record

    def get_query(self, request: RequestContext) -> List[Dict[str, Any]]:
        self._check_handled(self.handle_get_query, request)
        context = HookContext(self, request)

        self.hook_manager.call_hook(HookStage.CHECK_PERMISSIONS, context)
        self.hook_manager.call_hook(HookStage.QUERY, context)
        return request.data

    def delete(self, request: RequestContext) -> Dict[str, Any]:
        """Delete the record named by params and return it as it was."""
        self._check_handled(self.handle_delete, request)
        self._validate_params(request)
        context = HookContext(self, request)

        with self.hook_manager.transaction(context):
            self.hook_manager.call_hook(HookStage.FETCH, context)
            if not request.record:
                raise NotFoundError(f"{self.store_name} record {request.params[self.id_property]!r} not found")
            self.hook_manager.call_hook(HookStage.CHECK_PERMISSIONS, context)
            self.hook_manager.call_hook(HookStage.DELETE, context)
            self.hook_manager.call_hook(HookStage.AFTER_DELETE, context)

        return request.record

    # Helpers

    @staticmethod
    def copy_request(request: RequestContext, **extras: Any) -> RequestContext:
        """Shallow copy of a request with its own body, params and options."""
        fields = {
            "body": dict(request.body),
            "params": dict(request.params),
            "record": request.record,
            "options": dict(request.options),
            "remote": request.remote,
        }
        fields.update(extras)
        return RequestContext(**fields)

    def _check_handled(self, handled: bool, request: RequestContext) -> None:
        if request.remote and not handled:
            raise MethodNotImplementedError(f"Method not handled by store '{self.store_name}'")

    def _validate_params(self, request: RequestContext) -> None:
        if request.params.get(self.id_property) is None:
            raise BadRequestError(f"Missing '{self.id_property}' in request params")

    def _validate_body(self, request: RequestContext) -> None:
        """Validate the body against the schema and merge the coerced values back."""
        if self.schema is None:
            return
        try:
            validated = self.schema.model_validate(request.body)
        except ValidationError as exc:
            errors = [
                {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
                for err in exc.errors()
            ]
            raise UnprocessableEntityError("Body failed validation", errors=errors) from exc
        # Keys unknown to the schema (e.g. placement directives) stay in the body.
        request.body.update(validated.model_dump(exclude_unset=True))


__all__ = ["Store"]
