from __future__ import annotations

import contextlib
from typing import List, Optional

import pytest
from pydantic import BaseModel

from fakes import InMemoryStoragePlugin, InMemoryTable
from recordstore.core import HookContext, HookManager, HookStage, RequestContext, Store, StoreRegistry
from recordstore.errors import (
    BadRequestError,
    ConfigurationError,
    MethodNotImplementedError,
    NotFoundError,
    UnprocessableEntityError,
)


class _RecordingPlugin:
    """Appends ``(label, stage)`` to a shared journal for every stage it sees."""

    def __init__(self, label: str, journal: List[tuple], fail_on: Optional[str] = None) -> None:
        self.label = label
        self.journal = journal
        self.fail_on = fail_on
        self.installed_on: Optional[Store] = None
        for stage in HookStage:
            setattr(self, stage.value, self._recorder(stage.value))

    def _recorder(self, stage_name: str):
        def record(context: HookContext) -> None:
            self.journal.append((self.label, stage_name))
            if stage_name == self.fail_on:
                raise RuntimeError(f"{self.label} failed in {stage_name}")

        return record

    def install(self, store: Store) -> None:
        self.installed_on = store

    @contextlib.contextmanager
    def transaction(self, context: HookContext):
        self.journal.append((self.label, "begin"))
        try:
            yield
        except Exception:
            self.journal.append((self.label, "rollback"))
            raise
        self.journal.append((self.label, "commit"))


class _ItemSchema(BaseModel):
    name: str
    category_id: Optional[int] = None


def test_store_requires_name_and_version() -> None:
    with pytest.raises(ConfigurationError):
        Store("", "1.0.0")
    with pytest.raises(ConfigurationError):
        Store("items", "")


def test_use_installs_plugin() -> None:
    store = Store("items", "1.0.0")
    plugin = _RecordingPlugin("a", [])

    store.use(plugin)

    assert plugin.installed_on is store
    assert store.hook_manager.plugins == [plugin]


def test_post_runs_stages_in_order_with_writes_inside_transaction() -> None:
    journal: List[tuple] = []
    store = Store("items", "1.0.0").use(_RecordingPlugin("a", journal))

    store.post(RequestContext(body={"name": "x"}))

    assert [stage for _, stage in journal] == [
        "on_before_validate",
        "on_check_permissions",
        "on_validate",
        "begin",
        "on_before_insert",
        "on_insert",
        "on_after_insert",
        "commit",
    ]


def test_put_fetches_then_runs_put_stages() -> None:
    journal: List[tuple] = []
    store = Store("items", "1.0.0").use(_RecordingPlugin("a", journal))

    store.put(RequestContext(body={"name": "x"}, params={"id": 1}))

    assert [stage for _, stage in journal][3:] == [
        "begin",
        "on_fetch",
        "on_before_put",
        "on_put",
        "on_after_put",
        "commit",
    ]


def test_put_skips_fetch_when_record_supplied() -> None:
    journal: List[tuple] = []
    store = Store("items", "1.0.0").use(_RecordingPlugin("a", journal))

    store.put(RequestContext(body={}, params={"id": 1}, record={"id": 1, "position": 4}))

    assert ("a", "on_fetch") not in journal


def test_plugins_run_in_registration_order() -> None:
    journal: List[tuple] = []
    store = Store("items", "1.0.0")
    store.use(_RecordingPlugin("first", journal))
    store.use(_RecordingPlugin("second", journal))

    store.post(RequestContext())

    insert_calls = [label for label, stage in journal if stage == "on_before_insert"]
    assert insert_calls == ["first", "second"]


def test_first_failure_halts_the_stage_and_rolls_back() -> None:
    journal: List[tuple] = []
    store = Store("items", "1.0.0")
    store.use(_RecordingPlugin("first", journal, fail_on="on_before_insert"))
    store.use(_RecordingPlugin("second", journal))

    with pytest.raises(RuntimeError, match="first failed"):
        store.post(RequestContext())

    assert ("second", "on_before_insert") not in journal
    assert ("second", "on_insert") not in journal
    assert ("first", "rollback") in journal
    assert ("second", "rollback") in journal


def test_hook_manager_skips_plugins_without_the_stage() -> None:
    called: List[str] = []

    class _OnlyInsert:
        def on_insert(self, context: HookContext) -> None:
            called.append("insert")

    manager = HookManager()
    manager.register(_OnlyInsert())
    context = HookContext(Store("items", "1.0.0"), RequestContext())

    manager.call_hook(HookStage.FETCH, context)
    manager.call_hook(HookStage.INSERT, context)

    assert called == ["insert"]


@pytest.mark.parametrize(
    ("method", "request_kwargs"),
    [
        ("post", {}),
        ("put", {"params": {"id": 1}}),
        ("get", {"params": {"id": 1}}),
        ("get_query", {}),
        ("delete", {"params": {"id": 1}}),
    ],
)
def test_remote_requests_need_the_handle_switch(method: str, request_kwargs: dict) -> None:
    store = Store("items", "1.0.0")

    with pytest.raises(MethodNotImplementedError):
        getattr(store, method)(RequestContext(remote=True, **request_kwargs))


def test_local_requests_ignore_the_handle_switch() -> None:
    table = InMemoryTable()
    store = Store("items", "1.0.0").use(InMemoryStoragePlugin(table))

    record = store.post(RequestContext(body={"name": "x"}))

    assert record == {"id": 1, "name": "x"}


def test_get_raises_not_found_for_missing_record() -> None:
    store = Store("items", "1.0.0").use(InMemoryStoragePlugin(InMemoryTable()))

    with pytest.raises(NotFoundError) as excinfo:
        store.get(RequestContext(params={"id": 5}))

    assert excinfo.value.status_code == 404


def test_get_requires_identifier_param() -> None:
    store = Store("items", "1.0.0")

    with pytest.raises(BadRequestError):
        store.get(RequestContext(params={}))


def test_delete_returns_deleted_record() -> None:
    table = InMemoryTable([{"id": 1, "name": "x"}])
    store = Store("items", "1.0.0").use(InMemoryStoragePlugin(table))

    deleted = store.delete(RequestContext(params={"id": 1}))

    assert deleted == {"id": 1, "name": "x"}
    assert table.rows == []


def test_delete_missing_record_raises_not_found() -> None:
    store = Store("items", "1.0.0").use(InMemoryStoragePlugin(InMemoryTable()))

    with pytest.raises(NotFoundError):
        store.delete(RequestContext(params={"id": 1}))


def test_schema_validation_coerces_and_keeps_unknown_keys() -> None:
    table = InMemoryTable()
    store = Store("items", "1.0.0", schema=_ItemSchema).use(InMemoryStoragePlugin(table))

    record = store.post(RequestContext(body={"name": "x", "category_id": "5", "beforeId": None}))

    assert record["category_id"] == 5
    assert "beforeId" in record


def test_schema_validation_failure_is_unprocessable() -> None:
    store = Store("items", "1.0.0", schema=_ItemSchema)

    with pytest.raises(UnprocessableEntityError) as excinfo:
        store.post(RequestContext(body={"category_id": "not-a-number"}))

    fields = {error["field"] for error in excinfo.value.errors}
    assert fields == {"name", "category_id"}
    assert excinfo.value.to_dict()["status"] == 422


def test_get_query_returns_plugin_data() -> None:
    class _Query:
        def on_query(self, context: HookContext) -> None:
            context.request.data = [{"id": 1}]
            context.request.grand_total = 1

    store = Store("items", "1.0.0").use(_Query())
    request = RequestContext(options={"conditions": {"category_id": 5}})

    assert store.get_query(request) == [{"id": 1}]
    assert request.grand_total == 1


def test_copy_request_copies_mutable_maps() -> None:
    original = RequestContext(body={"a": 1}, params={"id": 1}, options={"limit": 5})

    copied = Store.copy_request(original, remote=True)
    copied.body["a"] = 2
    copied.params["id"] = 2

    assert original.body == {"a": 1}
    assert original.params == {"id": 1}
    assert copied.remote is True


def test_store_registers_itself_in_given_registry() -> None:
    registry = StoreRegistry()

    store = Store("items", "1.0.0", registry=registry)

    assert registry.get("items", "1.0.0") is store
