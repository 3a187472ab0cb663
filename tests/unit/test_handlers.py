"""Tests for the REST collection handler and the imperative handler."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from rest_provisioner.core.state import RemoteRecord
from rest_provisioner.engine.errors import RemoteCallError, TemplateError
from rest_provisioner.engine.handlers import EngineContext
from rest_provisioner.engine.imperative_handler import ImperativeHandler
from rest_provisioner.engine.rest_handler import RestResourceHandler
from rest_provisioner.resources import DeclarativeResource, ImperativeCall, ImperativeResource

if TYPE_CHECKING:
    from rest_provisioner.core.provider import RestProvider
    from tests.unit.conftest import FakeApi


@pytest.fixture
def ctx(provider: RestProvider) -> EngineContext:
    return EngineContext(provider=provider, timeout=5.0)


def _no_refs(expr: str) -> str:
    raise TemplateError(expr)


class TestRestResourceHandler:
    def test_create_reads_identifier(self, ctx: EngineContext, fake_api: FakeApi) -> None:
        handler = RestResourceHandler("projects/p/agents")
        desired = DeclarativeResource(name="a", kind="agent", attributes={"displayName": "A"})

        observed = handler.create(ctx, desired, {"displayName": "A"}, lookup=_no_refs)

        assert observed.identifier == "projects/p/agents/1"
        assert observed.attributes["displayName"] == "A"
        assert fake_api.calls == [("POST", "projects/p/agents")]

    def test_create_renders_collection(self, ctx: EngineContext, fake_api: FakeApi) -> None:
        handler = RestResourceHandler("${a.id}/intents")
        desired = DeclarativeResource(name="i", kind="intent")

        handler.create(ctx, desired, {}, lookup=lambda expr: "projects/p/agents/7")

        assert fake_api.calls == [("POST", "projects/p/agents/7/intents")]

    def test_create_without_identifier_fails(self, ctx: EngineContext) -> None:
        handler = RestResourceHandler("projects/p/agents", id_field="metadata.uid")
        desired = DeclarativeResource(name="a", kind="agent")

        with pytest.raises(RemoteCallError, match="no 'metadata.uid' identifier"):
            handler.create(ctx, desired, {}, lookup=_no_refs)

    def test_nested_id_field(self, ctx: EngineContext, fake_api: FakeApi) -> None:
        handler = RestResourceHandler("things", id_field="metadata.uid")
        desired = DeclarativeResource(name="t", kind="thing")

        observed = handler.create(ctx, desired, {"metadata": {"uid": "things/x"}}, lookup=_no_refs)

        assert observed.identifier == "things/x"

    def test_update_uses_payload_keys_as_mask(
        self, ctx: EngineContext, fake_api: FakeApi
    ) -> None:
        fake_api.objects["agents/1"] = {"name": "agents/1", "displayName": "A", "tz": "UTC"}
        handler = RestResourceHandler("agents")
        prior = RemoteRecord(address="a", kind="agent", identifier="agents/1")

        echoed = handler.update(ctx, prior, {"displayName": "B"})

        assert echoed == {"name": "agents/1", "displayName": "B", "tz": "UTC"}
        assert fake_api.requests[0].url.params["updateMask"] == "displayName"

    def test_describe_and_delete(self, ctx: EngineContext, fake_api: FakeApi) -> None:
        fake_api.objects["agents/1"] = {"name": "agents/1"}
        handler = RestResourceHandler("agents")
        prior = RemoteRecord(address="a", kind="agent", identifier="agents/1")

        assert handler.describe(ctx, "agents/1") == {"name": "agents/1"}
        handler.delete(ctx, prior)
        assert handler.describe(ctx, "agents/1") is None

    def test_unsupported_fields(self) -> None:
        handler = RestResourceHandler("agents", fields=["displayName"])
        desired = DeclarativeResource(
            name="a", kind="agent", attributes={"displayName": "A", "welcome": "hi"}
        )
        assert handler.unsupported_fields(desired) == ["welcome"]
        assert RestResourceHandler("agents").unsupported_fields(desired) == []


def _imperative(**overrides: object) -> ImperativeResource:
    data: dict[str, object] = {
        "name": "w",
        "triggers": {"agent_id": "${a.id}"},
        "apply": {"method": "patch", "path": "${agent_id}/intents/welcome", "body": {"v": 1}},
        "destroy": {"method": "PATCH", "path": "${agent_id}/intents/welcome", "body": {"v": 0}},
    }
    data.update(overrides)
    return ImperativeResource.model_validate(data)


class TestImperativeHandler:
    def test_valid_resource(self, ctx: EngineContext) -> None:
        assert ImperativeHandler().validate(ctx, _imperative()) == []

    def test_method_normalized(self) -> None:
        assert _imperative().apply.method == "PATCH"

    def test_destroy_may_not_reference_resources(self, ctx: EngineContext) -> None:
        bad = _imperative(destroy={"path": "${a.id}/intents/welcome"})
        errors = ImperativeHandler().validate(ctx, bad)
        assert any("destroy call may only use trigger values" in e for e in errors)

    def test_triggers_may_not_reference_triggers(self, ctx: EngineContext) -> None:
        bad = _imperative(triggers={"agent_id": "${other}", "other": "x"})
        errors = ImperativeHandler().validate(ctx, bad)
        assert any("triggers may not reference triggers" in e for e in errors)

    def test_run_apply_substitutes_triggers(self, ctx: EngineContext, fake_api: FakeApi) -> None:
        handler = ImperativeHandler()
        path = handler.run_apply(ctx, _imperative(), {"agent_id": "agents/1"}, lookup=_no_refs)

        assert path == "agents/1/intents/welcome"
        assert fake_api.calls == [("PATCH", "agents/1/intents/welcome")]
        assert fake_api.body(0) == {"v": 1}

    def test_run_undo_uses_recorded_values(self, ctx: EngineContext, fake_api: FakeApi) -> None:
        handler = ImperativeHandler()
        recorded = handler.record_destroy(_imperative())

        handler.run_undo(ctx, recorded, {"agent_id": "agents/old"})

        assert fake_api.calls == [("PATCH", "agents/old/intents/welcome")]
        assert fake_api.body(0) == {"v": 0}

    def test_run_undo_without_destroy_is_noop(
        self, ctx: EngineContext, fake_api: FakeApi
    ) -> None:
        handler = ImperativeHandler()
        assert handler.record_destroy(_imperative(destroy=None)) is None

        handler.run_undo(ctx, None, {"agent_id": "agents/1"})

        assert fake_api.calls == []

    def test_invalid_method_rejected(self) -> None:
        with pytest.raises(ValueError, match="unsupported HTTP method"):
            ImperativeCall(method="TRACE", path="x")
