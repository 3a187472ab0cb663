"""Tests for config convenience API and engine wiring."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest

from rest_provisioner.config import (
    _build_drift_changes,
    _engine_from_config,
    drift,
    import_resource,
    plan,
    plan_and_apply,
    refresh,
    save_state,
)
from rest_provisioner.config.loader import ConfigError
from rest_provisioner.config.schema import Config, KindConfig, ProviderConfig
from rest_provisioner.core.provider import TokenAuth
from rest_provisioner.core.state import RemoteRecord, State
from rest_provisioner.engine.errors import (
    ResourceNotFoundError,
    UnknownResourceTypeError,
    ValidationError,
)
from rest_provisioner.engine.types import Action
from rest_provisioner.resources import DeclarativeResource

if TYPE_CHECKING:
    from rest_provisioner.engine import ReconcileEngine
    from tests.unit.conftest import FakeApi

_KINDS = [KindConfig(name="agent", collection="projects/p/agents")]


def _config(tmp_path: Path, **overrides: object) -> Config:
    data: dict[str, object] = {
        "provider": ProviderConfig(host="https://h"),
        "state_path": tmp_path / "state.json",
        "kinds": _KINDS,
        "resources": [DeclarativeResource(name="bot", kind="agent", attributes={"x": 1})],
    }
    data.update(overrides)
    return Config.model_validate(data)


def _track(state_path: Path, address: str, identifier: str, **attrs: object) -> None:
    state = State.load_or_create(state_path)
    record = RemoteRecord(address=address, kind="agent", identifier=identifier)
    record.set_attributes({"name": identifier, **attrs})
    state.put(address, record)
    state.save(state_path)


class TestEngineFromConfig:
    def test_builds_engine_with_state_path(self) -> None:
        config = Config(
            provider=ProviderConfig(host="https://h"),
            state_path=Path("custom.json"),
        )
        engine = _engine_from_config(config)
        assert engine.state_path == Path("custom.json")

    def test_missing_host_raises(self) -> None:
        config = Config(provider=ProviderConfig())
        with pytest.raises(ConfigError, match="host"):
            _engine_from_config(config)

    def test_token_becomes_header_auth(self) -> None:
        config = Config(
            provider=ProviderConfig(
                host="https://h", token="secret", token_header="X-Api-Key", token_scheme=""
            ),
        )
        engine = _engine_from_config(config)
        auth = engine._provider.auth
        assert isinstance(auth, TokenAuth)
        assert auth.headers() == {"X-Api-Key": "secret"}

    def test_no_token_means_no_auth(self) -> None:
        engine = _engine_from_config(Config(provider=ProviderConfig(host="https://h")))
        assert engine._provider.auth is None

    def test_verify_ssl_passed_to_provider(self) -> None:
        config = Config(provider=ProviderConfig(host="https://h", verify_ssl=False))
        engine = _engine_from_config(config)
        assert engine._provider.verify_ssl is False

    def test_registry_has_configured_kinds(self, tmp_path: Path) -> None:
        engine = _engine_from_config(_config(tmp_path))
        assert engine._registry.kinds() == ["imperative", "agent"]

    def test_timeout_and_parallelism(self) -> None:
        config = Config(provider=ProviderConfig(host="https://h", timeout=3, parallelism=2))
        engine = _engine_from_config(config)
        assert engine._timeout == 3.0
        assert engine._parallelism == 2


class TestPlanThroughConfig:
    def test_plan_uses_config_resources(self, tmp_path: Path, engine: ReconcileEngine) -> None:
        config = _config(tmp_path)
        with patch("rest_provisioner.config._engine_from_config", return_value=engine):
            result = plan(config, refresh=False)

        assert [(c.address, c.action) for c in result.changes] == [("bot", Action.CREATE)]

    def test_plan_and_apply(
        self, tmp_path: Path, engine: ReconcileEngine, fake_api: FakeApi
    ) -> None:
        config = _config(tmp_path)
        with patch("rest_provisioner.config._engine_from_config", return_value=engine):
            result = plan_and_apply(config)
            replanned = plan(config)

        assert result.summary()["create"] == 1
        assert fake_api.mutations() == [("POST", "projects/p/agents")]
        assert [c.action for c in replanned.changes] == [Action.NOOP]


class TestImportResource:
    def test_kind_taken_from_declared_resource(
        self, tmp_path: Path, engine: ReconcileEngine, fake_api: FakeApi
    ) -> None:
        fake_api.objects["projects/p/agents/42"] = {"name": "projects/p/agents/42", "x": 1}
        config = _config(tmp_path)

        with patch("rest_provisioner.config._engine_from_config", return_value=engine):
            record = import_resource(config, "bot", "projects/p/agents/42")

        assert record.kind == "agent"
        assert record.attributes == {"name": "projects/p/agents/42", "x": 1}
        state = State.load(engine.state_path)
        assert state.serial == 1
        tracked = state.get("bot")
        assert tracked is not None
        assert tracked.identifier == "projects/p/agents/42"

    def test_imported_resource_plans_as_noop(
        self, tmp_path: Path, engine: ReconcileEngine, fake_api: FakeApi
    ) -> None:
        fake_api.objects["projects/p/agents/42"] = {"name": "projects/p/agents/42", "x": 1}
        config = _config(tmp_path)

        with patch("rest_provisioner.config._engine_from_config", return_value=engine):
            import_resource(config, "bot", "projects/p/agents/42")
            result = plan(config)

        assert [c.action for c in result.changes] == [Action.NOOP]

    def test_undeclared_name_needs_kind(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="pass its kind explicitly"):
            import_resource(_config(tmp_path), "ghost", "projects/p/agents/1")

    def test_explicit_kind(
        self, tmp_path: Path, engine: ReconcileEngine, fake_api: FakeApi
    ) -> None:
        fake_api.objects["projects/p/agents/7"] = {"name": "projects/p/agents/7"}

        with patch("rest_provisioner.config._engine_from_config", return_value=engine):
            record = import_resource(
                _config(tmp_path), "other", "projects/p/agents/7", kind="agent"
            )

        assert record.address == "other"

    def test_not_found(self, engine: ReconcileEngine) -> None:
        with pytest.raises(ResourceNotFoundError, match="projects/p/agents/404"):
            engine.import_resource("bot", "agent", "projects/p/agents/404")
        assert not engine.state_path.exists()

    def test_already_tracked(self, engine: ReconcileEngine, fake_api: FakeApi) -> None:
        fake_api.objects["projects/p/agents/1"] = {"name": "projects/p/agents/1"}
        _track(engine.state_path, "bot", "projects/p/agents/1")

        with pytest.raises(ValidationError, match="already tracked"):
            engine.import_resource("bot", "agent", "projects/p/agents/1")

    def test_imperative_kind_rejected(self, engine: ReconcileEngine) -> None:
        with pytest.raises(ValidationError, match="cannot be imported"):
            engine.import_resource("w", "imperative", "anything")

    def test_unknown_kind(self, engine: ReconcileEngine) -> None:
        with pytest.raises(UnknownResourceTypeError):
            engine.import_resource("w", "webhook", "anything")

    def test_invalid_name(self, engine: ReconcileEngine) -> None:
        with pytest.raises(ValidationError, match="Invalid resource name"):
            engine.import_resource("has space", "agent", "projects/p/agents/1")


class TestRefreshAndDrift:
    def test_no_drift(self, tmp_path: Path, engine: ReconcileEngine, fake_api: FakeApi) -> None:
        fake_api.objects["projects/p/agents/1"] = {"name": "projects/p/agents/1", "x": 1}
        _track(engine.state_path, "bot", "projects/p/agents/1", x=1)

        with patch("rest_provisioner.config._engine_from_config", return_value=engine):
            assert drift(_config(tmp_path)) == []

    def test_changed_attribute_reported(
        self, tmp_path: Path, engine: ReconcileEngine, fake_api: FakeApi
    ) -> None:
        fake_api.objects["projects/p/agents/1"] = {"name": "projects/p/agents/1", "x": 2}
        _track(engine.state_path, "bot", "projects/p/agents/1", x=1)

        with patch("rest_provisioner.config._engine_from_config", return_value=engine):
            changes, new_state = refresh(_config(tmp_path))

        (change,) = changes
        assert change.action == Action.UPDATE
        assert change.diff == {"x": {"from": 1, "to": 2}}
        record = new_state.get("bot")
        assert record is not None
        assert record.attributes["x"] == 2
        # refresh alone does not persist
        persisted = State.load(engine.state_path).get("bot")
        assert persisted is not None
        assert persisted.attributes["x"] == 1

    def test_vanished_resource_reported_as_drifted_delete(
        self, tmp_path: Path, engine: ReconcileEngine
    ) -> None:
        _track(engine.state_path, "bot", "projects/p/agents/1", x=1)

        with patch("rest_provisioner.config._engine_from_config", return_value=engine):
            changes, new_state = refresh(_config(tmp_path))

        (change,) = changes
        assert change.action == Action.DELETE
        assert change.drifted is True
        assert new_state.get("bot") is None

    def test_save_state_bumps_serial(
        self, tmp_path: Path, engine: ReconcileEngine, fake_api: FakeApi
    ) -> None:
        fake_api.objects["projects/p/agents/1"] = {"name": "projects/p/agents/1", "x": 2}
        _track(engine.state_path, "bot", "projects/p/agents/1", x=1)
        config = _config(tmp_path)

        with patch("rest_provisioner.config._engine_from_config", return_value=engine):
            _, new_state = refresh(config)
        save_state(config, new_state)

        persisted = State.load(config.state_path)
        assert persisted.serial == 1
        record = persisted.get("bot")
        assert record is not None
        assert record.attributes["x"] == 2


class TestBuildDriftChanges:
    def test_new_addresses_ignored(self) -> None:
        old = State()
        new = State()
        new.put("a", RemoteRecord(address="a", kind="agent", identifier="agents/a"))
        assert _build_drift_changes(old, new) == []

    def test_update_lists_only_changed_keys(self) -> None:
        old = State()
        record = RemoteRecord(address="a", kind="agent", identifier="agents/a")
        record.set_attributes({"x": 1, "y": 1})
        old.put("a", record)
        new = old.model_copy(deep=True)
        new.resources["a"].set_attributes({"x": 1, "y": 2, "z": 3})

        (change,) = _build_drift_changes(old, new)

        assert change.diff == {"y": {"from": 1, "to": 2}, "z": {"from": None, "to": 3}}
        assert change.prior == {"x": 1, "y": 1}
