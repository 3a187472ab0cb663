"""Tests for YAML configuration loader and resource discrimination."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from rest_provisioner.config.loader import ConfigError, _resolve_provider, load_config
from rest_provisioner.resources import DeclarativeResource, ImperativeResource

if TYPE_CHECKING:
    from collections.abc import Callable

    from rest_provisioner.config.schema import Config

_FULL_YAML = """\
provider:
  host: https://dialogflow.example.com/v3
  timeout: 12.5
  parallelism: 4

state_path: custom-state.json

kinds:
  - name: agent
    collection: projects/p/locations/global/agents
    fields: [displayName, defaultLanguageCode, timeZone]
  - name: intent
    collection: ${support.id}/intents
    update_method: PATCH

resources:
  - name: support
    kind: agent
    attributes:
      displayName: Support
      defaultLanguageCode: en
      timeZone: Europe/Paris

  - name: refund
    kind: intent
    depends_on: [support]
    attributes:
      displayName: refund
      trainingPhrases:
        - parts: [{text: I want my money back}]

  - name: welcome-intent
    type: imperative
    triggers:
      agent_id: ${support.id}
    apply:
      method: PATCH
      path: ${agent_id}/intents/00000000-0000-0000-0000-000000000000
      body:
        trainingPhrases: [{parts: [{text: hi}]}]
    destroy:
      method: PATCH
      path: ${agent_id}/intents/00000000-0000-0000-0000-000000000000
      body:
        trainingPhrases: []
"""


class TestLoadConfig:
    def test_full_config(self, make_config: Callable[..., Config]) -> None:
        cfg = make_config(_FULL_YAML)

        assert cfg.provider.host == "https://dialogflow.example.com/v3"
        assert cfg.provider.timeout == 12.5
        assert cfg.provider.parallelism == 4
        assert cfg.state_path == Path("custom-state.json")
        assert [k.name for k in cfg.kinds] == ["agent", "intent"]
        agent = cfg.kinds[0]
        assert agent.fields == ["displayName", "defaultLanguageCode", "timeZone"]
        assert agent.id_field == "name"
        assert [r.name for r in cfg.resources] == ["support", "refund", "welcome-intent"]

    def test_type_defaults_to_declarative(self, make_config: Callable[..., Config]) -> None:
        cfg = make_config(_FULL_YAML)

        support, refund, welcome = cfg.resources
        assert isinstance(support, DeclarativeResource)
        assert isinstance(refund, DeclarativeResource)
        assert isinstance(welcome, ImperativeResource)
        assert welcome.resource_type == "imperative"
        assert welcome.triggers == {"agent_id": "${support.id}"}
        assert refund.depends_on == ["support"]

    def test_defaults(self, make_config: Callable[..., Config]) -> None:
        cfg = make_config("provider:\n  host: https://h\n")

        assert cfg.state_path == Path(".rp-state.json")
        assert cfg.provider.timeout == 30.0
        assert cfg.provider.parallelism == 8
        assert cfg.kinds == []
        assert cfg.resources == []

    def test_empty_sections_allowed(self, make_config: Callable[..., Config]) -> None:
        cfg = make_config("provider:\n  host: https://h\nkinds:\nresources:\n")
        assert cfg.resources == []

    def test_config_dir_recorded(self, make_config: Callable[..., Config], tmp_path: Path) -> None:
        cfg = make_config("provider: {}\n")
        assert cfg.config_dir == tmp_path

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Failed to read"):
            load_config(tmp_path / "nope.yaml")

    def test_top_level_must_be_mapping(self, make_config: Callable[..., Config]) -> None:
        with pytest.raises(ConfigError, match="mapping"):
            make_config("- a\n- b\n")

    def test_unknown_resource_field(self, make_config: Callable[..., Config]) -> None:
        yaml = """\
provider: {}
kinds: [{name: agent, collection: agents}]
resources:
  - name: a
    kind: agent
    colour: red
"""
        with pytest.raises(ConfigError, match="colour"):
            make_config(yaml)

    def test_unknown_type(self, make_config: Callable[..., Config]) -> None:
        yaml = "provider: {}\nresources:\n  - name: a\n    type: magic\n"
        with pytest.raises(ConfigError):
            make_config(yaml)

    def test_invalid_name(self, make_config: Callable[..., Config]) -> None:
        yaml = """\
provider: {}
kinds: [{name: agent, collection: agents}]
resources: [{name: "has space", kind: agent}]
"""
        with pytest.raises(ConfigError, match="name"):
            make_config(yaml)

    def test_duplicate_names(self, make_config: Callable[..., Config]) -> None:
        yaml = """\
provider: {}
kinds: [{name: agent, collection: agents}]
resources:
  - {name: a, kind: agent}
  - {name: a, kind: agent}
"""
        with pytest.raises(ConfigError, match="Duplicate resource name 'a'"):
            make_config(yaml)

    def test_undeclared_kind(self, make_config: Callable[..., Config]) -> None:
        yaml = "provider: {}\nresources:\n  - {name: a, kind: webhook}\n"
        with pytest.raises(ConfigError, match="undeclared kind 'webhook'"):
            make_config(yaml)

    def test_reserved_kind(self, make_config: Callable[..., Config]) -> None:
        yaml = "provider: {}\nkinds:\n  - {name: imperative, collection: x}\n"
        with pytest.raises(ConfigError, match="reserved"):
            make_config(yaml)

    def test_duplicate_kind(self, make_config: Callable[..., Config]) -> None:
        yaml = """\
provider: {}
kinds:
  - {name: agent, collection: a}
  - {name: agent, collection: b}
"""
        with pytest.raises(ConfigError, match="Duplicate kind 'agent'"):
            make_config(yaml)

    def test_invalid_timeout(self, make_config: Callable[..., Config]) -> None:
        with pytest.raises(ConfigError, match="timeout"):
            make_config("provider:\n  timeout: 0\n")

    def test_imperative_needs_apply(self, make_config: Callable[..., Config]) -> None:
        yaml = "provider: {}\nresources:\n  - {name: w, type: imperative}\n"
        with pytest.raises(ConfigError, match="apply"):
            make_config(yaml)


class TestResolveProvider:
    """Unit tests for _resolve_provider priority chain (no YAML parsing)."""

    def test_yaml_value_wins(self) -> None:
        result = _resolve_provider({"host": "https://from-yaml"}, Path())
        assert result["host"] == "https://from-yaml"

    def test_env_var_fallback(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RP_HOST", "https://from-env")
        result = _resolve_provider({}, Path())
        assert result["host"] == "https://from-env"

    def test_yaml_value_over_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RP_HOST", "https://from-env")
        result = _resolve_provider({"host": "https://from-yaml"}, Path())
        assert result["host"] == "https://from-yaml"

    def test_yaml_null_falls_through_to_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RP_TOKEN", "from-env")
        result = _resolve_provider({"host": "https://h", "token": None}, Path())
        assert result["token"] == "from-env"

    def test_missing_field_omitted(self) -> None:
        result = _resolve_provider({}, Path())
        assert "host" not in result
        assert "token" not in result

    def test_dotenv_file(self, tmp_path: Path) -> None:
        (tmp_path / ".env").write_text("RP_TOKEN=from-dotenv\n")
        result = _resolve_provider({"host": "https://h"}, tmp_path)
        assert result["token"] == "from-dotenv"

    def test_env_var_overrides_dotenv(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (tmp_path / ".env").write_text("RP_TOKEN=from-dotenv\n")
        monkeypatch.setenv("RP_TOKEN", "from-env")
        result = _resolve_provider({}, tmp_path)
        assert result["token"] == "from-env"

    def test_dotenv_with_bom(self, tmp_path: Path) -> None:
        (tmp_path / ".env").write_bytes(b"\xef\xbb\xbfRP_TOKEN=from-bom\n")
        result = _resolve_provider({"host": "https://h"}, tmp_path)
        assert result["token"] == "from-bom"

    def test_verify_ssl_from_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RP_VERIFY_SSL", "false")
        result = _resolve_provider({}, Path())
        assert result["verify_ssl"] is False

    def test_verify_ssl_invalid_string_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RP_VERIFY_SSL", "maybe")
        with pytest.raises(ConfigError, match="Invalid boolean for RP_VERIFY_SSL"):
            _resolve_provider({}, Path())

    def test_timeout_from_env_var(
        self, make_config: Callable[..., Config], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("RP_TIMEOUT", "7")
        cfg = make_config("provider:\n  host: https://h\n")
        assert cfg.provider.timeout == 7.0

    def test_dotenv_next_to_config(self, make_config: Callable[..., Config]) -> None:
        cfg = make_config("provider: {}\n", dotenv="RP_HOST=https://dotenv\nRP_TOKEN=t\n")
        assert cfg.provider.host == "https://dotenv"
        assert cfg.provider.token == "t"
