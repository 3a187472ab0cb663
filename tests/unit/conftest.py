"""Shared fixtures for unit tests."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import httpx
import pytest

from rest_provisioner.config import load
from rest_provisioner.config.registry import build_registry
from rest_provisioner.config.schema import KindConfig
from rest_provisioner.core.provider import RestProvider
from rest_provisioner.engine import ReconcileEngine

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from rest_provisioner.config.schema import Config

_RP_ENV_VARS = (
    "RP_HOST",
    "RP_TOKEN",
    "RP_TOKEN_HEADER",
    "RP_TOKEN_SCHEME",
    "RP_TIMEOUT",
    "RP_VERIFY_SSL",
    "RP_PARALLELISM",
    "RP_LOG",
)


@pytest.fixture(autouse=True)
def _clean_rp_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove RP_* env vars so unit tests don't leak host config."""
    for var in _RP_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., Config]:
    """Factory fixture: write YAML + optional .env, return loaded Config."""

    def _make(yaml_str: str, *, dotenv: str | None = None) -> Config:
        (tmp_path / "config.yaml").write_text(yaml_str)
        if dotenv is not None:
            (tmp_path / ".env").write_text(dotenv)
        return load(tmp_path / "config.yaml")

    return _make


class FakeApi:
    """In-memory REST API served through ``httpx.MockTransport``.

    - ``POST {collection}`` creates ``{collection}/{n}`` and echoes it with a
      server-assigned ``name`` and ``etag``
    - ``GET {name}`` returns the object or 404
    - ``PATCH {name}`` merges the fields listed in ``updateMask`` (or the whole
      body without one); an unknown path is created, which is how imperative
      calls against default sub-resources behave
    - ``DELETE {name}`` removes the object or answers 404
    """

    def __init__(self) -> None:
        self.objects: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self.fail: set[tuple[str, str]] = set()
        self._next_id = 0

    @property
    def calls(self) -> list[tuple[str, str]]:
        return [(r.method, r.url.path.lstrip("/")) for r in self.requests]

    def mutations(self) -> list[tuple[str, str]]:
        return [c for c in self.calls if c[0] != "GET"]

    def body(self, index: int) -> Any:
        content = self.requests[index].content
        return json.loads(content) if content else None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        method = request.method
        path = request.url.path.lstrip("/")
        if (method, path) in self.fail:
            return httpx.Response(500, json={"error": {"message": "boom"}})
        body = json.loads(request.content) if request.content else {}

        if method == "GET":
            obj = self.objects.get(path)
            if obj is None:
                return httpx.Response(404, json={"error": {"message": "not found"}})
            return httpx.Response(200, json=obj)

        if method == "POST":
            self._next_id += 1
            name = f"{path}/{self._next_id}"
            obj = {**body, "name": name, "etag": f"e{self._next_id}"}
            self.objects[name] = obj
            return httpx.Response(200, json=obj)

        if method == "PATCH":
            obj = self.objects.setdefault(path, {"name": path})
            mask = request.url.params.get("updateMask")
            keys = mask.split(",") if mask else list(body)
            for key in keys:
                if key in body:
                    obj[key] = body[key]
            return httpx.Response(200, json=obj)

        if method == "DELETE":
            if self.objects.pop(path, None) is None:
                return httpx.Response(404, json={"error": {"message": "not found"}})
            return httpx.Response(200, json={})

        return httpx.Response(405)


@pytest.fixture
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def provider(fake_api: FakeApi) -> RestProvider:
    client = httpx.Client(base_url="https://api.test", transport=httpx.MockTransport(fake_api))
    return RestProvider.from_client(client)


KINDS = [
    KindConfig(name="agent", collection="projects/p/agents"),
    KindConfig(name="intent", collection="projects/p/intents"),
]


@pytest.fixture
def engine(provider: RestProvider, tmp_path: Path) -> ReconcileEngine:
    return ReconcileEngine(
        provider=provider,
        state_path=tmp_path / "state.json",
        registry=build_registry(KINDS),
        timeout=5.0,
    )
