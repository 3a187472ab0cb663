"""REST provider - connection configuration and generic CRUD calls."""

import logging
from functools import cached_property
from typing import Any, Self

import httpx
from pydantic import BaseModel, ConfigDict, SecretStr

from rest_provisioner.engine.errors import RemoteCallError

logger = logging.getLogger(__name__)

_BODY_EXCERPT = 500


class TokenAuth(BaseModel):
    """Static token authentication sent as a request header."""

    token: SecretStr
    header: str = "Authorization"
    scheme: str = "Bearer"

    def headers(self) -> dict[str, str]:
        value = self.token.get_secret_value()
        if self.scheme:
            value = f"{self.scheme} {value}"
        return {self.header: value}


class RestProvider(BaseModel):
    """Connection configuration for a REST-style provider API.

    The provider only knows about paths, JSON bodies and status codes; which
    collections exist and what their resources look like comes from the
    configured kinds.

    Examples:
        # External with a bearer token
        provider = RestProvider(
            host="https://dialogflow.googleapis.com/v3",
            auth=TokenAuth(token="ya29..."),
        )

        # Testing with a mock transport
        provider = RestProvider.from_client(
            httpx.Client(base_url="https://api.test", transport=httpx.MockTransport(handler))
        )
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    host: str | None = None
    auth: TokenAuth | None = None
    verify_ssl: bool = True

    # Injected client (for testing)
    _injected_client: httpx.Client | None = None

    @classmethod
    def from_client(cls, client: httpx.Client) -> Self:
        """Create a provider with an injected client.

        Args:
            client: A pre-configured ``httpx.Client`` with a ``base_url``
        """
        provider = cls.model_construct()
        provider._injected_client = client
        return provider

    @cached_property
    def client(self) -> httpx.Client:
        """Get the HTTP client."""
        if self._injected_client is not None:
            return self._injected_client

        if self.host is None:
            raise ValueError(
                "Either provide host, or use RestProvider.from_client() to inject a client"
            )

        headers = {"Accept": "application/json"}
        if self.auth is not None:
            headers.update(self.auth.headers())
        return httpx.Client(base_url=self.host, headers=headers, verify=self.verify_ssl)

    def close(self) -> None:
        if self._injected_client is None and "client" in self.__dict__:
            self.client.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        timeout: float,
        json: Any = None,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        logger.debug("%s %s", method, path)
        kwargs: dict[str, Any] = {"params": params, "headers": headers, "timeout": timeout}
        if json is not None:
            kwargs["json"] = json
        try:
            return self.client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise RemoteCallError(f"Timed out after {timeout}s", method=method, url=path) from exc
        except httpx.HTTPError as exc:
            raise RemoteCallError(f"Transport error: {exc}", method=method, url=path) from exc

    @staticmethod
    def _fail(response: httpx.Response, message: str) -> RemoteCallError:
        return RemoteCallError(
            message,
            method=response.request.method,
            url=str(response.request.url),
            status_code=response.status_code,
            body=response.text[:_BODY_EXCERPT],
        )

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    @classmethod
    def _json_object(cls, response: httpx.Response) -> dict[str, Any]:
        data = cls._json(response)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise cls._fail(response, "Expected a JSON object in response")
        return data

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def describe(self, identifier: str, *, timeout: float) -> dict[str, Any] | None:
        """GET a resource. Returns None when the remote answers 404."""
        response = self._request("GET", identifier, timeout=timeout)
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if not response.is_success:
            raise self._fail(response, "Describe failed")
        return self._json_object(response)

    def create(self, collection: str, body: dict[str, Any], *, timeout: float) -> dict[str, Any]:
        """POST a new resource into *collection*. Returns the echoed resource."""
        response = self._request("POST", collection, json=body, timeout=timeout)
        if not response.is_success:
            raise self._fail(response, "Create failed")
        return self._json_object(response)

    def update(
        self,
        identifier: str,
        body: dict[str, Any],
        *,
        field_mask: list[str],
        timeout: float,
        method: str = "PATCH",
        mask_param: str | None = "updateMask",
    ) -> dict[str, Any]:
        """Send only the fields in *field_mask*. Returns the echoed resource."""
        params = {mask_param: ",".join(field_mask)} if mask_param else None
        response = self._request(method, identifier, json=body, params=params, timeout=timeout)
        if not response.is_success:
            raise self._fail(response, "Update failed")
        return self._json_object(response)

    def delete(self, identifier: str, *, timeout: float) -> None:
        """DELETE a resource. A 404 means it is already gone."""
        response = self._request("DELETE", identifier, timeout=timeout)
        if response.status_code == httpx.codes.NOT_FOUND:
            logger.warning("Delete of %s: already absent remotely", identifier)
            return
        if not response.is_success:
            raise self._fail(response, "Delete failed")

    def call(
        self,
        method: str,
        path: str,
        *,
        timeout: float,
        headers: dict[str, str] | None = None,
        body: Any = None,
        expected_status: list[int] | None = None,
    ) -> Any:
        """Run an arbitrary imperative call and check its status."""
        response = self._request(method, path, json=body, headers=headers, timeout=timeout)
        expected = expected_status or [200]
        if response.status_code not in expected:
            raise self._fail(
                response, f"Unexpected status (expected {', '.join(map(str, expected))})"
            )
        return self._json(response)
