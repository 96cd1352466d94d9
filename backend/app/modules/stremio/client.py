"""Stremio API client.

Every authenticated call is a JSON POST to ``{STREMIO_API_URL}/api/<method>``
carrying ``authKey``; the API answers ``{"result": ...}`` on success and
``{"error": ...}`` on failure. Manifests are fetched directly from the addon's
transport URL.

No retries happen here. Callers decide what a failure means.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import (
    InvalidManifestError,
    RemoteRejectedError,
    RemoteUnavailableError,
)
from app.core.logging_config import logger


@dataclass
class AddonDescriptor:
    """One entry of a Stremio addon collection.

    Fields the panel does not track (the cached manifest, flags) are kept in
    ``extra`` so writing a collection back does not lose them.
    """

    transport_url: str
    transport_name: str = "http"
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "AddonDescriptor":
        extra = dict(data)
        transport_url = extra.pop("transportUrl", "")
        transport_name = extra.pop("transportName", "http")
        return cls(transport_url=transport_url, transport_name=transport_name, extra=extra)

    def to_wire(self) -> Dict[str, Any]:
        return {
            **self.extra,
            "transportUrl": self.transport_url,
            "transportName": self.transport_name,
        }


@dataclass
class RemoteIdentity:
    id: Optional[str]
    email: Optional[str]


@dataclass
class RemoteSession:
    auth_key: str
    user: RemoteIdentity


def _identity_from_wire(data: Optional[Dict[str, Any]]) -> RemoteIdentity:
    data = data or {}
    return RemoteIdentity(id=data.get("_id") or data.get("id"), email=data.get("email"))


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error.get("code") or "Stremio API error")
    return str(error)


class StremioClient:
    """Async wrapper around the Stremio account API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[httpx.Timeout] = None,
    ):
        self.base_url = (base_url or settings.STREMIO_API_URL).rstrip("/")
        self._transport = transport
        self._timeout = timeout or httpx.Timeout(
            settings.REMOTE_REQUEST_TIMEOUT,
            connect=settings.REMOTE_CONNECT_TIMEOUT,
        )

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    async def _call(self, method: str, payload: Dict[str, Any]) -> Any:
        url = f"{self.base_url}/api/{method}"
        try:
            async with self._http() as client:
                response = await client.post(url, json=payload)
        except httpx.RequestError as e:
            logger.warning(f"[Stremio] {method} transport error: {type(e).__name__}: {e}")
            raise RemoteUnavailableError(f"Stremio API unavailable: {type(e).__name__}", operation=method)

        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and body.get("error"):
            message = _error_message(body["error"])
            logger.warning(f"[Stremio] {method} rejected: {message}")
            raise RemoteRejectedError(message, operation=method)

        if response.status_code >= 500:
            logger.warning(f"[Stremio] {method} failed with HTTP {response.status_code}")
            raise RemoteUnavailableError(f"Stremio API returned HTTP {response.status_code}", operation=method)

        if response.status_code >= 400:
            raise RemoteRejectedError(f"HTTP {response.status_code}", operation=method)

        if not isinstance(body, dict) or "result" not in body:
            raise RemoteRejectedError("Malformed response from Stremio API", operation=method)

        return body["result"]

    async def login(self, email: str, password: str) -> RemoteSession:
        result = await self._call("login", {"email": email, "password": password})
        return RemoteSession(auth_key=result["authKey"], user=_identity_from_wire(result.get("user")))

    async def register(self, email: str, password: str) -> RemoteSession:
        result = await self._call("register", {"email": email, "password": password})
        return RemoteSession(auth_key=result["authKey"], user=_identity_from_wire(result.get("user")))

    async def get_user(self, auth_key: str) -> RemoteIdentity:
        result = await self._call("getUser", {"authKey": auth_key})
        return _identity_from_wire(result)

    async def get_addon_collection(self, auth_key: str) -> List[AddonDescriptor]:
        result = await self._call("addonCollectionGet", {"authKey": auth_key, "update": True})
        addons = (result or {}).get("addons") or []
        return [AddonDescriptor.from_wire(item) for item in addons if isinstance(item, dict)]

    async def set_addon_collection(self, auth_key: str, descriptors: List[AddonDescriptor]) -> bool:
        await self._call(
            "addonCollectionSet",
            {"authKey": auth_key, "addons": [d.to_wire() for d in descriptors]},
        )
        return True

    async def fetch_manifest(self, transport_url: str) -> Dict[str, Any]:
        """GET a manifest and check it names itself (``id`` and ``name``)."""
        try:
            async with self._http() as client:
                response = await client.get(transport_url, follow_redirects=True)
        except httpx.RequestError as e:
            logger.warning(f"[Stremio] Manifest fetch failed for {transport_url}: {e}")
            raise RemoteUnavailableError(f"Could not reach addon: {type(e).__name__}", operation="fetchManifest")

        if response.status_code >= 400:
            raise InvalidManifestError(transport_url, f"HTTP {response.status_code}")

        try:
            manifest = response.json()
        except ValueError:
            raise InvalidManifestError(transport_url, "Response is not JSON")

        if not isinstance(manifest, dict) or not manifest.get("id") or not manifest.get("name"):
            raise InvalidManifestError(transport_url)

        return manifest


# Singleton instance
stremio_client = StremioClient()


def get_stremio_client() -> StremioClient:
    """FastAPI dependency; tests override it with a fake"""
    return stremio_client
