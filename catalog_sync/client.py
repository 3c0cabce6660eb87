"""
Travel catalog REST client.

One :class:`ApiClient` owns the HTTP connection pool, attaches the bearer
token and normalizes response envelopes. :class:`AuthClient` and one
:class:`CollectionClient` per collection build on it.

Every call is a single-shot request: there is no retry here, failures are
raised to the caller as :mod:`catalog_sync.errors` exceptions.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar
from urllib.parse import quote

import httpx
import pydantic
from pydantic import BaseModel, TypeAdapter

from .config import Settings
from .errors import DecodeError, NetworkError, Unauthorized, error_for_status
from .models import (
    CatalogItem,
    DestinationImage,
    Experience,
    Itinerary,
    ListFilter,
    LoginResponse,
    Update,
    User,
)
from .payloads import AttachmentPayload, Payload

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=CatalogItem)

TokenProvider = Callable[[], Optional[str]]


def unwrap_envelope(body: Any) -> Any:
    """Accept both ``{"data": X}`` and a bare ``X``."""
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


# =============================================================================
# HTTP Transport
# =============================================================================

class ApiClient:
    """Shared request/response boundary for all backend calls."""

    def __init__(
        self,
        settings: Settings,
        token_provider: TokenProvider,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self._token_provider = token_provider
        self._http_client = http_client
        self._owns_http_client = http_client is None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.api_timeout),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            )
            self._owns_http_client = True
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    def _auth_headers(self) -> dict[str, str]:
        token = self._token_provider()
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, str]] = None,
        **body: Any,
    ) -> Any:
        """
        Send one request and return the decoded JSON body.

        Args:
            method: HTTP verb
            path: Path below the configured API base URL
            params: Query string parameters
            **body: ``json=`` or ``data=``/``files=`` as produced by a payload

        Returns:
            The decoded body, or None for an empty response
        """
        client = await self._get_http_client()
        url = f"{self.settings.api_url}{path}"

        try:
            response = await client.request(
                method,
                url,
                params=params,
                headers=self._auth_headers(),
                **body,
            )
        except httpx.RequestError as e:
            raise NetworkError(f"Network error during {method} {path}: {e}") from e

        logger.debug(f"{method} {path} - {response.status_code}")

        if not response.is_success:
            raise self._decode_error(response)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f"Invalid JSON from {method} {path}") from e

    @staticmethod
    def _decode_error(response: httpx.Response) -> Exception:
        """Map an ``{"error": str}`` body to the matching exception."""
        try:
            body = response.json()
        except ValueError:
            return NetworkError("Network error")

        message = None
        if isinstance(body, dict) and isinstance(body.get("error"), str):
            message = body["error"]
        return error_for_status(response.status_code, message or f"HTTP {response.status_code}")


def _validate(adapter_or_model: Any, value: Any, what: str) -> Any:
    try:
        if isinstance(adapter_or_model, TypeAdapter):
            return adapter_or_model.validate_python(value)
        return adapter_or_model.model_validate(value)
    except pydantic.ValidationError as e:
        raise DecodeError(f"Unexpected {what} response: {e.error_count()} invalid field(s)") from e


# =============================================================================
# Auth
# =============================================================================

class AuthClient:
    """``/auth`` endpoints."""

    def __init__(self, api: ApiClient):
        self.api = api

    async def login(self, email: str, password: str) -> LoginResponse:
        """Authenticate with email and password."""
        body = await self.api.request(
            "POST",
            "/auth/login",
            json={"email": email, "password": password},
        )
        result = _validate(LoginResponse, body, "login")
        if result.user is None or not result.token:
            raise Unauthorized("Invalid email or password")
        return result

    async def profile(self) -> User:
        """Fetch the signed-in user."""
        body = await self.api.request("GET", "/auth/profile")
        return _validate(User, unwrap_envelope(body), "profile")


# =============================================================================
# Collections
# =============================================================================

@dataclass(frozen=True)
class CollectionSpec:
    """Static description of one server-backed collection."""
    name: str
    path: str
    model: type[BaseModel]
    label: str
    supports_attachments: bool = True


EXPERIENCES = CollectionSpec("experiences", "/experiences", Experience, "experience")
ITINERARIES = CollectionSpec("itineraries", "/itineraries", Itinerary, "itinerary")
IMAGES = CollectionSpec("images", "/images", DestinationImage, "image")
UPDATES = CollectionSpec("updates", "/updates", Update, "update", supports_attachments=False)

COLLECTION_SPECS: tuple[CollectionSpec, ...] = (EXPERIENCES, ITINERARIES, IMAGES, UPDATES)


class CollectionClient(Generic[T]):
    """list/get/create/update/delete for one collection."""

    def __init__(self, api: ApiClient, spec: CollectionSpec):
        self.api = api
        self.spec = spec
        self._item_adapter: TypeAdapter = TypeAdapter(spec.model)
        self._list_adapter: TypeAdapter = TypeAdapter(list[spec.model])

    @property
    def name(self) -> str:
        return self.spec.name

    def _item_path(self, item_id: str) -> str:
        return f"{self.spec.path}/{quote(str(item_id), safe='')}"

    def _encode(self, payload: Payload) -> dict[str, Any]:
        if isinstance(payload, AttachmentPayload):
            if not self.spec.supports_attachments:
                raise ValueError(f"{self.spec.name} only accept JSON payloads")
            if payload.size > self.api.settings.max_attachment_bytes:
                limit_mb = self.api.settings.max_attachment_bytes / (1024 * 1024)
                raise ValueError(f"Image size should be less than {limit_mb:g}MB")
        return payload.encode()

    async def list(self, filter: Optional[ListFilter] = None) -> list[T]:
        """Fetch the collection in server order."""
        params = None
        if filter is not None:
            params = filter.to_params(self.api.settings.all_regions_value) or None
        body = await self.api.request("GET", self.spec.path, params=params)
        items = unwrap_envelope(body)
        if items is None:
            items = []
        return _validate(self._list_adapter, items, f"{self.spec.name} list")

    async def get(self, item_id: str) -> T:
        body = await self.api.request("GET", self._item_path(item_id))
        return _validate(self._item_adapter, unwrap_envelope(body), self.spec.label)

    async def create(self, payload: Payload) -> T:
        """Create an item; the server assigns ``id`` and ``createdAt``."""
        body = await self.api.request("POST", self.spec.path, **self._encode(payload))
        return _validate(self._item_adapter, unwrap_envelope(body), self.spec.label)

    async def update(self, item_id: str, payload: Payload) -> T:
        body = await self.api.request("PUT", self._item_path(item_id), **self._encode(payload))
        return _validate(self._item_adapter, unwrap_envelope(body), self.spec.label)

    async def delete(self, item_id: str) -> None:
        await self.api.request("DELETE", self._item_path(item_id))


class CatalogApi:
    """The auth client plus one client per collection, over one connection pool."""

    def __init__(
        self,
        settings: Settings,
        token_provider: TokenProvider,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api = ApiClient(settings, token_provider, http_client=http_client)
        self.auth = AuthClient(self.api)
        self.experiences: CollectionClient[Experience] = CollectionClient(self.api, EXPERIENCES)
        self.itineraries: CollectionClient[Itinerary] = CollectionClient(self.api, ITINERARIES)
        self.images: CollectionClient[DestinationImage] = CollectionClient(self.api, IMAGES)
        self.updates: CollectionClient[Update] = CollectionClient(self.api, UPDATES)

    @property
    def collections(self) -> dict[str, CollectionClient]:
        return {
            client.name: client
            for client in (self.experiences, self.itineraries, self.images, self.updates)
        }

    async def close(self) -> None:
        await self.api.close()
