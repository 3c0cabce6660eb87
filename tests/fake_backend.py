"""
In-memory travel catalog API for tests.

Implements the REST surface the client consumes (auth plus four
collections) with FastAPI, and exposes hooks on ``app.state.store`` to
inject failures, count listings and hold listings open.
"""

import asyncio
import json
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Optional

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

CDN_URL = "https://cdn.example.com"

REQUIRED_FIELDS = {
    "experiences": ("destination", "region", "title", "description"),
    "itineraries": ("destination", "region", "title", "duration"),
    "images": ("destination", "region", "caption"),
    "updates": ("type", "title", "content"),
}
JSON_ENCODED_FIELDS = ("highlights", "days")
BARE_LIST_COLLECTIONS = ("updates",)


class LoginBody(BaseModel):
    email: str
    password: str


@dataclass
class FakeStore:
    """Server-side state plus test hooks."""
    users: dict[str, tuple[str, dict]] = field(default_factory=dict)
    tokens: dict[str, dict] = field(default_factory=dict)
    collections: dict[str, list[dict]] = field(
        default_factory=lambda: {name: [] for name in REQUIRED_FIELDS}
    )
    # Listings answer 503 with an error envelope
    failing: set[str] = field(default_factory=set)
    # Listings answer 502 with a non-JSON body
    broken: set[str] = field(default_factory=set)
    # Listings wait for the event before answering
    gates: dict[str, asyncio.Event] = field(default_factory=dict)
    list_calls: Counter = field(default_factory=Counter)
    requests: list[dict] = field(default_factory=list)
    _token_counter: int = 0

    def add_user(self, email: str, password: str, role: str = "user", name: str = "") -> dict:
        user = {"email": email, "role": role, "name": name or email.split("@")[0]}
        self.users[email] = (password, user)
        return user

    def issue_token(self, user: dict) -> str:
        self._token_counter += 1
        token = f"t{self._token_counter}"
        self.tokens[token] = user
        return token

    def seed(self, collection: str, **fields: Any) -> dict:
        """Insert an item directly, bypassing the API."""
        item = {
            "id": fields.pop("id", uuid.uuid4().hex[:12]),
            "createdAt": fields.pop("createdAt", int(time.time() * 1000)),
            **fields,
        }
        self.collections[collection].append(item)
        return item

    def find(self, collection: str, item_id: str) -> Optional[dict]:
        for item in self.collections[collection]:
            if item["id"] == item_id:
                return item
        return None


def _error(status_code: int, message: str) -> StarletteHTTPException:
    return StarletteHTTPException(status_code=status_code, detail=message)


def _normalize(collection: str, fields: dict) -> dict:
    """Server-derived normalization applied on every write."""
    if "highlights" in fields and isinstance(fields["highlights"], list):
        fields["highlights"] = [h.strip() for h in fields["highlights"] if str(h).strip()]
    if collection == "images" and "imageUrl" in fields and "url" not in fields:
        fields["url"] = fields.pop("imageUrl")
    return fields


async def _read_fields(collection: str, request: Request) -> dict:
    """Decode a JSON or multipart body into item fields."""
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("multipart/form-data"):
        if collection == "updates":
            raise _error(status.HTTP_400_BAD_REQUEST, "Updates accept JSON only")
        form = await request.form()
        fields: dict[str, Any] = {}
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                url_field = "url" if collection == "images" else "imageUrl"
                fields[url_field] = f"{CDN_URL}/{value.filename}"
            elif key in JSON_ENCODED_FIELDS:
                try:
                    fields[key] = json.loads(value)
                except ValueError:
                    raise _error(status.HTTP_400_BAD_REQUEST, f"Invalid {key}")
            else:
                fields[key] = value
        return fields

    try:
        fields = await request.json()
    except ValueError:
        raise _error(status.HTTP_400_BAD_REQUEST, "Invalid JSON body")
    if not isinstance(fields, dict):
        raise _error(status.HTTP_400_BAD_REQUEST, "Invalid JSON body")
    return fields


def create_app() -> FastAPI:
    """Build a fresh app with two users: an admin and a regular user."""
    app = FastAPI(title="Fake Travel Catalog API")
    store = FakeStore()
    store.add_user("admin@example.com", "secret", role="admin", name="Admin")
    store.add_user("a@b.com", "x", role="user", name="A")
    app.state.store = store

    router = APIRouter(prefix="/api")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.middleware("http")
    async def record_requests(request: Request, call_next):
        store.requests.append({
            "method": request.method,
            "path": request.url.path,
            "content_type": request.headers.get("content-type"),
            "authorization": request.headers.get("authorization"),
        })
        return await call_next(request)

    def current_user(request: Request) -> dict:
        header = request.headers.get("authorization", "")
        if not header.startswith("Bearer "):
            raise _error(status.HTTP_401_UNAUTHORIZED, "Access token required")
        user = store.tokens.get(header[len("Bearer "):])
        if user is None:
            raise _error(status.HTTP_401_UNAUTHORIZED, "Invalid or expired token")
        return user

    # === Auth ===

    @router.post("/auth/login")
    async def login(body: LoginBody) -> dict:
        entry = store.users.get(body.email)
        if entry is None or entry[0] != body.password:
            raise _error(status.HTTP_401_UNAUTHORIZED, "Invalid email or password")
        user = entry[1]
        return {"message": "Login successful", "user": user, "token": store.issue_token(user)}

    @router.get("/auth/profile")
    async def profile(request: Request) -> dict:
        return current_user(request)

    # === Collections ===

    def register_collection(name: str) -> None:
        async def list_items(request: Request):
            store.list_calls[name] += 1
            gate = store.gates.get(name)
            if gate is not None:
                await gate.wait()
            if name in store.broken:
                return PlainTextResponse("<html>Bad Gateway</html>", status_code=502)
            if name in store.failing:
                raise _error(status.HTTP_503_SERVICE_UNAVAILABLE, f"{name} unavailable")

            items = list(store.collections[name])
            params = request.query_params
            if params.get("region"):
                items = [i for i in items if i.get("region") == params["region"]]
            if params.get("search"):
                needle = params["search"].lower()
                items = [i for i in items if needle in i.get("title", i.get("caption", "")).lower()]
            if params.get("limit"):
                limit = int(params["limit"])
                page = int(params.get("page", 1))
                items = items[(page - 1) * limit:page * limit]

            if name in BARE_LIST_COLLECTIONS:
                return items
            return {"success": True, "data": items}

        async def get_item(item_id: str):
            item = store.find(name, item_id)
            if item is None:
                raise _error(status.HTTP_404_NOT_FOUND, "Item not found")
            return item

        async def create_item(request: Request):
            current_user(request)
            fields = _normalize(name, await _read_fields(name, request))
            for required in REQUIRED_FIELDS[name]:
                if not fields.get(required):
                    raise _error(status.HTTP_400_BAD_REQUEST, f"Missing required field: {required}")
            if name == "images" and not fields.get("url"):
                raise _error(status.HTTP_400_BAD_REQUEST, "Image file or URL required")
            fields.pop("id", None)
            fields.pop("createdAt", None)
            item = store.seed(name, **fields)
            return JSONResponse(status_code=201, content={"success": True, "data": item})

        async def update_item(item_id: str, request: Request):
            current_user(request)
            item = store.find(name, item_id)
            if item is None:
                raise _error(status.HTTP_404_NOT_FOUND, "Item not found")
            fields = _normalize(name, await _read_fields(name, request))
            fields.pop("id", None)
            fields.pop("createdAt", None)
            item.update(fields)
            return {"success": True, "data": item}

        async def delete_item(item_id: str, request: Request):
            current_user(request)
            item = store.find(name, item_id)
            if item is None:
                raise _error(status.HTTP_404_NOT_FOUND, "Item not found")
            store.collections[name].remove(item)
            return {"success": True, "message": "Deleted"}

        router.add_api_route(f"/{name}", list_items, methods=["GET"])
        router.add_api_route(f"/{name}/{{item_id}}", get_item, methods=["GET"])
        router.add_api_route(f"/{name}", create_item, methods=["POST"])
        router.add_api_route(f"/{name}/{{item_id}}", update_item, methods=["PUT"])
        router.add_api_route(f"/{name}/{{item_id}}", delete_item, methods=["DELETE"])

    for collection_name in REQUIRED_FIELDS:
        register_collection(collection_name)

    app.include_router(router)
    return app


def experience_fields(**overrides: Any) -> dict:
    """Valid experience fields for create payloads."""
    fields = {
        "destination": "Goa",
        "region": "West",
        "title": "Beach Shack Cooking",
        "description": "Cook fresh catch with locals",
        "highlights": ["Market visit", "Lunch"],
    }
    fields.update(overrides)
    return fields
