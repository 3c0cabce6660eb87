"""
Travel Catalog Sync

Client-side synchronization for the travel catalog dashboard: session
handling, typed REST clients for the four catalog collections, a shared
in-memory cache with coalesced refresh, and the coordinator that loads
everything after login.
"""

from .cache import (
    # State
    CollectionCache,
    CatalogSnapshot,
    MutationOp,
)
from .client import (
    # HTTP clients
    ApiClient,
    AuthClient,
    CatalogApi,
    CollectionClient,
    CollectionSpec,
    unwrap_envelope,
)
from .config import Settings, get_settings
from .coordinator import (
    SyncCoordinator,
    SyncResult,
    SyncState,
    build_coordinator,
    coordinator_session,
)
from .errors import (
    # Exceptions
    SyncError,
    ApiError,
    Unauthorized,
    NotFound,
    ValidationError,
    NetworkError,
    DecodeError,
    StorageUnavailable,
)
from .models import (
    # Data models
    DayPlan,
    DestinationImage,
    Experience,
    Itinerary,
    ListFilter,
    LoginResponse,
    Region,
    Role,
    Session,
    Update,
    UpdateType,
    User,
    is_new,
)
from .notifications import LoggingNotifier, Notifier
from .payloads import AttachmentPayload, JsonPayload, Payload
from .storage import KeyValueStorage, MemoryStorage, SessionStore, SqliteStorage

__version__ = "0.1.0"
__all__ = [
    # State
    "CollectionCache",
    "CatalogSnapshot",
    "MutationOp",

    # HTTP clients
    "ApiClient",
    "AuthClient",
    "CatalogApi",
    "CollectionClient",
    "CollectionSpec",
    "unwrap_envelope",

    # Configuration
    "Settings",
    "get_settings",

    # Coordination
    "SyncCoordinator",
    "SyncResult",
    "SyncState",
    "build_coordinator",
    "coordinator_session",

    # Exceptions
    "SyncError",
    "ApiError",
    "Unauthorized",
    "NotFound",
    "ValidationError",
    "NetworkError",
    "DecodeError",
    "StorageUnavailable",

    # Data models
    "DayPlan",
    "DestinationImage",
    "Experience",
    "Itinerary",
    "ListFilter",
    "LoginResponse",
    "Region",
    "Role",
    "Session",
    "Update",
    "UpdateType",
    "User",
    "is_new",

    # Payloads
    "AttachmentPayload",
    "JsonPayload",
    "Payload",

    # Session storage
    "KeyValueStorage",
    "MemoryStorage",
    "SessionStore",
    "SqliteStorage",

    # Notifications
    "LoggingNotifier",
    "Notifier",
]
