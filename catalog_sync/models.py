"""
Pydantic schemas for the travel catalog.

Field names are snake_case in Python; the wire format uses the backend's
camelCase names (``createdAt``, ``imageUrl``, ``externalUrl``) as aliases.
"""

import time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

MILLIS_PER_DAY = 24 * 60 * 60 * 1000


# =============================================================================
# Enums
# =============================================================================

class Region(str, Enum):
    NORTH = "North"
    SOUTH = "South"
    EAST = "East"
    WEST = "West"


class Role(str, Enum):
    ADMIN = "admin"
    USER = "user"


class UpdateType(str, Enum):
    NEWSLETTER = "newsletter"
    TRAVEL_TREND = "travel-trend"
    NEW_EXPERIENCE = "new-experience"


# =============================================================================
# Authentication Schemas
# =============================================================================

class User(BaseModel):
    """The signed-in user as returned by the backend."""
    email: str = Field(..., min_length=1)
    role: Role
    name: str


class Session(BaseModel):
    """Bearer token plus the user it belongs to."""
    token: str = Field(..., min_length=1)
    user: User


class LoginResponse(BaseModel):
    """Response of ``POST /auth/login``."""
    message: str = ""
    user: Optional[User] = None
    token: Optional[str] = None


# =============================================================================
# Catalog Item Schemas
# =============================================================================

def is_new(
    created_at: int,
    now: Optional[float] = None,
    window_days: int = 2,
) -> bool:
    """Check whether an epoch-millisecond timestamp falls inside the "new" window."""
    now_ms = now if now is not None else time.time() * 1000
    return created_at > now_ms - window_days * MILLIS_PER_DAY


class CatalogItem(BaseModel):
    """Fields shared by every catalog item. Both are server-assigned."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    created_at: int = Field(..., alias="createdAt")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        """Numeric ids are kept as strings so lookups are uniform."""
        if isinstance(v, int):
            return str(v)
        return v

    def is_new(self, now: Optional[float] = None, window_days: int = 2) -> bool:
        return is_new(self.created_at, now=now, window_days=window_days)


class Experience(CatalogItem):
    destination: str
    region: Region
    title: str
    description: str
    highlights: list[str] = Field(default_factory=list)
    image_url: Optional[str] = Field(None, alias="imageUrl")


class DayPlan(BaseModel):
    """Activities for one day of an itinerary."""
    day: int = Field(..., ge=1)
    activities: list[str] = Field(default_factory=list)


class Itinerary(CatalogItem):
    destination: str
    region: Region
    title: str
    duration: str
    description: Optional[str] = None
    days: list[DayPlan] = Field(default_factory=list)
    image_url: Optional[str] = Field(None, alias="imageUrl")


class DestinationImage(CatalogItem):
    destination: str
    region: Region
    url: str
    caption: str


class Update(CatalogItem):
    type: UpdateType
    title: str
    content: str
    external_url: Optional[str] = Field(None, alias="externalUrl")


# =============================================================================
# Query Schemas
# =============================================================================

class ListFilter(BaseModel):
    """Optional filters for a collection listing."""
    region: Optional[str] = None
    search: Optional[str] = None
    page: Optional[int] = Field(None, ge=1)
    limit: Optional[int] = Field(None, ge=1)

    @field_validator("region", mode="before")
    @classmethod
    def region_value(cls, v):
        if isinstance(v, Region):
            return v.value
        return v

    def to_params(self, all_regions_value: str = "All") -> dict[str, str]:
        """
        Build query parameters, dropping absent fields.

        The ``all_regions_value`` sentinel means "no region filter" and is
        never sent.
        """
        params: dict[str, str] = {}
        if self.page:
            params["page"] = str(self.page)
        if self.limit:
            params["limit"] = str(self.limit)
        if self.region and self.region != all_regions_value:
            params["region"] = self.region
        if self.search:
            params["search"] = self.search
        return params
