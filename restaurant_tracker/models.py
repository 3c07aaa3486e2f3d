"""
Entities and key layout for the single-table design.

Every entity lives in one table keyed by PK/SK:

    User        PK=USER#<userId>             SK=METADATA
    Restaurant  PK=USER#<userId>             SK=RESTAURANT#<restaurantId>
    ReviewNote  PK=RESTAURANT#<restaurantId> SK=REVIEW#<reviewId>

Secondary indexes are plain attributes of the restaurant/review items:

    GSI1  userId + cuisineType
    GSI2  userId + visited ("true"/"false")
    GSI3  restaurantId + createdAt
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from restaurant_tracker.errors import ValidationError

PARTITION_KEY = "PK"
SORT_KEY = "SK"

USER_PREFIX = "USER#"
RESTAURANT_PREFIX = "RESTAURANT#"
REVIEW_PREFIX = "REVIEW#"
USER_METADATA_SK = "METADATA"

CUISINE_INDEX = "GSI1"
VISITED_INDEX = "GSI2"
RESTAURANT_TIMELINE_INDEX = "GSI3"

# Index name -> (hash attribute, range attribute)
INDEX_KEYS: dict[str, tuple[str, str]] = {
    CUISINE_INDEX: ("userId", "cuisineType"),
    VISITED_INDEX: ("userId", "visited"),
    RESTAURANT_TIMELINE_INDEX: ("restaurantId", "createdAt"),
}

MIN_RATING = 0
MAX_RATING = 5

# Never written by an update, whatever the caller supplies.
IDENTITY_FIELDS = frozenset(
    {PARTITION_KEY, SORT_KEY, "restaurantId", "userId", "createdAt"}
)


class CuisineType(str, enum.Enum):
    AMERICAN = "American"
    CHINESE = "Chinese"
    FRENCH = "French"
    GREEK = "Greek"
    INDIAN = "Indian"
    ITALIAN = "Italian"
    JAPANESE = "Japanese"
    KOREAN = "Korean"
    MEDITERRANEAN = "Mediterranean"
    MEXICAN = "Mexican"
    MIDDLE_EASTERN = "Middle Eastern"
    THAI = "Thai"
    VIETNAMESE = "Vietnamese"
    OTHER = "Other"


def parse_cuisine_type(value: Any) -> CuisineType:
    if isinstance(value, CuisineType):
        return value
    try:
        return CuisineType(value)
    except ValueError:
        raise ValidationError("Invalid cuisine type") from None


def utc_timestamp() -> str:
    """ISO-8601 UTC with milliseconds, e.g. 2024-05-01T12:00:00.000Z."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def user_key(user_id: str) -> dict[str, str]:
    return {PARTITION_KEY: f"{USER_PREFIX}{user_id}", SORT_KEY: USER_METADATA_SK}


def restaurant_key(user_id: str, restaurant_id: str) -> dict[str, str]:
    return {
        PARTITION_KEY: f"{USER_PREFIX}{user_id}",
        SORT_KEY: f"{RESTAURANT_PREFIX}{restaurant_id}",
    }


def review_key(restaurant_id: str, review_id: str) -> dict[str, str]:
    return {
        PARTITION_KEY: f"{RESTAURANT_PREFIX}{restaurant_id}",
        SORT_KEY: f"{REVIEW_PREFIX}{review_id}",
    }


def encode_visited(visited: bool) -> str:
    return "true" if visited else "false"


def decode_visited(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).lower() == "true"


@dataclass
class User:
    user_id: str
    email: str
    created_at: str
    updated_at: str

    def to_item(self) -> dict:
        return {
            **user_key(self.user_id),
            "userId": self.user_id,
            "email": self.email,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> "User":
        return cls(
            user_id=item["userId"],
            email=item["email"],
            created_at=item["createdAt"],
            updated_at=item["updatedAt"],
        )


@dataclass
class Restaurant:
    restaurant_id: str
    user_id: str
    name: str
    created_at: str
    updated_at: str
    visited: bool = False
    location: Optional[str] = None
    cuisine_type: Optional[CuisineType] = None
    description: Optional[str] = None
    rating: Optional[float] = None

    def to_item(self) -> dict:
        item = {
            **restaurant_key(self.user_id, self.restaurant_id),
            "restaurantId": self.restaurant_id,
            "userId": self.user_id,
            "name": self.name,
            "visited": encode_visited(self.visited),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        # Absent optional attributes keep the item out of the sparse indexes.
        if self.location is not None:
            item["location"] = self.location
        if self.cuisine_type is not None:
            item["cuisineType"] = self.cuisine_type.value
        if self.description is not None:
            item["description"] = self.description
        if self.rating is not None:
            item["rating"] = self.rating
        return item

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> "Restaurant":
        cuisine = item.get("cuisineType")
        return cls(
            restaurant_id=item["restaurantId"],
            user_id=item["userId"],
            name=item["name"],
            created_at=item["createdAt"],
            updated_at=item["updatedAt"],
            visited=decode_visited(item.get("visited", False)),
            location=item.get("location"),
            cuisine_type=CuisineType(cuisine) if cuisine else None,
            description=item.get("description"),
            rating=item.get("rating"),
        )


@dataclass
class ReviewNote:
    review_id: str
    restaurant_id: str
    user_id: str
    text: str
    created_at: str
    updated_at: str

    def to_item(self) -> dict:
        return {
            **review_key(self.restaurant_id, self.review_id),
            "reviewId": self.review_id,
            "restaurantId": self.restaurant_id,
            "userId": self.user_id,
            "text": self.text,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> "ReviewNote":
        return cls(
            review_id=item["reviewId"],
            restaurant_id=item["restaurantId"],
            user_id=item["userId"],
            text=item["text"],
            created_at=item["createdAt"],
            updated_at=item["updatedAt"],
        )


class _Unset:
    """Marker for a patch field the caller did not supply."""

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()

# API attribute name -> RestaurantPatch field
_PATCH_FIELDS = {
    "name": "name",
    "location": "location",
    "cuisineType": "cuisine_type",
    "description": "description",
    "visited": "visited",
    "rating": "rating",
}


@dataclass(frozen=True)
class RestaurantPatch:
    """
    Field-level restaurant update.

    A field left as UNSET is not touched; a field set to None is cleared.
    Identity attributes cannot be expressed here at all.
    """

    name: Any = UNSET
    location: Any = UNSET
    cuisine_type: Any = UNSET
    description: Any = UNSET
    visited: Any = UNSET
    rating: Any = UNSET

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RestaurantPatch":
        kwargs = {
            field_name: data[attr]
            for attr, field_name in _PATCH_FIELDS.items()
            if attr in data
        }
        return cls(**kwargs)

    def changes(self) -> dict[str, Any]:
        """Supplied fields keyed by stored attribute name."""
        result = {}
        for attr, field_name in _PATCH_FIELDS.items():
            value = getattr(self, field_name)
            if value is not UNSET:
                result[attr] = value
        return result


@dataclass
class RestaurantFilters:
    cuisine_type: Optional[CuisineType] = None
    visited: Optional[bool] = None
    search_term: Optional[str] = None


@dataclass
class PaginationParams:
    limit: Optional[int] = None
    next_token: Optional[str] = None


@dataclass
class RestaurantPage:
    restaurants: list[Restaurant] = field(default_factory=list)
    next_token: Optional[str] = None
