"""
Access patterns over the single table.

Each public method maps one logical query onto a point lookup, a key-prefix
query or a secondary-index query. Ownership is enforced by key construction:
a caller can only address items under their own USER#<userId> partition.
"""

from __future__ import annotations

import logging
import math
import numbers
import uuid
from typing import Any, Callable, Optional

from restaurant_tracker.errors import NotFoundError, ValidationError
from restaurant_tracker.models import (
    CUISINE_INDEX,
    INDEX_KEYS,
    MAX_RATING,
    MIN_RATING,
    PARTITION_KEY,
    RESTAURANT_PREFIX,
    RESTAURANT_TIMELINE_INDEX,
    REVIEW_PREFIX,
    SORT_KEY,
    USER_METADATA_SK,
    USER_PREFIX,
    VISITED_INDEX,
    CuisineType,
    PaginationParams,
    Restaurant,
    RestaurantFilters,
    RestaurantPage,
    RestaurantPatch,
    ReviewNote,
    User,
    encode_visited,
    parse_cuisine_type,
    restaurant_key,
    user_key,
    utc_timestamp,
)
from restaurant_tracker.pagination import decode_cursor, encode_cursor
from restaurant_tracker.store import (
    ConditionFailed,
    FilterClause,
    KeyCondition,
    TableClient,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], str]


def validate_rating(rating: Any) -> float:
    if isinstance(rating, bool) or not isinstance(rating, numbers.Real):
        raise ValidationError("Rating must be a number")
    if not math.isfinite(rating):
        raise ValidationError("Rating must be a number")
    if not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError(
            f"Rating must be between {MIN_RATING} and {MAX_RATING}"
        )
    return rating


def _new_id() -> str:
    return str(uuid.uuid4())


class RestaurantRepository:
    """Restaurants and their review notes."""

    def __init__(self, table: TableClient, clock: Clock = utc_timestamp):
        self.table = table
        self.clock = clock

    def create_restaurant(
        self,
        user_id: str,
        name: str,
        location: Optional[str] = None,
        cuisine_type: Optional[CuisineType] = None,
        description: Optional[str] = None,
    ) -> Restaurant:
        if not name:
            raise ValidationError("Restaurant name is required")
        now = self.clock()
        restaurant = Restaurant(
            restaurant_id=_new_id(),
            user_id=user_id,
            name=name,
            location=location,
            cuisine_type=parse_cuisine_type(cuisine_type) if cuisine_type else None,
            description=description,
            visited=False,
            created_at=now,
            updated_at=now,
        )
        self.table.put_item(restaurant.to_item())
        logger.info("Created restaurant %s", restaurant.restaurant_id)
        return restaurant

    def get_restaurant_by_id(
        self, user_id: str, restaurant_id: str
    ) -> Optional[Restaurant]:
        item = self.table.get_item(restaurant_key(user_id, restaurant_id))
        return Restaurant.from_item(item) if item else None

    def _patch_to_writes(self, patch: RestaurantPatch) -> tuple[dict, list[str]]:
        set_fields: dict[str, Any] = {}
        remove_fields: list[str] = []
        for attr, value in patch.changes().items():
            if attr == "visited":
                # visited only ever moves false -> true
                if value is True:
                    set_fields["visited"] = encode_visited(True)
                elif value is not False and value is not None:
                    raise ValidationError("visited must be a boolean")
                continue
            if value is None:
                if attr == "name":
                    raise ValidationError("Restaurant name cannot be empty")
                remove_fields.append(attr)
                continue
            if attr == "name" and not value:
                raise ValidationError("Restaurant name cannot be empty")
            if attr == "cuisineType":
                value = parse_cuisine_type(value).value
            elif attr == "rating":
                value = validate_rating(value)
            set_fields[attr] = value
        return set_fields, remove_fields

    def update_restaurant(
        self, user_id: str, restaurant_id: str, patch: RestaurantPatch
    ) -> Optional[Restaurant]:
        set_fields, remove_fields = self._patch_to_writes(patch)
        set_fields["updatedAt"] = self.clock()
        item = self.table.update_item(
            restaurant_key(user_id, restaurant_id),
            set_fields,
            remove_fields,
            must_exist=True,
        )
        if item is None:
            return None
        return Restaurant.from_item(item)

    def delete_restaurant(self, user_id: str, restaurant_id: str) -> None:
        self.table.delete_item(restaurant_key(user_id, restaurant_id))

    def list_restaurants(
        self,
        user_id: str,
        filters: RestaurantFilters | None = None,
        pagination: PaginationParams | None = None,
    ) -> RestaurantPage:
        filters = filters or RestaurantFilters()
        pagination = pagination or PaginationParams()
        owner = f"{USER_PREFIX}{user_id}"

        # Index choice is exclusive: cuisine, then visited, then owner prefix.
        index_name: Optional[str]
        if filters.cuisine_type is not None:
            index_name = CUISINE_INDEX
            cuisine = parse_cuisine_type(filters.cuisine_type).value
            hash_key, range_key = INDEX_KEYS[index_name]
            condition = KeyCondition(hash_key, user_id, range_key, cuisine)
            expected = {PARTITION_KEY: owner, hash_key: user_id, range_key: cuisine}
        elif filters.visited is not None:
            index_name = VISITED_INDEX
            visited = encode_visited(filters.visited)
            hash_key, range_key = INDEX_KEYS[index_name]
            condition = KeyCondition(hash_key, user_id, range_key, visited)
            expected = {PARTITION_KEY: owner, hash_key: user_id, range_key: visited}
        else:
            index_name = None
            condition = KeyCondition(
                PARTITION_KEY, owner, SORT_KEY, RESTAURANT_PREFIX, "begins_with"
            )
            expected = {PARTITION_KEY: owner}

        start_key = None
        if pagination.next_token:
            start_key = decode_cursor(
                pagination.next_token, index_name=index_name, expected=expected
            )

        query_filters = []
        if filters.search_term:
            query_filters.append(FilterClause("name", "contains", filters.search_term))

        page = self.table.query(
            condition,
            index_name=index_name,
            limit=pagination.limit,
            exclusive_start_key=start_key,
            filters=query_filters,
        )
        return RestaurantPage(
            restaurants=[
                Restaurant.from_item(item)
                for item in page.items
                if item.get(SORT_KEY, "").startswith(RESTAURANT_PREFIX)
            ],
            next_token=encode_cursor(page.last_evaluated_key),
        )

    def update_rating(
        self, user_id: str, restaurant_id: str, rating: Any
    ) -> Optional[Restaurant]:
        rating = validate_rating(rating)
        return self.update_restaurant(
            user_id,
            restaurant_id,
            RestaurantPatch(visited=True, rating=rating),
        )

    def add_review_note(
        self, user_id: str, restaurant_id: str, text: str
    ) -> ReviewNote:
        if not text:
            raise ValidationError("Review text is required")
        restaurant = self.get_restaurant_by_id(user_id, restaurant_id)
        if restaurant is None:
            raise NotFoundError("Restaurant not found")

        # Not atomic with the note write below; a failure in between leaves
        # the restaurant visited without a note.
        if not restaurant.visited:
            updated = self.update_restaurant(
                user_id, restaurant_id, RestaurantPatch(visited=True)
            )
            if updated is None:
                raise NotFoundError("Restaurant not found")

        now = self.clock()
        note = ReviewNote(
            review_id=_new_id(),
            restaurant_id=restaurant_id,
            user_id=user_id,
            text=text,
            created_at=now,
            updated_at=now,
        )
        self.table.put_item(note.to_item())
        logger.info("Added review %s to restaurant %s", note.review_id, restaurant_id)
        return note

    def get_review_notes(self, restaurant_id: str) -> list[ReviewNote]:
        """All notes for a restaurant, most recent first."""
        hash_key, _ = INDEX_KEYS[RESTAURANT_TIMELINE_INDEX]
        condition = KeyCondition(hash_key, restaurant_id)
        # The restaurant item shares this index partition; keep only notes.
        review_only = [FilterClause(SORT_KEY, "begins_with", REVIEW_PREFIX)]

        notes: list[ReviewNote] = []
        start_key = None
        while True:
            page = self.table.query(
                condition,
                index_name=RESTAURANT_TIMELINE_INDEX,
                exclusive_start_key=start_key,
                scan_forward=False,
                filters=review_only,
            )
            notes.extend(ReviewNote.from_item(item) for item in page.items)
            start_key = page.last_evaluated_key
            if not start_key:
                break
        return notes


class UserRepository:
    """User metadata items (one per registered email)."""

    def __init__(self, table: TableClient, clock: Clock = utc_timestamp):
        self.table = table
        self.clock = clock

    def create_user(self, email: str, user_id: Optional[str] = None) -> User:
        now = self.clock()
        user = User(
            user_id=user_id or _new_id(),
            email=email,
            created_at=now,
            updated_at=now,
        )
        self.table.put_item(user.to_item(), if_not_exists=True)
        return user

    def ensure_user(self, user_id: str, email: str) -> User:
        """Create the user record unless it already exists."""
        try:
            return self.create_user(email, user_id=user_id)
        except ConditionFailed:
            existing = self.get_user_by_id(user_id)
            if existing is None:
                raise
            return existing

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        item = self.table.get_item(user_key(user_id))
        return User.from_item(item) if item else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        filters = [
            FilterClause(SORT_KEY, "eq", USER_METADATA_SK),
            FilterClause("email", "eq", email),
        ]
        start_key = None
        while True:
            page = self.table.scan(exclusive_start_key=start_key, filters=filters)
            if page.items:
                return User.from_item(page.items[0])
            start_key = page.last_evaluated_key
            if not start_key:
                return None
