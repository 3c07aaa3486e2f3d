"""
Pydantic schemas for the restaurant tracker API.

Wire names are camelCase; fields are snake_case in Python.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from restaurant_tracker.models import Restaurant, ReviewNote


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


class LoginRequest(ApiModel):
    email: Optional[str] = None


class LoginResponse(ApiModel):
    message: str
    session: str
    email: str


class CreateRestaurantRequest(ApiModel):
    name: Optional[str] = None
    location: Optional[str] = None
    cuisine_type: Optional[str] = None
    description: Optional[str] = None


class UpdateRestaurantRequest(ApiModel):
    """Partial update; only keys present in the body are applied."""

    name: Optional[str] = None
    location: Optional[str] = None
    cuisine_type: Optional[str] = None
    description: Optional[str] = None
    visited: Optional[bool] = None
    rating: Optional[float] = None


class UpdateRatingRequest(ApiModel):
    rating: Optional[float] = None


class CreateReviewRequest(ApiModel):
    text: Optional[str] = None


class RestaurantResponse(ApiModel):
    restaurant_id: str
    name: str
    location: Optional[str] = None
    cuisine_type: Optional[str] = None
    description: Optional[str] = None
    visited: bool
    rating: Optional[float] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_restaurant(cls, restaurant: Restaurant) -> "RestaurantResponse":
        return cls(
            restaurant_id=restaurant.restaurant_id,
            name=restaurant.name,
            location=restaurant.location,
            cuisine_type=(
                restaurant.cuisine_type.value if restaurant.cuisine_type else None
            ),
            description=restaurant.description,
            visited=restaurant.visited,
            rating=restaurant.rating,
            created_at=restaurant.created_at,
            updated_at=restaurant.updated_at,
        )


class ListRestaurantsResponse(ApiModel):
    restaurants: list[RestaurantResponse]
    next_token: Optional[str] = None


class ReviewNoteResponse(ApiModel):
    review_id: str
    text: str
    created_at: str

    @classmethod
    def from_note(cls, note: ReviewNote) -> "ReviewNoteResponse":
        return cls(review_id=note.review_id, text=note.text, created_at=note.created_at)


class ReviewListResponse(ApiModel):
    reviews: list[ReviewNoteResponse]


class HealthResponse(BaseModel):
    status: Literal["ok"]
