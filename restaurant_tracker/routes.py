"""
HTTP routes for the restaurant tracker API.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from restaurant_tracker.config import Settings
from restaurant_tracker.dependencies import (
    get_app_settings,
    get_current_user_id,
    get_login_service,
    get_restaurant_repository,
)
from restaurant_tracker.errors import NotFoundError, ValidationError
from restaurant_tracker.login import PasswordlessLogin
from restaurant_tracker.models import (
    PaginationParams,
    RestaurantFilters,
    RestaurantPatch,
    parse_cuisine_type,
)
from restaurant_tracker.repository import RestaurantRepository
from restaurant_tracker.schemas import (
    CreateRestaurantRequest,
    CreateReviewRequest,
    HealthResponse,
    ListRestaurantsResponse,
    LoginRequest,
    LoginResponse,
    RestaurantResponse,
    ReviewListResponse,
    ReviewNoteResponse,
    UpdateRatingRequest,
    UpdateRestaurantRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_id(restaurant_id: str) -> str:
    restaurant_id = (restaurant_id or "").strip()
    if not restaurant_id:
        raise ValidationError("Restaurant ID is required")
    return restaurant_id


def _page_limit(raw: Optional[str], settings: Settings) -> Optional[int]:
    # Unparseable or non-positive limits are ignored: the query runs unbounded.
    try:
        limit = int(raw) if raw else 0
    except ValueError:
        return None
    if limit < 1:
        return None
    return min(limit, settings.max_page_size)


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


@router.post("/auth/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    service: PasswordlessLogin = Depends(get_login_service),
):
    """
    Start a passwordless sign-in; the login code arrives by email.
    """
    result = service.initiate(payload.email or "")
    return LoginResponse(
        message="Authentication initiated",
        session=result.session,
        email=result.email,
    )


@router.get(
    "/restaurants",
    response_model=ListRestaurantsResponse,
    response_model_exclude_none=True,
)
def list_restaurants(
    cuisine_type: Optional[str] = Query(None, alias="cuisineType"),
    visited: Optional[str] = Query(None),
    search_term: Optional[str] = Query(None, alias="searchTerm"),
    limit: Optional[str] = Query(None),
    next_token: Optional[str] = Query(None, alias="nextToken"),
    user_id: str = Depends(get_current_user_id),
    repository: RestaurantRepository = Depends(get_restaurant_repository),
    settings: Settings = Depends(get_app_settings),
):
    filters = RestaurantFilters(
        cuisine_type=parse_cuisine_type(cuisine_type) if cuisine_type else None,
        visited=visited.lower() == "true" if visited is not None else None,
        search_term=search_term or None,
    )
    pagination = PaginationParams(
        limit=_page_limit(limit, settings), next_token=next_token or None
    )
    page = repository.list_restaurants(user_id, filters, pagination)
    return ListRestaurantsResponse(
        restaurants=[RestaurantResponse.from_restaurant(r) for r in page.restaurants],
        next_token=page.next_token,
    )


@router.post(
    "/restaurants",
    response_model=RestaurantResponse,
    response_model_exclude_none=True,
    status_code=201,
)
def create_restaurant(
    payload: CreateRestaurantRequest,
    user_id: str = Depends(get_current_user_id),
    repository: RestaurantRepository = Depends(get_restaurant_repository),
):
    if not payload.name:
        raise ValidationError("Restaurant name is required")
    cuisine = parse_cuisine_type(payload.cuisine_type) if payload.cuisine_type else None
    restaurant = repository.create_restaurant(
        user_id,
        payload.name,
        location=payload.location,
        cuisine_type=cuisine,
        description=payload.description,
    )
    return RestaurantResponse.from_restaurant(restaurant)


@router.get(
    "/restaurants/{restaurant_id}",
    response_model=RestaurantResponse,
    response_model_exclude_none=True,
)
def get_restaurant(
    restaurant_id: str,
    user_id: str = Depends(get_current_user_id),
    repository: RestaurantRepository = Depends(get_restaurant_repository),
):
    restaurant = repository.get_restaurant_by_id(user_id, _require_id(restaurant_id))
    if restaurant is None:
        raise NotFoundError("Restaurant not found")
    return RestaurantResponse.from_restaurant(restaurant)


@router.put(
    "/restaurants/{restaurant_id}",
    response_model=RestaurantResponse,
    response_model_exclude_none=True,
)
def update_restaurant(
    restaurant_id: str,
    payload: UpdateRestaurantRequest,
    user_id: str = Depends(get_current_user_id),
    repository: RestaurantRepository = Depends(get_restaurant_repository),
):
    changes = payload.model_dump(by_alias=True, exclude_unset=True)
    if changes.get("cuisineType") is not None:
        changes["cuisineType"] = parse_cuisine_type(changes["cuisineType"])
    restaurant = repository.update_restaurant(
        user_id, _require_id(restaurant_id), RestaurantPatch.from_mapping(changes)
    )
    if restaurant is None:
        raise NotFoundError("Restaurant not found")
    return RestaurantResponse.from_restaurant(restaurant)


@router.get("/restaurants/{restaurant_id}/reviews", response_model=ReviewListResponse)
def get_reviews(
    restaurant_id: str,
    user_id: str = Depends(get_current_user_id),
    repository: RestaurantRepository = Depends(get_restaurant_repository),
):
    restaurant_id = _require_id(restaurant_id)
    # Reviews are keyed by restaurant only; ownership comes from this lookup.
    if repository.get_restaurant_by_id(user_id, restaurant_id) is None:
        raise NotFoundError("Restaurant not found")
    notes = repository.get_review_notes(restaurant_id)
    return ReviewListResponse(reviews=[ReviewNoteResponse.from_note(n) for n in notes])


@router.post(
    "/restaurants/{restaurant_id}/reviews",
    response_model=ReviewNoteResponse,
    status_code=201,
)
def add_review_note(
    restaurant_id: str,
    payload: CreateReviewRequest,
    user_id: str = Depends(get_current_user_id),
    repository: RestaurantRepository = Depends(get_restaurant_repository),
):
    if not payload.text:
        raise ValidationError("Review text is required")
    note = repository.add_review_note(user_id, _require_id(restaurant_id), payload.text)
    return ReviewNoteResponse.from_note(note)


@router.put(
    "/restaurants/{restaurant_id}/rating",
    response_model=RestaurantResponse,
    response_model_exclude_none=True,
)
def update_rating(
    restaurant_id: str,
    payload: UpdateRatingRequest,
    user_id: str = Depends(get_current_user_id),
    repository: RestaurantRepository = Depends(get_restaurant_repository),
):
    if payload.rating is None:
        raise ValidationError("Rating is required")
    restaurant = repository.update_rating(
        user_id, _require_id(restaurant_id), payload.rating
    )
    if restaurant is None:
        raise NotFoundError("Restaurant not found")
    return RestaurantResponse.from_restaurant(restaurant)
