"""
Backend construction and per-request dependency wiring for the FastAPI app.

Backends are built once per application (see `app.create_app`) and kept on
`app.state`; routes receive them through `Depends`.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Request

from restaurant_tracker.config import Settings, get_settings
from restaurant_tracker.errors import AuthError, ConfigurationError
from restaurant_tracker.identity import (
    CognitoIdentityProvider,
    IdentityProvider,
    InMemoryIdentityProvider,
)
from restaurant_tracker.login import PasswordlessLogin
from restaurant_tracker.mailer import InMemoryMailer, Mailer, SesMailer
from restaurant_tracker.repository import RestaurantRepository, UserRepository
from restaurant_tracker.store import (
    DynamoTableClient,
    InMemoryTableClient,
    TableClient,
)

logger = logging.getLogger(__name__)


def build_table_client(settings: Settings) -> TableClient:
    if settings.use_in_memory_backends or not settings.table_name:
        return InMemoryTableClient()
    return DynamoTableClient(
        table_name=settings.table_name,
        region=settings.aws_region,
        endpoint_url=settings.dynamodb_endpoint_url,
    )


def build_mailer(settings: Settings) -> Mailer:
    if settings.use_in_memory_backends:
        return InMemoryMailer()
    return SesMailer(source=settings.ses_source_email, region=settings.aws_region)


def build_identity_provider(settings: Settings) -> Optional[IdentityProvider]:
    """Return None when the user pool is not configured."""
    if settings.use_in_memory_backends:
        return InMemoryIdentityProvider()
    if not settings.user_pool_id or not settings.user_pool_client_id:
        logger.warning("USER_POOL_ID / USER_POOL_CLIENT_ID not set; login disabled")
        return None
    return CognitoIdentityProvider(
        user_pool_id=settings.user_pool_id,
        client_id=settings.user_pool_client_id,
        region=settings.aws_region,
    )


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def get_table(request: Request) -> TableClient:
    return request.app.state.table


def get_restaurant_repository(
    table: TableClient = Depends(get_table),
) -> RestaurantRepository:
    return RestaurantRepository(table)


def get_user_repository(table: TableClient = Depends(get_table)) -> UserRepository:
    return UserRepository(table)


def get_login_service(
    request: Request, users: UserRepository = Depends(get_user_repository)
) -> PasswordlessLogin:
    identity = request.app.state.identity
    if identity is None:
        logger.error("Login requested but the identity provider is not configured")
        raise ConfigurationError()
    return PasswordlessLogin(identity, users)


def get_current_user_id(
    request: Request, settings: Settings = Depends(get_app_settings)
) -> str:
    """
    Subject of the caller, as forwarded by the fronting identity layer.

    Tokens are verified upstream; this only reads the resulting subject.
    """
    subject = (request.headers.get(settings.identity_header) or "").strip()
    if not subject:
        raise AuthError()
    return subject
