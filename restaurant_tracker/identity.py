"""
Identity provider abstraction for Amazon Cognito and in-memory testing.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from restaurant_tracker.errors import UpstreamServiceError
from restaurant_tracker.mailer import mask_email

logger = logging.getLogger(__name__)

CUSTOM_AUTH_FLOW = "CUSTOM_AUTH"


class IdentityProvider(Protocol):
    """What the login front door needs from the user pool."""

    def get_user_sub(self, username: str) -> Optional[str]:
        ...

    def create_user(self, username: str, email: str) -> str:
        ...

    def set_permanent_password(self, username: str, password: str) -> None:
        ...

    def initiate_custom_auth(self, username: str) -> str:
        ...


def _sub_from_attributes(attributes: list[dict]) -> Optional[str]:
    for attribute in attributes or []:
        if attribute.get("Name") == "sub":
            return attribute.get("Value")
    return None


@dataclass
class InMemoryIdentityProvider:
    """Test double that records users, passwords and started sessions."""

    users: dict = field(default_factory=dict)
    sessions: list[tuple[str, str]] = field(default_factory=list)

    def get_user_sub(self, username: str) -> Optional[str]:
        user = self.users.get(username)
        return user["sub"] if user else None

    def create_user(self, username: str, email: str) -> str:
        sub = str(uuid.uuid4())
        self.users[username] = {"sub": sub, "email": email, "password": None}
        return sub

    def set_permanent_password(self, username: str, password: str) -> None:
        self.users[username]["password"] = password

    def initiate_custom_auth(self, username: str) -> str:
        session = uuid.uuid4().hex
        self.sessions.append((username, session))
        return session


@dataclass
class CognitoIdentityProvider:
    """Cognito user pool driven through the admin and custom-auth APIs."""

    user_pool_id: str
    client_id: str
    region: str

    def __post_init__(self):
        self._client = boto3.client("cognito-idp", region_name=self.region)

    def _upstream_error(self, operation: str, username: str, error: Exception):
        logger.error(
            "Cognito %s for %s failed: %s", operation, mask_email(username), error
        )
        return UpstreamServiceError("Identity provider request failed")

    def get_user_sub(self, username: str) -> Optional[str]:
        try:
            response = self._client.admin_get_user(
                UserPoolId=self.user_pool_id, Username=username
            )
        except ClientError as error:
            if error.response["Error"]["Code"] == "UserNotFoundException":
                return None
            raise self._upstream_error("admin_get_user", username, error) from error
        except BotoCoreError as error:
            raise self._upstream_error("admin_get_user", username, error) from error
        return _sub_from_attributes(response.get("UserAttributes", []))

    def create_user(self, username: str, email: str) -> str:
        try:
            response = self._client.admin_create_user(
                UserPoolId=self.user_pool_id,
                Username=username,
                UserAttributes=[
                    {"Name": "email", "Value": email},
                    {"Name": "email_verified", "Value": "true"},
                    {"Name": "custom:isPasswordless", "Value": "true"},
                ],
                # No welcome email; the login code is the only message sent.
                MessageAction="SUPPRESS",
            )
        except (ClientError, BotoCoreError) as error:
            raise self._upstream_error("admin_create_user", username, error) from error
        return _sub_from_attributes(response.get("User", {}).get("Attributes", []))

    def set_permanent_password(self, username: str, password: str) -> None:
        try:
            self._client.admin_set_user_password(
                UserPoolId=self.user_pool_id,
                Username=username,
                Password=password,
                Permanent=True,
            )
        except (ClientError, BotoCoreError) as error:
            raise self._upstream_error(
                "admin_set_user_password", username, error
            ) from error

    def initiate_custom_auth(self, username: str) -> str:
        try:
            response = self._client.initiate_auth(
                AuthFlow=CUSTOM_AUTH_FLOW,
                ClientId=self.client_id,
                AuthParameters={"USERNAME": username},
            )
        except (ClientError, BotoCoreError) as error:
            raise self._upstream_error("initiate_auth", username, error) from error
        return response["Session"]
