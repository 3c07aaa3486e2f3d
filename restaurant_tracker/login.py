"""
Login front door: provision the user if needed and start the custom auth flow.
"""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from typing import Optional

from restaurant_tracker.errors import TrackerError, UpstreamServiceError, ValidationError
from restaurant_tracker.identity import IdentityProvider
from restaurant_tracker.mailer import mask_email
from restaurant_tracker.repository import UserRepository

logger = logging.getLogger(__name__)

PASSWORD_LENGTH = 12
PASSWORD_SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"
_PASSWORD_CLASSES = (
    string.ascii_lowercase,
    string.ascii_uppercase,
    string.digits,
    PASSWORD_SYMBOLS,
)


def generate_temporary_password(length: int = PASSWORD_LENGTH) -> str:
    """Random password with at least one lower, upper, digit and symbol."""
    length = max(length, len(_PASSWORD_CLASSES))
    chars = [secrets.choice(group) for group in _PASSWORD_CLASSES]
    alphabet = "".join(_PASSWORD_CLASSES)
    chars.extend(secrets.choice(alphabet) for _ in range(length - len(chars)))
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


@dataclass
class LoginResult:
    session: str
    email: str


class PasswordlessLogin:
    def __init__(
        self, identity: IdentityProvider, users: Optional[UserRepository] = None
    ):
        self.identity = identity
        self.users = users

    def _provision(self, email: str) -> str:
        sub = self.identity.create_user(email, email)
        self.identity.set_permanent_password(email, generate_temporary_password())
        logger.info("Provisioned passwordless user %s", mask_email(email))
        return sub

    def initiate(self, email: str) -> LoginResult:
        email = (email or "").strip()
        if not email:
            raise ValidationError("Email is required")

        try:
            sub = self.identity.get_user_sub(email)
            if sub is None:
                sub = self._provision(email)
            if self.users is not None and sub:
                self.users.ensure_user(sub, email)
            session = self.identity.initiate_custom_auth(email)
        except TrackerError:
            raise
        except Exception as error:
            logger.exception("Error initiating auth for %s", mask_email(email))
            raise UpstreamServiceError("Error initiating authentication") from error

        return LoginResult(session=session, email=email)
