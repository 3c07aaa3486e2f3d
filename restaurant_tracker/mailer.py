"""
Email delivery for login codes: Amazon SES and an in-memory test double.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from restaurant_tracker.errors import UpstreamServiceError

logger = logging.getLogger(__name__)


def mask_email(email: str) -> str:
    """Keep the first character of the local part and the domain."""
    local, sep, domain = (email or "").partition("@")
    if not sep:
        return "***"
    return f"{local[:1]}***@{domain}"


class Mailer(Protocol):
    def send(self, to_address: str, subject: str, text: str, html: str) -> None:
        ...


@dataclass
class SentMessage:
    to_address: str
    subject: str
    text: str
    html: str


@dataclass
class InMemoryMailer:
    """Collects messages instead of sending them."""

    sent: list[SentMessage] = field(default_factory=list)

    def send(self, to_address: str, subject: str, text: str, html: str) -> None:
        self.sent.append(SentMessage(to_address, subject, text, html))


@dataclass
class SesMailer:
    """Sends mail through Amazon SES."""

    source: str
    region: str
    endpoint_url: Optional[str] = None

    def __post_init__(self):
        self._client = boto3.client(
            "ses", region_name=self.region, endpoint_url=self.endpoint_url
        )

    def send(self, to_address: str, subject: str, text: str, html: str) -> None:
        try:
            self._client.send_email(
                Source=self.source,
                Destination={"ToAddresses": [to_address]},
                Message={
                    "Subject": {"Charset": "UTF-8", "Data": subject},
                    "Body": {
                        "Html": {"Charset": "UTF-8", "Data": html},
                        "Text": {"Charset": "UTF-8", "Data": text},
                    },
                },
            )
        except (ClientError, BotoCoreError) as error:
            logger.error("SES send to %s failed: %s", mask_email(to_address), error)
            raise UpstreamServiceError("Failed to send email") from error
        logger.info("Email sent to %s", mask_email(to_address))
