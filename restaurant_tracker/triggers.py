"""
Lambda entry points for the Cognito custom auth triggers.

Wire these as the user pool's DefineAuthChallenge, CreateAuthChallenge and
VerifyAuthChallengeResponse triggers.
"""

from __future__ import annotations

import logging

from restaurant_tracker.challenge import (
    create_auth_challenge,
    define_auth_challenge,
    verify_auth_challenge,
)
from restaurant_tracker.config import configure_logging, get_settings
from restaurant_tracker.dependencies import build_mailer

configure_logging()
logger = logging.getLogger(__name__)


def _session_length(event: dict) -> int:
    return len((event.get("request") or {}).get("session") or [])


def define_auth_challenge_handler(event, _context):
    event = define_auth_challenge(event)
    logger.info(
        "Define auth challenge: session_length=%d issue_tokens=%s fail=%s",
        _session_length(event),
        event["response"]["issueTokens"],
        event["response"]["failAuthentication"],
    )
    return event


def create_auth_challenge_handler(event, _context):
    logger.info("Create auth challenge: session_length=%d", _session_length(event))
    return create_auth_challenge(event, build_mailer(get_settings()))


def verify_auth_challenge_handler(event, _context):
    event = verify_auth_challenge(event)
    if event["response"]["answerCorrect"]:
        logger.info("Login code verified")
    else:
        logger.warning("Login code verification failed")
    return event
