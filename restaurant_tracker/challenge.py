"""
Passwordless email-code challenge, driven by the Cognito custom auth flow.

Cognito calls three triggers during one sign-in attempt:

    define  -> decide whether to issue a challenge, issue tokens, or fail
    create  -> produce the challenge (email a 6-digit code)
    verify  -> grade the user's answer

The session history is owned by Cognito; each function here is a pure
transformation of the trigger event (plus the mailer for `create`). Exactly one
challenge round is allowed: anything other than a single successful round fails.
"""

from __future__ import annotations

import logging
import re
import secrets
from typing import Optional

from restaurant_tracker.errors import ValidationError
from restaurant_tracker.mailer import Mailer, mask_email

logger = logging.getLogger(__name__)

CUSTOM_CHALLENGE = "CUSTOM_CHALLENGE"
CODE_METADATA_PREFIX = "CODE-"
_CODE_METADATA = re.compile(rf"{CODE_METADATA_PREFIX}(\d+)")

MIN_CODE = 100000
MAX_CODE = 999999

EMAIL_SUBJECT = "Your Restaurant Tracker Login Code"
EMAIL_TEXT = "Your Restaurant Tracker login code is: {code}"
EMAIL_HTML = """<html>
  <body>
    <h1>Restaurant Tracker Login Code</h1>
    <p>Your login code is: <strong>{code}</strong></p>
    <p>Enter this code in the application to log in.</p>
  </body>
</html>"""


def generate_login_code() -> str:
    return str(MIN_CODE + secrets.randbelow(MAX_CODE - MIN_CODE + 1))


def _session(event: dict) -> list:
    return (event.get("request") or {}).get("session") or []


def define_auth_challenge(event: dict) -> dict:
    session = _session(event)
    response = event.setdefault("response", {})

    if len(session) == 0:
        response["issueTokens"] = False
        response["failAuthentication"] = False
        response["challengeName"] = CUSTOM_CHALLENGE
    elif (
        len(session) == 1
        and session[0].get("challengeName") == CUSTOM_CHALLENGE
        and session[0].get("challengeResult") is True
    ):
        response["issueTokens"] = True
        response["failAuthentication"] = False
    else:
        response["issueTokens"] = False
        response["failAuthentication"] = True
    return event


def _previous_code(session: list) -> Optional[str]:
    for entry in reversed(session):
        match = _CODE_METADATA.search(entry.get("challengeMetadata") or "")
        if match:
            return match.group(1)
    return None


def send_login_code(mailer: Mailer, email: str, code: str) -> None:
    mailer.send(
        email,
        EMAIL_SUBJECT,
        EMAIL_TEXT.format(code=code),
        EMAIL_HTML.format(code=code),
    )


def create_auth_challenge(event: dict, mailer: Mailer) -> dict:
    request = event.get("request") or {}
    email = (request.get("userAttributes") or {}).get("email")
    if not email:
        raise ValidationError("User has no email address")

    code = _previous_code(_session(event))
    if code is None:
        code = generate_login_code()
        send_login_code(mailer, email, code)
        logger.info("Issued login code to %s", mask_email(email))
    else:
        logger.info("Reusing login code for %s", mask_email(email))

    response = event.setdefault("response", {})
    response["publicChallengeParameters"] = {"email": email}
    response["privateChallengeParameters"] = {"secretLoginCode": code}
    response["challengeMetadata"] = f"{CODE_METADATA_PREFIX}{code}"
    return event


def verify_auth_challenge(event: dict) -> dict:
    request = event.get("request") or {}
    expected = (request.get("privateChallengeParameters") or {}).get("secretLoginCode")
    provided = request.get("challengeAnswer")

    event.setdefault("response", {})["answerCorrect"] = (
        expected is not None and provided == expected
    )
    return event
