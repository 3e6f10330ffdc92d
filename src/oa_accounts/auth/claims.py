"""Unverified id-token claims used for account labelling and routing."""

from dataclasses import dataclass
from typing import Any

import jwt
from structlog import get_logger


logger = get_logger(__name__)

OPENAI_AUTH_CLAIM = "https://api.openai.com/auth"


@dataclass
class TokenClaims:
    email: str = ""
    chatgpt_account_id: str = ""
    plan_type: str = ""


def parse_token_claims(id_token: str) -> TokenClaims:
    """Read claims from an id token without verifying its signature.

    Malformed tokens yield empty claims.
    """
    if not id_token:
        return TokenClaims()
    try:
        payload: dict[str, Any] = jwt.decode(
            id_token, options={"verify_signature": False}
        )
    except jwt.PyJWTError as e:
        logger.debug("id_token_decode_failed", error=str(e))
        return TokenClaims()

    auth_claim = payload.get(OPENAI_AUTH_CLAIM)
    if not isinstance(auth_claim, dict):
        auth_claim = {}

    return TokenClaims(
        email=str(payload.get("email") or ""),
        chatgpt_account_id=str(
            payload.get("chatgpt_account_id")
            or auth_claim.get("chatgpt_account_id")
            or ""
        ),
        plan_type=str(auth_claim.get("chatgpt_plan_type") or ""),
    )
