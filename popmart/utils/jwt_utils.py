import time
import logging
from typing import Optional, Dict, Any, Tuple

import jwt

logger = logging.getLogger(__name__)


def create_session_token(wallet: str, secret: str, ttl_seconds: int = 60 * 60 * 24) -> str:
    """Session token recording which wallet the caller claims to act as.

    It only defaults the acting wallet; order transitions still check the
    order's recorded buyer/seller wallet.
    """
    now = int(time.time())
    payload = {
        "sub": (wallet or "").strip().lower(),
        "iat": now,
        "exp": now + ttl_seconds,
        "type": "wallet_session",
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def decode_token(token: str, secret: str) -> Optional[Dict[str, Any]]:
    try:
        payload = jwt.decode(token, secret, algorithms=["HS256"])
    except jwt.PyJWTError as e:
        logger.info("session_token_rejected err=%s", e.__class__.__name__)
        return None
    if payload.get("type") != "wallet_session":
        return None
    return payload


def parse_auth_header(auth_header: str) -> Tuple[Optional[str], Optional[str]]:
    if not auth_header:
        return None, None
    parts = auth_header.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1], "bearer"
    return None, None


def get_bearer_token(auth_header: str) -> Optional[str]:
    if not auth_header:
        return None
    token, _scheme = parse_auth_header(auth_header)
    return token


def session_wallet(auth_header: str, secret: str) -> Optional[str]:
    token = get_bearer_token(auth_header)
    if not token:
        return None
    payload = decode_token(token, secret)
    if not payload:
        return None
    return (payload.get("sub") or "").strip() or None
