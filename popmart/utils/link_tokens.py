"""Signed, stateless capability tokens for pay and track links.

A token is compact JSON, URL-safe base64 encoded, carrying an HMAC-SHA-256
signature over a fixed, per-type ordering of its fields. Nothing is stored
server side: the encoded string is the whole token.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import secrets
from typing import Any, Callable, Dict, Optional

from popmart.errors import InvalidToken, SignatureMismatch, TokenExpired
from popmart.utils.clock import now_ms

logger = logging.getLogger(__name__)

TOKEN_TYPE_PAY = "pay"
TOKEN_TYPE_TRACK = "track"

SIGNED_FIELDS: Dict[str, tuple] = {
    TOKEN_TYPE_PAY: ("orderId", "amountEth", "sellerWallet", "chainId", "contractAddress", "expiry", "nonce"),
    TOKEN_TYPE_TRACK: ("orderId", "status", "chainId", "expiry", "nonce"),
}


def new_nonce() -> str:
    return secrets.token_hex(16)


def _field_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _signed_fields(token_type: Any) -> tuple:
    # decoded JSON can carry any type here, including unhashable lists
    order = SIGNED_FIELDS.get(token_type) if isinstance(token_type, str) else None
    if order is None:
        raise InvalidToken(f"Unknown token type: {token_type!r}")
    return order


def canonicalize(payload: Dict[str, Any]) -> str:
    order = _signed_fields(payload.get("type"))
    return "|".join(_field_text(payload.get(name)) for name in order)


def encode(payload_with_sig: Dict[str, Any]) -> str:
    raw = json.dumps(payload_with_sig, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Decode a token string; ``None`` for anything malformed."""
    if not token or not isinstance(token, str):
        return None
    text = token.strip()
    padded = text + "=" * (-len(text) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, ValueError, UnicodeError):
        return None
    if not isinstance(data, dict):
        return None
    return data


class LinkSigner:
    def __init__(self, secret: str, *, clock: Callable[[], int] = now_ms):
        if not (secret or "").strip():
            raise ValueError("link token secret required")
        self._key = secret.encode("utf-8")
        self._clock = clock

    def now(self) -> int:
        return int(self._clock())

    def signature(self, payload: Dict[str, Any]) -> str:
        message = canonicalize(payload).encode("utf-8", "surrogatepass")
        return hmac.new(self._key, message, hashlib.sha256).hexdigest()

    def sign(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        unsigned = {k: v for k, v in payload.items() if k != "sig"}
        return {**unsigned, "sig": self.signature(unsigned)}

    def verify(self, token_data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not isinstance(token_data, dict):
            raise InvalidToken("Token is malformed.")
        sig = token_data.get("sig")
        if not sig or not isinstance(sig, str):
            raise InvalidToken("Token signature missing.")
        required = _signed_fields(token_data.get("type"))
        missing = [name for name in required if name not in token_data]
        if missing:
            raise InvalidToken(f"Token missing fields: {', '.join(missing)}")

        payload = {k: v for k, v in token_data.items() if k != "sig"}
        expected = self.signature(payload)
        if not hmac.compare_digest(expected.encode("ascii"), sig.encode("utf-8", "surrogatepass")):
            raise SignatureMismatch()

        try:
            expiry = int(payload.get("expiry"))
        except (TypeError, ValueError, OverflowError):
            raise InvalidToken("Token expiry is not a number.")
        if self.now() > expiry:
            raise TokenExpired(expiry)
        return payload

    def mint(self, token_type: str, fields: Dict[str, Any], *, ttl_seconds: int) -> Dict[str, Any]:
        payload = {
            **fields,
            "type": token_type,
            "expiry": self.now() + int(ttl_seconds) * 1000,
            "nonce": new_nonce(),
        }
        logger.debug("link_token_minted type=%s order_id=%s", token_type, fields.get("orderId"))
        return self.sign(payload)

    def encode_signed(self, payload: Dict[str, Any]) -> str:
        return encode(self.sign(payload))
