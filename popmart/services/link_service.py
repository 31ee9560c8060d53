from __future__ import annotations

import logging
from dataclasses import dataclass

from popmart.errors import InvalidToken, TokenError
from popmart.models import Order
from popmart.utils import link_tokens
from popmart.utils.link_tokens import LinkSigner, TOKEN_TYPE_PAY, TOKEN_TYPE_TRACK

logger = logging.getLogger(__name__)


@dataclass
class IssuedLink:
    token: str
    payload: dict
    reused: bool
    url: str = ""

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "url": self.url,
            "reused": self.reused,
            "payload": self.payload,
        }


def link_url(settings, kind: str, order_id, token: str) -> str:
    base = (getattr(settings, "public_base_url", "") or "").rstrip("/")
    return f"{base}/{kind}/{order_id}?token={token}"


def verify_token(signer: LinkSigner, token: str | None) -> dict:
    data = link_tokens.decode(token)
    if data is None:
        raise InvalidToken("Token is malformed.")
    return signer.verify(data)


def _reusable(signer: LinkSigner, supplied: str | None, token_type: str, order_id) -> dict | None:
    if not supplied:
        return None
    try:
        payload = verify_token(signer, supplied)
    except TokenError as e:
        logger.info("link_token_not_reused type=%s order_id=%s reason=%s", token_type, order_id, e.code)
        return None
    if payload.get("type") != token_type or str(payload.get("orderId")) != str(order_id):
        return None
    return payload


def _issue(signer, settings, token_type: str, order: Order, fields: dict, supplied: str | None) -> IssuedLink:
    kind = "pay" if token_type == TOKEN_TYPE_PAY else "track"
    payload = _reusable(signer, supplied, token_type, order.id)
    if payload is not None:
        return IssuedLink(token=supplied.strip(), payload=payload, reused=True, url=link_url(settings, kind, order.id, supplied.strip()))

    signed = signer.mint(token_type, fields, ttl_seconds=int(getattr(settings, "link_token_ttl_seconds", 900)))
    token = link_tokens.encode(signed)
    payload = {k: v for k, v in signed.items() if k != "sig"}
    logger.info("link_token_issued type=%s order_id=%s expiry=%s", token_type, order.id, payload["expiry"])
    return IssuedLink(token=token, payload=payload, reused=False, url=link_url(settings, kind, order.id, token))


def issue_pay_token(order: Order, supplied: str | None, signer: LinkSigner, settings) -> IssuedLink:
    fields = {
        "orderId": order.id,
        "amountEth": str(order.total_eth),
        "sellerWallet": order.seller_wallet,
        "chainId": int(getattr(settings, "chain_id", 0) or 0),
        "contractAddress": getattr(settings, "escrow_contract_address", "") or "",
    }
    return _issue(signer, settings, TOKEN_TYPE_PAY, order, fields, supplied)


def issue_track_token(order: Order, supplied: str | None, signer: LinkSigner, settings) -> IssuedLink:
    fields = {
        "orderId": order.id,
        "status": order.status.value,
        "chainId": int(getattr(settings, "chain_id", 0) or 0),
    }
    return _issue(signer, settings, TOKEN_TYPE_TRACK, order, fields, supplied)
