from __future__ import annotations

import hashlib
import json
import time
import uuid

from flask import g, request

from popmart.utils.clock import to_iso, utc_now


def _hash_value(value: str, salt: str) -> str:
    raw = f"{salt}:{value or ''}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()[:16]


def get_request_id() -> str:
    return getattr(g, "request_id", "")


def init_sentry(app, dsn: str = "", environment: str = "dev") -> None:
    dsn = (dsn or "").strip()
    if not dsn:
        app.logger.info("sentry_disabled_no_dsn")
        return
    try:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            integrations=[FlaskIntegration()],
            send_default_pii=False,
            traces_sample_rate=0.0,
            before_send=_before_send_scrub,
        )
        app.logger.info("sentry_enabled")
    except Exception as e:
        app.logger.warning("sentry_init_failed err=%s", e)


def _before_send_scrub(event, hint):
    req = event.get("request") or {}
    headers = req.get("headers") or {}
    for key in list(headers.keys()):
        kl = key.lower()
        if kl in ("authorization", "cookie", "set-cookie"):
            headers[key] = "[REDACTED]"
    req["headers"] = headers
    query = req.get("query_string")
    if isinstance(query, str) and "token=" in query:
        req["query_string"] = "[REDACTED]"
    event["request"] = req
    return event


def install_request_observers(app) -> None:
    @app.before_request
    def _request_observer_begin():
        rid = (request.headers.get("X-Request-Id") or "").strip()
        if not rid:
            rid = str(uuid.uuid4())
        g.request_id = rid
        g.request_started_at = time.perf_counter()

    @app.after_request
    def _request_observer_end(response):
        rid = getattr(g, "request_id", "") or str(uuid.uuid4())
        response.headers["X-Request-Id"] = rid
        started = getattr(g, "request_started_at", None)
        latency_ms = None
        if started is not None:
            latency_ms = round((time.perf_counter() - float(started)) * 1000.0, 2)
        actor = getattr(g, "actor_wallet", None)
        payload = {
            "ts": to_iso(utc_now()),
            "request_id": rid,
            "path": request.path,
            "method": request.method,
            "status": int(response.status_code),
            "latency_ms": latency_ms,
            "actor_hash": _hash_value(actor, app.config.get("SECRET_KEY", "popmart")) if actor else None,
        }
        app.logger.info(json.dumps(payload))
        return response
