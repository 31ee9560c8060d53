import json

import click
from flask import Flask, jsonify, request, g
from werkzeug.exceptions import HTTPException

from popmart.errors import PopmartError
from popmart.extensions import MirrorState, cors, init_state
from popmart.integrations.chain.factory import build_chain_oracle, chain_health
from popmart.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from popmart.segments.segment_cart import cart_bp
from popmart.segments.segment_insights import insights_bp
from popmart.segments.segment_links import links_bp
from popmart.segments.segment_orders_api import orders_bp
from popmart.segments.segment_session import session_bp
from popmart.services.audit_log_service import AuditLogService
from popmart.services.order_store import OrderStore
from popmart.utils.jwt_utils import session_wallet
from popmart.utils.link_tokens import LinkSigner
from popmart.utils.observability import init_sentry, install_request_observers
from popmart.utils.settings import load_settings

SERVICE_NAME = "popmart-escrow-mirror"


def _cors_origins(settings) -> list:
    configured = [o.strip() for o in (settings.cors_origins or "").split(",") if o.strip()]
    if settings.is_production:
        return configured
    return configured or ["*"]


def _error_payload(error: str, message: str, status: int) -> dict:
    payload = {
        "ok": False,
        "error": error,
        "message": message,
        "status": int(status),
    }
    rid = (getattr(g, "request_id", "") or "").strip()
    if rid:
        payload["trace_id"] = rid
    return payload


def create_app(overrides: dict | None = None):
    settings = load_settings().with_overrides(overrides)

    # Link tokens are useless without a signing secret, so refuse to boot.
    secret = settings.signing_secret
    if not secret:
        raise RuntimeError("LINK_TOKEN_SECRET (or SECRET_KEY) must be set")
    if settings.is_production and len(secret) < 16:
        raise RuntimeError("LINK_TOKEN_SECRET must be at least 16 chars in production")

    app = Flask(__name__)
    app.config["SECRET_KEY"] = settings.secret_key or secret
    app.config["MAX_CONTENT_LENGTH"] = 10 * 1024 * 1024
    init_sentry(app, settings.sentry_dsn, settings.env)

    cors.init_app(app, resources={r"/api/*": {"origins": _cors_origins(settings)}})
    install_request_observers(app)

    oracle = None
    try:
        oracle = build_chain_oracle(settings)
        app.logger.info("chain_provider_ready provider=%s", oracle.name)
    except IntegrationDisabledError:
        app.logger.info("chain_provider_disabled mirror_only=true")
    except IntegrationMisconfiguredError as e:
        app.logger.warning("chain_provider_misconfigured err=%s mirror_only=true", e)

    init_state(
        app,
        MirrorState(
            settings=settings,
            store=OrderStore(),
            signer=LinkSigner(secret),
            audit=AuditLogService(oracle, timeout=settings.chain_timeout_seconds),
            oracle=oracle,
        ),
    )

    @app.before_request
    def _resolve_session_actor():
        g.actor_wallet = session_wallet(request.headers.get("Authorization", ""), app.config["SECRET_KEY"])

    @app.errorhandler(PopmartError)
    def _api_popmart_error(error: PopmartError):
        if error.http_status >= 500:
            app.logger.warning("request_failed path=%s code=%s err=%s", request.path, error.code, error.message)
        payload = _error_payload(error.code, error.message, error.http_status)
        payload["error"] = error.to_dict()
        return jsonify(payload), error.http_status

    @app.errorhandler(HTTPException)
    def _api_http_exception(error: HTTPException):
        # Keep API failures JSON-only for predictable frontend handling.
        if not request.path.startswith("/api/"):
            return error
        status = int(error.code or 500)
        return jsonify(_error_payload(error.name, error.description or error.name, status)), status

    @app.errorhandler(Exception)
    def _api_unhandled_exception(error: Exception):
        app.logger.exception("unhandled_exception path=%s", request.path)
        return jsonify(_error_payload("InternalServerError", "Internal server error", 500)), 500

    app.register_blueprint(session_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(links_bp)
    app.register_blueprint(insights_bp)

    @app.get("/")
    def root():
        return jsonify({"ok": True, "service": SERVICE_NAME, "env": settings.env})

    @app.get("/api/health")
    def health():
        return jsonify({
            "ok": True,
            "service": SERVICE_NAME,
            "env": settings.env,
            "chain": chain_health(settings, oracle),
        })

    @app.cli.command("chain-health")
    def chain_health_command():
        """Print chain provider health as JSON."""
        click.echo(json.dumps(chain_health(settings, oracle), indent=2, sort_keys=True, default=str))

    return app
