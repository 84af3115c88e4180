import os

from flask import Flask, Response, jsonify, request
from werkzeug.exceptions import HTTPException

from member_sync.config import Config
from member_sync.db import close_db, init_db
from member_sync.db_migrations import register_db_cli, schema_status
from member_sync.errors import AppError, SystemError
from member_sync.observability import (
    configure_json_logging,
    ensure_request_id,
    metrics_snapshot,
    prometheus_metrics_text,
)


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    configure_json_logging(app)

    _ensure_database_dir(app)
    _register_request_id(app)
    _register_error_handlers(app)
    _register_health(app)
    _register_cli(app)
    _maybe_init_schema(app)

    app.teardown_appcontext(close_db)
    return app


def _ensure_database_dir(app: Flask) -> None:
    database_dir = app.config.get("DATABASE_DIR")
    if database_dir:
        os.makedirs(database_dir, exist_ok=True)


def _maybe_init_schema(app: Flask) -> None:
    auto_init = bool(app.config.get("DB_AUTO_INIT", False))
    if app.testing:
        auto_init = True
    if not auto_init:
        return

    flask_env = (os.environ.get("FLASK_ENV", "development") or "development").strip().lower()
    if not app.testing and flask_env != "development":
        app.logger.warning("DB_AUTO_INIT ignored outside development.")
        return

    with app.app_context():
        init_db()


def _register_cli(app: Flask) -> None:
    from member_sync.contexts.membership.interfaces.cli import register_customer_cli

    register_db_cli(app)
    register_customer_cli(app)


def _register_request_id(app: Flask) -> None:
    @app.before_request
    def _ensure_request_id() -> None:
        ensure_request_id()

    @app.after_request
    def _append_request_id(response):
        response.headers["X-Request-Id"] = ensure_request_id()
        return response


def _register_health(app: Flask) -> None:
    @app.route("/health")
    def health():
        from member_sync.contexts.membership.application.service import MembershipProjectionService

        db_path = app.config.get("DB_PATH") or "unknown"
        backend = "postgres" if str(db_path).startswith("postgres") else "sqlite"
        payload = {
            "status": "ok",
            "db": backend,
            "projection_enabled": bool(app.config.get("CUSTOMER_PROJECTION_ENABLED", True)),
            "metrics": metrics_snapshot(),
        }
        try:
            state = MembershipProjectionService().projection_state()
        except Exception:
            app.logger.exception("health_projection_state_failed")
            payload["status"] = "degraded"
            state = {}
        payload["projection"] = {
            "status": state.get("status") or "idle",
            "last_event_id": state.get("last_event_id"),
            "last_event_type": state.get("last_event_type"),
            "last_error": state.get("last_error"),
        }
        try:
            payload["schema"] = schema_status(app)
        except Exception:
            app.logger.exception("health_schema_status_failed")
            payload["status"] = "degraded"
            payload["schema"] = {}
        if state.get("status") == "error":
            payload["status"] = "degraded"
        return payload, 200

    @app.route("/metrics")
    def metrics():
        return Response(prometheus_metrics_text(), mimetype="text/plain; version=0.0.4")


def _register_error_handlers(app: Flask) -> None:
    def _log_error(error: AppError, request_id: str) -> None:
        log_method = app.logger.error if error.critical else app.logger.warning
        log_method(
            "application_error",
            extra={
                "request_id": request_id,
                "error_code": error.code,
                "http_status": error.http_status,
                "details": error.details,
                "request_path": request.path,
                "http_method": request.method,
            },
            exc_info=error.critical,
        )

    @app.errorhandler(AppError)
    def _handle_app_error(exc: AppError):
        request_id = ensure_request_id()
        _log_error(exc, request_id)
        return jsonify({**exc.to_payload(), "request_id": request_id}), exc.http_status

    @app.errorhandler(Exception)
    def _handle_unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc

        request_id = ensure_request_id()
        mapped = SystemError(code="unexpected_error", details=str(exc))
        app.logger.exception(
            "unexpected_exception",
            extra={
                "request_id": request_id,
                "error_code": mapped.code,
                "request_path": request.path,
                "http_method": request.method,
            },
        )
        return jsonify({**mapped.to_payload(), "request_id": request_id}), mapped.http_status
