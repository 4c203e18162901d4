import pymysql
pymysql.install_as_MySQLdb()
from flask import Flask, send_from_directory
from flask_cors import CORS
from pathlib import Path

from .config import DevConfig
from .extensions import db, migrate, jwt, ma, bcrypt
from .utils.errors import register_error_handlers
from .api import (
    auth_routes,
    damage_report_routes,
    damage_routes,
    asaas_routes,
    webhook_routes,
    delivery_routes,
    notification_routes,
)


def create_app(config_class=DevConfig) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_class)
    app.logger.setLevel(str(app.config.get("LOG_LEVEL") or "INFO").upper())

    # Damage photos live under <UPLOADS_DIR>/damages/<rentalId|temp>/
    uploads_damages_dir = (Path(app.config["UPLOADS_DIR"]) / "damages").resolve()
    uploads_damages_dir.mkdir(parents=True, exist_ok=True)
    app.config["UPLOADS_DAMAGES_DIR"] = str(uploads_damages_dir)

    CORS(
        app,
        resources={r"/api/*": {"origins": app.config.get("CORS_ORIGINS") or []}},
        supports_credentials=True,
    )

    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    ma.init_app(app)
    bcrypt.init_app(app)

    app.register_blueprint(auth_routes.bp, url_prefix="/api/auth")
    app.register_blueprint(damage_report_routes.bp, url_prefix="/api/damage-reports")
    app.register_blueprint(damage_routes.bp, url_prefix="/api/damages")
    app.register_blueprint(asaas_routes.bp, url_prefix="/api/asaas")
    app.register_blueprint(webhook_routes.bp, url_prefix="/api/webhooks")
    app.register_blueprint(delivery_routes.bp, url_prefix="/api/deliveries")
    app.register_blueprint(notification_routes.bp, url_prefix="/api/notifications")

    register_error_handlers(app)

    # Event subscribers register themselves on import.
    from .services import billing_service, inspection_service, notification_service  # noqa: F401

    from .cli import register_cli

    register_cli(app)

    @app.get("/api/health")
    def health_check():
        return {"status": "ok", "service": "prorentals-backoffice"}

    @app.get("/uploads/damages/<path:filename>")
    def serve_damage_photo(filename: str):
        return send_from_directory(app.config["UPLOADS_DAMAGES_DIR"], filename)

    return app
