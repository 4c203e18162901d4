from .auth_routes import bp as auth_bp
from .damage_report_routes import bp as damage_reports_bp
from .damage_routes import bp as damages_bp
from .asaas_routes import bp as asaas_bp
from .webhook_routes import bp as webhooks_bp
from .delivery_routes import bp as deliveries_bp
from .notification_routes import bp as notifications_bp

__all__ = [
    "auth_bp",
    "damage_reports_bp",
    "damages_bp",
    "asaas_bp",
    "webhooks_bp",
    "deliveries_bp",
    "notifications_bp",
]
