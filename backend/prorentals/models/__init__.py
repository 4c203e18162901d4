from .user import User
from .role import Role
from .user_role import UserRole
from .damage import Damage
from .damage_photo import DamagePhoto
from .damage_report import DamageReport, DamageReportItem
from .damage_billing import DamageBilling
from .domain_event import DomainEvent
from .notification import Notification
from .inspection_task import InspectionTask
from .delivery import Delivery

__all__ = [
    "User",
    "Role",
    "UserRole",
    "Damage",
    "DamagePhoto",
    "DamageReport",
    "DamageReportItem",
    "DamageBilling",
    "DomainEvent",
    "Notification",
    "InspectionTask",
    "Delivery",
]
