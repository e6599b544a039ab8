"""Import every model so ``Base.metadata`` knows all tables."""

from roster.models.alert import Alert, AlertReceipt
from roster.models.checkin import Checkin
from roster.models.checkin_settings import CheckinSettings
from roster.models.department import Department, DepartmentLeader, Position
from roster.models.member import Member
from roster.models.schedule import Schedule
from roster.models.user import User

__all__ = [
    "Alert",
    "AlertReceipt",
    "Checkin",
    "CheckinSettings",
    "Department",
    "DepartmentLeader",
    "Member",
    "Position",
    "Schedule",
    "User",
]
