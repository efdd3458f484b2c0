from sqlmodel import SQLModel
from .tenant import Tenant
from .user import User
from .patient import Patient
from .doctor import Doctor
from .schedule import WeeklySchedule
from .leave import DoctorLeave
from .appointment import Appointment
from .audit_log import AuditLog

__all__ = [
    "SQLModel",
    "Tenant",
    "User",
    "Patient",
    "Doctor",
    "WeeklySchedule",
    "DoctorLeave",
    "Appointment",
    "AuditLog",
]
