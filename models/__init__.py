from .db import db
from .provider import Provider
from .customer import Customer
from .appointment import Appointment
from .audit_log import AuditLog
from .session import Session
