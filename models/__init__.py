from .db import db
from .user import User, Role, user_roles
from .institution import Institution
from .audit_log import AuditLog
from .auth_session import AuthSession
from .counsellor import Counsellor
from .booking import Booking
from .notification import Notification
