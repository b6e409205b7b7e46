from .health import health_bp
from .auth import auth_bp
from .counsellors import counsellors_bp
from .notifications import notifications_bp
