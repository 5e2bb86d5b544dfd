from .health import health_bp
from .auth import auth_bp
from .security_events import security_events_bp
