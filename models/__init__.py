from .db import db
from .user import User
from .session import ActiveSession
from .security_event import SecurityEvent
