from datetime import datetime

from flask import current_app

from security.bruteforce import LockoutTracker
from security.policy import SecurityPolicy
from security.probe import SchemaProbe
from security.session import SessionStore
from utils.audit import SecurityAuditLog

EXTENSION_KEY = "account_security"


class AccountSecurity:
    """Lockout tracker, session store and audit log sharing one policy and probe."""

    def __init__(self, policy: SecurityPolicy, probe: SchemaProbe = None, clock=None):
        clock = clock or datetime.utcnow
        self.policy = policy
        self.probe = probe if probe is not None else SchemaProbe()
        self.audit = SecurityAuditLog(self.probe)
        self.lockout = LockoutTracker(policy, self.probe, self.audit, clock=clock)
        self.sessions = SessionStore(policy, self.probe, self.audit, clock=clock)


def init_security(app, probe: SchemaProbe = None, clock=None) -> AccountSecurity:
    security = AccountSecurity(SecurityPolicy.from_config(app.config), probe=probe, clock=clock)
    app.extensions[EXTENSION_KEY] = security
    return security


def get_security() -> AccountSecurity:
    return current_app.extensions[EXTENSION_KEY]
