import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select

from models import db
from models.user import User
from security.errors import fail_open
from utils.audit import SecurityEventType, truncate_ip
from utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class LockStatus:
    locked: bool
    locked_until: Optional[datetime] = None
    remaining_minutes: Optional[int] = None
    attempts_remaining: Optional[int] = None

    @classmethod
    def unlocked(cls) -> "LockStatus":
        return cls(locked=False)

    def to_dict(self) -> dict:
        out = {"locked": self.locked}
        if self.locked:
            out["lockedUntil"] = self.locked_until.isoformat() if self.locked_until else None
            out["remainingMinutes"] = self.remaining_minutes
        elif self.attempts_remaining is not None:
            out["attemptsRemaining"] = self.attempts_remaining
        return out


def _minutes_until(moment: datetime, now: datetime) -> int:
    return max(math.ceil((moment - now).total_seconds() / 60), 1)


class LockoutTracker:
    """
    Per-account failed-login counter with a time-boxed lock.

    Expired locks are cleared lazily by the next ``is_account_locked`` call,
    so no sweep is needed for them.
    """

    def __init__(self, policy, probe, audit, clock=datetime.utcnow):
        self.policy = policy
        self.probe = probe
        self.audit = audit
        self.clock = clock

    def _locked(self, locked_until: datetime, now: datetime) -> LockStatus:
        return LockStatus(
            locked=True,
            locked_until=locked_until,
            remaining_minutes=_minutes_until(locked_until, now),
        )

    @fail_open(LockStatus.unlocked, "lock_check_failed")
    def is_account_locked(self, user_id: int) -> LockStatus:
        if not self.probe.available:
            return LockStatus.unlocked()

        locked_until = db.session.execute(
            select(User.locked_until).where(User.id == user_id)
        ).scalar()
        if not locked_until:
            return LockStatus.unlocked()

        now = self.clock()
        if locked_until > now:
            return self._locked(locked_until, now)

        # Lock has run out: clear it together with the counter
        User.query.filter_by(id=user_id).update(
            {User.locked_until: None, User.failed_login_attempts: 0},
            synchronize_session=False,
        )
        db.session.commit()
        logger.info("account_lock_expired", user_id=user_id)
        return LockStatus.unlocked()

    @fail_open(LockStatus.unlocked, "record_failed_login_failed")
    def record_failed_login(self, user_id: int, ip=None, user_agent=None) -> LockStatus:
        """
        Count one failed attempt and lock the account once the threshold is
        reached. Returns the lock state, or the attempts left before locking.
        """
        if not self.probe.available:
            return LockStatus.unlocked()

        # Increment in SQL so concurrent failures are not lost to a read-modify-write
        User.query.filter_by(id=user_id).update(
            {User.failed_login_attempts: func.coalesce(User.failed_login_attempts, 0) + 1},
            synchronize_session=False,
        )
        db.session.commit()

        row = db.session.execute(
            select(User.failed_login_attempts, User.locked_until, User.tenant_id)
            .where(User.id == user_id)
        ).first()
        if row is None:
            return LockStatus.unlocked()

        attempts = row.failed_login_attempts or 0
        now = self.clock()

        self.audit.log_security_event(
            SecurityEventType.LOGIN_FAILED,
            user_id=user_id,
            tenant_id=row.tenant_id,
            ip=ip,
            user_agent=user_agent,
            details={"attemptNumber": attempts},
        )

        # An active lock stands as written; further failures do not extend it
        if row.locked_until and row.locked_until > now:
            return self._locked(row.locked_until, now)

        if attempts >= self.policy.max_failed_attempts:
            locked_until = now + self.policy.lockout_duration
            User.query.filter_by(id=user_id).update(
                {User.locked_until: locked_until},
                synchronize_session=False,
            )
            db.session.commit()

            logger.warning("account_locked", user_id=user_id, failed_attempts=attempts)
            self.audit.log_security_event(
                SecurityEventType.ACCOUNT_LOCKED,
                user_id=user_id,
                tenant_id=row.tenant_id,
                ip=ip,
                user_agent=user_agent,
                details={
                    "failedAttempts": attempts,
                    "lockedUntilMinutes": self.policy.lockout_duration_minutes,
                },
            )
            return LockStatus(
                locked=True,
                locked_until=locked_until,
                remaining_minutes=self.policy.lockout_duration_minutes,
            )

        return LockStatus(
            locked=False,
            attempts_remaining=self.policy.max_failed_attempts - attempts,
        )

    @fail_open(None, "record_successful_login_failed")
    def record_successful_login(self, user_id: int, ip=None, user_agent=None) -> None:
        if not self.probe.available:
            return None

        tenant_id = db.session.execute(
            select(User.tenant_id).where(User.id == user_id)
        ).scalar()

        User.query.filter_by(id=user_id).update(
            {
                User.failed_login_attempts: 0,
                User.locked_until: None,
                User.last_login_at: self.clock(),
                User.last_login_ip: truncate_ip(ip),
            },
            synchronize_session=False,
        )
        db.session.commit()

        self.audit.log_security_event(
            SecurityEventType.LOGIN_SUCCESS,
            user_id=user_id,
            tenant_id=tenant_id,
            ip=ip,
            user_agent=user_agent,
        )
        return None

    @fail_open(False, "unlock_account_failed")
    def unlock_account(self, user_id: int) -> bool:
        """Operator reset: clear the lock and counter without touching last-login data."""
        if not self.probe.available:
            return False

        updated = User.query.filter_by(id=user_id).update(
            {User.failed_login_attempts: 0, User.locked_until: None},
            synchronize_session=False,
        )
        db.session.commit()
        if updated:
            self.audit.log_security_event(SecurityEventType.ACCOUNT_UNLOCKED, user_id=user_id)
        return bool(updated)
