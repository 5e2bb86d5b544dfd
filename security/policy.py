from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping


@dataclass(frozen=True)
class SecurityPolicy:
    """
    Process-wide security limits. Built once at startup; changing them later
    does not touch lock or expiry timestamps that were already written.
    """
    max_failed_attempts: int = 5
    lockout_duration_minutes: int = 15
    session_timeout_minutes: int = 30
    session_max_age_hours: int = 24
    session_warning_minutes: int = 5

    def __post_init__(self):
        for name in (
            "max_failed_attempts",
            "lockout_duration_minutes",
            "session_timeout_minutes",
            "session_max_age_hours",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        if self.session_warning_minutes < 0:
            raise ValueError("session_warning_minutes must not be negative")

    @classmethod
    def from_config(cls, config: Mapping) -> "SecurityPolicy":
        return cls(
            max_failed_attempts=int(config.get("MAX_FAILED_ATTEMPTS", 5)),
            lockout_duration_minutes=int(config.get("LOCKOUT_DURATION_MINUTES", 15)),
            session_timeout_minutes=int(config.get("SESSION_TIMEOUT_MINUTES", 30)),
            session_max_age_hours=int(config.get("SESSION_MAX_AGE_HOURS", 24)),
            session_warning_minutes=int(config.get("SESSION_WARNING_MINUTES", 5)),
        )

    @property
    def lockout_duration(self) -> timedelta:
        return timedelta(minutes=self.lockout_duration_minutes)

    @property
    def session_timeout(self) -> timedelta:
        return timedelta(minutes=self.session_timeout_minutes)

    @property
    def session_max_age(self) -> timedelta:
        return timedelta(hours=self.session_max_age_hours)

    @property
    def session_warning(self) -> timedelta:
        return timedelta(minutes=self.session_warning_minutes)
