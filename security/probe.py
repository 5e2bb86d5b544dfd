from typing import Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from models import db
from utils.logging import get_logger

logger = get_logger(__name__)

# locked_until only exists once the account security migration has run
_PROBE_SQL = text("SELECT locked_until FROM users LIMIT 1")


class SchemaProbe:
    """
    Answers "is the security schema present?" once and keeps the answer.

    Pass ``available`` to pin the answer (degraded-mode tests, deployments
    that know their schema state).
    """

    def __init__(self, available: Optional[bool] = None):
        self._available = available

    @property
    def checked(self) -> bool:
        return self._available is not None

    @property
    def available(self) -> bool:
        if self._available is None:
            self._available = self._detect()
        return self._available

    def _detect(self) -> bool:
        try:
            db.session.execute(_PROBE_SQL)
        except SQLAlchemyError:
            db.session.rollback()
            logger.warning(
                "security_schema_missing",
                detail="account security migration not applied; security features disabled",
            )
            return False
        return True
