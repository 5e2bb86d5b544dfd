from functools import wraps

from sqlalchemy.exc import SQLAlchemyError

from models import db
from utils.logging import get_logger

logger = get_logger(__name__)


def fail_open(default, event: str):
    """
    Usage: @fail_open(LockStatus.unlocked, "lock_check_failed")

    Storage errors inside the wrapped operation are rolled back, logged and
    turned into ``default`` (called if callable) so they never reach the
    request that triggered them.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except SQLAlchemyError:
                db.session.rollback()
                context = {"operation": fn.__name__}
                if len(args) > 1 and isinstance(args[1], int):
                    context["user_id"] = args[1]
                logger.exception(event, **context)
                return default() if callable(default) else default
        return wrapper
    return decorator
