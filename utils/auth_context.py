from functools import wraps
from flask import g, jsonify, request

from models import db
from models.user import User
from security import get_security
from security.tokens import JWTError, decode_access_token, user_id_from_claims
from utils.audit import truncate_ip

# read-only view of the session; must not count as activity
SESSION_INFO_ENDPOINT = "auth.session_info"


def client_ip() -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    # first hop is the client, the rest are proxies
    ip = forwarded.split(",")[0].strip() or request.remote_addr
    return truncate_ip(ip) or "unknown"


def client_user_agent():
    return request.headers.get("User-Agent")


def bearer_token():
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _clear():
    g.user = None
    g.token = None
    g.session_check = None
    g.session_info = None
    g.session_expired = False


def _peek_session(token, user_id) -> bool:
    """Look at the session without touching last_activity. False rejects the request."""
    info = get_security().sessions.get_session_info(token)
    if info is None or info.expired:
        # absolute expiry reads like "no session", as in validate_session
        return True
    if info.timed_out:
        g.session_expired = True
        return False
    if info.user_id != user_id:
        return False
    g.session_info = info
    return True


def load_current_user():
    _clear()
    token = bearer_token()
    if not token:
        return

    try:
        user_id = user_id_from_claims(decode_access_token(token))
    except JWTError:
        return

    if request.endpoint == SESSION_INFO_ENDPOINT:
        if not _peek_session(token, user_id):
            return
    else:
        check = get_security().sessions.validate_session(token)
        if check is not None and check.expired:
            g.session_expired = True
            return
        if check is not None and check.user_id != user_id:
            return
        g.session_check = check

    # no server-side session: token validity alone decides
    g.user = db.session.get(User, user_id)
    g.token = token


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "session_expired", False):
            return jsonify(
                error="Your session expired due to inactivity. Please log in again.",
                code="SESSION_EXPIRED",
            ), 401
        if getattr(g, "user", None) is None:
            return jsonify(error="Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper
