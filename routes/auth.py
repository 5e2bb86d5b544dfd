from flask import Blueprint, request, jsonify, g

from models import db
from models.user import User
from security import get_security
from security.password import hash_password, verify_password
from security.tokens import issue_access_token
from utils.audit import SecurityEventType
from utils.auth_context import client_ip, client_user_agent, login_required


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

MIN_PASSWORD_LENGTH = 8


def _minutes_phrase(minutes) -> str:
    minutes = minutes or 1
    return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"


def _locked_response(status, message):
    return jsonify(
        error=f"{message} Try again in {_minutes_phrase(status.remaining_minutes)}.",
        locked=True,
        remaining_minutes=status.remaining_minutes,
    ), 423


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    if not email or not password:
        return jsonify(error="Email and password are required"), 400

    security = get_security()
    ip = client_ip()
    user_agent = client_user_agent()

    user = User.query.filter_by(email=email).first()
    if not user:
        # no account, so no counter to bump
        security.audit.log_security_event(
            SecurityEventType.LOGIN_FAILED,
            ip=ip,
            user_agent=user_agent,
            details={"email": email, "reason": "unknown_account"},
        )
        return jsonify(error="Invalid credentials"), 401

    lock = security.lockout.is_account_locked(user.id)
    if lock.locked:
        return _locked_response(lock, "Account temporarily locked.")

    if not verify_password(password, user.password_hash):
        status = security.lockout.record_failed_login(user.id, ip, user_agent)
        if status.locked:
            return _locked_response(status, "Too many failed attempts. Account locked.")
        return jsonify(error="Invalid credentials"), 401

    security.lockout.record_successful_login(user.id, ip, user_agent)

    token = issue_access_token(user)
    session_id = security.sessions.create_session(user.id, token, ip, user_agent)

    return jsonify(
        token=token,
        session_tracked=session_id is not None,
        user={"id": user.id, "email": user.email, "role": user.role, "tenant_id": user.tenant_id},
    ), 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(
        id=g.user.id,
        email=g.user.email,
        role=g.user.role,
        tenant_id=g.user.tenant_id,
    ), 200


@auth_bp.get("/session")
@login_required
def session_info():
    # read by load_current_user without recording activity
    info = g.session_info
    if info is None:
        return jsonify(tracked=False), 200
    return jsonify(tracked=True, **info.to_dict()), 200


@auth_bp.post("/logout")
@login_required
def logout():
    get_security().sessions.invalidate_session(g.token)
    return jsonify(message="Logged out"), 200


@auth_bp.post("/change_password")
@login_required
def change_password():
    data = request.get_json(silent=True) or {}
    current_password = data.get("current_password") or ""
    new_password = data.get("new_password") or ""

    if not verify_password(current_password, g.user.password_hash):
        return jsonify(error="Invalid current password"), 401

    if len(new_password) < MIN_PASSWORD_LENGTH:
        return jsonify(error=f"Password must be at least {MIN_PASSWORD_LENGTH} characters"), 400

    g.user.password_hash = hash_password(new_password)
    db.session.commit()

    # force re-authentication everywhere, this device included
    revoked = get_security().sessions.invalidate_all_user_sessions(g.user.id)
    return jsonify(message="Password updated. Please log in again.", revoked_sessions=revoked), 200
