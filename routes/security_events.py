import json
import math

from flask import Blueprint, jsonify, request

from models.security_event import SecurityEvent
from models.user import User
from models import db
from security import get_security
from security.rbac import require_roles
from utils.auth_context import login_required

security_events_bp = Blueprint("security_events", __name__, url_prefix="/super-admin")

MAX_PAGE_SIZE = 200


def _details(raw):
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw


@security_events_bp.get("/security-events")
@login_required
@require_roles("superadmin")
def list_security_events():
    page = max(request.args.get("page", type=int) or 1, 1)
    limit = request.args.get("limit", type=int) or 50
    limit = max(1, min(limit, MAX_PAGE_SIZE))

    if not get_security().probe.available:
        return jsonify(events=[], pagination={"page": 1, "limit": limit, "total": 0, "pages": 0}), 200

    tenant_id = request.args.get("tenant_id", type=int)
    event_type = request.args.get("event_type")

    q = db.session.query(SecurityEvent, User.email).outerjoin(User, SecurityEvent.user_id == User.id)
    if tenant_id is not None:
        q = q.filter(SecurityEvent.tenant_id == tenant_id)
    if event_type:
        q = q.filter(SecurityEvent.event_type == event_type)

    total = q.count()
    rows = (
        q.order_by(SecurityEvent.created_at.desc(), SecurityEvent.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
        .all()
    )

    out = []
    for event, email in rows:
        out.append({
            "id": event.id,
            "created_at": event.created_at.isoformat() if event.created_at else None,
            "event_type": event.event_type,
            "user_id": event.user_id,
            "user_email": email,
            "tenant_id": event.tenant_id,
            "ip_address": event.ip_address,
            "user_agent": event.user_agent,
            "details": _details(event.details),
        })

    return jsonify(
        events=out,
        pagination={
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
        },
    ), 200
