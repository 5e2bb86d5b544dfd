from flask import Blueprint, jsonify

from security import get_security

health_bp = Blueprint("health", __name__)


@health_bp.get("/health")
def health():
    return jsonify(status="ok", security_schema=get_security().probe.available), 200
