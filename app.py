from flask import Flask
from config import Config
from routes import health_bp, auth_bp, security_events_bp

from models import db
from flask_migrate import Migrate
from security import init_security, get_security
from utils.auth_context import load_current_user
from utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def create_app(config_object=Config, probe=None, clock=None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    configure_logging(app.config.get("LOG_LEVEL", "INFO"), app.config.get("LOG_JSON", True))

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(security_events_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Lockout, sessions and audit log share one policy and schema probe
    init_security(app, probe=probe, clock=clock)

    @app.before_request
    def _load_user():
        load_current_user()

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------
import click
from models.user import User
from security.password import hash_password


def register_cli(app):
    @app.cli.command("cleanup-sessions")
    def cleanup_sessions():
        """Delete sessions past their absolute expiry (run from cron)."""
        count = get_security().sessions.cleanup_expired_sessions()
        click.echo(f"Removed {count} expired session(s)")

    @app.cli.command("unlock-account")
    @click.argument("email")
    def unlock_account(email):
        """Clear the lockout and failed-attempt counter for a user."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return

        if get_security().lockout.unlock_account(user.id):
            click.echo(f"{user.email} unlocked")
        else:
            click.echo(f"Could not unlock {user.email}")

    @app.cli.command("create-user")
    @click.argument("email")
    @click.argument("password")
    @click.option("--role", default="teacher", type=click.Choice(["teacher", "admin", "superadmin"]))
    @click.option("--tenant-id", type=int, default=None)
    def create_user(email, password, role, tenant_id):
        """Create a login account (bootstrap)."""
        email = email.strip().lower()
        if User.query.filter_by(email=email).first():
            click.echo("User already exists")
            return

        user = User(email=email, password_hash=hash_password(password), role=role, tenant_id=tenant_id)
        db.session.add(user)
        db.session.commit()
        logger.info("user_created", user_id=user.id, role=role)
        click.echo(f"{user.email} created as {role}")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
