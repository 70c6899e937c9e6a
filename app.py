from flask import Flask, jsonify
from sqlalchemy import inspect
from config import Config
from routes import health_bp, auth_bp, sessions_bp, quota_bp, admin_bp, audit_bp, internal_bp

from models import db
from flask_migrate import Migrate
from security.errors import SecurityError
from utils.seed import seed_roles
from utils.auth_context import load_current_user


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(sessions_bp)
    app.register_blueprint(quota_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(internal_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Seed default roles once the schema exists (safe & idempotent)
    with app.app_context():
        if app.config.get("AUTO_CREATE_TABLES"):
            db.create_all()
        if inspect(db.engine).has_table("roles"):
            seed_roles()

    @app.before_request
    def _load_user():
        load_current_user()

    @app.errorhandler(SecurityError)
    def _security_error(exc):
        if exc.status_code >= 500:
            app.logger.error("%s: %s %s", type(exc).__name__, exc.message, exc.context)
        return jsonify(error=exc.message), exc.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        resp.headers["Cache-Control"] = "no-store"
        return resp


    register_cli(app)


    return app

#-------------------------
import click
from models.user import Role
from utils.auth_context import ensure_account
from utils.retention import purge_stale_records

def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Grant ADMIN to an account by email (bootstrap)."""
        user = ensure_account(email)

        admin_role = Role.query.filter_by(name="ADMIN").first()
        if not admin_role:
            admin_role = Role(name="ADMIN")
            db.session.add(admin_role)
            db.session.commit()

        if admin_role not in user.roles:
            user.roles.append(admin_role)
            db.session.commit()

        click.echo(f"{user.email} promoted to ADMIN")

    @app.cli.command("purge-stale")
    @click.option("--days", type=int, default=None, help="Retention window; defaults to RETENTION_DAYS.")
    def purge_stale(days):
        """Delete login attempts and audit rows older than the retention window."""
        result = purge_stale_records(days=days)
        click.echo(
            f"Removed {result['login_attempts_deleted']} login attempts and "
            f"{result['audit_logs_deleted']} audit rows older than {result['cutoff']}"
        )

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
