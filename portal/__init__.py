"""
Intranet Portal — Project Lifecycle Engine
Flask Application Factory.

Usage:
    from portal import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask
from flask_cors import CORS
from flask_migrate import Migrate

from portal.config import _SQLITE_DEV, basedir, config
from portal.models import db
from portal.middleware.logging_config import configure_logging
from portal.middleware.timing import init_request_timing

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()


def create_app(config_name=None, **overrides):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        overrides: Extra config values applied last (e.g. CLOCK,
                   TECH_COMPATIBILITY, PHASE_GATE_ENFORCE_UAT).

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    config_cls = config[config_name]
    # ProductionConfig validates required env vars on instantiation
    app.config.from_object(config_cls() if config_name == "production" else config_cls)
    app.config.update(overrides)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from portal.models import project as _project_models          # noqa: F401
    from portal.models import resource as _resource_models        # noqa: F401
    from portal.models import tech_stack as _tech_stack_models    # noqa: F401
    from portal.models import environment as _environment_models  # noqa: F401
    from portal.models import task as _task_models                # noqa: F401
    from portal.models import bug as _bug_models                  # noqa: F401
    from portal.models import uat as _uat_models                  # noqa: F401
    from portal.models import design_review as _design_review_models  # noqa: F401
    from portal.models import audit as _audit_models              # noqa: F401

    # ── Auto-create tables outside production (migrations own prod schema) ──
    if config_name != "production":
        if app.config["SQLALCHEMY_DATABASE_URI"] == _SQLITE_DEV:
            os.makedirs(os.path.join(basedir, "instance"), exist_ok=True)
        with app.app_context():
            db.create_all()
            app.logger.info("db.create_all() completed successfully")

    # ── Blueprints & error handlers ──────────────────────────────────────
    from portal.blueprints import all_blueprints, register_error_handlers

    for blueprint in all_blueprints():
        app.register_blueprint(blueprint)
    register_error_handlers(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("list-requirements")
    def list_requirements_cmd():
        """Print the phase gate requirements and whether each is enforced."""
        from portal.services.phase_requirements import list_requirements
        for row in list_requirements():
            marker = "stub" if row["is_stub"] else "enforced"
            logger.info("%-20s %-24s %s", row["phase"], row["requirement"], marker)

    return app
