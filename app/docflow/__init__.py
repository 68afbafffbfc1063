import atexit
import logging
import os
from datetime import timedelta

from flask import Flask, g, jsonify, request, session
from dotenv import load_dotenv

from app.docflow.config import load_config
from app.docflow.db import init_db, teardown_db_session
from app.docflow.audit import AuditRecorder, SqlAuditSink
from app.docflow.routes import bp as routes_bp
from app.docflow.auth import bp as auth_bp, load_current_user
from app.docflow.admin import bp as admin_bp
from app.docflow.modules.workflow.admin import bp as workflow_bp
from app.docflow.modules.workflow.engine import WorkflowEngine
from app.docflow.modules.workflow.resolver import ActorResolver, SqlUserDirectory
from app.docflow.modules.workflow.scheduler import scheduler_from_config
from app.docflow.modules.workflow.stages import stage_table_from_config
from app.docflow.modules.workflow.store import SqlSubmissionStore
from app.docflow.modules.notifications.admin import bp as notifications_bp
from app.docflow.modules.notifications.service import NotificationDispatcher, RetentionSweeper
from app.docflow.modules.notifications.store import InMemoryNotificationStore


def _build_workflow(app: Flask) -> WorkflowEngine:
    sm = app.extensions["sqlalchemy_sessionmaker"]
    notifications = NotificationDispatcher(
        InMemoryNotificationStore(),
        retention_days=int(app.config["NOTIFICATION_RETENTION_DAYS"]),
    )
    scheduler = scheduler_from_config(app.config)
    engine = WorkflowEngine(
        store=SqlSubmissionStore(sm),
        stages=stage_table_from_config(app.config),
        resolver=ActorResolver(SqlUserDirectory(sm)),
        audit=AuditRecorder(SqlAuditSink(sm)),
        notifications=notifications,
        scheduler=scheduler,
    )
    app.extensions["workflow_engine"] = engine
    app.extensions["workflow_scheduler"] = scheduler
    app.extensions["notifications"] = notifications
    atexit.register(scheduler.shutdown)

    sweep_seconds = int(app.config["NOTIFICATION_SWEEP_SECONDS"])
    if sweep_seconds > 0:
        sweeper = RetentionSweeper(notifications, sweep_seconds)
        sweeper.start()
        atexit.register(sweeper.stop)
        app.extensions["notification_sweeper"] = sweeper
    return engine


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    @app.before_request
    def _permanent_session():
        if request.path.startswith(("/health", "/healthz")):
            return None
        session.permanent = True

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if app.config.get("WORKFLOW_SCHEDULER") == "manual":
            raise RuntimeError("WORKFLOW_SCHEDULER=manual never fires timers; use 'thread' in production.")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    engine = _build_workflow(app)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(admin_bp, url_prefix="/api")
    app.register_blueprint(workflow_bp, url_prefix="/api/forms")
    app.register_blueprint(notifications_bp, url_prefix="/api/notifications")

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return jsonify({"success": False, "message": "Route not found"}), 404

    @app.errorhandler(405)
    def _err_405(e):  # type: ignore[no-redef]
        return jsonify({"success": False, "message": "Method not allowed"}), 405

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"success": False, "message": "Internal server error"}), 500

    logging.getLogger(__name__).info(
        "create_app() complete; %d workflow stages, scheduler=%s",
        len(engine.stages),
        app.config.get("WORKFLOW_SCHEDULER"),
    )

    return app
