from flask import Blueprint, current_app

bp = Blueprint("routes", __name__)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    engine = current_app.extensions.get("workflow_engine")
    return {"ok": True, "stages": list(engine.stages.names()) if engine else []}


@bp.get("/healthz")
def healthz():
    """
    Fast liveness check for the load balancer. No DB access, minimal overhead.
    """
    return "ok", 200
