import pytest

from app.docflow import create_app
from app.docflow.config import load_config, load_settings


def test_defaults(monkeypatch):
    for k in (
        "SECRET_KEY",
        "ENV",
        "DATABASE_URL",
        "WORKFLOW_SCHEDULER",
        "WORKFLOW_DELAY_SUBMITTED_MS",
        "WORKFLOW_DELAY_VERIFIED_MS",
        "WORKFLOW_DELAY_APPROVED_MS",
        "NOTIFICATION_RETENTION_DAYS",
        "NOTIFICATION_SWEEP_SECONDS",
    ):
        monkeypatch.delenv(k, raising=False)
    cfg = load_config()
    assert cfg["WORKFLOW_SCHEDULER"] == "thread"
    assert (cfg["WORKFLOW_DELAY_SUBMITTED_MS"], cfg["WORKFLOW_DELAY_VERIFIED_MS"], cfg["WORKFLOW_DELAY_APPROVED_MS"]) == (5000, 3000, 2000)
    assert cfg["NOTIFICATION_RETENTION_DAYS"] == 30
    assert cfg["SESSION_COOKIE_SECURE"] is False


def test_integer_settings_are_validated(monkeypatch):
    monkeypatch.setenv("WORKFLOW_DELAY_VERIFIED_MS", "soon")
    with pytest.raises(RuntimeError, match="WORKFLOW_DELAY_VERIFIED_MS"):
        load_settings()


def test_delays_flow_into_stage_table(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("WORKFLOW_SCHEDULER", "manual")
    monkeypatch.setenv("NOTIFICATION_SWEEP_SECONDS", "0")
    monkeypatch.setenv("WORKFLOW_DELAY_SUBMITTED_MS", "50")

    app = create_app()
    stages = app.extensions["workflow_engine"].stages
    assert stages.get("Submitted").auto_progress_delay_ms == 50
    assert "notification_sweeper" not in app.extensions


def test_production_guardrails(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("SECRET_KEY", "a-strong-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'prod.db'}")
    with pytest.raises(RuntimeError, match="Postgres"):
        create_app()

    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@localhost/docflow")
    monkeypatch.setenv("SECRET_KEY", "change-me")
    with pytest.raises(RuntimeError, match="SECRET_KEY"):
        create_app()


def test_background_timers_are_stopped_at_exit(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("WORKFLOW_SCHEDULER", "thread")
    monkeypatch.setenv("NOTIFICATION_SWEEP_SECONDS", "3600")
    registered = []
    monkeypatch.setattr("atexit.register", lambda fn, *a, **kw: registered.append(fn))

    app = create_app()
    scheduler = app.extensions["workflow_scheduler"]
    sweeper = app.extensions["notification_sweeper"]
    try:
        assert scheduler.shutdown in registered
        assert sweeper.stop in registered
    finally:
        sweeper.stop()
        scheduler.shutdown()
