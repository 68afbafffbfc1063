import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    workflow_scheduler: str
    workflow_delay_submitted_ms: int
    workflow_delay_verified_ms: int
    workflow_delay_approved_ms: int

    notification_retention_days: int
    notification_sweep_seconds: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).") from None


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///docflow.db"),
        workflow_scheduler=_getenv("WORKFLOW_SCHEDULER", "thread").lower(),
        # Demo-friendly defaults; production deployments usually raise these.
        workflow_delay_submitted_ms=_getenv_int("WORKFLOW_DELAY_SUBMITTED_MS", 5000),
        workflow_delay_verified_ms=_getenv_int("WORKFLOW_DELAY_VERIFIED_MS", 3000),
        workflow_delay_approved_ms=_getenv_int("WORKFLOW_DELAY_APPROVED_MS", 2000),
        notification_retention_days=_getenv_int("NOTIFICATION_RETENTION_DAYS", 30),
        notification_sweep_seconds=_getenv_int("NOTIFICATION_SWEEP_SECONDS", 3600),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "WORKFLOW_SCHEDULER": s.workflow_scheduler,
        "WORKFLOW_DELAY_SUBMITTED_MS": s.workflow_delay_submitted_ms,
        "WORKFLOW_DELAY_VERIFIED_MS": s.workflow_delay_verified_ms,
        "WORKFLOW_DELAY_APPROVED_MS": s.workflow_delay_approved_ms,
        "NOTIFICATION_RETENTION_DAYS": s.notification_retention_days,
        "NOTIFICATION_SWEEP_SECONDS": s.notification_sweep_seconds,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        "JSON_SORT_KEYS": False,
    }
