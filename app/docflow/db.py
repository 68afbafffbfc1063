from __future__ import annotations

from contextlib import contextmanager
from collections.abc import Generator

from flask import Flask, g
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker


def build_sessionmaker(db_url: str, *, debug_log=None) -> sessionmaker:
    """
    Engine + sessionmaker for a database URL.

    Workflow timers load and save submissions from background threads, so
    SQLite connections must not be pinned to the thread that opened them.
    """
    is_postgres = db_url.startswith("postgres")
    engine_kwargs: dict[str, object] = {
        "future": True,
        "pool_pre_ping": True,
    }
    if is_postgres:
        engine_kwargs.update(
            {
                "pool_recycle": 1800,
                "pool_size": 5,
                "max_overflow": 10,
                "pool_timeout": 30,
            }
        )
    elif db_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    engine = create_engine(db_url, **engine_kwargs)
    if debug_log is not None:
        @event.listens_for(engine, "checkout")
        def _receive_checkout(dbapi_connection, connection_record, connection_proxy):  # type: ignore[no-redef]
            debug_log("DB connection checkout from pool")
    return sessionmaker(
        bind=engine,
        class_=Session,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


def init_db(app: Flask) -> None:
    debug_log = app.logger.debug if app.config.get("ENV") != "production" else None
    sm = build_sessionmaker(app.config["DATABASE_URL"], debug_log=debug_log)
    app.extensions["sqlalchemy_engine"] = sm.kw["bind"]
    app.extensions["sqlalchemy_sessionmaker"] = sm


def db_session(app: Flask | None = None) -> Session:
    """
    Request-scoped session. Use inside request handlers.
    """
    if hasattr(g, "db_session") and g.db_session is not None:
        return g.db_session
    if app is None:
        from flask import current_app

        app = current_app
    sm = app.extensions["sqlalchemy_sessionmaker"]
    g.db_session = sm()  # type: ignore[assignment]
    return g.db_session


def teardown_db_session(_exc: BaseException | None) -> None:
    s: Session | None = getattr(g, "db_session", None)
    if s is not None:
        s.close()
        g.db_session = None


@contextmanager
def session_scope(source: Flask | sessionmaker) -> Generator[Session, None, None]:
    """
    Non-request unit of work: yields a session and commits/rolls back.
    Accepts the app (scripts, tests) or a bare sessionmaker (workflow collaborators).
    """
    sm = source.extensions["sqlalchemy_sessionmaker"] if isinstance(source, Flask) else source
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
