import sys
from pathlib import Path
import os

from werkzeug.security import generate_password_hash
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from contextlib import contextmanager

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.docflow.models import User
from app.docflow.rbac import (
    ROLE_ADMIN,
    ROLE_AUDITOR,
    ROLE_LINE_INCHARGE,
    ROLE_OPERATOR,
    ROLE_SUPERVISOR,
    ROLE_SYSTEM,
)

DEPARTMENTS = ("Production", "Quality", "Management")

# (role, email local part) seeded once per department. The System account is
# what the Verified -> Approved auto-progress resolves to.
SEED_ACCOUNTS = (
    (ROLE_OPERATOR, "operator"),
    (ROLE_LINE_INCHARGE, "lineincharge"),
    (ROLE_SUPERVISOR, "supervisor"),
    (ROLE_ADMIN, "admin"),
    (ROLE_AUDITOR, "auditor"),
    (ROLE_SYSTEM, "system"),
)


@contextmanager
def _session_scope(database_url: str):
    engine = create_engine(database_url, future=True)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()


def seed_users(s: Session, *, password: str, domain: str = "docflow.local") -> list[User]:
    """
    Ensure one active user per (role, department). Existing users are left
    untouched (password included). Returns the users created by this call.
    """
    created: list[User] = []
    for dept in DEPARTMENTS:
        for role, local in SEED_ACCOUNTS:
            email = f"{local}.{dept.lower()}@{domain}"
            if s.query(User).filter(User.email == email).one_or_none():
                continue
            user = User(
                email=email,
                password_hash=generate_password_hash(password),
                full_name=f"{dept} {role}",
                role=role,
                department=dept,
                is_active=True,
            )
            s.add(user)
            created.append(user)
    s.flush()
    return created


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed demo users in an idempotent way.
    Does NOT overwrite existing users' passwords.
    """
    password = os.environ.get("SEED_PASSWORD") or "change-me"
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///docflow.db").strip()

    with _session_scope(db_url) as s:
        created = seed_users(s, password=password)

    print(f"Initialized database (seed_only): {len(created)} user(s) created.")
    print(f"Departments: {', '.join(DEPARTMENTS)}")
    print("Password: (from SEED_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
