"""
Bring the docflow database to the latest schema, then seed demo users.

    python scripts/release.py [--no-seed]

Seeding never runs when ENV is production, and refuses a SQLite URL there.
"""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from alembic import command
from alembic.config import Config
from dotenv import load_dotenv

from app.docflow.config import load_settings


def alembic_config(database_url: str) -> Config:
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", database_url)
    return cfg


def run_release(*, seed: bool = True) -> None:
    load_dotenv()
    settings = load_settings()
    production = settings.env.lower() in ("prod", "production")
    if production and settings.database_url.startswith("sqlite"):
        raise RuntimeError("Production releases need a Postgres DATABASE_URL, not sqlite.")

    command.upgrade(alembic_config(settings.database_url), "head")
    print(f"docflow schema at head ({settings.env})", flush=True)

    if seed and not production:
        from scripts import init_db

        init_db.seed_only(database_url=settings.database_url)


def main() -> None:
    run_release(seed="--no-seed" not in sys.argv[1:])


if __name__ == "__main__":
    main()
