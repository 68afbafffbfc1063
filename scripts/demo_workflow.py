"""
Drive one submission through the whole workflow against a local database.

Uses the manual scheduler so the delayed stage changes fire immediately,
then prints the submission, its approval history and the supervisor's inbox.

Usage:
  DATABASE_URL=sqlite:///demo.db python scripts/demo_workflow.py
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def main() -> None:
    os.environ["WORKFLOW_SCHEDULER"] = "manual"
    os.environ.setdefault("NOTIFICATION_SWEEP_SECONDS", "0")
    os.environ.setdefault("DATABASE_URL", "sqlite:///docflow_demo.db")

    from app.docflow import create_app
    from app.docflow.db import session_scope
    from app.docflow.models import Base, User
    from app.docflow.modules.workflow.entities import Actor
    from app.docflow.modules.workflow.stages import Action
    from app.docflow.rbac import ROLE_OPERATOR, ROLE_SUPERVISOR
    from scripts.init_db import seed_users

    app = create_app()
    Base.metadata.create_all(app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        seed_users(s, password=os.environ.get("SEED_PASSWORD") or "change-me")

    with session_scope(app) as s:
        operator = s.query(User).filter(User.role == ROLE_OPERATOR, User.department == "Production").order_by(User.id).first()
        supervisor = s.query(User).filter(User.role == ROLE_SUPERVISOR, User.department == "Production").order_by(User.id).first()
        operator_actor = Actor.from_user(operator)
        supervisor_actor = Actor.from_user(supervisor)

    engine = app.extensions["workflow_engine"]
    scheduler = app.extensions["workflow_scheduler"]

    draft = engine.store.create_draft(title="Line 3 torque check", department="Production", submitted_by=operator_actor.id)
    print(f"Created {draft.submission_number} ({draft.status})")

    result = engine.process(draft.id, Action.SUBMIT_FORM, operator_actor, {"comments": "Shift A readings"})
    print(result.message)
    scheduler.run_pending()

    result = engine.process(draft.id, Action.VERIFY_FORM, supervisor_actor, {"comments": "Values within tolerance"})
    print(result.message)
    scheduler.run_pending()

    final = engine.store.load(draft.id)
    print(json.dumps(final.to_dict(), indent=2, default=str))
    inbox = app.extensions["notifications"].list(supervisor_actor.id)
    print(f"Supervisor inbox: {[n.title for n in inbox]}")


if __name__ == "__main__":
    main()
