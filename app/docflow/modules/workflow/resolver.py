from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol

from sqlalchemy.orm import sessionmaker

from app.docflow.db import session_scope
from app.docflow.models import User
from app.docflow.modules.workflow.entities import Actor

logger = logging.getLogger(__name__)


class UserDirectory(Protocol):
    def find_active(self, *, roles: Iterable[str], department: str) -> Actor | None: ...


class SqlUserDirectory:
    """Read-only user lookups against the `users` table."""

    def __init__(self, sm: sessionmaker) -> None:
        self._sm = sm

    def find_active(self, *, roles: Iterable[str], department: str) -> Actor | None:
        roles = list(roles)
        if not roles:
            return None
        with session_scope(self._sm) as s:
            user = (
                s.query(User)
                .filter(
                    User.role.in_(roles),
                    User.department == department,
                    User.is_active.is_(True),
                )
                .order_by(User.created_at.asc(), User.id.asc())
                .first()
            )
            return Actor.from_user(user) if user else None


class ActorResolver:
    """
    Picks the actor responsible for a stage.

    Policy: the longest-standing active user holding one of the stage's roles
    in the submission's department. Swap `directory` (or subclass and override
    `resolve`) for round-robin or load-based assignment.
    """

    def __init__(self, directory: UserDirectory) -> None:
        self.directory = directory

    def resolve(self, required_roles: Iterable[str], department: str) -> Actor | None:
        roles = tuple(required_roles)
        if not roles:
            return None
        actor = self.directory.find_active(roles=roles, department=department)
        if actor is None:
            logger.info("No active actor for roles=%s department=%s", ", ".join(roles), department)
        return actor
