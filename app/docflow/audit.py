from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from flask import g, has_request_context, request
from sqlalchemy.orm import Session, sessionmaker

from app.docflow.db import session_scope
from app.docflow.models import AuditEvent, User

logger = logging.getLogger(__name__)

AUDIT_SUCCESS = "success"
AUDIT_FAILURE = "failure"


def _request_id() -> str | None:
    return getattr(g, "request_id", None) if has_request_context() else None


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: str,
    description: str = "",
    entity_type: str | None = None,
    entity_id: str | None = None,
    status: str = AUDIT_SUCCESS,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditEvent:
    """
    Append-only audit event helper for request handlers (caller commits).
    """
    ev = AuditEvent(
        request_id=request_id or _request_id(),
        actor_user_id=actor.id if actor else None,
        actor_user_email=actor.email if actor else None,
        action=action,
        description=description,
        entity_type=entity_type,
        entity_id=entity_id,
        status=status,
        department=actor.department if actor else None,
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
    )
    s.add(ev)
    return ev


@dataclass(frozen=True)
class AuditEntry:
    actor_id: int | None
    action: str
    description: str
    resource_ref: str | None
    status: str = AUDIT_SUCCESS
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)
    actor_email: str | None = None
    department: str | None = None
    resource_type: str = "FormSubmission"


class AuditSink(Protocol):
    def append(self, entry: AuditEntry) -> None: ...


class SqlAuditSink:
    """Writes each entry in its own short transaction."""

    def __init__(self, sm: sessionmaker) -> None:
        self._sm = sm

    def append(self, entry: AuditEntry) -> None:
        with session_scope(self._sm) as s:
            s.add(
                AuditEvent(
                    created_at=entry.timestamp,
                    request_id=_request_id(),
                    actor_user_id=entry.actor_id,
                    actor_user_email=entry.actor_email,
                    action=entry.action,
                    description=entry.description[:1000],
                    entity_type=entry.resource_type,
                    entity_id=entry.resource_ref,
                    status=entry.status,
                    department=entry.department,
                    metadata_json=json.dumps(entry.metadata, sort_keys=True, default=str) if entry.metadata else None,
                )
            )


class AuditRecorder:
    """
    Best-effort front for an AuditSink: `record()` never raises.

    A broken audit sink is logged and otherwise ignored so it cannot change
    the outcome of a workflow transition.
    """

    def __init__(self, sink: AuditSink) -> None:
        self.sink = sink

    def record(self, entry: AuditEntry) -> None:
        try:
            self.sink.append(entry)
        except Exception:
            logger.exception(
                "Failed to write audit entry action=%s resource=%s status=%s",
                entry.action,
                entry.resource_ref,
                entry.status,
            )
