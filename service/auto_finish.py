"""
Deadline sweep: submit sessions whose time is up.

Deadline policy:
  1. the session's own endTime, when set;
  2. otherwise the latest endTime among the session's tasks.
Sessions with neither are never auto-finished.
"""
from __future__ import annotations
from datetime import datetime
from typing import List, Optional
import asyncio
import logging

from engine.errors import ConcurrentUpdateError
from models.records import Session, SessionStatus, Task, utcnow
from session_service import SessionService

logger = logging.getLogger(__name__)

_SWEPT_STATUSES = (SessionStatus.IN_PROGRESS, SessionStatus.REOPENED)


def session_deadline(session: Session, tasks: List[Task]) -> Optional[datetime]:
    if session.end_time is not None:
        return session.end_time
    task_ends = [t.end_time for t in tasks if t.end_time is not None]
    return max(task_ends) if task_ends else None


async def auto_finish_due_sessions(service: SessionService, now: Optional[datetime] = None) -> List[str]:
    """Finish every in-progress session past its deadline; return the ids that changed."""
    now = now or utcnow()
    changed: List[str] = []

    for session in await service.store.list_sessions():
        if session.status not in _SWEPT_STATUSES:
            continue
        tasks = [] if session.end_time else await service.store.get_records("tasks", session.task_ids)
        deadline = session_deadline(session, tasks)
        if deadline is None or deadline > now:
            continue
        try:
            _, was_changed = await service.finish_session(session.id, auto=True, now=now)
        except ConcurrentUpdateError:
            # A submission got there first; the next sweep sees the new version
            logger.warning("Auto-finish lost a race on session %s; retrying next sweep", session.id)
            continue
        if was_changed:
            changed.append(session.id)

    if changed:
        logger.info("Auto-finished sessions: %s", ", ".join(changed))
    return changed


async def run_periodically(service: SessionService, interval_seconds: float) -> None:
    """Background loop started from the app lifespan; cancelled on shutdown."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await auto_finish_due_sessions(service)
        except Exception:
            logger.exception("Auto-finish sweep failed")
