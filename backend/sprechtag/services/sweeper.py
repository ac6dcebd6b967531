"""Auto-assignment of overdue requests.

A verified request nobody acted on for ``AUTO_ASSIGN_AFTER_HOURS`` is resolved
to the first free slot, exactly as if the teacher had accepted it without
choosing a time. Runs as one asyncio task per process; with several instances
only one may have ``AUTO_ASSIGN_ENABLED``.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..core.clock import utcnow
from ..core.errors import BookingError
from ..database import SessionLocal
from ..models.booking_request import BookingRequest, RequestStatus
from .assignment import assign_request

logger = logging.getLogger(__name__)


def _overdue_query(db: Session, now: datetime, after_hours: int):
    cutoff = now - timedelta(hours=after_hours)
    return (
        db.query(BookingRequest)
        .filter(
            BookingRequest.status == RequestStatus.REQUESTED,
            BookingRequest.verified_at.isnot(None),
            BookingRequest.created_at <= cutoff,
        )
        .order_by(BookingRequest.created_at.asc(), BookingRequest.id.asc())
    )


def _resolve(db: Session, request: BookingRequest, now: datetime) -> bool:
    try:
        assign_request(db, request, request.teacher_id, now=now)
        return True
    except BookingError as e:
        db.rollback()
        logger.warning("auto-assignment of request %s failed: %s (%s)", request.id, e.code, e.message)
    except Exception:
        db.rollback()
        logger.exception("auto-assignment of request %s crashed", request.id)
    return False


def sweep_teacher(db: Session, teacher_id: int, now: datetime | None = None,
                  after_hours: int | None = None) -> int:
    """Resolve one teacher's overdue requests in the caller's session.
    Returns the number of requests accepted."""
    now = now or utcnow()
    hours = after_hours if after_hours is not None else settings.AUTO_ASSIGN_AFTER_HOURS
    rows = (
        _overdue_query(db, now, hours)
        .filter(BookingRequest.teacher_id == teacher_id)
        .limit(200)
        .all()
    )
    return sum(1 for r in rows if _resolve(db, r, now))


class AutoAssignSweeper:
    """Periodic global sweep owned by the application lifespan."""

    def __init__(self, session_factory=SessionLocal, *, interval_sec: int | None = None,
                 after_hours: int | None = None):
        self.session_factory = session_factory
        self.interval_sec = interval_sec if interval_sec is not None else settings.AUTO_ASSIGN_INTERVAL_SEC
        self.after_hours = after_hours if after_hours is not None else settings.AUTO_ASSIGN_AFTER_HOURS
        self.task: Optional[asyncio.Task] = None

    def run_once(self, now: datetime | None = None) -> int:
        """One pass over all teachers; each request gets its own session."""
        now = now or utcnow()
        with self.session_factory() as db:
            ids = [r.id for r in _overdue_query(db, now, self.after_hours).limit(500).all()]

        accepted = 0
        for request_id in ids:
            with self.session_factory() as db:
                request = db.get(BookingRequest, request_id)
                if request is None or request.status != RequestStatus.REQUESTED:
                    continue
                if _resolve(db, request, now):
                    accepted += 1
        if ids:
            logger.info("auto-assign sweep: %d of %d overdue requests accepted", accepted, len(ids))
        return accepted

    async def _loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval_sec)
                try:
                    await asyncio.to_thread(self.run_once)
                except Exception as exc:
                    logger.error("auto-assign sweep failed: %s", exc, exc_info=True)
        except asyncio.CancelledError:
            logger.info("auto-assign sweep cancelled")
            raise

    def start(self) -> None:
        if self.task is None:
            self.task = asyncio.create_task(self._loop())
            logger.info("auto-assign sweep started (every %ss)", self.interval_sec)

    async def stop(self) -> None:
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            self.task = None
