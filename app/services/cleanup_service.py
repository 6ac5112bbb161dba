"""Scheduled sweep that removes data past its retention window."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .collection_service import purge_expired_collections
from .notification_service import delete_expired_notifications

logger = logging.getLogger(__name__)


class CleanupError(RuntimeError):
    """Raised when the sweep cannot complete successfully."""


@dataclass(frozen=True, slots=True)
class SweepSummary:
    """Number of records removed during a sweep."""

    collections: int
    notifications: int

    @property
    def total(self) -> int:
        return self.collections + self.notifications


def perform_sweep(session: Session, *, now: datetime | None = None) -> SweepSummary:
    """Purge soft-deleted collections past recovery and expired notifications.

    Parameters
    ----------
    session:
        An active SQLAlchemy :class:`Session`.
    now:
        Reference time for the retention windows; defaults to the current UTC time.

    Raises
    ------
    CleanupError
        If the notification purge fails. Individual collection purges that
        fail are logged and retried on the next sweep.
    """

    now = now or datetime.now(timezone.utc)
    collections = purge_expired_collections(session, now=now)
    try:
        notifications = delete_expired_notifications(session, now=now)
    except SQLAlchemyError as exc:
        raise CleanupError("notification sweep failed") from exc

    summary = SweepSummary(collections=collections, notifications=notifications)
    logger.info(
        "Sweep finished (collections=%d, notifications=%d, total=%d)",
        summary.collections,
        summary.notifications,
        summary.total,
    )
    return summary


def run_sweep(session_factory: Callable[[], Session], *, now: datetime | None = None) -> SweepSummary:
    """Run one sweep in a session scoped to the run."""

    session = session_factory()
    try:
        return perform_sweep(session, now=now)
    finally:
        session.close()


__all__ = ["CleanupError", "SweepSummary", "perform_sweep", "run_sweep"]
